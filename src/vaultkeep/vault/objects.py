"""
Vault Object Store - authoritative cipher and folder objects in the blob store.

Object keys:
    vaults/{account_id}/ciphers/{cipher_id}.json
    vaults/{account_id}/folders/{folder_id}.json
    vaults/{account_id}/attachments/{cipher_id}/...   (cipher sub-objects)

Listing is the ground truth for sync. An id that does not look like one we
issued is treated as absent, which keeps path parameters from reaching
outside the account's prefix.
"""
import asyncio
import json
import logging
import re
from typing import List, Optional

from ..storage.base import BlobStore
from .models import Cipher, Folder

logger = logging.getLogger(__name__)

_ID_PATTERN = re.compile(r"^[A-Za-z0-9-]{1,64}$")


def is_valid_object_id(object_id: str) -> bool:
    return bool(object_id) and _ID_PATTERN.match(object_id) is not None


class VaultObjectStore:
    """Typed access to one blob store, partitioned by account id."""

    def __init__(self, blob: BlobStore):
        self._blob = blob

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    @staticmethod
    def cipher_prefix(account_id: str) -> str:
        return f"vaults/{account_id}/ciphers/"

    @staticmethod
    def folder_prefix(account_id: str) -> str:
        return f"vaults/{account_id}/folders/"

    @staticmethod
    def sub_object_prefix(account_id: str, cipher_id: str) -> str:
        return f"vaults/{account_id}/attachments/{cipher_id}/"

    def _cipher_key(self, account_id: str, cipher_id: str) -> str:
        return f"{self.cipher_prefix(account_id)}{cipher_id}.json"

    def _folder_key(self, account_id: str, folder_id: str) -> str:
        return f"{self.folder_prefix(account_id)}{folder_id}.json"

    # ------------------------------------------------------------------
    # Ciphers
    # ------------------------------------------------------------------

    async def get_cipher(self, account_id: str, cipher_id: str) -> Optional[Cipher]:
        if not is_valid_object_id(cipher_id):
            return None
        raw = await self._blob.get(self._cipher_key(account_id, cipher_id))
        return Cipher.from_dict(json.loads(raw)) if raw is not None else None

    async def put_cipher(self, account_id: str, cipher: Cipher) -> None:
        data = json.dumps(cipher.to_dict()).encode("utf-8")
        await self._blob.put(self._cipher_key(account_id, cipher.id), data)

    async def delete_cipher(self, account_id: str, cipher_id: str) -> None:
        if is_valid_object_id(cipher_id):
            await self._blob.delete(self._cipher_key(account_id, cipher_id))

    async def delete_sub_objects(self, account_id: str, cipher_id: str) -> int:
        """Delete every object stored under a cipher's sub-object prefix."""
        if not is_valid_object_id(cipher_id):
            return 0
        keys = await self._blob.list(self.sub_object_prefix(account_id, cipher_id))
        for key in keys:
            await self._blob.delete(key)
        return len(keys)

    async def list_ciphers(self, account_id: str) -> List[Cipher]:
        return [Cipher.from_dict(d) for d in await self._list_json(self.cipher_prefix(account_id))]

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    async def get_folder(self, account_id: str, folder_id: str) -> Optional[Folder]:
        if not is_valid_object_id(folder_id):
            return None
        raw = await self._blob.get(self._folder_key(account_id, folder_id))
        return Folder.from_dict(json.loads(raw)) if raw is not None else None

    async def put_folder(self, account_id: str, folder: Folder) -> None:
        data = json.dumps(folder.to_dict()).encode("utf-8")
        await self._blob.put(self._folder_key(account_id, folder.id), data)

    async def delete_folder(self, account_id: str, folder_id: str) -> None:
        if is_valid_object_id(folder_id):
            await self._blob.delete(self._folder_key(account_id, folder_id))

    async def list_folders(self, account_id: str) -> List[Folder]:
        return [Folder.from_dict(d) for d in await self._list_json(self.folder_prefix(account_id))]

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def _list_json(self, prefix: str) -> list:
        """Fetch every ``.json`` object under ``prefix``.

        Objects deleted between list and get are skipped.
        """
        keys = [k for k in await self._blob.list(prefix) if k.endswith(".json")]
        bodies = await asyncio.gather(*(self._blob.get(k) for k in keys))
        return [json.loads(body) for body in bodies if body is not None]
