"""
Vault Index - advisory per-account id sets in the key-value store.

Key: ``vault_index:{account_id}`` -> {"cipherIds": [...], "folderIds": [...], "revision": iso}

The index is a write-side cache. It may contain ids whose objects never
landed (orphans) and may miss ids whose objects exist; both are harmless
because sync lists the object store directly and never reads this.
Updates are read-modify-write without locking, so two racing writers can
drop each other's entry. That too is tolerated.
"""
import json
from dataclasses import dataclass, field
from typing import Iterable, List

from ..core import utc_now_iso
from ..storage.base import KeyValueStore


@dataclass
class VaultIndex:
    cipher_ids: List[str] = field(default_factory=list)
    folder_ids: List[str] = field(default_factory=list)
    revision: str = ""

    def to_dict(self):
        return {"cipherIds": self.cipher_ids, "folderIds": self.folder_ids, "revision": self.revision}


def _index_key(account_id: str) -> str:
    return f"vault_index:{account_id}"


class VaultIndexStore:
    """Reads and mutates per-account vault indices."""

    CIPHERS = "cipher_ids"
    FOLDERS = "folder_ids"

    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    async def get(self, account_id: str) -> VaultIndex:
        raw = await self._kv.get(_index_key(account_id))
        if raw is None:
            return VaultIndex(revision=utc_now_iso())
        data = json.loads(raw)
        return VaultIndex(
            cipher_ids=list(data.get("cipherIds") or []),
            folder_ids=list(data.get("folderIds") or []),
            revision=data.get("revision", ""),
        )

    async def put(self, account_id: str, index: VaultIndex) -> None:
        index.revision = utc_now_iso()
        await self._kv.put(_index_key(account_id), json.dumps(index.to_dict()))

    async def _add(self, account_id: str, attr: str, item_id: str) -> None:
        index = await self.get(account_id)
        ids = getattr(index, attr)
        if item_id not in ids:
            ids.append(item_id)
            await self.put(account_id, index)

    async def add_many(self, account_id: str, cipher_ids: Iterable[str] = (), folder_ids: Iterable[str] = ()) -> None:
        """Add several ids in one read-modify-write."""
        index = await self.get(account_id)
        changed = False
        for attr, new_ids in ((self.CIPHERS, cipher_ids), (self.FOLDERS, folder_ids)):
            ids = getattr(index, attr)
            for item_id in new_ids:
                if item_id not in ids:
                    ids.append(item_id)
                    changed = True
        if changed:
            await self.put(account_id, index)

    async def _remove(self, account_id: str, attr: str, item_id: str) -> None:
        index = await self.get(account_id)
        ids = getattr(index, attr)
        if item_id in ids:
            ids.remove(item_id)
            await self.put(account_id, index)

    async def add_cipher(self, account_id: str, cipher_id: str) -> None:
        await self._add(account_id, self.CIPHERS, cipher_id)

    async def remove_cipher(self, account_id: str, cipher_id: str) -> None:
        await self._remove(account_id, self.CIPHERS, cipher_id)

    async def add_folder(self, account_id: str, folder_id: str) -> None:
        await self._add(account_id, self.FOLDERS, folder_id)

    async def remove_folder(self, account_id: str, folder_id: str) -> None:
        await self._remove(account_id, self.FOLDERS, folder_id)
