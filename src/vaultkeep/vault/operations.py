# Vault Module - Ordered Write Operations
#
# The vault lives in two stores that fail independently and share no
# transaction: the key-value index (advisory) and the blob object store
# (authoritative). Every mutation below is a fixed sequence of named steps
# chosen so that a crash at any point leaves a state sync still renders
# correctly. Sync reads only the object store, so the rule is simple:
# the index may be wrong, the objects may not be.
#
#   create       index_add || object_write          (concurrent)
#   update       object_write -> index_add           (index only if the object was new)
#   hard delete  sub_objects_delete -> object_delete -> index_remove
#   soft delete  object_write (deletedDate set)      (no index step)
#   restore      object_write (deletedDate cleared)  (no index step)
#   import       object_write per item (settled independently) -> one index_add batch

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core import utc_now_iso
from ..core.audit_log import EventSeverity, EventType, get_audit_logger
from ..core.errors import NotFoundError, UpstreamError, ValidationError
from .index import VaultIndex, VaultIndexStore
from .models import Cipher, Folder, build_cipher, build_folder
from .objects import VaultObjectStore, is_valid_object_id

logger = logging.getLogger(__name__)


def new_object_id() -> str:
    """Server-assigned id for a new cipher or folder."""
    return str(uuid.uuid4())


@dataclass
class ImportResult:
    """Items that actually committed during a bulk import."""
    ciphers: List[Cipher] = field(default_factory=list)
    folders: List[Folder] = field(default_factory=list)
    failed: int = 0


class VaultOperations:
    """Cipher and folder mutations with explicit cross-store ordering."""

    def __init__(self, objects: VaultObjectStore, index: VaultIndexStore):
        self.objects = objects
        self.index = index

    # ------------------------------------------------------------------
    # Named steps
    # ------------------------------------------------------------------
    # Each step touches exactly one store. The comment on each states
    # what survives if the process dies right after it.

    async def _step_cipher_index_add(self, account_id: str, cipher_id: str) -> None:
        # Survives alone as an orphan entry: never read by sync, harmless.
        await self.index.add_cipher(account_id, cipher_id)

    async def _step_cipher_object_write(self, account_id: str, cipher: Cipher) -> None:
        # Once this lands the item is visible to sync, index or not.
        await self.objects.put_cipher(account_id, cipher)

    async def _step_cipher_sub_objects_delete(self, account_id: str, cipher_id: str) -> None:
        # Crash after this: item still listed, sub-objects gone; a retried
        # delete finishes the job.
        await self.objects.delete_sub_objects(account_id, cipher_id)

    async def _step_cipher_object_delete(self, account_id: str, cipher_id: str) -> None:
        # Crash after this: item gone from sync, stale index entry remains.
        await self.objects.delete_cipher(account_id, cipher_id)

    async def _step_cipher_index_remove(self, account_id: str, cipher_id: str) -> None:
        await self.index.remove_cipher(account_id, cipher_id)

    async def _step_folder_index_add(self, account_id: str, folder_id: str) -> None:
        await self.index.add_folder(account_id, folder_id)

    async def _step_folder_object_write(self, account_id: str, folder: Folder) -> None:
        await self.objects.put_folder(account_id, folder)

    async def _step_folder_object_delete(self, account_id: str, folder_id: str) -> None:
        await self.objects.delete_folder(account_id, folder_id)

    async def _step_folder_index_remove(self, account_id: str, folder_id: str) -> None:
        await self.index.remove_folder(account_id, folder_id)

    # ------------------------------------------------------------------
    # Ciphers
    # ------------------------------------------------------------------

    async def get_cipher(self, account_id: str, cipher_id: str) -> Cipher:
        cipher = await self.objects.get_cipher(account_id, cipher_id)
        if cipher is None:
            raise NotFoundError("Cipher not found")
        return cipher

    async def create_cipher(self, account_id: str, body: Dict[str, Any]) -> Cipher:
        """Create a cipher under a fresh server-assigned id.

        Both steps run concurrently; either may finish first. If the object
        write fails the request fails and the index entry (if it landed)
        is an orphan.
        """
        cipher = build_cipher(body, new_object_id())
        await asyncio.gather(
            self._step_cipher_index_add(account_id, cipher.id),
            self._step_cipher_object_write(account_id, cipher),
        )
        return cipher

    async def update_cipher(self, account_id: str, cipher_id: str, body: Dict[str, Any]) -> Cipher:
        """Replace a cipher, creating it if absent (upsert).

        The object is written first. The index entry is added only when no
        object existed before this update began, which is what separates
        an upsert-create from an edit.
        """
        if not is_valid_object_id(cipher_id):
            raise NotFoundError("Cipher not found")
        existing = await self.objects.get_cipher(account_id, cipher_id)
        cipher = build_cipher(body, cipher_id, existing=existing)
        await self._step_cipher_object_write(account_id, cipher)
        if existing is None:
            await self._step_cipher_index_add(account_id, cipher_id)
        return cipher

    async def hard_delete_cipher(self, account_id: str, cipher_id: str) -> None:
        """Permanently delete a cipher. Deleting an absent cipher succeeds."""
        if not is_valid_object_id(cipher_id):
            raise NotFoundError("Cipher not found")
        await self._step_cipher_sub_objects_delete(account_id, cipher_id)
        await self._step_cipher_object_delete(account_id, cipher_id)
        await self._step_cipher_index_remove(account_id, cipher_id)
        get_audit_logger().log_event(
            EventType.CIPHER_DELETED, EventSeverity.INFO,
            "Cipher permanently deleted",
            details={"cipher_id": cipher_id}, account_id=account_id,
        )

    async def soft_delete_cipher(self, account_id: str, cipher_id: str) -> Cipher:
        """Move a cipher to the trash (tombstone)."""
        cipher = await self.get_cipher(account_id, cipher_id)
        now = utc_now_iso()
        cipher.deleted_date = now
        cipher.revision_date = now
        await self._step_cipher_object_write(account_id, cipher)
        return cipher

    async def restore_cipher(self, account_id: str, cipher_id: str) -> Cipher:
        """Take a cipher out of the trash. Restoring a live cipher is a no-op success."""
        cipher = await self.get_cipher(account_id, cipher_id)
        cipher.deleted_date = None
        cipher.revision_date = utc_now_iso()
        await self._step_cipher_object_write(account_id, cipher)
        return cipher

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    async def get_folder(self, account_id: str, folder_id: str) -> Folder:
        folder = await self.objects.get_folder(account_id, folder_id)
        if folder is None:
            raise NotFoundError("Folder not found")
        return folder

    async def create_folder(self, account_id: str, body: Dict[str, Any]) -> Folder:
        folder = build_folder(body, new_object_id())
        await asyncio.gather(
            self._step_folder_index_add(account_id, folder.id),
            self._step_folder_object_write(account_id, folder),
        )
        return folder

    async def update_folder(self, account_id: str, folder_id: str, body: Dict[str, Any]) -> Folder:
        if not is_valid_object_id(folder_id):
            raise NotFoundError("Folder not found")
        existing = await self.objects.get_folder(account_id, folder_id)
        folder = build_folder(body, folder_id)
        await self._step_folder_object_write(account_id, folder)
        if existing is None:
            await self._step_folder_index_add(account_id, folder_id)
        return folder

    async def delete_folder(self, account_id: str, folder_id: str) -> None:
        if not is_valid_object_id(folder_id):
            raise NotFoundError("Folder not found")
        await self._step_folder_object_delete(account_id, folder_id)
        await self._step_folder_index_remove(account_id, folder_id)
        get_audit_logger().log_event(
            EventType.FOLDER_DELETED, EventSeverity.INFO,
            "Folder deleted",
            details={"folder_id": folder_id}, account_id=account_id,
        )

    # ------------------------------------------------------------------
    # Bulk import
    # ------------------------------------------------------------------

    async def _import_folder(self, account_id: str, folder: Folder) -> Folder:
        await self._step_folder_object_write(account_id, folder)
        return folder

    async def _import_cipher(self, account_id: str, cipher: Cipher) -> Cipher:
        await self._step_cipher_object_write(account_id, cipher)
        return cipher

    async def _step_import_index_add(self, account_id: str, result: ImportResult) -> None:
        # One read-modify-write for the whole batch; per-item updates race.
        try:
            await self.index.add_many(
                account_id,
                cipher_ids=[c.id for c in result.ciphers],
                folder_ids=[f.id for f in result.folders],
            )
        except UpstreamError as exc:
            logger.warning("Import: index update failed for account=%s: %s", account_id, exc)

    async def import_vault(
        self,
        account_id: str,
        ciphers: List[Dict[str, Any]],
        folders: List[Dict[str, Any]],
        folder_relationships: Optional[List[Dict[str, Any]]] = None,
    ) -> ImportResult:
        """Best-effort bulk import.

        Folders go first so ciphers can point at them. Every item is
        attempted independently; failures are counted and logged, never
        raised. ``folder_relationships`` entries map a cipher position
        (``key``) to a folder position (``value``) in the request; a
        cipher is only attached to a folder that actually committed.
        """
        result = ImportResult()

        # Folders: position in request -> built folder (None if invalid)
        built_folders: List[Optional[Folder]] = []
        for body in folders:
            try:
                built_folders.append(build_folder(body, new_object_id()))
            except ValidationError:
                built_folders.append(None)
                result.failed += 1

        folder_jobs = [self._import_folder(account_id, f) for f in built_folders if f is not None]
        committed_folder_ids = set()
        for outcome in await asyncio.gather(*folder_jobs, return_exceptions=True):
            if isinstance(outcome, BaseException):
                logger.warning("Import: folder write failed for account=%s: %s", account_id, outcome)
                result.failed += 1
                continue
            result.folders.append(outcome)
            committed_folder_ids.add(outcome.id)

        folder_for_cipher: Dict[int, str] = {}
        for rel in folder_relationships or []:
            try:
                cipher_pos, folder_pos = int(rel.get("key")), int(rel.get("value"))
            except (TypeError, ValueError):
                continue
            if 0 <= folder_pos < len(built_folders):
                folder = built_folders[folder_pos]
                if folder is not None and folder.id in committed_folder_ids:
                    folder_for_cipher[cipher_pos] = folder.id

        built_ciphers: List[Cipher] = []
        for pos, body in enumerate(ciphers):
            try:
                cipher = build_cipher(body, new_object_id())
            except ValidationError:
                result.failed += 1
                continue
            if pos in folder_for_cipher:
                cipher.folder_id = folder_for_cipher[pos]
            elif cipher.folder_id and cipher.folder_id not in committed_folder_ids:
                # A client-side folder id from another vault means nothing here.
                cipher.folder_id = None
            built_ciphers.append(cipher)

        cipher_jobs = [self._import_cipher(account_id, c) for c in built_ciphers]
        for outcome in await asyncio.gather(*cipher_jobs, return_exceptions=True):
            if isinstance(outcome, BaseException):
                logger.warning("Import: cipher write failed for account=%s: %s", account_id, outcome)
                result.failed += 1
                continue
            result.ciphers.append(outcome)

        if result.ciphers or result.folders:
            await self._step_import_index_add(account_id, result)

        get_audit_logger().log_event(
            EventType.VAULT_IMPORTED, EventSeverity.INFO,
            "Vault import finished",
            details={
                "ciphers": len(result.ciphers),
                "folders": len(result.folders),
                "failed": result.failed,
            },
            account_id=account_id,
        )
        return result

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def reconcile_index(self, account_id: str) -> VaultIndex:
        """Rebuild an account's index from the object store listing.

        Drops orphan entries and adds missing ones. Sync output is
        unaffected either way since sync never reads the index.
        """
        ciphers, folders = await asyncio.gather(
            self.objects.list_ciphers(account_id),
            self.objects.list_folders(account_id),
        )
        before = await self.index.get(account_id)
        rebuilt = VaultIndex(
            cipher_ids=[c.id for c in ciphers],
            folder_ids=[f.id for f in folders],
        )
        await self.index.put(account_id, rebuilt)
        get_audit_logger().log_event(
            EventType.INDEX_RECONCILED, EventSeverity.INFO,
            "Vault index rebuilt from object store",
            details={
                "orphans_dropped": len(set(before.cipher_ids) - set(rebuilt.cipher_ids))
                + len(set(before.folder_ids) - set(rebuilt.folder_ids)),
                "entries_added": len(set(rebuilt.cipher_ids) - set(before.cipher_ids))
                + len(set(rebuilt.folder_ids) - set(before.folder_ids)),
            },
            account_id=account_id,
        )
        return rebuilt
