# Storage Module - Blob Store Backends
#
# FileBlobStore maps object keys onto a directory tree under `root`
# ("vaults/<account>/ciphers/<id>.json" -> root/vaults/<account>/ciphers/<id>.json).
# Writes go to a hidden temp file in the target directory followed by
# os.replace, so a reader sees either the old object or the new one, never
# a torn write. Hidden files are skipped by list().
#
# MemoryBlobStore is the test / single-process backend.

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..core.errors import UpstreamError
from .base import BlobStore

logger = logging.getLogger(__name__)


def _check_key(key: str) -> str:
    """Reject keys that could escape the store root."""
    if not key or key.startswith("/") or "\\" in key:
        raise ValueError(f"Invalid blob key: {key!r}")
    parts = key.split("/")
    if any(part in ("", ".", "..") or part.startswith(".") for part in parts):
        raise ValueError(f"Invalid blob key: {key!r}")
    return key


class FileBlobStore(BlobStore):
    """Filesystem-backed blob store.

    Args:
        root: Directory holding all objects. Created if missing.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.root.joinpath(*_check_key(key).split("/"))

    # ------------------------------------------------------------------
    # Blocking primitives (run on a worker thread)
    # ------------------------------------------------------------------

    def _get_sync(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def _put_sync(self, key: str, data: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _delete_sync(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def _list_sync(self, prefix: str) -> List[str]:
        # Walk only the prefix's directory; the trailing partial segment is
        # matched by startswith below.
        directory = prefix.rpartition("/")[0]
        start = self._path(directory) if directory else self.root
        if not start.is_dir():
            return []
        keys = []
        for path in start.rglob("*"):
            if not path.is_file() or path.name.startswith("."):
                continue
            key = path.relative_to(self.root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    async def _run(self, op: str, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except OSError as exc:
            logger.error("Blob %s failed for %s: %s", op, args[0], exc)
            raise UpstreamError("Object store unavailable") from exc

    # ------------------------------------------------------------------
    # BlobStore interface
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Optional[bytes]:
        return await self._run("get", self._get_sync, key)

    async def put(self, key: str, data: bytes) -> None:
        await self._run("put", self._put_sync, key, data)

    async def delete(self, key: str) -> None:
        await self._run("delete", self._delete_sync, key)

    async def list(self, prefix: str) -> List[str]:
        return await self._run("list", self._list_sync, prefix)


class MemoryBlobStore(BlobStore):
    """In-process dict store. Contents vanish with the process."""

    def __init__(self):
        self._objects: Dict[str, bytes] = {}

    async def get(self, key: str) -> Optional[bytes]:
        await asyncio.sleep(0)
        return self._objects.get(_check_key(key))

    async def put(self, key: str, data: bytes) -> None:
        await asyncio.sleep(0)
        self._objects[_check_key(key)] = bytes(data)

    async def delete(self, key: str) -> None:
        await asyncio.sleep(0)
        self._objects.pop(_check_key(key), None)

    async def list(self, prefix: str) -> List[str]:
        await asyncio.sleep(0)
        return sorted(k for k in self._objects if k.startswith(prefix))
