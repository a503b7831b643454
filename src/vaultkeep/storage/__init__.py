# Storage Module - Key-Value and Blob Store Adapters

from .base import BlobStore, KeyValueStore
from .blob import FileBlobStore, MemoryBlobStore
from .kv import MemoryKeyValueStore, SqliteKeyValueStore

__all__ = [
    "KeyValueStore",
    "BlobStore",
    "SqliteKeyValueStore",
    "MemoryKeyValueStore",
    "FileBlobStore",
    "MemoryBlobStore",
]
