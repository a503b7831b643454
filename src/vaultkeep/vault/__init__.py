# Vault Module - Ciphers, folders, index and sync

from .index import VaultIndex, VaultIndexStore
from .models import Cipher, CipherType, Folder, build_cipher, build_folder
from .objects import VaultObjectStore, is_valid_object_id
from .operations import ImportResult, VaultOperations
from .sync import SyncEngine, build_domains, build_profile

__all__ = [
    "Cipher",
    "CipherType",
    "Folder",
    "build_cipher",
    "build_folder",
    "VaultIndex",
    "VaultIndexStore",
    "VaultObjectStore",
    "is_valid_object_id",
    "VaultOperations",
    "ImportResult",
    "SyncEngine",
    "build_profile",
    "build_domains",
]
