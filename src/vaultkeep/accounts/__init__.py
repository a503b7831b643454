# Accounts Module - Account records and their key-value storage

from .models import KDF_ARGON2, KDF_PBKDF2, Account
from .store import CredentialRecordStore, normalize_email

__all__ = ["Account", "CredentialRecordStore", "normalize_email", "KDF_PBKDF2", "KDF_ARGON2"]
