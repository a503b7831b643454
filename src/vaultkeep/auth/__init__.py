# Auth Module - Session tokens, password hashing and account lifecycle

from .passwords import hash_password, new_security_stamp, verify_password
from .service import LEGACY_REGISTER_MESSAGE, AccountService, DeviceInfo
from .tokens import (
    ACCESS,
    PURPOSE_EMAIL_CHANGE,
    PURPOSE_REGISTRATION,
    REFRESH,
    SessionAuthority,
    TokenPair,
)

__all__ = [
    "SessionAuthority",
    "TokenPair",
    "ACCESS",
    "REFRESH",
    "PURPOSE_REGISTRATION",
    "PURPOSE_EMAIL_CHANGE",
    "AccountService",
    "DeviceInfo",
    "LEGACY_REGISTER_MESSAGE",
    "hash_password",
    "verify_password",
    "new_security_stamp",
]
