"""Server-side handling of the client-computed master password hash.

The client never sends the master password, only a hash derived from it.
The server stores sha256(security_stamp + client_hash): the stamp doubles
as a per-account salt, so rotating the stamp forces a re-hash.
"""
import hashlib
import secrets
import uuid


def hash_password(client_hash: str, stamp: str) -> str:
    """Hash a client password hash under ``stamp``."""
    return hashlib.sha256((stamp + client_hash).encode("utf-8")).hexdigest()


def verify_password(client_hash: str, stamp: str, stored_hash: str) -> bool:
    """Constant-time check of a presented client hash against the stored one."""
    if not client_hash or not stored_hash:
        return False
    return secrets.compare_digest(hash_password(client_hash, stamp), stored_hash)


def new_security_stamp(previous: str = "") -> str:
    """Generate a revocation stamp guaranteed to differ from ``previous``."""
    stamp = str(uuid.uuid4())
    while stamp == previous:
        stamp = str(uuid.uuid4())
    return stamp
