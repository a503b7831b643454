"""
Credential Record Store - accounts in the key-value store.

Keys:
    user:{email}       -> Account JSON (email lower-cased)
    user_id:{id}       -> email (secondary index for token lookups)

The email key is the record of truth. ``user_id:`` is written after the
record, so a crash between the two leaves an account that can log in (by
email) but whose tokens fail validation until the next save rewrites the
pointer.
"""
import json
import logging
from typing import Optional

from ..core.errors import ConflictError
from ..storage.base import KeyValueStore
from .models import Account

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """Case-normalize an email for use as a key."""
    return (email or "").strip().lower()


def _user_key(email: str) -> str:
    return f"user:{normalize_email(email)}"


def _user_id_key(account_id: str) -> str:
    return f"user_id:{account_id}"


class CredentialRecordStore:
    """CRUD over Account records keyed by normalized email."""

    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    async def get(self, email: str) -> Optional[Account]:
        """Look up an account by email (case-insensitive)."""
        if not normalize_email(email):
            return None
        raw = await self._kv.get(_user_key(email))
        if raw is None:
            return None
        return Account.from_dict(json.loads(raw))

    async def get_by_id(self, account_id: str) -> Optional[Account]:
        """Look up an account through the id -> email pointer."""
        email = await self._kv.get(_user_id_key(account_id))
        if email is None:
            return None
        account = await self.get(email)
        if account is None or account.id != account_id:
            # Pointer outlived its record (email change crashed midway).
            return None
        return account

    async def exists(self, email: str) -> bool:
        return await self.get(email) is not None

    async def create(self, account: Account) -> Account:
        """Persist a brand-new account.

        The email key is claimed with the store's create-if-absent
        primitive, so of two concurrent creates for one email exactly one
        succeeds.

        Raises:
            ConflictError: If the email is already registered.
        """
        account.email = normalize_email(account.email)
        claimed = await self._kv.add(_user_key(account.email), json.dumps(account.to_dict()))
        if not claimed:
            raise ConflictError("User already exists")
        await self._kv.put(_user_id_key(account.id), account.email)
        logger.info("Account created: id=%s", account.id)
        return account

    async def save(self, account: Account) -> None:
        """Overwrite an existing account record (last write wins)."""
        account.email = normalize_email(account.email)
        await self._kv.put(_user_key(account.email), json.dumps(account.to_dict()))
        await self._kv.put(_user_id_key(account.id), account.email)

    async def rename(self, account: Account, old_email: str) -> None:
        """Move an account to a new email key.

        Order: claim the new key, repoint ``user_id:``, delete the old key.
        A crash before the last step leaves a stale old-email record whose
        stamp no longer matches any token issued after the change.

        Raises:
            ConflictError: If the new email is already taken.
        """
        account.email = normalize_email(account.email)
        claimed = await self._kv.add(_user_key(account.email), json.dumps(account.to_dict()))
        if not claimed:
            raise ConflictError("Email already in use")
        await self._kv.put(_user_id_key(account.id), account.email)
        await self._kv.delete(_user_key(old_email))
