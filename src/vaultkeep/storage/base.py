# Storage Module - Abstract Store Contracts
#
# The server talks to exactly two stores:
#   - KeyValueStore: small string values (account records, vault index,
#     devices). Fast, single-key atomic.
#   - BlobStore: binary objects addressed by slash-separated keys (cipher
#     and folder JSON). Authoritative for vault contents.
#
# Both are async so a handler can issue independent operations against them
# concurrently. Implementations must wrap backend failures in
# UpstreamError and must not retry.

from abc import ABC, abstractmethod
from typing import List, Optional


class KeyValueStore(ABC):
    """Abstract string key-value store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""

    @abstractmethod
    async def put(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``. Deleting an absent key is not an error."""

    @abstractmethod
    async def add(self, key: str, value: str) -> bool:
        """Store ``value`` only if ``key`` is absent.

        This is the single compare-and-set primitive the server relies on:
        it is what makes duplicate-email registration resolve to exactly
        one winner.

        Returns:
            True if the value was written, False if the key already existed.
        """


class BlobStore(ABC):
    """Abstract binary object store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Return object bytes, or None if absent."""

    @abstractmethod
    async def put(self, key: str, data: bytes) -> None:
        """Write an object, replacing any previous one (last write wins)."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove an object. Deleting an absent object is not an error."""

    @abstractmethod
    async def list(self, prefix: str) -> List[str]:
        """Return all object keys starting with ``prefix`` (sorted)."""
