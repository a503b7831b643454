# API Module - Service Container and Request Dependencies
#
# One Services object holds every store and service the routes need. It
# is built from Settings once per process (get_services) and can be swapped
# wholesale with set_services, which is how tests run against in-memory
# stores.

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..accounts import Account, CredentialRecordStore
from ..auth.service import AccountService
from ..auth.tokens import SessionAuthority
from ..core.audit_log import configure_audit_logger
from ..core.config import Settings
from ..core.errors import AuthError
from ..devices import DeviceStore
from ..notify import Mailer, PushRelay
from ..storage import (
    BlobStore,
    FileBlobStore,
    KeyValueStore,
    MemoryBlobStore,
    MemoryKeyValueStore,
    SqliteKeyValueStore,
)
from ..vault import SyncEngine, VaultIndexStore, VaultObjectStore, VaultOperations

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    kv: KeyValueStore
    blob: BlobStore
    accounts: CredentialRecordStore
    authority: SessionAuthority
    account_service: AccountService
    vault: VaultOperations
    sync: SyncEngine
    devices: DeviceStore
    push: PushRelay
    mailer: Mailer


def build_services(
    settings: Settings,
    kv: Optional[KeyValueStore] = None,
    blob: Optional[BlobStore] = None,
    push: Optional[PushRelay] = None,
    mailer: Optional[Mailer] = None,
) -> Services:
    """Wire stores and services for ``settings``.

    Explicit ``kv`` / ``blob`` / ``push`` / ``mailer`` arguments win over
    what the settings would build.
    """
    if kv is None or blob is None:
        if settings.storage == "memory":
            kv = kv or MemoryKeyValueStore()
            blob = blob or MemoryBlobStore()
        else:
            kv = kv or SqliteKeyValueStore(settings.data_dir / "vaultkeep.db")
            blob = blob or FileBlobStore(settings.data_dir / "blobs")

    accounts = CredentialRecordStore(kv)
    authority = SessionAuthority(
        accounts,
        settings.jwt_secret,
        access_ttl=settings.access_ttl,
        refresh_ttl=settings.refresh_ttl,
        assertion_ttl=settings.assertion_ttl,
    )
    devices = DeviceStore(kv)
    push = push or PushRelay(settings)
    mailer = mailer or Mailer(settings)
    objects = VaultObjectStore(blob)

    return Services(
        settings=settings,
        kv=kv,
        blob=blob,
        accounts=accounts,
        authority=authority,
        account_service=AccountService(accounts, authority, devices, push, mailer),
        vault=VaultOperations(objects, VaultIndexStore(kv)),
        sync=SyncEngine(objects),
        devices=devices,
        push=push,
        mailer=mailer,
    )


# Global service container (one per process)
_services: Optional[Services] = None


def get_services() -> Services:
    """Return the process service container, building it from the environment on first use."""
    global _services
    if _services is None:
        settings = Settings.from_env()
        configure_audit_logger(settings.log_dir)
        _services = build_services(settings)
        logger.info("Services initialized (storage=%s, push=%s)", settings.storage, settings.push_configured)
    return _services


def set_services(services: Optional[Services]) -> None:
    """Replace (or with None, reset) the process service container."""
    global _services
    _services = services


_bearer = HTTPBearer(auto_error=False)


async def current_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    services: Services = Depends(get_services),
) -> Account:
    """FastAPI dependency resolving the bearer access token to its account.

    Raises:
        AuthError: 401 ``invalid_token`` for a missing, expired, revoked or
            otherwise invalid token.
    """
    if credentials is None or not credentials.credentials:
        raise AuthError("invalid_token", reason="missing")
    return await services.authority.validate_access(credentials.credentials)
