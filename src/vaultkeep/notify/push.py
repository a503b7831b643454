# Notify Module - Push Relay Client
#
# Forwards sync hints to an external push relay so mobile clients learn
# about vault changes without polling. Delivery is best effort: every
# public call returns a falsy value on failure and logs why; nothing here
# raises into a request path.
#
# The relay authenticates with an OAuth client-credentials bearer token.
# It is cached in module state (one cache per process) until five minutes
# before it expires; an empty or stale cache simply fetches a new one.

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ..core.config import Settings
from ..devices.store import Device

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SEC = 10
TOKEN_EXPIRY_MARGIN_SEC = 300


class NotificationType:
    """Sync hint types understood by clients."""
    SYNC_CIPHER_UPDATE = 0
    SYNC_CIPHER_CREATE = 1
    SYNC_LOGIN_DELETE = 2
    SYNC_FOLDER_DELETE = 3
    SYNC_CIPHERS = 4
    SYNC_VAULT = 5
    SYNC_ORG_KEYS = 6
    SYNC_FOLDER_CREATE = 7
    SYNC_FOLDER_UPDATE = 8
    SYNC_CIPHER_DELETE = 9
    SYNC_SETTINGS = 10
    LOG_OUT = 11


@dataclass
class _CachedToken:
    token: str
    expires_at: float


class _RelayTokenCache:
    """Process-wide holder for the relay bearer token."""

    def __init__(self):
        self._entry: Optional[_CachedToken] = None

    def get(self, now: float) -> Optional[str]:
        if self._entry is not None and now < self._entry.expires_at:
            return self._entry.token
        return None

    def set(self, token: str, expires_in: int, now: float) -> None:
        self._entry = _CachedToken(token, now + expires_in - TOKEN_EXPIRY_MARGIN_SEC)

    def clear(self) -> None:
        self._entry = None


_token_cache = _RelayTokenCache()


def reset_token_cache() -> None:
    """Forget the cached relay token (tests, credential rotation)."""
    _token_cache.clear()


class PushRelay:
    """Client for the push relay's register / unregister / send endpoints.

    Args:
        settings: Server settings (installation credentials, relay URIs).
        transport: Optional httpx transport; tests pass ``httpx.MockTransport``.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._settings = settings
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return self._settings.push_configured

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=REQUEST_TIMEOUT_SEC)

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        now = time.time()
        cached = _token_cache.get(now)
        if cached:
            return cached

        s = self._settings
        resp = await client.post(
            f"{s.push_identity_uri}/connect/token",
            data={
                "grant_type": "client_credentials",
                "scope": "api.push",
                "client_id": f"installation.{s.push_installation_id}",
                "client_secret": s.push_installation_key,
            },
        )
        resp.raise_for_status()
        data = resp.json()
        _token_cache.set(data["access_token"], int(data.get("expires_in", 3600)), now)
        return data["access_token"]

    async def register(self, account_id: str, device: Device) -> Optional[str]:
        """Register a device's push token; returns the relay's push id."""
        if not self.enabled or not device.push_token:
            return None
        try:
            async with self._client() as client:
                token = await self._access_token(client)
                resp = await client.post(
                    f"{self._settings.push_relay_uri}/push/register",
                    headers={"Authorization": f"Bearer {token}"},
                    json={
                        "userId": account_id,
                        "deviceId": device.identifier,
                        "identifier": device.identifier,
                        "type": device.type,
                        "pushToken": device.push_token,
                    },
                )
                if resp.status_code >= 400:
                    logger.error("Push register failed: HTTP %d", resp.status_code)
                    return None
                push_id = resp.json().get("id")
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            logger.error("Push register error: %s", exc)
            return None
        logger.info("Push device registered: %s", device.identifier)
        return push_id

    async def unregister(self, push_uuid: Optional[str]) -> bool:
        """Remove a push registration. An unknown id (404) counts as success."""
        if not self.enabled or not push_uuid:
            return False
        try:
            async with self._client() as client:
                token = await self._access_token(client)
                resp = await client.delete(
                    f"{self._settings.push_relay_uri}/push/{push_uuid}",
                    headers={"Authorization": f"Bearer {token}"},
                )
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            logger.error("Push unregister error: %s", exc)
            return False
        if resp.status_code >= 400 and resp.status_code != 404:
            logger.error("Push unregister failed: HTTP %d", resp.status_code)
            return False
        return True

    async def notify(
        self,
        account_id: str,
        notification_type: int,
        payload: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Send one sync hint to all of an account's registered devices."""
        if not self.enabled:
            return False
        try:
            async with self._client() as client:
                token = await self._access_token(client)
                resp = await client.post(
                    f"{self._settings.push_relay_uri}/push/send",
                    headers={"Authorization": f"Bearer {token}"},
                    json={"userId": account_id, "type": notification_type, "payload": payload or {}},
                )
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            logger.error("Push send error: %s", exc)
            return False
        if resp.status_code >= 400:
            logger.error("Push send failed: HTTP %d", resp.status_code)
            return False
        logger.debug("Push sent: type=%d account=%s", notification_type, account_id)
        return True

    # Convenience wrappers used by route handlers

    async def cipher_changed(self, account_id: str, cipher_id: str, revision_date: str, created: bool = False) -> bool:
        kind = NotificationType.SYNC_CIPHER_CREATE if created else NotificationType.SYNC_CIPHER_UPDATE
        return await self.notify(account_id, kind, {"id": cipher_id, "revisionDate": revision_date})

    async def cipher_deleted(self, account_id: str, cipher_id: str) -> bool:
        return await self.notify(account_id, NotificationType.SYNC_CIPHER_DELETE, {"id": cipher_id})

    async def folder_changed(self, account_id: str, folder_id: str, revision_date: str, created: bool = False) -> bool:
        kind = NotificationType.SYNC_FOLDER_CREATE if created else NotificationType.SYNC_FOLDER_UPDATE
        return await self.notify(account_id, kind, {"id": folder_id, "revisionDate": revision_date})

    async def folder_deleted(self, account_id: str, folder_id: str) -> bool:
        return await self.notify(account_id, NotificationType.SYNC_FOLDER_DELETE, {"id": folder_id})

    async def vault_changed(self, account_id: str) -> bool:
        return await self.notify(account_id, NotificationType.SYNC_VAULT)

    async def settings_changed(self, account_id: str) -> bool:
        return await self.notify(account_id, NotificationType.SYNC_SETTINGS)

    async def log_out(self, account_id: str) -> bool:
        return await self.notify(account_id, NotificationType.LOG_OUT)
