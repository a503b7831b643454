"""
Mailer - outbound email through a Resend-compatible HTTP API.

Without an API key the mailer is disabled and every send returns False;
callers that must reach the user (registration links) also write the
message to the operator log so a self-hosted admin can forward it.
Failures are logged and never raised.
"""
import logging
from typing import Optional

import httpx

from ..core.config import Settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
REQUEST_TIMEOUT_SEC = 10


class Mailer:
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._api_key = settings.resend_api_key
        self._sender = settings.mail_from
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def send(self, to: str, subject: str, html: str) -> bool:
        if not self.enabled:
            return False
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=REQUEST_TIMEOUT_SEC) as client:
                resp = await client.post(
                    RESEND_API_URL,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json={"from": self._sender, "to": [to], "subject": subject, "html": html},
                )
        except httpx.HTTPError as exc:
            logger.error("Mail send error: %s", exc)
            return False
        if resp.status_code >= 400:
            logger.error("Mail provider rejected message: HTTP %d %s", resp.status_code, resp.text[:200])
            return False
        logger.info("Mail sent: subject=%r", subject)
        return True
