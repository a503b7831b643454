"""
Server configuration - validated settings loaded from the environment.

Values come from process environment variables, optionally seeded from a
``.env`` file in the working directory (python-dotenv). Nothing here is
cached: ``Settings.from_env()`` reads the environment every time it is
called, and the app keeps the resulting object on its service container.

Security Note:
    Never log the JWT secret, the push installation key or the mail API key.
"""
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_JWT_SECRET = "vaultkeep-development-secret-change-me"
DEFAULT_PUSH_RELAY_URI = "https://push.bitwarden.com"
DEFAULT_PUSH_IDENTITY_URI = "https://identity.bitwarden.com"
DEFAULT_ICON_SERVICE = "https://icons.bitwarden.net"
DEFAULT_MAIL_FROM = "vaultkeep <onboarding@resend.dev>"

ACCESS_TOKEN_TTL = 3600             # 1 hour
REFRESH_TOKEN_TTL = 7 * 24 * 3600   # 7 days
ASSERTION_TTL = 24 * 3600           # registration / email-change links

_TRUTHY = ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Validated server configuration."""

    jwt_secret: str = DEFAULT_JWT_SECRET
    data_dir: Path = Path("data")
    storage: str = Field(default="sqlite")
    log_dir: Path = Path("audit_logs")
    access_ttl: int = Field(default=ACCESS_TOKEN_TTL, gt=0)
    refresh_ttl: int = Field(default=REFRESH_TOKEN_TTL, gt=0)
    assertion_ttl: int = Field(default=ASSERTION_TTL, gt=0)

    push_enabled: bool = False
    push_installation_id: Optional[str] = None
    push_installation_key: Optional[str] = None
    push_relay_uri: str = DEFAULT_PUSH_RELAY_URI
    push_identity_uri: str = DEFAULT_PUSH_IDENTITY_URI

    resend_api_key: Optional[str] = None
    mail_from: str = DEFAULT_MAIL_FROM

    icon_service: str = DEFAULT_ICON_SERVICE

    @field_validator("storage")
    @classmethod
    def validate_storage(cls, v: str) -> str:
        """Only the two bundled backends are supported."""
        if v not in ("sqlite", "memory"):
            raise ValueError(f"Unsupported storage backend: {v}")
        return v

    @field_validator("jwt_secret")
    @classmethod
    def validate_secret(cls, v: str) -> str:
        if not v:
            raise ValueError("JWT secret cannot be empty")
        return v

    @property
    def push_configured(self) -> bool:
        """Push is usable only when enabled and both installation values exist."""
        return bool(
            self.push_enabled
            and self.push_installation_id
            and self.push_installation_key
        )

    @property
    def uses_default_secret(self) -> bool:
        return self.jwt_secret == DEFAULT_JWT_SECRET

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """Build Settings from environment variables.

        Args:
            dotenv: Load a ``.env`` file first (existing variables win).

        Returns:
            Populated Settings instance.
        """
        if dotenv:
            load_dotenv(find_dotenv(usecwd=True), override=False)

        env = os.environ
        values = {
            "jwt_secret": env.get("VAULTKEEP_JWT_SECRET") or DEFAULT_JWT_SECRET,
            "data_dir": env.get("VAULTKEEP_DATA_DIR", "data"),
            "storage": env.get("VAULTKEEP_STORAGE", "sqlite"),
            "log_dir": env.get("VAULTKEEP_LOG_DIR", "audit_logs"),
            "access_ttl": env.get("VAULTKEEP_ACCESS_TTL", ACCESS_TOKEN_TTL),
            "refresh_ttl": env.get("VAULTKEEP_REFRESH_TTL", REFRESH_TOKEN_TTL),
            "push_enabled": env.get("PUSH_ENABLED", "").lower() in _TRUTHY,
            "push_installation_id": env.get("PUSH_INSTALLATION_ID") or None,
            "push_installation_key": env.get("PUSH_INSTALLATION_KEY") or None,
            "push_relay_uri": env.get("PUSH_RELAY_URI") or DEFAULT_PUSH_RELAY_URI,
            "push_identity_uri": env.get("PUSH_IDENTITY_URI") or DEFAULT_PUSH_IDENTITY_URI,
            "resend_api_key": env.get("RESEND_API_KEY") or None,
            "mail_from": env.get("MAIL_FROM") or DEFAULT_MAIL_FROM,
            "icon_service": env.get("VAULTKEEP_ICON_SERVICE") or DEFAULT_ICON_SERVICE,
        }
        settings = cls(**values)
        if settings.uses_default_secret:
            logger.warning(
                "VAULTKEEP_JWT_SECRET is not set; using the development secret. "
                "Tokens issued by this instance are forgeable."
            )
        return settings
