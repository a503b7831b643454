# Core Module - Shared Utilities
#
# Core module provides shared functionality across all vaultkeep modules:
# - Configuration
# - Error taxonomy
# - Audit logging

from datetime import datetime, timezone

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    configure_audit_logger,
    get_audit_logger,
    log_security_event,
)
from .config import Settings
from .errors import (
    AuthError,
    ConflictError,
    GrantError,
    NotFoundError,
    UpstreamError,
    ValidationError,
    VaultError,
)


def utc_now_iso() -> str:
    """Current UTC time in the client's wire format (millisecond ISO 8601, Z suffix)."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


__all__ = [
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "configure_audit_logger",
    "get_audit_logger",
    "log_security_event",
    # Configuration
    "Settings",
    # Errors
    "VaultError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "AuthError",
    "GrantError",
    "UpstreamError",
    "utc_now_iso",
]
