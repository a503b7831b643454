# Core Module - Security Audit Log
#
# Append-only structured log of security-relevant events: registrations,
# logins, token rejections, credential changes and destructive vault
# operations. Token rejections carry their precise reason here even though
# the client only ever sees a generic invalid_token / invalid_grant.
#
# Never pass password hashes, keys or tokens in `details`.

import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog

AUDIT_LOGGER_NAME = "vaultkeep.audit"


class EventType(str, Enum):
    """Types of security events that can be logged."""
    # Registration
    REGISTRATION_REQUESTED = "account.registration.requested"
    ACCOUNT_CREATED = "account.created"
    REGISTRATION_CONFLICT = "account.registration.conflict"

    # Sessions
    LOGIN_SUCCEEDED = "session.login.succeeded"
    LOGIN_FAILED = "session.login.failed"
    TOKEN_REFRESHED = "session.token.refreshed"
    TOKEN_REJECTED = "session.token.rejected"

    # Credential changes (each rotates the security stamp)
    PASSWORD_CHANGED = "account.password.changed"
    EMAIL_CHANGE_REQUESTED = "account.email.change_requested"
    EMAIL_CHANGED = "account.email.changed"
    KEY_ROTATED = "account.key.rotated"

    # Vault
    CIPHER_DELETED = "vault.cipher.deleted"
    FOLDER_DELETED = "vault.folder.deleted"
    VAULT_IMPORTED = "vault.imported"
    INDEX_RECONCILED = "vault.index.reconciled"

    # Devices
    DEVICE_REMOVED = "device.removed"

    # System
    SYSTEM_START = "system.start"


class EventSeverity(str, Enum):
    """Severity levels for security events.

    - INFO: normal activity, logged only
    - INVESTIGATE: worth a look (failed login, rejected token)
    - ALERT: credential-affecting change or destructive operation
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"


class AuditLogger:
    """
    Append-only audit logger for security events.

    Features:
    - Structured JSON lines rendered by structlog
    - Automatic timestamp and event ID
    - One file per day under ``log_dir``
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for audit logs (default: ./audit_logs)
        """
        self.log_dir = Path(log_dir) if log_dir else Path("./audit_logs")
        self.log_dir.mkdir(parents=True, exist_ok=True)

        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer()
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self._setup_file_handler()
        self.logger = structlog.get_logger(AUDIT_LOGGER_NAME)

    def _setup_file_handler(self):
        """Attach a daily file handler to the audit logger (once per file)."""
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = self.log_dir / f"audit_{today}.log"

        audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        audit_logger.setLevel(logging.INFO)
        for handler in audit_logger.handlers:
            if getattr(handler, "baseFilename", None) == str(log_file.resolve()):
                return

        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(message)s"))  # structlog renders
        audit_logger.addHandler(file_handler)

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        account_id: Optional[str] = None,
    ) -> str:
        """
        Log a security event.

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            details: Additional event details (no secrets)
            account_id: Account the event concerns, if known

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())
        self.logger.info(
            "security_event",
            event_id=event_id,
            event_type=event_type.value,
            severity=severity.value,
            message=message,
            account_id=account_id,
            details=details or {},
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        return event_id

    def log_token_rejected(self, reason: str, token_class: str, account_id: Optional[str] = None) -> str:
        """Record why a token was refused; the client only sees a generic error."""
        return self.log_event(
            event_type=EventType.TOKEN_REJECTED,
            severity=EventSeverity.INVESTIGATE,
            message=f"Rejected {token_class} token: {reason}",
            details={"reason": reason, "token_class": token_class},
            account_id=account_id,
        )

    def log_credential_change(self, event_type: EventType, account_id: str, message: str) -> str:
        """Credential-affecting mutations always log at ALERT."""
        return self.log_event(
            event_type=event_type,
            severity=EventSeverity.ALERT,
            message=message,
            account_id=account_id,
        )


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def configure_audit_logger(log_dir: Path) -> AuditLogger:
    """Replace the global audit logger with one writing to ``log_dir``."""
    global _audit_logger
    _audit_logger = AuditLogger(log_dir=log_dir)
    return _audit_logger


def log_security_event(
    event_type: EventType,
    severity: EventSeverity,
    message: str,
    **kwargs
) -> str:
    """
    Convenience function for logging security events.

    Usage:
        log_security_event(
            EventType.LOGIN_FAILED,
            EventSeverity.INVESTIGATE,
            "Password grant refused",
            details={"reason": "hash_mismatch"},
        )
    """
    return get_audit_logger().log_event(event_type, severity, message, **kwargs)
