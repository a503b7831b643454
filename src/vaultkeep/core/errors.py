# Core Module - Error Taxonomy
#
# Every failure a handler can report maps onto one of these classes. The API
# layer turns them into the client error envelope:
#
#   {message, validationErrors: {"": [message]}, errorModel: {...}, object: "error"}
#
# GrantError is the exception: the token endpoint answers in OAuth2 shape
# ({error, error_description}) because that is what clients parse there.

from typing import Any, Dict, Optional


class VaultError(Exception):
    """Base class for errors that reach the client."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_envelope(self) -> Dict[str, Any]:
        validation = {"": [self.message]}
        return {
            "message": self.message,
            "validationErrors": validation,
            "errorModel": {"message": self.message, "validationErrors": validation},
            "object": "error",
        }


class ValidationError(VaultError):
    """Missing or malformed request field."""

    status_code = 400


class ConflictError(VaultError):
    """Unique resource already exists (duplicate email)."""

    status_code = 400


class NotFoundError(VaultError):
    """Account, cipher, folder or device absent."""

    status_code = 404


class AuthError(VaultError):
    """Credential or token rejected on a protected resource.

    ``reason`` is the precise internal cause (expired, stamp_mismatch, ...).
    It is written to the audit log but never sent to the client.
    """

    status_code = 401

    def __init__(self, message: str = "invalid_token", reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason or message


class GrantError(AuthError):
    """Token endpoint failure, reported as an OAuth2 error body."""

    status_code = 400

    def __init__(
        self,
        error: str = "invalid_grant",
        description: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        super().__init__(error, reason=reason)
        self.error = error
        self.description = description

    def to_oauth(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.description:
            body["error_description"] = self.description
        return body


class UpstreamError(VaultError):
    """Store or relay failure on a primary request path."""

    status_code = 500
