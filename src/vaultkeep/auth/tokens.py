# Auth Module - Session Authority
#
# Issues and validates the two session token classes plus the one-shot
# verification assertions (registration, email change). Nothing here is
# persisted: a token is a signed JWT and its validity is recomputed on
# every request.
#
# Token state per request:
#   Issued -> Valid      signature ok, not expired, class matches,
#                        account exists, stamp == account.security_stamp
#          -> Expired    exp passed
#          -> Revoked    stamp mismatch (password / email / key change)
#
# The stamp equality check is the only revocation mechanism; there is no
# denylist. Refreshing never rotates the stamp, so concurrent refreshes all
# stay valid.

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple, Type

from jose import JWTError, jwt

from ..accounts.models import Account
from ..accounts.store import CredentialRecordStore
from ..core.audit_log import get_audit_logger
from ..core.config import ACCESS_TOKEN_TTL, ASSERTION_TTL, REFRESH_TOKEN_TTL
from ..core.errors import AuthError, GrantError, ValidationError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

ACCESS = "access"
REFRESH = "refresh"

PURPOSE_REGISTRATION = "registration"
PURPOSE_EMAIL_CHANGE = "email_change"

# Rejection reasons (audit log only; clients get a generic message)
REASON_MALFORMED = "malformed"
REASON_BAD_SIGNATURE = "bad_signature"
REASON_EXPIRED = "expired"
REASON_WRONG_CLASS = "wrong_class"
REASON_MISSING_ACCOUNT = "missing_account"
REASON_STAMP_MISMATCH = "stamp_mismatch"


@dataclass
class TokenPair:
    """An access/refresh pair issued together."""
    access_token: str
    refresh_token: str
    expires_in: int


class SessionAuthority:
    """Issues, validates and refreshes session tokens.

    Args:
        accounts: Credential record store used to resolve token subjects.
        secret: HMAC signing secret.
        access_ttl / refresh_ttl / assertion_ttl: Lifetimes in seconds.
        clock: Returns the current unix time (injectable for tests).
    """

    def __init__(
        self,
        accounts: CredentialRecordStore,
        secret: str,
        access_ttl: int = ACCESS_TOKEN_TTL,
        refresh_ttl: int = REFRESH_TOKEN_TTL,
        assertion_ttl: int = ASSERTION_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self._accounts = accounts
        self._secret = secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.assertion_ttl = assertion_ttl
        self._clock = clock

    # ------------------------------------------------------------------
    # Signing helpers
    # ------------------------------------------------------------------

    def _now(self) -> int:
        return int(self._clock())

    def _sign(self, claims: Dict[str, Any]) -> str:
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def _decode(self, token: str) -> Dict[str, Any]:
        """Verify the signature and expiry of any token we issued.

        Expiry is checked here against the injectable clock rather than by
        jose, so both paths use the same notion of "now".

        Raises:
            AuthError: reason malformed, bad_signature or expired.
        """
        if not token or not isinstance(token, str):
            raise AuthError(reason=REASON_MALFORMED)
        try:
            claims = jwt.decode(
                token, self._secret, algorithms=[ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            reason = REASON_BAD_SIGNATURE if "ignature" in str(exc) else REASON_MALFORMED
            raise AuthError(reason=reason) from exc
        exp = claims.get("exp")
        if not isinstance(exp, (int, float)) or exp <= self._now():
            raise AuthError(reason=REASON_EXPIRED)
        return claims

    def _session_claims(self, account: Account, token_class: str, ttl: int) -> Dict[str, Any]:
        now = self._now()
        return {
            "sub": account.id,
            "email": account.email,
            "name": account.name or "",
            "email_verified": True,
            "premium": True,
            "stamp": account.security_stamp,
            "token_type": token_class,
            "iat": now,
            "exp": now + ttl,
        }

    # ------------------------------------------------------------------
    # Session tokens
    # ------------------------------------------------------------------

    def issue_pair(self, account: Account) -> TokenPair:
        """Issue a fresh access/refresh pair carrying the current stamp."""
        return TokenPair(
            access_token=self._sign(self._session_claims(account, ACCESS, self.access_ttl)),
            refresh_token=self._sign(self._session_claims(account, REFRESH, self.refresh_ttl)),
            expires_in=self.access_ttl,
        )

    async def _validate(self, token: str, token_class: str, error_cls: Type[AuthError]) -> Account:
        account_id: Optional[str] = None
        try:
            claims = self._decode(token)
            account_id = claims.get("sub")
            if claims.get("token_type") != token_class:
                raise AuthError(reason=REASON_WRONG_CLASS)
            account = await self._accounts.get_by_id(account_id) if account_id else None
            if account is None:
                raise AuthError(reason=REASON_MISSING_ACCOUNT)
            if claims.get("stamp") != account.security_stamp:
                raise AuthError(reason=REASON_STAMP_MISMATCH)
            return account
        except AuthError as exc:
            get_audit_logger().log_token_rejected(exc.reason, token_class, account_id)
            if error_cls is GrantError:
                raise GrantError(
                    "invalid_grant", "Invalid or expired refresh token", reason=exc.reason,
                ) from exc
            raise AuthError("invalid_token", reason=exc.reason) from exc

    async def validate_access(self, token: str) -> Account:
        """Resolve an access token to its account.

        Raises:
            AuthError: (401, generic ``invalid_token``) on any failure.
        """
        return await self._validate(token, ACCESS, AuthError)

    async def refresh(self, token: str) -> Tuple[Account, TokenPair]:
        """Exchange a refresh token for a new pair. The stamp is not rotated.

        Raises:
            GrantError: (400, ``invalid_grant``) on any failure.
        """
        account = await self._validate(token, REFRESH, GrantError)
        return account, self.issue_pair(account)

    # ------------------------------------------------------------------
    # Verification assertions
    # ------------------------------------------------------------------

    def issue_assertion(self, purpose: str, claims: Dict[str, Any]) -> str:
        """Sign a short-lived, purpose-bound assertion delivered out of band."""
        payload = dict(claims)
        payload["type"] = purpose
        payload["exp"] = self._now() + self.assertion_ttl
        return self._sign(payload)

    def verify_assertion(self, token: str, purpose: str) -> Dict[str, Any]:
        """Check an assertion's signature, expiry and purpose.

        Raises:
            ValidationError: If the assertion is invalid, expired or for
                another purpose.
        """
        try:
            claims = self._decode(token)
        except AuthError as exc:
            logger.info("Verification token rejected: %s", exc.reason)
            raise ValidationError("Invalid or expired verification token") from exc
        if claims.get("type") != purpose:
            raise ValidationError("Invalid verification token type")
        return claims
