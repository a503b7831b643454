# Auth Module - Account Service
#
# Account lifecycle on top of the credential store and the session
# authority: prelogin, two-phase registration, password grant and the
# credential-affecting mutations.
#
# Every mutation that changes what authenticates the user (password,
# email, account key) rotates the security stamp in the same save, which
# is what revokes all previously issued tokens. Profile, key-pair and
# domain updates leave the stamp alone.

import html
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from ..accounts.models import DEFAULT_KDF_ITERATIONS, KDF_PBKDF2, Account
from ..accounts.store import CredentialRecordStore, normalize_email
from ..core import utc_now_iso
from ..core.audit_log import EventSeverity, EventType, get_audit_logger
from ..core.errors import ConflictError, GrantError, ValidationError
from ..devices.store import DeviceStore
from ..notify.mail import Mailer
from ..notify.push import PushRelay
from .passwords import hash_password, new_security_stamp, verify_password
from .tokens import PURPOSE_EMAIL_CHANGE, PURPOSE_REGISTRATION, SessionAuthority, TokenPair

logger = logging.getLogger(__name__)

# Prelogin answer for unknown emails; does not reveal whether an account exists
UNKNOWN_USER_KDF_ITERATIONS = 100000

LEGACY_REGISTER_MESSAGE = (
    "Registration via this endpoint is disabled. Please use the email verification flow: "
    "1) POST /identity/accounts/register/send-verification-email "
    "2) POST /identity/accounts/register/finish"
)


@dataclass
class DeviceInfo:
    """Device fields sent alongside a password grant."""
    identifier: str
    name: str = "Unknown Device"
    type: int = 0
    push_token: Optional[str] = None


class AccountService:
    """Registration, login and credential changes.

    Args:
        accounts: Credential record store.
        authority: Session authority (tokens and assertions).
        devices: Device store; logins upsert into it.
        push: Push relay for device registration (best effort).
        mailer: Outbound mail (best effort).
    """

    def __init__(
        self,
        accounts: CredentialRecordStore,
        authority: SessionAuthority,
        devices: DeviceStore,
        push: PushRelay,
        mailer: Mailer,
    ):
        self.accounts = accounts
        self.authority = authority
        self.devices = devices
        self.push = push
        self.mailer = mailer

    # ------------------------------------------------------------------
    # Prelogin / registration
    # ------------------------------------------------------------------

    async def prelogin(self, email: str) -> Dict[str, Any]:
        if not normalize_email(email):
            raise ValidationError("Email required")
        account = await self.accounts.get(email)
        if account is None:
            return {"kdf": KDF_PBKDF2, "kdfIterations": UNKNOWN_USER_KDF_ITERATIONS}
        return account.kdf_params()

    async def send_verification_email(self, email: str, name: Optional[str], base_url: str) -> None:
        """Start registration by mailing a signed finish-signup link.

        Succeeds silently for an empty or already registered email so the
        endpoint cannot be used to enumerate accounts. The link is always
        written to the operator log; mail delivery is best effort.
        """
        email = normalize_email(email)
        if not email:
            return
        if await self.accounts.exists(email):
            logger.info("Registration requested for an existing email; ignoring")
            return

        token = self.authority.issue_assertion(PURPOSE_REGISTRATION, {"email": email, "name": name or ""})
        link = (
            f"{base_url.rstrip('/')}/#/finish-signup/"
            f"?email={quote(email, safe='')}&token={quote(token, safe='')}"
        )

        if self.mailer.enabled:
            await self.mailer.send(
                email,
                "Verify your email to finish registration",
                (
                    "<h1>Welcome</h1>"
                    "<p>Click the link below to complete your registration:</p>"
                    f'<p><a href="{html.escape(link)}">Complete Registration</a></p>'
                    f"<pre>{html.escape(link)}</pre>"
                    "<p>This link expires in 24 hours.</p>"
                ),
            )

        # Operator delivery path: the admin can forward this when mail is off.
        logger.warning("Registration link for %s (valid 24h): %s", email, link)
        get_audit_logger().log_event(
            EventType.REGISTRATION_REQUESTED, EventSeverity.INFO,
            "Registration verification issued",
            details={"mailed": self.mailer.enabled},
        )

    async def finish_registration(self, body: Dict[str, Any]) -> Account:
        """Create the account once the registration assertion checks out.

        Raises:
            ValidationError: Missing fields, or a bad / mismatched assertion.
            ConflictError: The email is already registered, including by a
                concurrent finish that won the race.
        """
        email = normalize_email(body.get("email") or "")
        client_hash = body.get("masterPasswordHash")
        key = body.get("userSymmetricKey")
        if not email or not client_hash or not key:
            raise ValidationError(
                "Missing required fields (email, masterPasswordHash, userSymmetricKey)"
            )
        token = body.get("emailVerificationToken")
        if not token:
            raise ValidationError("Email verification token required")

        claims = self.authority.verify_assertion(token, PURPOSE_REGISTRATION)
        if normalize_email(claims.get("email") or "") != email:
            raise ValidationError("Token email mismatch")

        if await self.accounts.exists(email):
            raise ConflictError("User already exists")

        key_pair = body.get("userAsymmetricKeys") or {}
        stamp = new_security_stamp()
        now = utc_now_iso()
        account = Account(
            id=str(uuid.uuid4()),
            email=email,
            master_password_hash=hash_password(client_hash, stamp),
            master_password_hint=body.get("masterPasswordHint"),
            key=key,
            security_stamp=stamp,
            kdf=body.get("kdf") if body.get("kdf") is not None else KDF_PBKDF2,
            kdf_iterations=body.get("kdfIterations") or DEFAULT_KDF_ITERATIONS,
            kdf_memory=body.get("kdfMemory"),
            kdf_parallelism=body.get("kdfParallelism"),
            name=claims.get("name") or body.get("name") or "",
            public_key=key_pair.get("publicKey"),
            encrypted_private_key=key_pair.get("encryptedPrivateKey"),
            created_at=now,
            updated_at=now,
        )
        try:
            await self.accounts.create(account)
        except ConflictError:
            get_audit_logger().log_event(
                EventType.REGISTRATION_CONFLICT, EventSeverity.INVESTIGATE,
                "Registration lost a race for an existing email",
            )
            raise

        get_audit_logger().log_event(
            EventType.ACCOUNT_CREATED, EventSeverity.INFO,
            "Account registered", details={"kdf": account.kdf}, account_id=account.id,
        )
        return account

    # ------------------------------------------------------------------
    # Token endpoint
    # ------------------------------------------------------------------

    async def password_login(
        self,
        username: str,
        password: str,
        device: Optional[DeviceInfo] = None,
    ) -> Tuple[Account, TokenPair]:
        """Password grant.

        Raises:
            GrantError: Unknown user or wrong password (one message for both).
        """
        email = normalize_email(username)
        if not email or not password:
            raise GrantError("invalid_grant", reason="missing_credentials")

        # Form decoding turns '+' in the base64 hash into ' '
        client_hash = password.replace(" ", "+")

        account = await self.accounts.get(email)
        if account is None or not verify_password(
            client_hash, account.security_stamp, account.master_password_hash
        ):
            reason = "unknown_user" if account is None else "hash_mismatch"
            get_audit_logger().log_event(
                EventType.LOGIN_FAILED, EventSeverity.INVESTIGATE,
                "Password grant refused", details={"reason": reason},
                account_id=account.id if account else None,
            )
            raise GrantError("invalid_grant", "Invalid username or password", reason=reason)

        pair = self.authority.issue_pair(account)
        if device is not None and device.identifier:
            await self._record_device(account, device)

        get_audit_logger().log_event(
            EventType.LOGIN_SUCCEEDED, EventSeverity.INFO,
            "Password grant issued", account_id=account.id,
        )
        return account, pair

    async def _record_device(self, account: Account, info: DeviceInfo) -> None:
        device = await self.devices.upsert_login(
            account.id, info.identifier, info.name or "Unknown Device", info.type, info.push_token,
        )
        if info.push_token and self.push.enabled:
            push_uuid = await self.push.register(account.id, device)
            if push_uuid:
                device.push_uuid = push_uuid
                await self.devices.save(device)

    async def refresh(self, refresh_token: str) -> Tuple[Account, TokenPair]:
        account, pair = await self.authority.refresh(refresh_token)
        get_audit_logger().log_event(
            EventType.TOKEN_REFRESHED, EventSeverity.INFO,
            "Refresh grant issued", account_id=account.id,
        )
        return account, pair

    def token_response(self, account: Account, pair: TokenPair) -> Dict[str, Any]:
        """OAuth token body plus the key material the client unlocks with."""
        return {
            "access_token": pair.access_token,
            "expires_in": pair.expires_in,
            "token_type": "Bearer",
            "refresh_token": pair.refresh_token,
            "scope": "api offline_access",
            "key": account.key,
            "privateKey": account.encrypted_private_key,
            "kdf": account.kdf,
            "kdfIterations": account.kdf_iterations,
            "kdfMemory": account.kdf_memory,
            "kdfParallelism": account.kdf_parallelism,
            "resetMasterPassword": False,
            "forcePasswordReset": False,
            "userDecryptionOptions": {
                "hasMasterPassword": True,
                "object": "userDecryptionOptions",
            },
        }

    # ------------------------------------------------------------------
    # Credential changes (stamp rotating)
    # ------------------------------------------------------------------

    def _require_password(self, account: Account, client_hash: Optional[str], message: str) -> None:
        if not verify_password(client_hash or "", account.security_stamp, account.master_password_hash):
            raise ValidationError(message)

    @staticmethod
    def _rekey(account: Account, new_client_hash: str) -> None:
        """Rotate the stamp and re-hash the password under it."""
        account.security_stamp = new_security_stamp(account.security_stamp)
        account.master_password_hash = hash_password(new_client_hash, account.security_stamp)
        account.updated_at = utc_now_iso()

    async def change_password(
        self,
        account: Account,
        current_hash: Optional[str],
        new_hash: Optional[str],
        new_key: Optional[str],
        hint: Optional[str] = None,
    ) -> Account:
        """Verify, rotate stamp, re-hash, persist once. Revokes every earlier token."""
        self._require_password(account, current_hash, "Invalid current password")
        if not new_hash or not new_key:
            raise ValidationError("New password hash and key required")

        account.key = new_key
        if hint is not None:
            account.master_password_hint = hint
        self._rekey(account, new_hash)
        await self.accounts.save(account)

        get_audit_logger().log_credential_change(
            EventType.PASSWORD_CHANGED, account.id, "Master password changed",
        )
        return account

    async def request_email_change(
        self,
        account: Account,
        new_email: Optional[str],
        password_hash: Optional[str],
    ) -> None:
        """Issue an email-change assertion and deliver it to the new address."""
        new_email = normalize_email(new_email or "")
        if not new_email or not password_hash:
            raise ValidationError("Missing newEmail or masterPasswordHash")
        self._require_password(account, password_hash, "Invalid password")
        if await self.accounts.exists(new_email):
            raise ConflictError("Email already in use")

        token = self.authority.issue_assertion(
            PURPOSE_EMAIL_CHANGE,
            {"userId": account.id, "oldEmail": account.email, "newEmail": new_email},
        )
        if self.mailer.enabled:
            await self.mailer.send(
                new_email,
                "Verify your new email address",
                (
                    "<h1>Change Email Request</h1>"
                    f"<p>You requested to change your email to <b>{html.escape(new_email)}</b>.</p>"
                    "<p>Enter this token in your client to complete the change:</p>"
                    f"<pre>{html.escape(token)}</pre>"
                    "<p>This token expires in 24 hours.</p>"
                ),
            )
        # Operator delivery path, same as registration links.
        logger.warning("Email change token for account %s -> %s: %s", account.id, new_email, token)
        get_audit_logger().log_event(
            EventType.EMAIL_CHANGE_REQUESTED, EventSeverity.INFO,
            "Email change requested", details={"mailed": self.mailer.enabled}, account_id=account.id,
        )

    async def change_email(
        self,
        account: Account,
        token: Optional[str],
        new_email: Optional[str],
        password_hash: Optional[str],
        new_password_hash: Optional[str],
        new_key: Optional[str],
    ) -> Account:
        """Complete an email change.

        The assertion must have been issued to this account for exactly
        this new address; the client re-derives its hash with the new email
        as salt, so the password is re-hashed and the stamp rotated.
        """
        new_email = normalize_email(new_email or "")
        if not token or not new_email or not password_hash or not new_password_hash or not new_key:
            raise ValidationError("Missing required fields")

        claims = self.authority.verify_assertion(token, PURPOSE_EMAIL_CHANGE)
        if claims.get("userId") != account.id:
            raise ValidationError("Token does not belong to this account")
        if normalize_email(claims.get("newEmail") or "") != new_email:
            raise ValidationError("Token email mismatch")

        self._require_password(account, password_hash, "Invalid password")

        old_email = account.email
        account.email = new_email
        account.key = new_key
        self._rekey(account, new_password_hash)
        await self.accounts.rename(account, old_email)

        get_audit_logger().log_credential_change(
            EventType.EMAIL_CHANGED, account.id, "Account email changed",
        )
        return account

    async def rotate_key(
        self,
        account: Account,
        password_hash: Optional[str],
        new_key: Optional[str],
        encrypted_private_key: Optional[str] = None,
        new_password_hash: Optional[str] = None,
    ) -> Account:
        """Replace the account key after a client-side re-encryption.

        Requires the current password. Rotates the stamp; the password is
        re-hashed under the new stamp (with the new hash when supplied).
        """
        if not new_key:
            raise ValidationError("Key required")
        self._require_password(account, password_hash, "Invalid password")

        account.key = new_key
        if encrypted_private_key:
            account.encrypted_private_key = encrypted_private_key
        self._rekey(account, new_password_hash or password_hash)
        await self.accounts.save(account)

        get_audit_logger().log_credential_change(
            EventType.KEY_ROTATED, account.id, "Account key rotated",
        )
        return account

    # ------------------------------------------------------------------
    # Non-credential updates
    # ------------------------------------------------------------------

    async def update_keys(
        self,
        account: Account,
        public_key: Optional[str],
        encrypted_private_key: Optional[str],
    ) -> Account:
        """Store the account's asymmetric key pair. No stamp change."""
        if public_key:
            account.public_key = public_key
        if encrypted_private_key:
            account.encrypted_private_key = encrypted_private_key
        account.updated_at = utc_now_iso()
        await self.accounts.save(account)
        return account

    async def update_profile(
        self,
        account: Account,
        name: Optional[str] = None,
        master_password_hint: Optional[str] = None,
        culture: Optional[str] = None,
    ) -> Account:
        if name is not None:
            account.name = name
        if master_password_hint is not None:
            account.master_password_hint = master_password_hint or None
        if culture:
            account.culture = culture
        account.updated_at = utc_now_iso()
        await self.accounts.save(account)
        return account

    async def update_domains(
        self,
        account: Account,
        equivalent_domains: Optional[List[List[str]]],
        excluded_global: Optional[List[int]],
    ) -> Account:
        if equivalent_domains is not None:
            groups = ([d.strip().lower() for d in group or [] if d and d.strip()] for group in equivalent_domains)
            account.equivalent_domains = [g for g in groups if g]
        if excluded_global is not None:
            account.excluded_global_equivalent_domains = [int(t) for t in excluded_global]
        account.updated_at = utc_now_iso()
        await self.accounts.save(account)
        return account
