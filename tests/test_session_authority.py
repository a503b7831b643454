"""
Tests for the Session Authority: token issue, validation, refresh,
revocation by security stamp and verification assertions.

The clock is injected so expiry is tested without sleeping.
"""

import uuid
from unittest.mock import patch

import pytest
from jose import jwt

from vaultkeep.accounts import Account, CredentialRecordStore
from vaultkeep.auth.passwords import hash_password, new_security_stamp, verify_password
from vaultkeep.auth.tokens import (
    PURPOSE_EMAIL_CHANGE,
    PURPOSE_REGISTRATION,
    REASON_BAD_SIGNATURE,
    REASON_EXPIRED,
    REASON_MALFORMED,
    REASON_MISSING_ACCOUNT,
    REASON_STAMP_MISMATCH,
    REASON_WRONG_CLASS,
    SessionAuthority,
)
from vaultkeep.core.errors import AuthError, GrantError, ValidationError
from vaultkeep.storage import MemoryKeyValueStore

SECRET = "unit-test-secret"


class FakeClock:
    def __init__(self, now=1_700_000_000):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def accounts():
    return CredentialRecordStore(MemoryKeyValueStore())


@pytest.fixture
def authority(accounts, clock):
    return SessionAuthority(accounts, SECRET, access_ttl=3600, refresh_ttl=7 * 24 * 3600, clock=clock)


def _account(email="bob@example.com"):
    stamp = new_security_stamp()
    return Account(
        id=str(uuid.uuid4()),
        email=email,
        master_password_hash=hash_password("client-hash", stamp),
        key="k",
        security_stamp=stamp,
    )


async def _stored(accounts, email="bob@example.com"):
    return await accounts.create(_account(email))


# ===================================================================
# Password hashing
# ===================================================================

class TestPasswords:
    def test_hash_is_stamp_salted(self):
        assert hash_password("h", "s1") != hash_password("h", "s2")

    def test_verify_round_trip(self):
        stored = hash_password("client", "stamp")
        assert verify_password("client", "stamp", stored)
        assert not verify_password("other", "stamp", stored)
        assert not verify_password("", "stamp", stored)

    def test_new_stamp_differs_from_previous(self):
        previous = new_security_stamp()
        assert new_security_stamp(previous) != previous


# ===================================================================
# Access tokens
# ===================================================================

class TestAccessTokens:
    @pytest.mark.asyncio
    async def test_issued_pair_validates_immediately(self, authority, accounts):
        account = await _stored(accounts)
        pair = authority.issue_pair(account)
        resolved = await authority.validate_access(pair.access_token)
        assert resolved.id == account.id
        assert pair.expires_in == 3600

    @pytest.mark.asyncio
    async def test_claims_carry_stamp_and_class(self, authority, accounts):
        account = await _stored(accounts)
        pair = authority.issue_pair(account)
        claims = jwt.get_unverified_claims(pair.access_token)
        assert claims["sub"] == account.id
        assert claims["stamp"] == account.security_stamp
        assert claims["token_type"] == "access"
        assert claims["premium"] is True

    @pytest.mark.asyncio
    async def test_expired_access_token_rejected(self, authority, accounts, clock):
        account = await _stored(accounts)
        pair = authority.issue_pair(account)
        clock.advance(3601)
        with pytest.raises(AuthError) as exc_info:
            await authority.validate_access(pair.access_token)
        assert exc_info.value.reason == REASON_EXPIRED
        assert exc_info.value.message == "invalid_token"

    @pytest.mark.asyncio
    async def test_refresh_token_is_not_an_access_token(self, authority, accounts):
        account = await _stored(accounts)
        pair = authority.issue_pair(account)
        with pytest.raises(AuthError) as exc_info:
            await authority.validate_access(pair.refresh_token)
        assert exc_info.value.reason == REASON_WRONG_CLASS

    @pytest.mark.asyncio
    async def test_foreign_signature_rejected(self, authority, accounts, clock):
        account = await _stored(accounts)
        forged = jwt.encode(
            {"sub": account.id, "stamp": account.security_stamp, "token_type": "access",
             "exp": clock.now + 100},
            "someone-elses-secret", algorithm="HS256",
        )
        with pytest.raises(AuthError) as exc_info:
            await authority.validate_access(forged)
        assert exc_info.value.reason == REASON_BAD_SIGNATURE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
    async def test_garbage_rejected(self, authority, token):
        with pytest.raises(AuthError) as exc_info:
            await authority.validate_access(token)
        assert exc_info.value.reason == REASON_MALFORMED

    @pytest.mark.asyncio
    async def test_deleted_account_rejected(self, authority, accounts):
        pair = authority.issue_pair(_account())  # never stored
        with pytest.raises(AuthError) as exc_info:
            await authority.validate_access(pair.access_token)
        assert exc_info.value.reason == REASON_MISSING_ACCOUNT

    @pytest.mark.asyncio
    async def test_stamp_rotation_revokes_both_tokens(self, authority, accounts):
        account = await _stored(accounts)
        pair = authority.issue_pair(account)

        account.security_stamp = new_security_stamp(account.security_stamp)
        await accounts.save(account)

        with pytest.raises(AuthError) as exc_info:
            await authority.validate_access(pair.access_token)
        assert exc_info.value.reason == REASON_STAMP_MISMATCH
        with pytest.raises(GrantError):
            await authority.refresh(pair.refresh_token)

    @pytest.mark.asyncio
    async def test_rejection_is_audit_logged_with_reason(self, authority, accounts):
        import vaultkeep.core.audit_log as audit_mod

        account = await _stored(accounts)
        pair = authority.issue_pair(account)
        account.security_stamp = new_security_stamp(account.security_stamp)
        await accounts.save(account)
        audit = audit_mod.get_audit_logger()
        with patch.object(audit, "log_token_rejected", wraps=audit.log_token_rejected) as spy:
            with pytest.raises(AuthError):
                await authority.validate_access(pair.access_token)
        spy.assert_called_once_with(REASON_STAMP_MISMATCH, "access", account.id)


# ===================================================================
# Refresh
# ===================================================================

class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_issues_new_valid_pair(self, authority, accounts, clock):
        account = await _stored(accounts)
        pair = authority.issue_pair(account)
        clock.advance(3601)  # access expired, refresh still fine

        refreshed_account, new_pair = await authority.refresh(pair.refresh_token)
        assert refreshed_account.id == account.id
        assert (await authority.validate_access(new_pair.access_token)).id == account.id

    @pytest.mark.asyncio
    async def test_refresh_does_not_rotate_stamp(self, authority, accounts):
        account = await _stored(accounts)
        pair = authority.issue_pair(account)
        await authority.refresh(pair.refresh_token)
        # Both the old refresh token and old access token stay usable
        await authority.refresh(pair.refresh_token)
        await authority.validate_access(pair.access_token)

    @pytest.mark.asyncio
    async def test_access_token_cannot_refresh(self, authority, accounts):
        account = await _stored(accounts)
        pair = authority.issue_pair(account)
        with pytest.raises(GrantError) as exc_info:
            await authority.refresh(pair.access_token)
        assert exc_info.value.error == "invalid_grant"
        assert exc_info.value.reason == REASON_WRONG_CLASS

    @pytest.mark.asyncio
    async def test_expired_refresh_rejected(self, authority, accounts, clock):
        account = await _stored(accounts)
        pair = authority.issue_pair(account)
        clock.advance(7 * 24 * 3600 + 1)
        with pytest.raises(GrantError) as exc_info:
            await authority.refresh(pair.refresh_token)
        assert exc_info.value.to_oauth() == {
            "error": "invalid_grant",
            "error_description": "Invalid or expired refresh token",
        }


# ===================================================================
# Verification assertions
# ===================================================================

class TestAssertions:
    def test_round_trip(self, authority):
        token = authority.issue_assertion(PURPOSE_REGISTRATION, {"email": "x@example.com"})
        claims = authority.verify_assertion(token, PURPOSE_REGISTRATION)
        assert claims["email"] == "x@example.com"

    def test_purpose_is_enforced(self, authority):
        token = authority.issue_assertion(PURPOSE_REGISTRATION, {"email": "x@example.com"})
        with pytest.raises(ValidationError, match="type"):
            authority.verify_assertion(token, PURPOSE_EMAIL_CHANGE)

    def test_expires_after_a_day(self, authority, clock):
        token = authority.issue_assertion(PURPOSE_REGISTRATION, {"email": "x@example.com"})
        clock.advance(24 * 3600 + 1)
        with pytest.raises(ValidationError, match="expired"):
            authority.verify_assertion(token, PURPOSE_REGISTRATION)

    @pytest.mark.asyncio
    async def test_session_token_is_not_an_assertion(self, authority, accounts):
        account = await _stored(accounts)
        pair = authority.issue_pair(account)
        with pytest.raises(ValidationError):
            authority.verify_assertion(pair.access_token, PURPOSE_REGISTRATION)
