"""
Tests for the Account Service: prelogin, two-phase registration, password
grant and the credential-changing operations.

Covers the registration race (exactly one winner), revocation of every
earlier token on password / email / key change, and best-effort mail and
device side effects.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from vaultkeep.api import build_services
from vaultkeep.auth.service import DeviceInfo
from vaultkeep.auth.tokens import PURPOSE_EMAIL_CHANGE, PURPOSE_REGISTRATION
from vaultkeep.core.errors import AuthError, ConflictError, GrantError, ValidationError


@pytest.fixture
def svc(services):
    return services.account_service


def _finish_body(services, email="carol@example.com", password_hash="hash-C", name="Carol"):
    token = services.authority.issue_assertion(PURPOSE_REGISTRATION, {"email": email, "name": name})
    return {
        "email": email,
        "masterPasswordHash": password_hash,
        "userSymmetricKey": "sym-key",
        "kdf": 0,
        "kdfIterations": 600000,
        "emailVerificationToken": token,
    }


async def _registered(services, email="carol@example.com", password_hash="hash-C"):
    return await services.account_service.finish_registration(
        _finish_body(services, email, password_hash)
    )


# ===================================================================
# Prelogin
# ===================================================================

class TestPrelogin:
    @pytest.mark.asyncio
    async def test_unknown_email_gets_pbkdf2_defaults(self, svc):
        assert await svc.prelogin("nobody@example.com") == {"kdf": 0, "kdfIterations": 100000}

    @pytest.mark.asyncio
    async def test_known_email_gets_account_params(self, svc, services):
        await _registered(services)
        params = await svc.prelogin("CAROL@example.com")
        assert params["kdf"] == 0
        assert params["kdfIterations"] == 600000

    @pytest.mark.asyncio
    async def test_empty_email_rejected(self, svc):
        with pytest.raises(ValidationError, match="Email required"):
            await svc.prelogin("  ")


# ===================================================================
# Registration
# ===================================================================

class TestRegistration:
    @pytest.mark.asyncio
    async def test_send_verification_logs_link_when_mail_disabled(self, svc, caplog):
        with caplog.at_level("WARNING", logger="vaultkeep.auth.service"):
            await svc.send_verification_email("New@Example.com", "New", "http://vault.test")
        assert "http://vault.test/#/finish-signup/?email=new%40example.com&token=" in caplog.text

    @pytest.mark.asyncio
    async def test_send_verification_mails_when_configured(self, services):
        services.account_service.mailer = AsyncMock()
        services.account_service.mailer.enabled = True
        await services.account_service.send_verification_email("x@example.com", "", "http://v")
        services.account_service.mailer.send.assert_awaited_once()
        to, subject, body = services.account_service.mailer.send.await_args.args
        assert to == "x@example.com"
        assert "finish-signup" in body

    @pytest.mark.asyncio
    async def test_send_verification_silent_for_existing_email(self, svc, services, caplog):
        await _registered(services)
        with caplog.at_level("WARNING", logger="vaultkeep.auth.service"):
            await svc.send_verification_email("carol@example.com", "", "http://v")
        assert "finish-signup" not in caplog.text

    @pytest.mark.asyncio
    async def test_finish_creates_account(self, svc, services):
        account = await _registered(services)
        stored = await services.accounts.get("carol@example.com")
        assert stored.id == account.id
        assert stored.name == "Carol"
        assert stored.master_password_hash != "hash-C"

    @pytest.mark.asyncio
    async def test_finish_rejects_missing_fields(self, svc, services):
        body = _finish_body(services)
        del body["userSymmetricKey"]
        with pytest.raises(ValidationError, match="Missing required fields"):
            await svc.finish_registration(body)

    @pytest.mark.asyncio
    async def test_finish_rejects_token_for_other_email(self, svc, services):
        body = _finish_body(services)
        body["email"] = "mallory@example.com"
        with pytest.raises(ValidationError, match="mismatch"):
            await svc.finish_registration(body)

    @pytest.mark.asyncio
    async def test_finish_rejects_wrong_purpose(self, svc, services):
        body = _finish_body(services)
        body["emailVerificationToken"] = services.authority.issue_assertion(
            PURPOSE_EMAIL_CHANGE, {"email": "carol@example.com"},
        )
        with pytest.raises(ValidationError, match="type"):
            await svc.finish_registration(body)

    @pytest.mark.asyncio
    async def test_finish_twice_conflicts(self, svc, services):
        await _registered(services)
        with pytest.raises(ConflictError, match="User already exists"):
            await _registered(services)

    @pytest.mark.asyncio
    async def test_concurrent_finish_has_exactly_one_winner(self, svc, services):
        results = await asyncio.gather(
            svc.finish_registration(_finish_body(services)),
            svc.finish_registration(_finish_body(services)),
            return_exceptions=True,
        )
        winners = [r for r in results if not isinstance(r, BaseException)]
        losers = [r for r in results if isinstance(r, BaseException)]
        assert len(winners) == 1
        assert len(losers) == 1 and isinstance(losers[0], ConflictError)
        stored = await services.accounts.get("carol@example.com")
        assert stored.id == winners[0].id


# ===================================================================
# Password grant
# ===================================================================

class TestPasswordLogin:
    @pytest.mark.asyncio
    async def test_login_issues_valid_pair(self, svc, services):
        account = await _registered(services)
        logged_in, pair = await svc.password_login("Carol@Example.com", "hash-C")
        assert logged_in.id == account.id
        assert (await services.authority.validate_access(pair.access_token)).id == account.id

    @pytest.mark.asyncio
    async def test_form_decoded_plus_is_repaired(self, svc, services):
        await _registered(services, password_hash="abc+def")
        _, pair = await svc.password_login("carol@example.com", "abc def")
        assert pair.access_token

    @pytest.mark.asyncio
    async def test_wrong_password_and_unknown_user_look_the_same(self, svc, services):
        await _registered(services)
        with pytest.raises(GrantError) as wrong:
            await svc.password_login("carol@example.com", "nope")
        with pytest.raises(GrantError) as unknown:
            await svc.password_login("ghost@example.com", "nope")
        assert wrong.value.to_oauth() == unknown.value.to_oauth() == {
            "error": "invalid_grant",
            "error_description": "Invalid username or password",
        }
        assert wrong.value.reason == "hash_mismatch"
        assert unknown.value.reason == "unknown_user"

    @pytest.mark.asyncio
    async def test_login_upserts_device_by_identifier(self, svc, services):
        account = await _registered(services)
        device = DeviceInfo(identifier="dev-1", name="firefox", type=3)
        await svc.password_login("carol@example.com", "hash-C", device)
        await svc.password_login("carol@example.com", "hash-C", DeviceInfo(identifier="dev-1", name="firefox 2", type=3))

        devices = await services.devices.list_for_account(account.id)
        assert len(devices) == 1
        assert devices[0].name == "firefox 2"

    @pytest.mark.asyncio
    async def test_login_registers_push_token_when_enabled(self, svc, services):
        account = await _registered(services)
        with patch.object(type(services.push), "enabled", new=True), \
             patch.object(services.push, "register", new=AsyncMock(return_value="push-uuid-1")):
            await svc.password_login(
                "carol@example.com", "hash-C",
                DeviceInfo(identifier="phone", name="android", type=0, push_token="fcm-token"),
            )
        device = await services.devices.get("phone")
        assert device.push_token == "fcm-token"
        assert device.push_uuid == "push-uuid-1"
        assert device.user_id == account.id


# ===================================================================
# Credential changes
# ===================================================================

class TestCredentialChanges:
    @pytest.mark.asyncio
    async def test_password_change_revokes_all_earlier_tokens(self, svc, services):
        account = await _registered(services)
        _, pair = await svc.password_login("carol@example.com", "hash-C")
        old_stamp = account.security_stamp

        account = await services.accounts.get("carol@example.com")
        await svc.change_password(account, "hash-C", "hash-C2", "new-key")

        with pytest.raises(AuthError):
            await services.authority.validate_access(pair.access_token)
        with pytest.raises(GrantError):
            await services.authority.refresh(pair.refresh_token)

        stored = await services.accounts.get("carol@example.com")
        assert stored.security_stamp != old_stamp
        assert stored.key == "new-key"
        # Only the new password works now
        await svc.password_login("carol@example.com", "hash-C2")
        with pytest.raises(GrantError):
            await svc.password_login("carol@example.com", "hash-C")

    @pytest.mark.asyncio
    async def test_password_change_requires_current_password(self, svc, services):
        account = await _registered(services)
        with pytest.raises(ValidationError, match="Invalid current password"):
            await svc.change_password(account, "wrong", "hash-C2", "new-key")

    @pytest.mark.asyncio
    async def test_password_change_requires_new_values(self, svc, services):
        account = await _registered(services)
        with pytest.raises(ValidationError, match="New password hash and key required"):
            await svc.change_password(account, "hash-C", None, "new-key")

    @pytest.mark.asyncio
    async def test_email_change_flow(self, svc, services):
        account = await _registered(services)
        _, pair = await svc.password_login("carol@example.com", "hash-C")
        await svc.request_email_change(account, "carol@new.example", "hash-C")
        token = services.authority.issue_assertion(
            PURPOSE_EMAIL_CHANGE,
            {"userId": account.id, "oldEmail": account.email, "newEmail": "carol@new.example"},
        )

        await svc.change_email(account, token, "carol@new.example", "hash-C", "hash-N", "key-N")

        assert await services.accounts.get("carol@example.com") is None
        moved = await services.accounts.get("carol@new.example")
        assert moved.id == account.id
        assert (await services.accounts.get_by_id(account.id)).email == "carol@new.example"
        with pytest.raises(AuthError):
            await services.authority.validate_access(pair.access_token)
        await svc.password_login("carol@new.example", "hash-N")

    @pytest.mark.asyncio
    async def test_email_change_token_bound_to_account(self, svc, services):
        account = await _registered(services)
        token = services.authority.issue_assertion(
            PURPOSE_EMAIL_CHANGE, {"userId": "someone-else", "newEmail": "carol@new.example"},
        )
        with pytest.raises(ValidationError, match="does not belong"):
            await svc.change_email(account, token, "carol@new.example", "hash-C", "hash-N", "key-N")

    @pytest.mark.asyncio
    async def test_email_change_token_bound_to_new_email(self, svc, services):
        account = await _registered(services)
        token = services.authority.issue_assertion(
            PURPOSE_EMAIL_CHANGE, {"userId": account.id, "newEmail": "carol@new.example"},
        )
        with pytest.raises(ValidationError, match="mismatch"):
            await svc.change_email(account, token, "carol@other.example", "hash-C", "hash-N", "key-N")

    @pytest.mark.asyncio
    async def test_email_change_to_taken_address_conflicts(self, svc, services):
        account = await _registered(services)
        await _registered(services, email="dave@example.com", password_hash="hash-D")
        with pytest.raises(ConflictError):
            await svc.request_email_change(account, "dave@example.com", "hash-C")

    @pytest.mark.asyncio
    async def test_rotate_key_requires_password_and_rotates_stamp(self, svc, services):
        account = await _registered(services)
        _, pair = await svc.password_login("carol@example.com", "hash-C")
        with pytest.raises(ValidationError, match="Invalid password"):
            await svc.rotate_key(account, "wrong", "key-R")

        account = await services.accounts.get("carol@example.com")
        await svc.rotate_key(account, "hash-C", "key-R", encrypted_private_key="priv-R")

        stored = await services.accounts.get("carol@example.com")
        assert stored.key == "key-R"
        assert stored.encrypted_private_key == "priv-R"
        with pytest.raises(AuthError):
            await services.authority.validate_access(pair.access_token)
        await svc.password_login("carol@example.com", "hash-C")

    @pytest.mark.asyncio
    async def test_update_keys_keeps_sessions(self, svc, services):
        account = await _registered(services)
        _, pair = await svc.password_login("carol@example.com", "hash-C")
        await svc.update_keys(account, "pub-2", "priv-2")
        resolved = await services.authority.validate_access(pair.access_token)
        assert resolved.public_key == "pub-2"

    @pytest.mark.asyncio
    async def test_update_domains_normalizes_groups(self, svc, services):
        account = await _registered(services)
        await svc.update_domains(account, [["Example.com ", "example.net"], []], [0, 18])
        stored = await services.accounts.get("carol@example.com")
        assert stored.equivalent_domains == [["example.com", "example.net"]]
        assert stored.excluded_global_equivalent_domains == [0, 18]


def test_build_services_memory_backend(settings):
    services = build_services(settings)
    assert services.account_service.accounts is services.accounts
