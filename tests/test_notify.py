"""
Tests for outbound integrations: the push relay client and the mailer.

HTTP is faked with httpx.MockTransport; every request the client makes is
recorded so tests can assert on URLs, headers and bodies.
"""

import json

import httpx
import pytest

from vaultkeep.core.config import Settings
from vaultkeep.devices import Device
from vaultkeep.notify import Mailer, NotificationType, PushRelay
from vaultkeep.notify.mail import RESEND_API_URL


def _push_settings(**overrides):
    values = dict(
        push_enabled=True,
        push_installation_id="inst-1",
        push_installation_key="inst-key",
        push_relay_uri="https://relay.test",
        push_identity_uri="https://identity.test",
    )
    values.update(overrides)
    return Settings(**values)


class Recorder:
    """MockTransport handler that records requests and serves canned replies."""

    def __init__(self, routes=None):
        self.requests = []
        self.routes = routes or {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key == ("POST", "/connect/token") and key not in self.routes:
            return httpx.Response(200, json={"access_token": "relay-token", "expires_in": 3600})
        status, body = self.routes.get(key, (200, {}))
        return httpx.Response(status, json=body)

    def paths(self):
        return [(r.method, r.url.path) for r in self.requests]


def _device(push_token="apns-token"):
    return Device(
        id="dev-1",
        user_id="acct-1",
        name="iPhone",
        type=1,
        identifier="ident-1",
        push_token=push_token,
    )


# ===================================================================
# Push relay
# ===================================================================

class TestPushRelay:
    @pytest.mark.asyncio
    async def test_register_returns_relay_id(self):
        recorder = Recorder({("POST", "/push/register"): (200, {"id": "push-uuid"})})
        relay = PushRelay(_push_settings(), transport=httpx.MockTransport(recorder))

        assert await relay.register("acct-1", _device()) == "push-uuid"

        token_req, register_req = recorder.requests
        assert token_req.url.host == "identity.test"
        form = dict(httpx.QueryParams(token_req.content.decode()))
        assert form["grant_type"] == "client_credentials"
        assert form["client_id"] == "installation.inst-1"
        assert register_req.headers["Authorization"] == "Bearer relay-token"
        body = json.loads(register_req.content)
        assert body["userId"] == "acct-1"
        assert body["pushToken"] == "apns-token"

    @pytest.mark.asyncio
    async def test_token_fetched_once_across_calls(self):
        recorder = Recorder()
        relay = PushRelay(_push_settings(), transport=httpx.MockTransport(recorder))

        assert await relay.vault_changed("acct-1") is True
        assert await relay.cipher_deleted("acct-1", "c1") is True

        assert recorder.paths().count(("POST", "/connect/token")) == 1
        assert recorder.paths().count(("POST", "/push/send")) == 2

    @pytest.mark.asyncio
    async def test_notification_payload(self):
        recorder = Recorder()
        relay = PushRelay(_push_settings(), transport=httpx.MockTransport(recorder))

        await relay.cipher_changed("acct-1", "c1", "2024-01-01T00:00:00.000Z", created=True)

        body = json.loads(recorder.requests[-1].content)
        assert body == {
            "userId": "acct-1",
            "type": NotificationType.SYNC_CIPHER_CREATE,
            "payload": {"id": "c1", "revisionDate": "2024-01-01T00:00:00.000Z"},
        }

    @pytest.mark.asyncio
    async def test_relay_error_is_swallowed(self):
        recorder = Recorder({
            ("POST", "/push/register"): (500, {}),
            ("POST", "/push/send"): (503, {}),
        })
        relay = PushRelay(_push_settings(), transport=httpx.MockTransport(recorder))

        assert await relay.register("acct-1", _device()) is None
        assert await relay.log_out("acct-1") is False

    @pytest.mark.asyncio
    async def test_token_failure_is_swallowed(self):
        recorder = Recorder({("POST", "/connect/token"): (401, {"error": "invalid_client"})})
        relay = PushRelay(_push_settings(), transport=httpx.MockTransport(recorder))

        assert await relay.settings_changed("acct-1") is False
        assert recorder.paths() == [("POST", "/connect/token")]

    @pytest.mark.asyncio
    async def test_network_error_is_swallowed(self):
        def explode(request):
            raise httpx.ConnectError("unreachable", request=request)

        relay = PushRelay(_push_settings(), transport=httpx.MockTransport(explode))
        assert await relay.folder_deleted("acct-1", "f1") is False

    @pytest.mark.asyncio
    async def test_disabled_makes_no_requests(self):
        recorder = Recorder()
        relay = PushRelay(_push_settings(push_enabled=False), transport=httpx.MockTransport(recorder))

        assert relay.enabled is False
        assert await relay.register("acct-1", _device()) is None
        assert await relay.vault_changed("acct-1") is False
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_missing_installation_key_disables(self):
        relay = PushRelay(_push_settings(push_installation_key=None))
        assert relay.enabled is False

    @pytest.mark.asyncio
    async def test_register_without_push_token_is_noop(self):
        recorder = Recorder()
        relay = PushRelay(_push_settings(), transport=httpx.MockTransport(recorder))
        assert await relay.register("acct-1", _device(push_token=None)) is None
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_unregister_treats_unknown_id_as_success(self):
        recorder = Recorder({("DELETE", "/push/gone"): (404, {})})
        relay = PushRelay(_push_settings(), transport=httpx.MockTransport(recorder))
        assert await relay.unregister("gone") is True

    @pytest.mark.asyncio
    async def test_unregister_failure(self):
        recorder = Recorder({("DELETE", "/push/p1"): (500, {})})
        relay = PushRelay(_push_settings(), transport=httpx.MockTransport(recorder))
        assert await relay.unregister("p1") is False


# ===================================================================
# Mailer
# ===================================================================

class TestMailer:
    @pytest.mark.asyncio
    async def test_disabled_without_api_key(self):
        recorder = Recorder()
        mailer = Mailer(Settings(), transport=httpx.MockTransport(recorder))
        assert mailer.enabled is False
        assert await mailer.send("a@example.com", "Hi", "<p>hi</p>") is False
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_send_posts_message(self):
        recorder = Recorder()
        settings = Settings(resend_api_key="re_123", mail_from="Vault <vault@example.com>")
        mailer = Mailer(settings, transport=httpx.MockTransport(recorder))

        assert await mailer.send("a@example.com", "Verify", "<p>link</p>") is True

        (request,) = recorder.requests
        assert str(request.url) == RESEND_API_URL
        assert request.headers["Authorization"] == "Bearer re_123"
        assert json.loads(request.content) == {
            "from": "Vault <vault@example.com>",
            "to": ["a@example.com"],
            "subject": "Verify",
            "html": "<p>link</p>",
        }

    @pytest.mark.asyncio
    async def test_rejected_message_returns_false(self):
        recorder = Recorder({("POST", "/emails"): (422, {"message": "bad from"})})
        mailer = Mailer(Settings(resend_api_key="re_123"), transport=httpx.MockTransport(recorder))
        assert await mailer.send("a@example.com", "Verify", "<p>x</p>") is False
