"""
Shared pytest fixtures for the vaultkeep test suite.

Autouse fixtures below isolate tests from live data:
  - Audit logger      -> temp directory (no test events in ./audit_logs)
  - Service container -> reset per test, memory storage by default
  - Push token cache  -> emptied per test
"""

import logging

import pytest
from fastapi.testclient import TestClient

from vaultkeep.api import build_services, create_app
from vaultkeep.auth.tokens import PURPOSE_REGISTRATION
from vaultkeep.core.config import Settings


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path):
    """Point the global AuditLogger at a temp directory for every test."""
    import vaultkeep.core.audit_log as audit_mod

    audit_logger = logging.getLogger(audit_mod.AUDIT_LOGGER_NAME)
    handlers_before = list(audit_logger.handlers)

    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = audit_mod.AuditLogger(log_dir=tmp_path / "audit_logs")

    yield

    audit_mod._audit_logger = old_logger
    for handler in list(audit_logger.handlers):
        if handler not in handlers_before:
            audit_logger.removeHandler(handler)
            handler.close()


@pytest.fixture(autouse=True)
def _isolate_services(monkeypatch):
    """Reset the service singleton; anything built from env uses memory storage."""
    import vaultkeep.api.deps as deps_mod

    monkeypatch.setenv("VAULTKEEP_STORAGE", "memory")
    old_services = deps_mod._services
    deps_mod._services = None
    yield
    deps_mod._services = old_services


@pytest.fixture(autouse=True)
def _reset_push_token_cache():
    from vaultkeep.notify.push import reset_token_cache

    reset_token_cache()
    yield
    reset_token_cache()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        jwt_secret="test-secret-0123456789",
        storage="memory",
        data_dir=tmp_path / "data",
        log_dir=tmp_path / "audit_logs",
    )


@pytest.fixture
def services(settings):
    return build_services(settings)


@pytest.fixture
def client(services):
    """FastAPI test client bound to in-memory services."""
    return TestClient(create_app(services))


@pytest.fixture
def register(client, services):
    """Factory: register an account through the two-phase flow.

    Returns the finish-registration response JSON.
    """

    def _register(email="alice@example.com", password_hash="hash-A", name="Alice", key="enc-key"):
        token = services.authority.issue_assertion(
            PURPOSE_REGISTRATION, {"email": email.lower(), "name": name},
        )
        resp = client.post(
            "/identity/accounts/register/finish",
            json={
                "email": email,
                "masterPasswordHash": password_hash,
                "userSymmetricKey": key,
                "kdf": 0,
                "kdfIterations": 600000,
                "emailVerificationToken": token,
                "userAsymmetricKeys": {"publicKey": "pub", "encryptedPrivateKey": "priv"},
            },
        )
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _register


@pytest.fixture
def login(client):
    """Factory: password grant; returns the token response JSON."""

    def _login(email="alice@example.com", password_hash="hash-A", **extra):
        data = {
            "grant_type": "password",
            "username": email,
            "password": password_hash,
            "scope": "api offline_access",
            "client_id": "web",
        }
        data.update(extra)
        resp = client.post("/identity/connect/token", data=data)
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _login
