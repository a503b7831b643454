"""
Tests for the ``vaultkeep`` command line (reindex and argument handling).
"""

import asyncio

import pytest

from vaultkeep.__main__ import main
from vaultkeep.api import build_services
from vaultkeep.auth.tokens import PURPOSE_REGISTRATION
from vaultkeep.core.config import Settings
from vaultkeep.vault import VaultIndex


@pytest.fixture
def sqlite_env(monkeypatch, tmp_path):
    monkeypatch.setenv("VAULTKEEP_STORAGE", "sqlite")
    monkeypatch.setenv("VAULTKEEP_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("VAULTKEEP_LOG_DIR", str(tmp_path / "audit_logs"))
    monkeypatch.setenv("VAULTKEEP_JWT_SECRET", "cli-test-secret")
    return tmp_path


async def _seed(settings):
    services = build_services(settings)
    token = services.authority.issue_assertion(PURPOSE_REGISTRATION, {"email": "cli@example.com"})
    account = await services.account_service.finish_registration({
        "email": "cli@example.com",
        "masterPasswordHash": "h",
        "userSymmetricKey": "k",
        "emailVerificationToken": token,
    })
    cipher = await services.vault.create_cipher(account.id, {"type": 2, "name": "note", "secureNote": {"type": 0}})
    await services.vault.index.put(account.id, VaultIndex(cipher_ids=["orphan"]))
    return services, account, cipher


def test_no_command_prints_help(capsys):
    assert main([]) == 2
    assert "usage" in capsys.readouterr().out


def test_reindex_rebuilds_index(sqlite_env, capsys):
    settings = Settings.from_env(dotenv=False)
    services, account, cipher = asyncio.run(_seed(settings))

    assert main(["reindex", "cli@example.com"]) == 0
    assert "1 ciphers" in capsys.readouterr().out

    index = asyncio.run(services.vault.index.get(account.id))
    assert index.cipher_ids == [cipher.id]


def test_reindex_unknown_account(sqlite_env, capsys):
    assert main(["reindex", "nobody@example.com"]) == 1
    assert "No account" in capsys.readouterr().err
