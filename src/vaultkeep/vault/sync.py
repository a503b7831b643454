"""
Vault Sync Engine - the full-state snapshot a client downloads on sync.

Ciphers and folders are listed straight from the object store, never from
the vault index. That is what makes index drift invisible: an orphan index
id has no object to list, and an object the index forgot is listed anyway.
Tombstoned ciphers are included; the client renders the trash from
``deletedDate``.

Nothing is cached between calls.
"""
import asyncio
from typing import Any, Dict

from ..accounts.models import Account
from .domains import global_domains_view
from .objects import VaultObjectStore


def build_profile(account: Account) -> Dict[str, Any]:
    """Profile projection of an account.

    Features this server does not implement are reported with fixed
    values (verified, premium, no two-factor, no organizations).
    """
    return {
        "id": account.id,
        "name": account.name,
        "email": account.email,
        "emailVerified": True,
        "premium": True,
        "premiumFromOrganization": False,
        "masterPasswordHint": account.master_password_hint,
        "culture": account.culture,
        "twoFactorEnabled": False,
        "key": account.key,
        "publicKey": account.public_key,
        "privateKey": account.encrypted_private_key,
        "securityStamp": account.security_stamp,
        "forcePasswordReset": False,
        "usesKeyConnector": False,
        "avatarColor": None,
        "creationDate": account.created_at,
        "verifyDevices": True,
        "organizations": [],
        "providers": [],
        "providerOrganizations": [],
        "object": "profile",
    }


def build_domains(account: Account) -> Dict[str, Any]:
    """Account equivalent-domain groups plus the global table."""
    return {
        "equivalentDomains": account.equivalent_domains or [],
        "globalEquivalentDomains": global_domains_view(account.excluded_global_equivalent_domains),
        "object": "domains",
    }


class SyncEngine:
    """Builds sync responses from the authoritative object store."""

    def __init__(self, objects: VaultObjectStore):
        self.objects = objects

    async def sync(self, account: Account) -> Dict[str, Any]:
        ciphers, folders = await asyncio.gather(
            self.objects.list_ciphers(account.id),
            self.objects.list_folders(account.id),
        )
        return {
            "object": "sync",
            "profile": build_profile(account),
            "folders": [f.to_dict() for f in folders],
            "ciphers": [c.to_dict() for c in ciphers],
            "domains": build_domains(account),
            "collections": [],
            "policies": [],
            "sends": [],
        }
