"""
Device Store - client installations that have logged in to an account.

Keys:
    device:{identifier}        -> Device JSON
    user_devices:{account_id}  -> JSON list of identifiers

The identifier is chosen by the client and is stable across logins, so a
repeat login from the same install updates one record instead of adding a
new one. The per-account list is advisory: listing re-reads every device
and drops entries that vanished or now belong to someone else.
"""
import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..core import utc_now_iso
from ..storage.base import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class Device:
    id: str
    user_id: str
    name: str
    type: int
    identifier: str
    push_token: Optional[str] = None
    push_uuid: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "type": self.type,
            "identifier": self.identifier,
            "pushToken": self.push_token,
            "pushUuid": self.push_uuid,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Device":
        return cls(
            id=data["id"],
            user_id=data["userId"],
            name=data.get("name", ""),
            type=int(data.get("type", 0) or 0),
            identifier=data["identifier"],
            push_token=data.get("pushToken"),
            push_uuid=data.get("pushUuid"),
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
        )

    def to_response(self) -> Dict[str, Any]:
        """Shape returned by the device list endpoint."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "identifier": self.identifier,
            "creationDate": self.created_at,
            "object": "device",
        }


def _device_key(identifier: str) -> str:
    return f"device:{identifier}"


def _user_devices_key(account_id: str) -> str:
    return f"user_devices:{account_id}"


class DeviceStore:
    """Device records plus the per-account identifier list."""

    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    async def get(self, identifier: str) -> Optional[Device]:
        if not identifier:
            return None
        raw = await self._kv.get(_device_key(identifier))
        return Device.from_dict(json.loads(raw)) if raw is not None else None

    async def get_for_account(self, account_id: str, identifier: str) -> Optional[Device]:
        """A device only if it belongs to ``account_id``."""
        device = await self.get(identifier)
        if device is None or device.user_id != account_id:
            return None
        return device

    async def _identifiers(self, account_id: str) -> List[str]:
        raw = await self._kv.get(_user_devices_key(account_id))
        return list(json.loads(raw)) if raw else []

    async def list_for_account(self, account_id: str) -> List[Device]:
        identifiers = await self._identifiers(account_id)
        devices = await asyncio.gather(*(self.get(i) for i in identifiers))
        return [d for d in devices if d is not None and d.user_id == account_id]

    async def save(self, device: Device) -> None:
        device.updated_at = utc_now_iso()
        await self._kv.put(_device_key(device.identifier), json.dumps(device.to_dict()))
        identifiers = await self._identifiers(device.user_id)
        if device.identifier not in identifiers:
            identifiers.append(device.identifier)
            await self._kv.put(_user_devices_key(device.user_id), json.dumps(identifiers))

    async def upsert_login(
        self,
        account_id: str,
        identifier: str,
        name: str,
        device_type: int,
        push_token: Optional[str] = None,
    ) -> Device:
        """Record a login from ``identifier``, creating the device on first sight.

        An install that moves to another account is taken over by it: the
        record is rewritten with the new owner and a fresh device id.
        """
        device = await self.get(identifier)
        now = utc_now_iso()
        if device is None or device.user_id != account_id:
            device = Device(
                id=str(uuid.uuid4()),
                user_id=account_id,
                name=name,
                type=device_type,
                identifier=identifier,
                created_at=now,
            )
        else:
            device.name = name or device.name
            device.type = device_type
        if push_token:
            device.push_token = push_token
        await self.save(device)
        return device

    async def delete(self, device: Device) -> None:
        await self._kv.delete(_device_key(device.identifier))
        identifiers = await self._identifiers(device.user_id)
        if device.identifier in identifiers:
            identifiers.remove(device.identifier)
            await self._kv.put(_user_devices_key(device.user_id), json.dumps(identifiers))
        logger.info("Device removed: id=%s account=%s", device.id, device.user_id)
