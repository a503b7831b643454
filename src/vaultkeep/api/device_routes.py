# API Module - Device Endpoints
#
# Devices are created implicitly by password logins; these endpoints list
# them, remove them and manage their push tokens.

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..accounts import Account
from ..core.audit_log import EventSeverity, EventType, get_audit_logger
from ..core.errors import NotFoundError, ValidationError
from .deps import Services, current_account, get_services
from .normalize import body_of

router = APIRouter(prefix="/api/devices", tags=["devices"])


class PushTokenRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    push_token: Optional[str] = None


@router.get("")
async def list_devices(
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    devices = await services.devices.list_for_account(account.id)
    return {
        "data": [d.to_response() for d in devices],
        "continuationToken": None,
        "object": "list",
    }


@router.get("/knowndevice")
async def known_device():
    """New-device verification is not implemented; every device is known."""
    return True


@router.delete("/{device_id}")
async def delete_device(
    device_id: str,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    devices = await services.devices.list_for_account(account.id)
    device = next((d for d in devices if d.id == device_id), None)
    if device is None:
        raise NotFoundError("Device not found")

    if device.push_uuid:
        await services.push.unregister(device.push_uuid)
    await services.devices.delete(device)
    get_audit_logger().log_event(
        EventType.DEVICE_REMOVED, EventSeverity.INFO,
        "Device removed", details={"device_id": device.id}, account_id=account.id,
    )
    return {}


@router.put("/identifier/{identifier}/token")
async def set_push_token(
    identifier: str,
    body: PushTokenRequest = Depends(body_of(PushTokenRequest)),
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    if not body.push_token:
        raise ValidationError("Missing pushToken")
    device = await services.devices.get_for_account(account.id, identifier)
    if device is None:
        raise NotFoundError("Device not found")

    device.push_token = body.push_token
    push_uuid = await services.push.register(account.id, device)
    if push_uuid:
        device.push_uuid = push_uuid
    await services.devices.save(device)
    return {}


@router.put("/identifier/{identifier}/clear-token")
async def clear_push_token(
    identifier: str,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    device = await services.devices.get_for_account(account.id, identifier)
    if device is None:
        raise NotFoundError("Device not found")

    if device.push_uuid:
        await services.push.unregister(device.push_uuid)
    device.push_token = None
    device.push_uuid = None
    await services.devices.save(device)
    return {}
