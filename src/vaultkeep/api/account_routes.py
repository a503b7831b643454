# API Module - Account Endpoints
#
# Authenticated account management: profile, revision date, password and
# email change, key material. Credential-affecting changes queue a LogOut
# push so other devices drop their now-revoked sessions.

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..accounts import Account
from ..vault import build_profile
from .deps import Services, current_account, get_services
from .normalize import body_of

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class PasswordChangeRequest(_CamelModel):
    master_password_hash: Optional[str] = None
    new_master_password_hash: Optional[str] = None
    key: Optional[str] = None
    master_password_hint: Optional[str] = None


class EmailTokenRequest(_CamelModel):
    new_email: Optional[str] = None
    master_password_hash: Optional[str] = None


class EmailChangeRequest(_CamelModel):
    token: Optional[str] = None
    new_email: Optional[str] = None
    master_password_hash: Optional[str] = None
    new_master_password_hash: Optional[str] = None
    key: Optional[str] = None


class ProfileUpdateRequest(_CamelModel):
    name: Optional[str] = None
    master_password_hint: Optional[str] = None
    culture: Optional[str] = None


class KeysRequest(_CamelModel):
    public_key: Optional[str] = None
    encrypted_private_key: Optional[str] = None


class KeyRotationRequest(_CamelModel):
    key: Optional[str] = None
    master_password_hash: Optional[str] = None
    new_master_password_hash: Optional[str] = None
    private_key: Optional[str] = None
    encrypted_private_key: Optional[str] = None


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

@router.get("/profile")
async def get_profile(account: Account = Depends(current_account)):
    return build_profile(account)


@router.put("/profile")
@router.post("/profile")
async def update_profile(
    body: ProfileUpdateRequest = Depends(body_of(ProfileUpdateRequest)),
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    updated = await services.account_service.update_profile(
        account, name=body.name, master_password_hint=body.master_password_hint, culture=body.culture,
    )
    return build_profile(updated)


@router.get("/revision-date")
async def revision_date(account: Account = Depends(current_account)):
    """Last account update time; clients compare it to decide whether to sync."""
    return account.updated_at or account.created_at


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

@router.post("/password")
async def change_password(
    background: BackgroundTasks,
    body: PasswordChangeRequest = Depends(body_of(PasswordChangeRequest)),
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    await services.account_service.change_password(
        account,
        body.master_password_hash,
        body.new_master_password_hash,
        body.key,
        hint=body.master_password_hint,
    )
    background.add_task(services.push.log_out, account.id)
    return {}


@router.post("/email-token")
async def request_email_token(
    body: EmailTokenRequest = Depends(body_of(EmailTokenRequest)),
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    await services.account_service.request_email_change(account, body.new_email, body.master_password_hash)
    return {}


@router.post("/email")
async def change_email(
    background: BackgroundTasks,
    body: EmailChangeRequest = Depends(body_of(EmailChangeRequest)),
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    await services.account_service.change_email(
        account,
        body.token,
        body.new_email,
        body.master_password_hash,
        body.new_master_password_hash,
        body.key,
    )
    background.add_task(services.push.log_out, account.id)
    return {}


@router.post("/keys")
async def set_keys(
    body: KeysRequest = Depends(body_of(KeysRequest)),
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    """Store the account's public key and encrypted private key."""
    updated = await services.account_service.update_keys(
        account, body.public_key, body.encrypted_private_key,
    )
    return {
        "key": updated.key,
        "publicKey": updated.public_key,
        "privateKey": updated.encrypted_private_key,
        "object": "keys",
    }


@router.post("/key")
async def rotate_key(
    background: BackgroundTasks,
    body: KeyRotationRequest = Depends(body_of(KeyRotationRequest)),
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    """Replace the account key (requires the current password; revokes sessions)."""
    await services.account_service.rotate_key(
        account,
        body.master_password_hash,
        body.key,
        encrypted_private_key=body.encrypted_private_key or body.private_key,
        new_password_hash=body.new_master_password_hash,
    )
    background.add_task(services.push.log_out, account.id)
    return {}
