# API Module - Identity Endpoints
#
# Unauthenticated entry points: prelogin (KDF discovery), two-phase
# registration and the OAuth2 token endpoint (password and refresh_token
# grants). The token endpoint answers errors in OAuth2 shape
# ({error, error_description}); everything else uses the error envelope.
#
# Each path is served under both /identity and /api where clients differ.

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from ..auth.service import LEGACY_REGISTER_MESSAGE, DeviceInfo
from ..core.errors import GrantError, ValidationError, VaultError
from .deps import Services, get_services
from .normalize import body_of, json_body, parse_model, read_body

logger = logging.getLogger(__name__)

router = APIRouter(tags=["identity"])


class PreloginRequest(BaseModel):
    email: Optional[str] = None


class VerificationEmailRequest(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None


class TokenRequest(BaseModel):
    """Form fields of the token endpoint (OAuth2 names plus device fields)."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    grant_type: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    client_id: Optional[str] = None
    device_identifier: Optional[str] = Field(default=None, alias="deviceIdentifier")
    device_name: Optional[str] = Field(default=None, alias="deviceName")
    device_type: Optional[Union[int, str]] = Field(default=None, alias="deviceType")
    device_push_token: Optional[str] = Field(default=None, alias="devicePushToken")

    def device(self) -> Optional[DeviceInfo]:
        if not self.device_identifier:
            return None
        try:
            device_type = int(self.device_type) if self.device_type else 0
        except ValueError:
            device_type = 0
        return DeviceInfo(
            identifier=self.device_identifier,
            name=self.device_name or "Unknown Device",
            type=device_type,
            push_token=self.device_push_token or None,
        )


# ---------------------------------------------------------------------------
# Prelogin
# ---------------------------------------------------------------------------

@router.post("/identity/accounts/prelogin")
@router.post("/api/accounts/prelogin")
async def prelogin(
    body: PreloginRequest = Depends(body_of(PreloginRequest)),
    services: Services = Depends(get_services),
):
    """KDF parameters for an email. Unknown emails get PBKDF2 defaults."""
    return await services.account_service.prelogin(body.email or "")


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

@router.post("/identity/accounts/register")
@router.post("/api/accounts/register")
async def legacy_register():
    """Single-step registration is refused; clients must verify email first."""
    raise ValidationError(LEGACY_REGISTER_MESSAGE)


@router.post("/identity/accounts/register/send-verification-email")
async def send_verification_email(
    request: Request,
    body: VerificationEmailRequest = Depends(body_of(VerificationEmailRequest)),
    services: Services = Depends(get_services),
):
    base_url = str(request.base_url).rstrip("/")
    await services.account_service.send_verification_email(body.email or "", body.name, base_url)
    return {"success": True}


@router.post("/identity/accounts/register/finish")
async def finish_registration(
    body: dict = Depends(json_body),
    services: Services = Depends(get_services),
):
    account = await services.account_service.finish_registration(body)
    return {"id": account.id}


# ---------------------------------------------------------------------------
# Token
# ---------------------------------------------------------------------------

@router.post("/identity/connect/token")
async def token(request: Request, services: Services = Depends(get_services)):
    """OAuth2 token endpoint (form or JSON body)."""
    try:
        form = parse_model(TokenRequest, await read_body(request))
    except VaultError as exc:
        raise GrantError("invalid_request", exc.message) from exc

    svc = services.account_service
    if form.grant_type == "refresh_token":
        if not form.refresh_token:
            raise GrantError("invalid_grant", "Invalid or expired refresh token", reason="missing")
        account, pair = await svc.refresh(form.refresh_token)
        return svc.token_response(account, pair)

    if form.grant_type != "password":
        raise GrantError("unsupported_grant_type", "Supported: password, refresh_token")

    account, pair = await svc.password_login(form.username or "", form.password or "", form.device())
    return svc.token_response(account, pair)
