# API Module - Server Config and Feature Stubs
#
# Endpoints clients call on startup or from settings screens for features
# this server does not implement (two-factor, emergency access, the
# realtime notifications hub). They answer with the empty shapes clients
# accept so nothing errors.

import ipaddress
import re

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse

from .. import __version__
from .deps import Services, get_services

router = APIRouter(tags=["config"])

_PRIVATE_HOST = re.compile(r"^(localhost|.*\.local|.*\.internal)$", re.IGNORECASE)


def is_private_host(domain: str) -> bool:
    """True for loopback, link-local, private-range IPs and local names."""
    host = domain.strip().strip("[]")
    if _PRIVATE_HOST.match(host):
        return True
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        return False
    return addr.is_private or addr.is_loopback or addr.is_link_local or addr.is_reserved


def _empty_list():
    return {"data": [], "continuationToken": None, "object": "list"}


@router.get("/health")
async def health():
    return {"status": "ok", "version": __version__}


@router.get("/api/config")
async def server_config(request: Request):
    base_url = str(request.base_url).rstrip("/")
    environment = {
        "vault": base_url,
        "api": base_url,
        "identity": base_url,
        "notifications": base_url,
        "sso": "",
    }
    return {
        "version": __version__,
        "settings": {"environment": environment},
        "environment": environment,
        "featureStates": {},
        "object": "config",
    }


@router.get("/api/accounts/features")
async def features():
    return {
        "2fa": False,
        "directory-sync": False,
        "events": False,
        "groups": False,
        "import-export": True,
        "password-history": True,
        "password-generator": True,
        "premium": True,
        "self-host": True,
    }


@router.get("/api/two-factor")
async def two_factor():
    return _empty_list()


@router.post("/api/accounts/password-hint")
async def password_hint():
    # Hints are never mailed out; answering uniformly avoids account probing.
    return {}


@router.get("/api/emergency-access/trusted")
async def emergency_access_trusted():
    return _empty_list()


@router.get("/api/emergency-access/granted")
async def emergency_access_granted():
    return _empty_list()


@router.get("/api/organizations/{org_id}/policies/token")
async def organization_policies(org_id: str):
    return _empty_list()


@router.get("/notifications/hub")
async def notifications_hub():
    return {"message": "Notifications not supported"}


@router.get("/notifications/hub/negotiate")
@router.post("/notifications/hub/negotiate")
async def notifications_negotiate():
    return {"connectionId": "", "availableTransports": []}


@router.get("/icons/{domain}/icon.png")
async def icon(domain: str, services: Services = Depends(get_services)):
    """Redirect to the icon service; never leak internal hostnames to it."""
    if is_private_host(domain):
        return Response(status_code=204)
    base = services.settings.icon_service.rstrip("/")
    return RedirectResponse(f"{base}/{domain}/icon.png", status_code=302)
