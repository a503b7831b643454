# API Module - Sync and Settings Endpoints

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..accounts import Account
from ..vault import build_domains
from .deps import Services, current_account, get_services
from .normalize import body_of

router = APIRouter(prefix="/api", tags=["sync"])


class DomainsRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    equivalent_domains: Optional[List[List[str]]] = None
    excluded_global_equivalent_domains: Optional[List[int]] = None


@router.get("/sync")
async def sync(
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    """Full vault snapshot, listed from the object store."""
    return await services.sync.sync(account)


@router.get("/settings/domains")
async def get_domains(account: Account = Depends(current_account)):
    return build_domains(account)


@router.put("/settings/domains")
@router.post("/settings/domains")
async def update_domains(
    background: BackgroundTasks,
    body: DomainsRequest = Depends(body_of(DomainsRequest)),
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    updated = await services.account_service.update_domains(
        account, body.equivalent_domains, body.excluded_global_equivalent_domains,
    )
    background.add_task(services.push.settings_changed, account.id)
    return build_domains(updated)
