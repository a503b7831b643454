# API Module - Cipher and Folder Endpoints
#
# Thin handlers over VaultOperations. Each mutation queues its push hint
# as a background task once the response is ready; push never delays or
# fails the request.

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..accounts import Account
from .deps import Services, current_account, get_services
from .normalize import body_of, json_body

router = APIRouter(prefix="/api", tags=["vault"])


class ImportRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    ciphers: List[Dict[str, Any]] = Field(default_factory=list)
    folders: List[Dict[str, Any]] = Field(default_factory=list)
    folder_relationships: Optional[List[Dict[str, Any]]] = None


# ---------------------------------------------------------------------------
# Ciphers
# ---------------------------------------------------------------------------

@router.post("/ciphers")
async def create_cipher(
    background: BackgroundTasks,
    body: dict = Depends(json_body),
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    # Some clients wrap the cipher as {cipher: {...}, collectionIds: [...]}
    payload = body.get("cipher") if isinstance(body.get("cipher"), dict) else body
    cipher = await services.vault.create_cipher(account.id, payload)
    background.add_task(services.push.cipher_changed, account.id, cipher.id, cipher.revision_date, True)
    return cipher.to_dict()


@router.post("/ciphers/import")
async def import_ciphers(
    background: BackgroundTasks,
    body: ImportRequest = Depends(body_of(ImportRequest)),
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    result = await services.vault.import_vault(
        account.id, body.ciphers, body.folders, body.folder_relationships,
    )
    background.add_task(services.push.vault_changed, account.id)
    return {
        "ciphers": [c.to_dict() for c in result.ciphers],
        "folders": [f.to_dict() for f in result.folders],
    }


@router.get("/ciphers/{cipher_id}")
async def get_cipher(
    cipher_id: str,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    cipher = await services.vault.get_cipher(account.id, cipher_id)
    return cipher.to_dict()


@router.put("/ciphers/{cipher_id}")
async def update_cipher(
    cipher_id: str,
    background: BackgroundTasks,
    body: dict = Depends(json_body),
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    cipher = await services.vault.update_cipher(account.id, cipher_id, body)
    background.add_task(services.push.cipher_changed, account.id, cipher.id, cipher.revision_date)
    return cipher.to_dict()


@router.delete("/ciphers/{cipher_id}")
async def delete_cipher(
    cipher_id: str,
    background: BackgroundTasks,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    await services.vault.hard_delete_cipher(account.id, cipher_id)
    background.add_task(services.push.cipher_deleted, account.id, cipher_id)
    return {}


@router.put("/ciphers/{cipher_id}/delete")
async def soft_delete_cipher(
    cipher_id: str,
    background: BackgroundTasks,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    cipher = await services.vault.soft_delete_cipher(account.id, cipher_id)
    background.add_task(services.push.cipher_changed, account.id, cipher.id, cipher.revision_date)
    return cipher.to_dict()


@router.put("/ciphers/{cipher_id}/restore")
async def restore_cipher(
    cipher_id: str,
    background: BackgroundTasks,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    cipher = await services.vault.restore_cipher(account.id, cipher_id)
    background.add_task(services.push.cipher_changed, account.id, cipher.id, cipher.revision_date)
    return cipher.to_dict()


# ---------------------------------------------------------------------------
# Folders
# ---------------------------------------------------------------------------

@router.post("/folders")
async def create_folder(
    background: BackgroundTasks,
    body: dict = Depends(json_body),
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    folder = await services.vault.create_folder(account.id, body)
    background.add_task(services.push.folder_changed, account.id, folder.id, folder.revision_date, True)
    return folder.to_dict()


@router.get("/folders/{folder_id}")
async def get_folder(
    folder_id: str,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    folder = await services.vault.get_folder(account.id, folder_id)
    return folder.to_dict()


@router.put("/folders/{folder_id}")
async def update_folder(
    folder_id: str,
    background: BackgroundTasks,
    body: dict = Depends(json_body),
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    folder = await services.vault.update_folder(account.id, folder_id, body)
    background.add_task(services.push.folder_changed, account.id, folder.id, folder.revision_date)
    return folder.to_dict()


@router.delete("/folders/{folder_id}")
async def delete_folder(
    folder_id: str,
    background: BackgroundTasks,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    await services.vault.delete_folder(account.id, folder_id)
    background.add_task(services.push.folder_deleted, account.id, folder_id)
    return {}
