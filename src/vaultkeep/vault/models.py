# Vault Module - Cipher and Folder Objects
#
# Typed payloads (login, card, identity, ...) are opaque client-encrypted
# structures: the server stores and returns them untouched and only
# validates the envelope (type, name).

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional

from ..core import utc_now_iso
from ..core.errors import ValidationError


class CipherType(IntEnum):
    """Vault item kinds understood by clients."""
    LOGIN = 1
    SECURE_NOTE = 2
    CARD = 3
    IDENTITY = 4
    SSH_KEY = 5


@dataclass
class Cipher:
    """One vault item owned by one account."""
    id: str
    type: int
    name: str
    creation_date: str
    revision_date: str
    folder_id: Optional[str] = None
    favorite: bool = False
    reprompt: int = 0
    notes: Optional[str] = None
    fields: Optional[List[Dict[str, Any]]] = None
    login: Optional[Dict[str, Any]] = None
    card: Optional[Dict[str, Any]] = None
    identity: Optional[Dict[str, Any]] = None
    secure_note: Optional[Dict[str, Any]] = None
    ssh_key: Optional[Dict[str, Any]] = None
    key: Optional[str] = None
    password_history: Optional[List[Dict[str, Any]]] = None
    archived_date: Optional[str] = None
    deleted_date: Optional[str] = None
    organization_id: Optional[str] = None
    collection_ids: List[str] = field(default_factory=list)
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """Wire (and storage) representation."""
        return {
            "id": self.id,
            "type": self.type,
            "organizationId": self.organization_id,
            "folderId": self.folder_id,
            "favorite": self.favorite,
            "reprompt": self.reprompt,
            "name": self.name,
            "notes": self.notes,
            "fields": self.fields,
            "login": self.login,
            "card": self.card,
            "identity": self.identity,
            "secureNote": self.secure_note,
            "sshKey": self.ssh_key,
            "key": self.key,
            "passwordHistory": self.password_history,
            "revisionDate": self.revision_date,
            "creationDate": self.creation_date,
            "deletedDate": self.deleted_date,
            "archivedDate": self.archived_date,
            "collectionIds": self.collection_ids,
            "data": self.data,
            "edit": True,
            "viewPassword": True,
            "organizationUseTotp": False,
            "attachments": None,
            "object": "cipher",
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Cipher":
        return cls(
            id=data["id"],
            type=data["type"],
            name=data.get("name", ""),
            creation_date=data.get("creationDate", ""),
            revision_date=data.get("revisionDate", ""),
            folder_id=data.get("folderId"),
            favorite=bool(data.get("favorite", False)),
            reprompt=data.get("reprompt", 0) or 0,
            notes=data.get("notes"),
            fields=data.get("fields"),
            login=data.get("login"),
            card=data.get("card"),
            identity=data.get("identity"),
            secure_note=data.get("secureNote"),
            ssh_key=data.get("sshKey"),
            key=data.get("key"),
            password_history=data.get("passwordHistory"),
            archived_date=data.get("archivedDate"),
            deleted_date=data.get("deletedDate"),
            organization_id=data.get("organizationId"),
            collection_ids=data.get("collectionIds") or [],
            data=data.get("data"),
        )


@dataclass
class Folder:
    """A named grouping of ciphers."""
    id: str
    name: str
    revision_date: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "revisionDate": self.revision_date,
            "object": "folder",
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Folder":
        return cls(id=data["id"], name=data.get("name", ""), revision_date=data.get("revisionDate", ""))


def build_cipher(body: Dict[str, Any], cipher_id: str, existing: Optional[Cipher] = None) -> Cipher:
    """Build a cipher from a normalized (camelCase) request body.

    On update, ``existing`` supplies the creation date, the type when the
    body omits it, and password history when the client sends none. The
    tombstone is always cleared: saving an item takes it out of the trash.

    Raises:
        ValidationError: Unknown type or missing name.
    """
    now = utc_now_iso()
    raw_type = body.get("type")
    if raw_type is None:
        raw_type = existing.type if existing else CipherType.LOGIN
    try:
        cipher_type = CipherType(int(raw_type))
    except (TypeError, ValueError):
        raise ValidationError("Invalid cipher data: Type required")

    name = body.get("name")
    if not name:
        raise ValidationError("Invalid cipher data: Name required")

    history = body.get("passwordHistory")
    if history is None and existing is not None:
        history = existing.password_history

    return Cipher(
        id=cipher_id,
        type=int(cipher_type),
        name=name,
        creation_date=existing.creation_date if existing else now,
        revision_date=now,
        folder_id=body.get("folderId"),
        favorite=bool(body.get("favorite") or False),
        reprompt=body.get("reprompt") or 0,
        notes=body.get("notes"),
        fields=body.get("fields"),
        login=body.get("login"),
        card=body.get("card"),
        identity=body.get("identity"),
        secure_note=body.get("secureNote"),
        ssh_key=body.get("sshKey"),
        key=body.get("key"),
        password_history=history,
        archived_date=body.get("archivedDate"),
        deleted_date=None,
        organization_id=body.get("organizationId"),
        collection_ids=body.get("collectionIds") or [],
        data=body.get("data"),
    )


def build_folder(body: Dict[str, Any], folder_id: str) -> Folder:
    """Build a folder from a normalized request body.

    Raises:
        ValidationError: If the name is missing.
    """
    name = body.get("name")
    if not name:
        raise ValidationError("Folder name required")
    return Folder(id=folder_id, name=name, revision_date=utc_now_iso())
