# Accounts Module - Account Record
#
# One JSON document per account in the key-value store. Field names on disk
# use the client's camelCase so a stored record can be inspected against
# protocol traces directly.

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

KDF_PBKDF2 = 0
KDF_ARGON2 = 1

DEFAULT_KDF_ITERATIONS = 600000


@dataclass
class Account:
    """A registered account.

    ``master_password_hash`` is the server-side hash
    (sha256(security_stamp + client hash)), never the client value.
    """
    id: str
    email: str
    master_password_hash: str
    key: str
    security_stamp: str
    kdf: int = KDF_PBKDF2
    kdf_iterations: int = DEFAULT_KDF_ITERATIONS
    kdf_memory: Optional[int] = None
    kdf_parallelism: Optional[int] = None
    master_password_hint: Optional[str] = None
    public_key: Optional[str] = None
    encrypted_private_key: Optional[str] = None
    name: Optional[str] = None
    culture: str = "en-US"
    email_verified: bool = True
    created_at: str = ""
    updated_at: str = ""
    equivalent_domains: List[List[str]] = field(default_factory=list)
    excluded_global_equivalent_domains: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for storage."""
        return {
            "id": self.id,
            "email": self.email,
            "masterPasswordHash": self.master_password_hash,
            "masterPasswordHint": self.master_password_hint,
            "key": self.key,
            "kdf": self.kdf,
            "kdfIterations": self.kdf_iterations,
            "kdfMemory": self.kdf_memory,
            "kdfParallelism": self.kdf_parallelism,
            "name": self.name,
            "publicKey": self.public_key,
            "encryptedPrivateKey": self.encrypted_private_key,
            "securityStamp": self.security_stamp,
            "culture": self.culture,
            "emailVerified": self.email_verified,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "equivalentDomains": self.equivalent_domains,
            "excludedGlobalEquivalentDomains": self.excluded_global_equivalent_domains,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        return cls(
            id=data["id"],
            email=data["email"],
            master_password_hash=data["masterPasswordHash"],
            master_password_hint=data.get("masterPasswordHint"),
            key=data["key"],
            kdf=data.get("kdf", KDF_PBKDF2),
            kdf_iterations=data.get("kdfIterations", DEFAULT_KDF_ITERATIONS),
            kdf_memory=data.get("kdfMemory"),
            kdf_parallelism=data.get("kdfParallelism"),
            name=data.get("name"),
            public_key=data.get("publicKey"),
            encrypted_private_key=data.get("encryptedPrivateKey"),
            security_stamp=data["securityStamp"],
            culture=data.get("culture", "en-US"),
            email_verified=data.get("emailVerified", True),
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
            equivalent_domains=data.get("equivalentDomains") or [],
            excluded_global_equivalent_domains=data.get("excludedGlobalEquivalentDomains") or [],
        )

    def kdf_params(self) -> Dict[str, Any]:
        """KDF settings as the client expects them in prelogin/token responses."""
        return {
            "kdf": self.kdf,
            "kdfIterations": self.kdf_iterations,
            "kdfMemory": self.kdf_memory,
            "kdfParallelism": self.kdf_parallelism,
        }
