"""User domain model for administrative accounts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class UserRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    USER = "USER"


class BasicStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


ADMIN_ROLES = (UserRole.SUPER_ADMIN, UserRole.ADMIN)


@dataclass(slots=True)
class User:
    """
    User entity.

    Attributes:
        id: Unique identifier (UUID string)
        first_name: Given name
        last_name: Family name
        email: Email address (unique, stored lower-cased)
        phone_number: Normalized phone number (unique when present)
        password_hash: bcrypt hash, never serialized to clients
        role: One of the fixed deployment roles
        status: Active or Inactive
        img: Avatar URL
        signature: Signature image URL
        created_at: Account creation timestamp
        updated_at: Last update timestamp
    """

    id: str
    first_name: str
    last_name: str
    email: str
    password_hash: str
    role: UserRole
    status: BasicStatus
    created_at: datetime
    updated_at: datetime
    phone_number: Optional[str] = None
    img: Optional[str] = None
    signature: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == BasicStatus.ACTIVE

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def public_profile(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "role": self.role.value,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.public_profile(),
            "phoneNumber": self.phone_number,
            "status": self.status.value,
            "img": self.img,
            "signature": self.signature,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role.value} status={self.status.value}>"
