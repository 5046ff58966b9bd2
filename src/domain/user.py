"""User profile domain model (``users`` table)."""

from dataclasses import dataclass
from typing import Dict, Any, Optional


@dataclass
class UserProfile:
    """
    Profile document written at signup and updated on login/profile edits.

    Attributes:
        uid: Identity-provider user id (partition key)
        email: Account email
        name: Full name
        phone: Phone number with country code
        whatsapp: WhatsApp number with country code
        is_verified: Mirror of the provider's emailVerified flag
    """

    uid: str
    email: str
    name: str
    phone: str = ""
    whatsapp: str = ""
    is_verified: bool = False
    created_at: Optional[str] = None
    last_login: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        return cls(
            uid=data["uid"],
            email=data.get("email", ""),
            name=data.get("name") or data.get("displayName", ""),
            phone=data.get("phone", ""),
            whatsapp=data.get("whatsapp", ""),
            is_verified=bool(data.get("isVerified", False)),
            created_at=data.get("createdAt"),
            last_login=data.get("lastLogin"),
            updated_at=data.get("updatedAt"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "uid": self.uid,
            "email": self.email,
            "name": self.name,
            "displayName": self.name,
            "phone": self.phone,
            "whatsapp": self.whatsapp,
            "isVerified": self.is_verified,
        }
        for key, value in (
            ("createdAt", self.created_at),
            ("lastLogin", self.last_login),
            ("updatedAt", self.updated_at),
        ):
            if value:
                data[key] = value
        return data
