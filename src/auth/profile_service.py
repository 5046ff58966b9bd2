"""Profile editing: field validation and profile document updates."""

import re
from datetime import datetime, timezone
from typing import Any, Dict

from src.database.dynamodb_client import UserRepository
from src.errors import ValidationError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
# E.164-ish: optional "+", non-zero first digit, at most 15 digits
PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")

EDITABLE_FIELDS = ("name", "email", "phone", "whatsapp")


def validate_profile(data: Dict[str, Any]) -> Dict[str, str]:
    """
    Validate profile form fields.

    Returns:
        Mapping of field name to inline error message; empty when valid
    """
    errors: Dict[str, str] = {}

    name = str(data.get("name") or "").strip()
    email = str(data.get("email") or "").strip()
    phone = str(data.get("phone") or "").strip()
    whatsapp = str(data.get("whatsapp") or "").strip()

    if not name:
        errors["name"] = "Name is required"

    if not email:
        errors["email"] = "Email is required"
    elif not EMAIL_PATTERN.match(email):
        errors["email"] = "Please enter a valid email address"

    if not phone:
        errors["phone"] = "Phone number is required"
    elif not PHONE_PATTERN.match(phone):
        errors["phone"] = "Please enter a valid phone number with country code"

    if not whatsapp:
        errors["whatsapp"] = "WhatsApp number is required"
    elif not PHONE_PATTERN.match(whatsapp):
        errors["whatsapp"] = "Please enter a valid WhatsApp number with country code"

    return errors


class ProfileService:
    def __init__(self, users: UserRepository):
        self.users = users

    def update_profile(self, uid: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate and save editable profile fields.

        Raises:
            ValidationError: For the first invalid field (``field`` is set)
            NotFoundError: If the user has no profile document
        """
        errors = validate_profile(data)
        if errors:
            field, message = next(iter(errors.items()))
            raise ValidationError(message, field=field)

        fields: Dict[str, Any] = {key: str(data[key]).strip() for key in EDITABLE_FIELDS}
        fields["displayName"] = fields["name"]
        fields["updatedAt"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

        self.users.update_profile(uid, fields)
        return fields
