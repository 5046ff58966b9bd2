"""
Booking domain model.

Represents one appointment or catalog-session booking as stored in the
``bookings`` table. Attribute names in the store are camelCase; unknown
attributes survive a round trip through ``extra_fields``.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional


class BookingStatus:
    """Status values written to booking records."""

    UPCOMING = "Upcoming"
    COMPLETED = "Completed"
    BOOKED = "booked"
    CONFIRMED = "confirmed"


class BookingType:
    APPOINTMENT = "appointment"
    SESSION = "session"


# dataclass attribute -> stored attribute
FIELD_MAP = {
    "id": "id",
    "user_id": "userId",
    "user_name": "userName",
    "user_email": "userEmail",
    "session_type": "sessionType",
    "session_title": "sessionTitle",
    "date": "date",
    "time": "time",
    "status": "status",
    "booking_type": "bookingType",
    "session_id": "sessionId",
    "reference": "reference",
    "created_at": "createdAt",
}

_STORED_TO_FIELD = {stored: attr for attr, stored in FIELD_MAP.items()}


@dataclass
class Booking:
    """
    Booking domain model.

    Attributes:
        id: Store-generated identifier (partition key)
        user_id: Identity-provider uid of the owner
        user_name: Display name at booking time
        user_email: Address the confirmation email goes to
        session_type: Session type id (e.g. "webdev") or catalog domain
        session_title: Human title for the session type
        date: "YYYY-MM-DD"
        time: Slot id or "10:00 AM - 11:00 AM" style range
        status: One of BookingStatus
        booking_type: BookingType.APPOINTMENT or BookingType.SESSION
        session_id: Linked catalog session for session bookings
        reference: Human reference "ENG-12345" for appointments
        created_at: ISO-8601 creation timestamp
    """

    user_id: str
    user_name: str
    user_email: str
    session_type: str
    session_title: str
    date: str
    time: str
    status: str = BookingStatus.UPCOMING
    booking_type: str = BookingType.APPOINTMENT
    id: Optional[str] = None
    session_id: Optional[str] = None
    reference: Optional[str] = None
    created_at: Optional[str] = None
    extra_fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Booking":
        """
        Create Booking from a stored record (camelCase) or a snake_case dict.

        Args:
            data: Dictionary with booking data

        Returns:
            Booking instance
        """
        core: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in data.items():
            if key in _STORED_TO_FIELD:
                core[_STORED_TO_FIELD[key]] = value
            elif key in FIELD_MAP:
                core[key] = value
            else:
                extra[key] = value

        core.setdefault("session_title", core.get("session_type", ""))
        for required in ("user_id", "user_name", "user_email", "session_type", "date", "time"):
            core.setdefault(required, "")

        return cls(**core, extra_fields=extra)

    def to_dict(self, include_extra: bool = True) -> Dict[str, Any]:
        """
        Convert Booking to its stored (camelCase) representation.

        None values are dropped; DynamoDB rejects null-typed key attributes and
        optional fields are simply absent on records that lack them.
        """
        data = {
            stored: getattr(self, attr)
            for attr, stored in FIELD_MAP.items()
            if getattr(self, attr) is not None
        }
        if include_extra:
            for key, value in self.extra_fields.items():
                data.setdefault(key, value)
        return data
