"""
Booking catalog: session types and fixed appointment time slots.

Loaded from config/catalog.yaml through Settings.load_catalog, which
validates the file against config/catalog.schema.json.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class SessionType:
    id: str
    title: str
    description: str = ""


@dataclass(frozen=True)
class TimeSlot:
    """One bookable hour, e.g. id "2", time "10:00 AM - 11:00 AM"."""

    id: str
    time: str


@dataclass
class BookingCatalog:
    """
    Attributes:
        session_types: Appointment topics offered on the booking page
        time_slots: Fixed daily slots
        slot_limit: Maximum bookings per slot per date
        buffer_minutes: Same-day slots starting within this window are closed
        session_levels: Allowed catalog-session levels
    """

    session_types: List[SessionType]
    time_slots: List[TimeSlot]
    slot_limit: int = 200
    buffer_minutes: int = 30
    session_levels: List[str] = field(default_factory=list)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "BookingCatalog":
        return cls(
            session_types=[
                SessionType(
                    id=item["id"],
                    title=item["title"],
                    description=item.get("description", ""),
                )
                for item in config["session_types"]
            ],
            time_slots=[TimeSlot(id=str(item["id"]), time=item["time"]) for item in config["time_slots"]],
            slot_limit=int(config.get("slot_limit", 200)),
            buffer_minutes=int(config.get("booking_buffer_minutes", 30)),
            session_levels=list(config.get("session_levels", [])),
        )

    @classmethod
    def load(cls, settings: Any) -> "BookingCatalog":
        return cls.from_config(settings.load_catalog())

    def session_type(self, type_id: str) -> Optional[SessionType]:
        """Lookup is case-insensitive ("WebDev" and "webdev" are the same type)."""
        wanted = type_id.lower()
        for session_type in self.session_types:
            if session_type.id.lower() == wanted:
                return session_type
        return None

    def title_for(self, type_id: str) -> str:
        """Human title for a session type id; unknown ids map to themselves."""
        session_type = self.session_type(type_id)
        return session_type.title if session_type else type_id

    def time_slot(self, slot_id: str) -> Optional[TimeSlot]:
        for slot in self.time_slots:
            if slot.id == slot_id or slot.time == slot_id:
                return slot
        return None
