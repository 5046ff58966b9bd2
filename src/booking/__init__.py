from .catalog import BookingCatalog, SessionType, TimeSlot
from .service import BookingService

__all__ = ["BookingCatalog", "BookingService", "SessionType", "TimeSlot"]
