"""Domain models - core business entities."""

from .booking import Booking, BookingStatus, BookingType
from .session import Session, SessionLevel
from .user import UserProfile

__all__ = ["Booking", "BookingStatus", "BookingType", "Session", "SessionLevel", "UserProfile"]
