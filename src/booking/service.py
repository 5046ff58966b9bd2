"""
BookingService - the booking, listing and search flows behind the portal pages.

Business rules live in src.booking.availability; persistence in
src.database. The service only orchestrates them and shapes the results
the pages render.
"""

import random
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from src.auth.identity_client import IdentityUser
from src.booking.availability import (
    appointment_status,
    is_past_time_slot,
    is_time_slot_available,
    remaining_bookings,
)
from src.booking.catalog import BookingCatalog
from src.database.dynamodb_client import BookingRepository, SessionRepository, UserRepository
from src.domain.booking import Booking, BookingType
from src.domain.session import Session
from src.errors import AuthError, CapacityError, EngiverseeError, ValidationError
from src.notifications.whatsapp_service import WhatsAppService
from src.utils.logger import get_logger, log_operation
from src.utils.timezone import now_local

logger = get_logger(__name__)


def generate_reference() -> str:
    """Human booking reference, e.g. "ENG-4821"."""
    return f"ENG-{random.randint(0, 99999)}"


class BookingService:
    """
    Attributes:
        bookings: BookingRepository
        sessions: SessionRepository
        catalog: Session types and time slots
        whatsapp: Optional WhatsApp notifier for session enrollments
        users: Optional profile repository (WhatsApp numbers live there)
    """

    def __init__(
        self,
        bookings: BookingRepository,
        sessions: SessionRepository,
        catalog: BookingCatalog,
        whatsapp: Optional[WhatsAppService] = None,
        users: Optional[UserRepository] = None,
        clock: Callable[[], datetime] = now_local,
    ):
        self.bookings = bookings
        self.sessions = sessions
        self.catalog = catalog
        self.whatsapp = whatsapp
        self.users = users
        self._clock = clock

    def available_slots(self, date: str) -> List[Dict[str, Any]]:
        """
        Slot table for the booking page.

        Returns:
            One dict per catalog slot: id, time, available, remaining
        """
        counts = self.bookings.count_bookings_by_time(date) if date else {}
        now = self._clock()
        return [
            {
                "id": slot.id,
                "time": slot.time,
                "available": is_time_slot_available(
                    slot,
                    date,
                    counts,
                    now,
                    slot_limit=self.catalog.slot_limit,
                    buffer_minutes=self.catalog.buffer_minutes,
                ),
                "remaining": remaining_bookings(slot, counts, self.catalog.slot_limit),
            }
            for slot in self.catalog.time_slots
        ]

    @log_operation("book_appointment")
    def book_appointment(
        self,
        user: Optional[IdentityUser],
        session_type_id: str,
        date: str,
        slot_id: str,
        user_name: Optional[str] = None,
        user_email: Optional[str] = None,
    ) -> Booking:
        """
        Book a fixed-slot appointment.

        Raises:
            AuthError: Nobody is signed in
            ValidationError: Unknown session type or slot, bad date, past slot
            CapacityError: The slot already holds ``slot_limit`` bookings
        """
        if user is None:
            raise AuthError("Please log in to book an appointment")

        session_type = self.catalog.session_type(session_type_id or "")
        if session_type is None:
            raise ValidationError("Please choose a session type", field="sessionType")

        slot = self.catalog.time_slot(slot_id or "")
        if slot is None:
            raise ValidationError("Please choose a time slot", field="time")

        try:
            datetime.strptime(date or "", "%Y-%m-%d")
        except ValueError:
            raise ValidationError("Please choose a valid date", field="date")

        now = self._clock()
        if is_past_time_slot(slot, date, now, self.catalog.buffer_minutes):
            raise ValidationError("This time slot is no longer available", field="time")

        counts = self.bookings.count_bookings_by_time(date)
        if not is_time_slot_available(
            slot, date, counts, now, self.catalog.slot_limit, self.catalog.buffer_minutes
        ):
            raise CapacityError("This time slot is fully booked")

        booking = self.bookings.create_booking(
            Booking(
                user_id=user.uid,
                user_name=user_name or user.display_name or "User",
                user_email=user_email or user.email or "",
                session_type=session_type.id,
                session_title=session_type.title,
                date=date,
                time=slot.time,
                booking_type=BookingType.APPOINTMENT,
                reference=generate_reference(),
            )
        )
        logger.info(
            "Appointment booked",
            operation="book_appointment",
            context={"booking_id": booking.id, "reference": booking.reference, "date": date},
        )
        return booking

    @log_operation("book_session")
    def book_session(self, user: Optional[IdentityUser], session_id: str) -> Booking:
        """
        Take a seat in a catalog session.

        The enrollment WhatsApp message is best-effort.

        Raises:
            AuthError: Nobody is signed in
            NotFoundError: Unknown session
            CapacityError: Session is full
        """
        if user is None:
            raise AuthError("Please log in to book a session")

        booking = self.bookings.book_session(
            session_id,
            user_id=user.uid,
            user_name=user.display_name or "User",
            user_email=user.email or "",
        )
        self._notify_enrollment(user, booking)
        return booking

    @log_operation("cancel_booking")
    def cancel_booking(self, user: IdentityUser, booking_id: str) -> bool:
        """
        Cancel one of the user's bookings, releasing a session seat if linked.

        Raises:
            AuthError: The booking belongs to someone else
        """
        booking = self.bookings.get_booking(booking_id)
        if booking is None:
            return True
        if booking.user_id != user.uid:
            raise AuthError("You can only cancel your own bookings")
        return self.bookings.delete_booking(booking_id, booking.session_id)

    def list_user_bookings(self, user: IdentityUser) -> List[Dict[str, Any]]:
        """
        The user's bookings in store order, each with a derived display status.

        Appointments show Upcoming/Completed from their date and time; session
        bookings keep their stored status.
        """
        now = self._clock()
        rows = []
        for booking in self.bookings.get_user_bookings(user.uid):
            row = booking.to_dict()
            if booking.booking_type == BookingType.APPOINTMENT:
                row["status"] = appointment_status(booking.date, booking.time, now)
            row["sessionTitle"] = booking.session_title or self.catalog.title_for(booking.session_type)
            rows.append(row)
        return rows

    def search_sessions(self, domain: str = "", level: str = "") -> List[Session]:
        """Catalog sessions matching the search-page filters ("" means any)."""
        return self.sessions.list_sessions(domain=domain or None, level=level or None)

    def domains(self) -> List[Dict[str, str]]:
        """Options for the domain dropdown."""
        return [{"id": item.id, "title": item.title} for item in self.catalog.session_types]

    def _notify_enrollment(self, user: IdentityUser, booking: Booking) -> None:
        if self.whatsapp is None or self.users is None:
            return
        try:
            profile = self.users.get_profile(user.uid)
            if profile and profile.whatsapp:
                self.whatsapp.send_course_enrollment_message(
                    profile.name or booking.user_name, profile.whatsapp, booking.session_title
                )
        except EngiverseeError as e:
            logger.warning(
                "Failed to send enrollment message",
                operation="book_session",
                context={"booking_id": booking.id},
                error=str(e),
            )
