"""
Time-slot gating and appointment status rules.

All comparisons use naive local datetimes (see src.utils.timezone); callers
pass ``now`` explicitly so the rules are deterministic under test.
"""

import re
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from src.booking.catalog import TimeSlot

UPCOMING = "Upcoming"
COMPLETED = "Completed"

_CLOCK_12H = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])\s*$")
_CLOCK_24H = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def parse_clock(value: str) -> Optional[Tuple[int, int]]:
    """
    Parse "10:00 AM", "12:30 PM" or "07:30" into (hour, minute) on a 24h clock.

    Returns None for anything else.
    """
    if not value:
        return None

    match = _CLOCK_12H.match(value)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if not 1 <= hour <= 12 or minute > 59:
            return None
        is_pm = match.group(3).upper() == "PM"
        if is_pm and hour != 12:
            hour += 12
        if not is_pm and hour == 12:
            hour = 0
        return hour, minute

    match = _CLOCK_24H.match(value)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            return None
        return hour, minute

    return None


def slot_start(time_range: str) -> str:
    """Start of a "10:00 AM - 11:00 AM" range (the value itself if not a range)."""
    return time_range.split(" - ")[0].strip()


def slot_start_datetime(date: str, time_range: str) -> Optional[datetime]:
    """Combine a "YYYY-MM-DD" date with a slot's start time."""
    clock = parse_clock(slot_start(time_range))
    if clock is None:
        return None
    try:
        day = datetime.strptime(date, "%Y-%m-%d")
    except ValueError:
        return None
    return day.replace(hour=clock[0], minute=clock[1])


def is_past_time_slot(
    slot: TimeSlot, date: str, now: datetime, buffer_minutes: int = 30
) -> bool:
    """
    True when the slot starts no later than ``now`` plus the booking buffer.

    Any slot on a date before today is therefore always past.
    """
    if not date:
        return False
    start = slot_start_datetime(date, slot.time)
    if start is None:
        return True
    return start <= now + timedelta(minutes=buffer_minutes)


def remaining_bookings(slot: TimeSlot, booking_counts: Dict[str, int], slot_limit: int = 200) -> int:
    return max(slot_limit - booking_counts.get(slot.time, 0), 0)


def is_time_slot_available(
    slot: TimeSlot,
    date: str,
    booking_counts: Dict[str, int],
    now: datetime,
    slot_limit: int = 200,
    buffer_minutes: int = 30,
) -> bool:
    """
    A slot is bookable when a date is chosen, the slot is not past, and
    fewer than ``slot_limit`` bookings exist for it on that date.
    """
    if not date:
        return False
    if is_past_time_slot(slot, date, now, buffer_minutes):
        return False
    return booking_counts.get(slot.time, 0) < slot_limit


def convert_to_24_hour(time_12h: str) -> str:
    """
    "10:00 AM" -> "10:00"; 24h input passes through zero-padded.

    Unparseable input falls back to "12:00".
    """
    clock = parse_clock(time_12h or "")
    if clock is None:
        return "12:00"
    return f"{clock[0]:02d}:{clock[1]:02d}"


def format_time_12h(value: str) -> str:
    """
    "07:30" -> "7:30 AM", "19:05" -> "7:05 PM"; 12h input is returned as is.
    """
    if not value or re.search(r"[AaPp][Mm]", value):
        return value
    clock = parse_clock(value)
    if clock is None:
        return value
    hour, minute = clock
    modifier = "PM" if hour >= 12 else "AM"
    return f"{hour % 12 or 12}:{minute:02d} {modifier}"


def one_hour_slot(value: str) -> str:
    """
    Expand a start time into a one-hour range: "10:00 AM" -> "10:00 AM - 11:00 AM".

    Ranges are returned unchanged; unparseable input gives "Invalid time".
    """
    if not value:
        return "Invalid time"
    if "-" in value:
        return value
    clock = parse_clock(value)
    if clock is None:
        return "Invalid time"
    start = format_time_12h(f"{clock[0]:02d}:{clock[1]:02d}")
    end = format_time_12h(f"{(clock[0] + 1) % 24:02d}:{clock[1]:02d}")
    return f"{start} - {end}"


def appointment_status(date: str, time: str, now: datetime) -> str:
    """
    "Upcoming" while the booking's start is in the future, else "Completed".

    A missing time counts as noon; an unparseable date falls back to a
    date-only comparison, and a date that cannot be read at all is Completed.
    """
    start = slot_start(time) if time else "12:00 PM"
    start_at = slot_start_datetime(date, start) if date else None
    if start_at is None:
        try:
            day = datetime.strptime((date or "")[:10], "%Y-%m-%d")
        except ValueError:
            return COMPLETED
        return UPCOMING if day.date() > now.date() else COMPLETED
    return UPCOMING if start_at > now else COMPLETED


def format_dmy(date: str) -> str:
    """ "2025-03-09" -> "09/03/2025"; other input is returned unchanged."""
    try:
        return datetime.strptime(date, "%Y-%m-%d").strftime("%d/%m/%Y")
    except (TypeError, ValueError):
        return date
