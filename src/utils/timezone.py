"""
Timezone utilities for the booking portal.

Slot availability and appointment status are judged in the portal's local
time (India Standard Time) so that results do not depend on the host's
default timezone (AWS Lambda runs in UTC).
"""

from datetime import datetime, timedelta, timezone

# Reusable timezone instance for IST (UTC+5:30)
IST = timezone(timedelta(hours=5, minutes=30))


def now_local(aware: bool = False) -> datetime:
    """
    Return the current time in the portal's local timezone.

    Args:
        aware: When True, returns a timezone-aware datetime. When False (default),
            returns a naive datetime, matching the naive date/time strings stored
            on booking and session records.

    Returns:
        datetime: Current time in IST.
    """
    current = datetime.now(timezone.utc).astimezone(IST)
    return current if aware else current.replace(tzinfo=None)


def now_millis() -> int:
    """Current epoch time in milliseconds (chat message timestamps)."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)
