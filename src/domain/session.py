"""
Session domain model for catalog sessions.

A catalog session is an instructor-led slot with a fixed capacity; the
``enrolled`` counter is moved only by conditional writes in the repository.
"""

from dataclasses import dataclass
from typing import Dict, Any, Optional


class SessionLevel:
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"

    ALL = (BEGINNER, INTERMEDIATE, ADVANCED)


@dataclass
class Session:
    """
    Catalog session.

    Attributes:
        id: Session identifier (partition key)
        title: Topic shown to users
        domain: Subject area ("Web Development", "Data Science", ...)
        date: "YYYY-MM-DD"
        time: Start time, "07:30" or "7:30 AM"
        instructor: Instructor name
        level: One of SessionLevel.ALL
        capacity: Maximum bookings
        enrolled: Current bookings, 0 <= enrolled <= capacity
    """

    id: str
    title: str
    domain: str
    date: str
    time: str
    instructor: str
    level: str
    capacity: int
    enrolled: int = 0
    status: str = "available"
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        """
        Create Session from a stored record.

        DynamoDB returns numbers as Decimal; counters are coerced to int.
        """
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            domain=data.get("domain", ""),
            date=data.get("date", ""),
            time=data.get("time", ""),
            instructor=data.get("instructor", ""),
            level=data.get("level", SessionLevel.BEGINNER),
            capacity=int(data.get("capacity", 0)),
            enrolled=int(data.get("enrolled", 0)),
            status=data.get("status", "available"),
            created_at=data.get("createdAt"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "domain": self.domain,
            "date": self.date,
            "time": self.time,
            "instructor": self.instructor,
            "level": self.level,
            "capacity": self.capacity,
            "enrolled": self.enrolled,
            "status": self.status,
        }
        if self.created_at:
            data["createdAt"] = self.created_at
        return data

    def is_full(self) -> bool:
        return self.enrolled >= self.capacity

    def remaining_spots(self) -> int:
        return max(self.capacity - self.enrolled, 0)
