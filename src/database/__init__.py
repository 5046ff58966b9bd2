"""Database module - DynamoDB repository pattern implementation."""

from .dynamodb_client import BookingRepository, SessionRepository, UserRepository
from .exceptions import (
    CapacityError,
    DynamoDBException,
    NotFoundError,
    ThrottlingError,
    NetworkError,
    PermissionError,
)

__all__ = [
    "BookingRepository",
    "SessionRepository",
    "UserRepository",
    "CapacityError",
    "DynamoDBException",
    "NotFoundError",
    "ThrottlingError",
    "NetworkError",
    "PermissionError",
]
