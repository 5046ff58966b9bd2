"""
Custom exception hierarchy for DynamoDB operations.

Repository methods translate botocore failures into these exceptions so that
callers never handle ClientError directly.
"""

from src.errors import CapacityError, EngiverseeError, NetworkError as _PortalNetworkError


class DynamoDBException(EngiverseeError):
    """Base exception for all DynamoDB-related errors."""

    pass


class NotFoundError(DynamoDBException):
    """
    Raised when an item a write depends on does not exist.

    Plain reads return None for missing items instead.
    """

    pass


class ThrottlingError(DynamoDBException):
    """Raised when DynamoDB keeps throttling after retry exhaustion."""

    pass


class NetworkError(DynamoDBException, _PortalNetworkError):
    """
    Raised when network-level failures occur (connection timeout, DNS failure, etc.).

    Also a portal-level NetworkError, so form handlers can catch one type for
    every provider.
    """

    pass


class PermissionError(DynamoDBException):
    """Raised when IAM permissions are insufficient for the operation."""

    pass


__all__ = [
    "CapacityError",
    "DynamoDBException",
    "NotFoundError",
    "ThrottlingError",
    "NetworkError",
    "PermissionError",
]
