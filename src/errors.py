"""
Error taxonomy shared by the booking portal and the video-chat demo.

Each error is meant to be caught at the edge (form handler, Lambda handler,
call screen) and turned into an inline message; none is fatal to the process.
"""

from typing import Optional


class EngiverseeError(Exception):
    """Base class for all application errors."""

    pass


class ValidationError(EngiverseeError):
    """
    Bad form input.

    Attributes:
        field: Name of the offending form field, when known
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class AuthError(EngiverseeError):
    """
    Credential or verification failure.

    Attributes:
        redirect_to: View the caller should navigate to (e.g. the
            verify-email view after an unverified login), or None
    """

    def __init__(self, message: str, redirect_to: Optional[str] = None):
        super().__init__(message)
        self.redirect_to = redirect_to


class NetworkError(EngiverseeError):
    """A call to the identity provider, document store or messaging API failed."""

    pass


class CapacityError(EngiverseeError):
    """The requested slot or session is full; the booking was aborted."""

    pass


class MediaAccessError(EngiverseeError):
    """
    Camera/microphone acquisition failed.

    Attributes:
        category: One of the ``MediaErrorCategory`` values from src.video.media
    """

    def __init__(self, message: str, category: str):
        super().__init__(message)
        self.category = category
