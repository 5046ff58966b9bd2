"""Auth module - identity provider client, session state and profile editing"""

from .auth_session import AuthSession, AuthView
from .identity_client import IdentityProviderClient, IdentityUser
from .profile_service import ProfileService, validate_profile

__all__ = [
    "AuthSession",
    "AuthView",
    "IdentityProviderClient",
    "IdentityUser",
    "ProfileService",
    "validate_profile",
]
