"""
AuthSession - current-user state for the booking portal.

One AuthSession is built at application start and handed to whatever needs
the signed-in user. It wraps the identity provider, keeps the profile
document in step with the provider's verification flag, and records which
view the user should land on after each transition.
"""

import time
from datetime import datetime, timezone
from typing import Callable, Optional

from src.database.dynamodb_client import UserRepository
from src.database.exceptions import DynamoDBException
from src.domain.user import UserProfile
from src.errors import AuthError, EngiverseeError, NetworkError, ValidationError
from src.notifications.whatsapp_service import WhatsAppService, validate_whatsapp_number
from src.utils.logger import get_logger, mask_email

from .identity_client import IdentityProviderClient, IdentityUser

logger = get_logger(__name__)

VERIFICATION_POLL_SECONDS = 5.0


class AuthView:
    """Navigation targets after auth transitions."""

    HOME = "/"
    VERIFY_EMAIL = "/verify-email"
    PROFILE = "/profile"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class AuthSession:
    """
    Explicit session object replacing a global auth context.

    Attributes:
        current_user: Signed-in IdentityUser or None
        is_verified: Whether the current user's email is verified
        view: Where the UI should navigate after the last transition
    """

    def __init__(
        self,
        identity: IdentityProviderClient,
        users: UserRepository,
        whatsapp: WhatsAppService,
        app_base_url: str = "https://engiversee.com",
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.identity = identity
        self.users = users
        self.whatsapp = whatsapp
        self.app_base_url = app_base_url.rstrip("/")
        self._sleep = sleep

        self.current_user: Optional[IdentityUser] = None
        self.is_verified = False
        self.view = AuthView.HOME

    @property
    def verify_email_url(self) -> str:
        return f"{self.app_base_url}{AuthView.VERIFY_EMAIL}"

    def signup(self, email: str, password: str, name: str, phone: str, whatsapp: str) -> IdentityUser:
        """
        Create the account, send the verification email and write the profile.

        WhatsApp welcome/verification messages are best-effort: failures are
        logged and the signup still succeeds.

        Raises:
            ValidationError: If the WhatsApp number is invalid
            AuthError: Email already registered, weak password, ...
            NetworkError: Provider or store unreachable
        """
        if not validate_whatsapp_number(whatsapp):
            raise ValidationError(
                "Please enter a valid WhatsApp number with country code", field="whatsapp"
            )

        user = self.identity.sign_up(email, password)
        self.identity.update_display_name(user, name)
        self.identity.send_email_verification(user, continue_url=self.verify_email_url)

        self.users.put_profile(
            UserProfile(
                uid=user.uid,
                email=user.email or email,
                name=name,
                phone=phone,
                whatsapp=whatsapp,
                is_verified=False,
                created_at=_utc_now_iso(),
            )
        )

        try:
            self.whatsapp.send_welcome_message(name, whatsapp)
            self.whatsapp.send_verification_message(name, whatsapp, self.verify_email_url)
        except EngiverseeError as e:
            logger.warning(
                "Failed to send WhatsApp messages",
                operation="signup",
                context={"uid": user.uid},
                error=str(e),
            )

        self.current_user = user
        self.is_verified = False
        self.view = AuthView.VERIFY_EMAIL
        logger.info("Signup completed", operation="signup", context={"email_masked": mask_email(email)})
        return user

    def login(self, email: str, password: str) -> IdentityUser:
        """
        Sign in. An unverified account is kept as current user but the call
        fails with AuthError redirecting to the verify-email view.

        Raises:
            AuthError: Invalid credentials, rate limited, or unverified email
        """
        user = self.identity.sign_in(email, password)
        self.current_user = user
        self._update_verification_status(user, refresh=False)

        if not user.email_verified:
            self.view = AuthView.VERIFY_EMAIL
            raise AuthError(
                "Please verify your email before logging in.",
                redirect_to=AuthView.VERIFY_EMAIL,
            )

        self.view = AuthView.PROFILE
        return user

    def logout(self) -> None:
        """Drop the provider tokens and reset to the signed-out state."""
        if self.current_user:
            logger.info("User signed out", operation="logout", context={"uid": self.current_user.uid})
        self.current_user = None
        self.is_verified = False
        self.view = AuthView.HOME

    def verify_email(self, oob_code: str) -> None:
        """Apply the action code from a verification link."""
        self.identity.apply_action_code(oob_code)
        if self.current_user:
            self._update_verification_status(self.current_user)
        self.view = AuthView.PROFILE

    def resend_verification(self) -> None:
        """Re-send the verification email (and WhatsApp message when a number is on file)."""
        if not self.current_user:
            return

        self.identity.send_email_verification(self.current_user, continue_url=self.verify_email_url)

        try:
            profile = self.users.get_profile(self.current_user.uid)
            if profile and profile.whatsapp:
                self.whatsapp.send_verification_message(
                    profile.name, profile.whatsapp, self.verify_email_url
                )
        except EngiverseeError as e:
            logger.warning(
                "Failed to send WhatsApp verification",
                operation="resend_verification",
                context={"uid": self.current_user.uid},
                error=str(e),
            )

    def reset_password(self, email: str) -> None:
        self.identity.send_password_reset(email)

    def check_email_verification(self) -> bool:
        if self.current_user:
            self._update_verification_status(self.current_user)
        return self.is_verified

    def poll_verification(
        self,
        interval_seconds: float = VERIFICATION_POLL_SECONDS,
        max_attempts: Optional[int] = None,
    ) -> bool:
        """
        Re-check verification every ``interval_seconds`` while unverified.

        Returns:
            True once verified (view moves to the profile), False when
            max_attempts ran out or nobody is signed in
        """
        attempts = 0
        while self.current_user and not self.is_verified:
            if max_attempts is not None and attempts >= max_attempts:
                return False
            self._sleep(interval_seconds)
            attempts += 1
            self.check_email_verification()

        if self.is_verified:
            self.view = AuthView.PROFILE
        return self.is_verified

    def _update_verification_status(self, user: IdentityUser, refresh: bool = True) -> None:
        """
        Reload the provider's emailVerified flag and mirror it (plus lastLogin)
        into the profile. A failed reload leaves the session unverified; a
        failed profile write is only logged.
        """
        if refresh:
            try:
                self.identity.refresh_user(user)
            except (AuthError, NetworkError) as e:
                logger.error(
                    "Error reloading verification status",
                    operation="update_verification_status",
                    context={"uid": user.uid},
                    error=str(e),
                )
                self.is_verified = False
                return

        self.is_verified = user.email_verified
        try:
            self.users.update_profile(
                user.uid, {"isVerified": self.is_verified, "lastLogin": _utc_now_iso()}
            )
        except DynamoDBException as e:
            logger.error(
                "Error updating verification status",
                operation="update_verification_status",
                context={"uid": user.uid},
                error=str(e),
            )
