"""
Identity provider client (Firebase Identity Toolkit REST API).

Email/password accounts, email verification action codes, and password
reset emails. Provider error codes are translated into AuthError with
user-readable messages; transport failures become NetworkError. Nothing is
retried.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from src.errors import AuthError, NetworkError
from src.utils.logger import get_logger, mask_email, StructuredLogger


IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password."

# Provider error code -> message shown inline on the form
ERROR_MESSAGES = {
    "EMAIL_EXISTS": (
        "This email is already registered. Please use a different email or try logging in."
    ),
    "WEAK_PASSWORD": "Password should be at least 6 characters long.",
    "EMAIL_NOT_FOUND": INVALID_CREDENTIALS_MESSAGE,
    "INVALID_PASSWORD": INVALID_CREDENTIALS_MESSAGE,
    "INVALID_LOGIN_CREDENTIALS": INVALID_CREDENTIALS_MESSAGE,
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many failed login attempts. Please try again later.",
    "USER_DISABLED": "This account has been disabled.",
    "INVALID_OOB_CODE": "The verification link is invalid or has already been used.",
    "EXPIRED_OOB_CODE": "The verification link has expired. Please request a new one.",
    "INVALID_EMAIL": "Please enter a valid email address.",
    "INVALID_ID_TOKEN": "Your session has expired. Please log in again.",
    "TOKEN_EXPIRED": "Your session has expired. Please log in again.",
}


@dataclass
class IdentityUser:
    """Signed-in account as reported by the identity provider."""

    uid: str
    email: str
    id_token: str = ""
    refresh_token: str = ""
    display_name: str = ""
    email_verified: bool = False


class IdentityProviderClient:
    """
    Thin client over the Identity Toolkit ``accounts:*`` endpoints.

    Attributes:
        api_key: Web API key of the identity project
        base_url: Identity Toolkit base URL (overridable for the emulator)
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = IDENTITY_TOOLKIT_URL,
        http_client: Optional[requests.Session] = None,
        logger: Optional[StructuredLogger] = None,
        timeout_seconds: float = 10,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required for the identity provider")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client or requests.Session()
        self.logger = logger or get_logger(__name__)
        self.timeout_seconds = timeout_seconds

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def sign_up(self, email: str, password: str) -> IdentityUser:
        """Create an email/password account and return the signed-in user."""
        data = self._post(
            "accounts:signUp",
            {"email": email, "password": password, "returnSecureToken": True},
            action="sign_up",
            context={"email_masked": mask_email(email)},
        )
        return self._user_from_response(data)

    def sign_in(self, email: str, password: str) -> IdentityUser:
        """Sign in with email/password; raises AuthError on bad credentials."""
        data = self._post(
            "accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
            action="sign_in",
            context={"email_masked": mask_email(email)},
        )
        user = self._user_from_response(data)
        return self.refresh_user(user)

    def update_display_name(self, user: IdentityUser, display_name: str) -> IdentityUser:
        self._post(
            "accounts:update",
            {"idToken": user.id_token, "displayName": display_name, "returnSecureToken": False},
            action="update_profile",
            context={"uid": user.uid},
        )
        user.display_name = display_name
        return user

    def send_email_verification(self, user: IdentityUser, continue_url: Optional[str] = None) -> None:
        """Send the verification email carrying an action code."""
        payload: Dict[str, Any] = {"requestType": "VERIFY_EMAIL", "idToken": user.id_token}
        if continue_url:
            payload["continueUrl"] = continue_url
        self._post(
            "accounts:sendOobCode",
            payload,
            action="send_email_verification",
            context={"uid": user.uid},
        )

    def send_password_reset(self, email: str) -> None:
        self._post(
            "accounts:sendOobCode",
            {"requestType": "PASSWORD_RESET", "email": email},
            action="send_password_reset",
            context={"email_masked": mask_email(email)},
        )

    def apply_action_code(self, oob_code: str) -> Dict[str, Any]:
        """Apply an email-verification action code from a verification link."""
        return self._post(
            "accounts:update",
            {"oobCode": oob_code},
            action="apply_action_code",
            context={},
        )

    def refresh_user(self, user: IdentityUser) -> IdentityUser:
        """Reload the account (emailVerified, displayName) from the provider."""
        data = self._post(
            "accounts:lookup",
            {"idToken": user.id_token},
            action="lookup",
            context={"uid": user.uid},
        )
        users = data.get("users") or []
        if users:
            account = users[0]
            user.email_verified = bool(account.get("emailVerified", False))
            user.display_name = account.get("displayName", user.display_name) or ""
            user.email = account.get("email", user.email)
        return user

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _user_from_response(self, data: Dict[str, Any]) -> IdentityUser:
        return IdentityUser(
            uid=data.get("localId", ""),
            email=data.get("email", ""),
            id_token=data.get("idToken", ""),
            refresh_token=data.get("refreshToken", ""),
            display_name=data.get("displayName", "") or "",
        )

    def _post(
        self,
        endpoint: str,
        payload: Dict[str, Any],
        action: str,
        context: Dict[str, Any],
    ) -> Dict[str, Any]:
        url = f"{self.base_url}/{endpoint}"
        start_time = time.time()
        try:
            response = self.http_client.post(
                url,
                params={"key": self.api_key},
                headers={"Content-Type": "application/json"},
                data=json.dumps(payload),
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            self.logger.error(
                "Identity provider unreachable", operation=action, context=context, error=str(exc)
            )
            raise NetworkError("Could not reach the sign-in service. Please try again.") from exc

        duration_ms = (time.time() - start_time) * 1000

        if response.status_code >= 500:
            self.logger.error(
                "Identity provider error",
                operation=action,
                context={**context, "status_code": response.status_code},
                error=response.text,
                duration_ms=duration_ms,
            )
            raise NetworkError("The sign-in service is unavailable. Please try again later.")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400:
            code = self._error_code(data)
            self.logger.warning(
                "Identity provider rejected request",
                operation=action,
                context={**context, "status_code": response.status_code},
                error=code,
            )
            raise AuthError(ERROR_MESSAGES.get(code, f"Authentication failed ({code})."))

        self.logger.info("Identity request succeeded", operation=action, context=context, duration_ms=duration_ms)
        return data

    @staticmethod
    def _error_code(data: Dict[str, Any]) -> str:
        """Provider messages look like "WEAK_PASSWORD : Password should be ..."."""
        message = str(data.get("error", {}).get("message", "UNKNOWN"))
        return message.split(":")[0].strip()
