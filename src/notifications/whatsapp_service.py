"""
WhatsApp notifications client.

Prepares welcome, verification and course-enrollment messages. When no
messaging API is configured the payloads are only logged ("prepared"), which
is the default for development and for accounts without WhatsApp access.
"""

from __future__ import annotations

import json
import re
import time
from pathlib import Path
from typing import Any, Dict, Optional

import requests
import yaml

from src.errors import NetworkError
from src.utils.logger import get_logger, mask_phone, StructuredLogger


DEFAULT_TEMPLATES_PATH = Path(__file__).resolve().parents[2] / "config" / "whatsapp_templates.yaml"


class WhatsAppServiceError(NetworkError):
    """Raised when the WhatsApp API fails to accept a message."""


def validate_whatsapp_number(number: Optional[str]) -> bool:
    """
    Check a WhatsApp number written with its country code.

    Non-digits are ignored. The number must not start with 0 and must hold a
    1-4 digit country code followed by 8-15 subscriber digits, i.e. 9-19
    digits in total.

    Example:
        >>> validate_whatsapp_number("+91 98765 43210")
        True
        >>> validate_whatsapp_number("0987654321")
        False
    """
    if not number:
        return False
    digits = re.sub(r"\D", "", number)
    if not digits or digits[0] == "0":
        return False
    return 1 + 8 <= len(digits) <= 4 + 15


class WhatsAppService:
    """
    Client for WhatsApp messages.

    Attributes:
        api_url: Messaging endpoint; None means log-only mode
        token: Bearer token for the messaging endpoint
        group_name: WhatsApp community group name
        group_invite_link: Invite link included in welcome messages
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        token: Optional[str] = None,
        templates_path: Optional[Path] = None,
        http_client: Optional[requests.Session] = None,
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        self.logger = logger or get_logger(__name__)
        self.http_client = http_client or requests.Session()
        self.api_url = api_url if api_url and token else None
        self.token = token if self.api_url else None

        self.templates_path = Path(templates_path) if templates_path else DEFAULT_TEMPLATES_PATH
        config = self._load_templates()
        self.templates: Dict[str, str] = config["templates"]
        self.group_name: str = config["group"]["name"]
        self.group_invite_link: str = config["group"]["invite_link"]

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> "WhatsAppService":
        credentials = settings.load_whatsapp_credentials()
        return cls(api_url=credentials.get("api_url"), token=credentials.get("token"), **kwargs)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def send_welcome_message(self, name: str, whatsapp_number: str) -> Dict[str, Any]:
        body = self.templates["welcome"].format(name=name, invite_link=self.group_invite_link)
        self._dispatch(whatsapp_number, body, action="send_welcome_message")
        return {"success": True, "message": "Welcome message prepared with group invite link"}

    def send_verification_message(
        self, name: str, whatsapp_number: str, verification_link: str
    ) -> Dict[str, Any]:
        body = self.templates["verification"].format(name=name, verification_link=verification_link)
        self._dispatch(whatsapp_number, body, action="send_verification_message")
        return {"success": True, "message": "Verification message prepared"}

    def send_course_enrollment_message(
        self, name: str, whatsapp_number: str, course_name: str
    ) -> Dict[str, Any]:
        body = self.templates["course_enrollment"].format(name=name, course_name=course_name)
        self._dispatch(whatsapp_number, body, action="send_course_enrollment_message")
        return {"success": True, "message": "Course enrollment message prepared"}

    def send_custom_message(
        self, to: str, body: str, media_url: Optional[str] = None
    ) -> Dict[str, Any]:
        self._dispatch(to, body, action="send_custom_message", media_url=media_url)
        return {"success": True, "message": "Custom message prepared"}

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def build_payload(self, to: str, body: str, media_url: Optional[str] = None) -> Dict[str, Any]:
        digits = re.sub(r"\D", "", to)
        payload: Dict[str, Any] = {"to": f"whatsapp:+{digits}", "body": body}
        if media_url:
            payload["mediaUrl"] = [media_url]
        return payload

    def _dispatch(
        self,
        to: str,
        body: str,
        action: str,
        media_url: Optional[str] = None,
    ) -> None:
        payload = self.build_payload(to, body, media_url)
        context = {"to_masked": mask_phone(to), "body_length": len(body)}

        if not self.api_url:
            self.logger.info("WhatsApp message prepared (delivery disabled)", operation=action, context=context)
            return

        start_time = time.time()
        try:
            response = self.http_client.post(
                self.api_url,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.token}",
                },
                data=json.dumps(payload),
                timeout=10,
            )
        except requests.RequestException as exc:
            self.logger.error("WhatsApp delivery failed", operation=action, context=context, error=str(exc))
            raise WhatsAppServiceError("Failed to deliver WhatsApp message") from exc

        if response.status_code >= 400:
            self.logger.error(
                "WhatsApp API rejected message",
                operation=action,
                context={**context, "status_code": response.status_code},
                error=response.text,
            )
            raise WhatsAppServiceError(
                f"WhatsApp API responded with {response.status_code}: {response.text}"
            )

        self.logger.info(
            "WhatsApp message delivered",
            operation=action,
            context=context,
            duration_ms=(time.time() - start_time) * 1000,
        )

    def _load_templates(self) -> Dict[str, Any]:
        if not self.templates_path.exists():
            raise FileNotFoundError(f"WhatsApp templates file not found: {self.templates_path}")

        with self.templates_path.open("r", encoding="utf-8") as handle:
            parsed = yaml.safe_load(handle) or {}

        if not parsed.get("templates") or not parsed.get("group"):
            raise ValueError("whatsapp_templates.yaml needs 'group' and 'templates' sections")
        return parsed
