"""
Booking confirmation emails through Amazon SES.

Templates are externalised in config/email_templates.yaml and rendered with
the booking's fields.
"""

from __future__ import annotations

import time
from html import escape
from pathlib import Path
from typing import Any, Dict, Optional

import boto3
import yaml
from botocore.exceptions import BotoCoreError, ClientError

from src.domain.booking import Booking
from src.utils.logger import get_logger, mask_email, StructuredLogger


DEFAULT_TEMPLATES_PATH = Path(__file__).resolve().parents[2] / "config" / "email_templates.yaml"


class EmailServiceError(Exception):
    """Raised when SES does not accept a message."""


class SesEmailClient:
    """
    Client for sending templated HTML emails through SES.

    Attributes:
        sender: Verified SES sender address
        templates: Parsed template definitions
    """

    def __init__(
        self,
        sender: str,
        ses_client: Optional[Any] = None,
        region_name: Optional[str] = None,
        templates_path: Optional[Path] = None,
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        self.sender = sender
        self.logger = logger or get_logger(__name__)
        self.ses = ses_client or boto3.client("ses", region_name=region_name)
        self.templates_path = Path(templates_path) if templates_path else DEFAULT_TEMPLATES_PATH
        self.templates = self._load_templates()

    def send_booking_confirmation(self, booking: Booking) -> str:
        """
        Send the confirmation email for a newly created booking.

        Returns:
            SES MessageId

        Raises:
            ValueError: If the booking has no email address
            EmailServiceError: If SES rejects the message or is unreachable
        """
        if not booking.user_email:
            raise ValueError("booking has no userEmail")

        fields = self.booking_fields(booking)
        template = self.templates["booking_confirmation"]
        subject = template["subject"].format(**fields)
        html = template["html"].format(**{key: escape(str(value)) for key, value in fields.items()})
        text = template.get("text", "").format(**fields)

        context = {"booking_id": booking.id, "email_masked": mask_email(booking.user_email)}
        start_time = time.time()
        try:
            response = self.ses.send_email(
                Source=self.sender,
                Destination={"ToAddresses": [booking.user_email]},
                Message={
                    "Subject": {"Data": subject, "Charset": "UTF-8"},
                    "Body": {
                        "Html": {"Data": html, "Charset": "UTF-8"},
                        "Text": {"Data": text, "Charset": "UTF-8"},
                    },
                },
            )
        except (ClientError, BotoCoreError) as exc:
            self.logger.error(
                "Error sending confirmation email",
                operation="send_booking_confirmation",
                context=context,
                error=str(exc),
            )
            raise EmailServiceError("Failed to send confirmation email") from exc

        self.logger.info(
            "Confirmation email sent successfully",
            operation="send_booking_confirmation",
            context=context,
            duration_ms=(time.time() - start_time) * 1000,
        )
        return response["MessageId"]

    @staticmethod
    def booking_fields(booking: Booking) -> Dict[str, str]:
        """Template fields; the reference is preferred over the raw id."""
        return {
            "name": booking.user_name or "User",
            "booking_id": booking.reference or booking.id or "",
            "session_type": booking.session_title or booking.session_type,
            "date": booking.date,
            "time": booking.time,
            "status": booking.status,
        }

    def _load_templates(self) -> Dict[str, Any]:
        if not self.templates_path.exists():
            raise FileNotFoundError(f"Email templates file not found: {self.templates_path}")

        with self.templates_path.open("r", encoding="utf-8") as handle:
            parsed = yaml.safe_load(handle) or {}

        templates = parsed.get("templates")
        if not templates or "booking_confirmation" not in templates:
            raise ValueError("booking_confirmation template missing in email_templates.yaml")
        return templates
