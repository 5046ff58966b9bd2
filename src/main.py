"""
Lambda Handler - booking confirmation emails

Triggered by the ``bookings`` DynamoDB stream. For every INSERT record the
new booking image is deserialized and a confirmation email is sent through
SES. Send failures are logged and swallowed: the stream is never retried for
a failed email, so one bad address cannot block the shard.
"""

import json
import time
from datetime import datetime
from typing import Any, Dict, Optional

from boto3.dynamodb.types import TypeDeserializer

from src.config.settings import Settings, setup_logging_redaction
from src.domain.booking import Booking
from src.notifications.email_service import EmailServiceError, SesEmailClient
from src.utils.logger import get_logger, mask_email

logger = get_logger(__name__)

_deserializer = TypeDeserializer()


def lambda_handler(event, context, email_client: Optional[SesEmailClient] = None):
    """
    Send confirmation emails for newly created bookings.

    Args:
        event: DynamoDB stream event ({"Records": [...]})
        context: Lambda context
        email_client: Injected SES client (built from Settings when omitted)

    Returns:
        dict: Status 200 with a per-run summary
    """
    lambda_start_time = time.time()

    settings = Settings()
    setup_logging_redaction(settings)
    logger.info(
        "Lambda handler started",
        operation="lambda_start",
        context={
            "aws_request_id": getattr(context, "aws_request_id", "local") if context else "local",
            "records": len(event.get("Records", [])),
        },
    )

    summary = {"records": 0, "inserts": 0, "emails_sent": 0, "emails_failed": 0, "skipped": 0}

    if not settings.is_email_delivery_enabled():
        logger.info("Email delivery disabled; skipping stream batch", operation="lambda_complete")
        summary["skipped"] = len(event.get("Records", []))
        return _response(summary, lambda_start_time)

    client = email_client or SesEmailClient(
        sender=settings.email_sender, region_name=settings.region_name
    )

    for record in event.get("Records", []):
        summary["records"] += 1
        if record.get("eventName") != "INSERT":
            summary["skipped"] += 1
            continue

        summary["inserts"] += 1
        booking = booking_from_stream_record(record)
        if booking is None:
            summary["skipped"] += 1
            continue

        try:
            client.send_booking_confirmation(booking)
            summary["emails_sent"] += 1
        except (EmailServiceError, ValueError) as e:
            summary["emails_failed"] += 1
            logger.error(
                "Error sending confirmation email",
                operation="process_record",
                context={"booking_id": booking.id, "email_masked": mask_email(booking.user_email)},
                error=str(e),
            )

    return _response(summary, lambda_start_time)


def booking_from_stream_record(record: Dict[str, Any]) -> Optional[Booking]:
    """Deserialize the NewImage of a stream record; None when it has none."""
    image = record.get("dynamodb", {}).get("NewImage")
    if not image:
        logger.warning("Stream record without NewImage", operation="process_record")
        return None
    return Booking.from_dict({key: _deserializer.deserialize(value) for key, value in image.items()})


def _response(summary: Dict[str, int], started: float) -> Dict[str, Any]:
    duration_ms = (time.time() - started) * 1000
    logger.info(
        "Lambda execution completed",
        operation="lambda_complete",
        context=summary,
        duration_ms=duration_ms,
    )
    return {
        "statusCode": 200,
        "body": json.dumps(
            {
                **summary,
                "duration_ms": round(duration_ms, 2),
                "timestamp": datetime.now().isoformat(),
            }
        ),
    }
