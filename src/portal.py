"""
Portal wiring - builds the booking portal's services from Settings.

Called once at application start; the returned Portal is passed by
reference to whatever serves the pages. Nothing here is a module-level
singleton.
"""

from dataclasses import dataclass
from typing import Any, Optional

import boto3
import requests

from src.auth.auth_session import AuthSession
from src.auth.identity_client import IdentityProviderClient
from src.auth.profile_service import ProfileService
from src.booking.catalog import BookingCatalog
from src.booking.service import BookingService
from src.config.settings import Settings, setup_logging_redaction
from src.database.dynamodb_client import BookingRepository, SessionRepository, UserRepository
from src.notifications.whatsapp_service import WhatsAppService
from src.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Portal:
    settings: Settings
    auth: AuthSession
    bookings: BookingService
    profiles: ProfileService


def build_portal(
    settings: Optional[Settings] = None,
    dynamodb_resource: Optional[Any] = None,
    http_client: Optional[requests.Session] = None,
) -> Portal:
    """
    Construct the portal services.

    Args:
        settings: Loaded settings (default: read from the environment)
        dynamodb_resource: boto3 DynamoDB resource (default: one for settings.region_name)
        http_client: Shared requests session for the identity and WhatsApp APIs

    Raises:
        RuntimeError: If the identity API key cannot be loaded
        ValueError: If the catalog configuration is invalid
    """
    settings = settings or Settings()
    setup_logging_redaction(settings)

    dynamodb = dynamodb_resource or boto3.resource("dynamodb", region_name=settings.region_name)
    http = http_client or requests.Session()

    users = UserRepository(table_name=settings.users_table, dynamodb_resource=dynamodb)
    sessions = SessionRepository(table_name=settings.sessions_table, dynamodb_resource=dynamodb)
    bookings = BookingRepository(
        table_name=settings.bookings_table,
        sessions_table_name=settings.sessions_table,
        dynamodb_resource=dynamodb,
    )

    identity = IdentityProviderClient(
        api_key=settings.load_identity_credentials()["api_key"], http_client=http
    )
    whatsapp = WhatsAppService.from_settings(settings, http_client=http)

    portal = Portal(
        settings=settings,
        auth=AuthSession(identity, users, whatsapp, app_base_url=settings.app_base_url),
        bookings=BookingService(
            bookings,
            sessions,
            BookingCatalog.load(settings),
            whatsapp=whatsapp,
            users=users,
        ),
        profiles=ProfileService(users),
    )
    logger.info(
        "Portal services ready",
        operation="build_portal",
        context={
            "region": settings.region_name,
            "whatsapp_delivery": whatsapp.api_url is not None,
        },
    )
    return portal
