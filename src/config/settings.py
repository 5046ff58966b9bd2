"""
Configuration loader for the Engiversee platform

Reads table names and feature flags from the environment, fetches provider
credentials from AWS Secrets Manager (or a local JSON file for development)
with caching and exponential backoff, and loads the YAML booking catalog.
"""

import json
import logging
import os
import time
from pathlib import Path
from typing import Dict, Any, Optional, List

import boto3
import jsonschema
import yaml
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Exception raised for configuration-related errors."""

    pass


# Secrets Manager secret names (values live in Secrets Manager, never in code)
IDENTITY_SECRET_ID = "engiversee/identity-credentials"  # nosec B105
WHATSAPP_SECRET_ID = "engiversee/whatsapp-credentials"  # nosec B105

# For local development with dummy credentials file
USE_LOCAL_SECRETS = os.getenv("USE_LOCAL_SECRETS_FILE", "false").lower() == "true"
LOCAL_SECRETS_FILE = os.getenv("LOCAL_SECRETS_FILE_PATH", ".local/secrets.json")

DEFAULT_REGION = "ap-south-1"

CONFIG_ROOT = Path(__file__).resolve().parents[2] / "config"
CATALOG_PATH = CONFIG_ROOT / "catalog.yaml"
CATALOG_SCHEMA_PATH = CONFIG_ROOT / "catalog.schema.json"

_SECRETS_CACHE: Dict[str, Dict[str, Any]] = {}


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class SecretRedactionFilter(logging.Filter):
    """
    Logging filter that redacts secret values from log records.
    Replaces secret substrings with ***REDACTED*** to prevent accidental leakage.
    """

    def __init__(self, secrets: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.secrets = secrets or {}
        self.redacted_values: set[str] = set()
        if self.secrets:
            self._extract_secret_values(self.secrets)

    def _extract_secret_values(self, obj: Any, max_depth: int = 5) -> None:
        """Recursively extract all secret values from nested structures."""
        if max_depth <= 0:
            return

        if isinstance(obj, dict):
            for value in obj.values():
                self._extract_secret_values(value, max_depth - 1)
        elif isinstance(obj, (list, tuple)):
            for item in obj:
                self._extract_secret_values(item, max_depth - 1)
        elif isinstance(obj, str) and len(obj) > 3:
            self.redacted_values.add(obj)

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter and redact log record."""
        record.msg = self._redact_string(str(record.msg))
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._redact_string(str(v)) for k, v in record.args.items()}
            elif isinstance(record.args, (list, tuple)):
                record.args = tuple(self._redact_string(str(arg)) for arg in record.args)
        return True

    def _redact_string(self, text: str) -> str:
        for secret in self.redacted_values:
            if secret in text:
                text = text.replace(secret, "***REDACTED***")
        return text


class Settings:
    """
    Runtime configuration for the portal, the notification Lambda and scripts.

    Environment variables are read when the instance is built so tests can
    patch ``os.environ`` per case.
    """

    def __init__(self, region_name: Optional[str] = None):
        self.region_name = region_name or os.getenv("AWS_REGION", DEFAULT_REGION)

        self.users_table = os.getenv("USERS_TABLE", "users")
        self.bookings_table = os.getenv("BOOKINGS_TABLE", "bookings")
        self.sessions_table = os.getenv("SESSIONS_TABLE", "sessions")

        self.app_base_url = os.getenv("APP_BASE_URL", "https://engiversee.com").rstrip("/")
        self.email_sender = os.getenv("EMAIL_SENDER", "no-reply@engiversee.com")
        self.admin_uids: List[str] = [
            uid.strip() for uid in os.getenv("ADMIN_UIDS", "").split(",") if uid.strip()
        ]

        # Feature flags
        self.whatsapp_enabled = _env_flag("WHATSAPP_ENABLED")
        self.email_delivery_enabled = _env_flag("EMAIL_DELIVERY_ENABLED", "true")

        self.catalog: Dict[str, Any] = {}

    def is_whatsapp_enabled(self) -> bool:
        """Check if WhatsApp payloads are delivered (otherwise only logged)."""
        return self.whatsapp_enabled

    def is_email_delivery_enabled(self) -> bool:
        """Check if confirmation emails are sent through SES."""
        return self.email_delivery_enabled

    def is_admin(self, uid: Optional[str]) -> bool:
        """Check whether a user may create catalog sessions."""
        return bool(uid) and uid in self.admin_uids

    @staticmethod
    def _get_secret_value(
        secret_id: str,
        region_name: str = DEFAULT_REGION,
        max_retries: int = 3,
        base_wait: float = 1.0,
    ) -> Dict[str, Any]:
        """
        Fetch secret from Secrets Manager with exponential backoff.

        Raises:
            RuntimeError: If secret cannot be retrieved after retries
        """
        client = boto3.client("secretsmanager", region_name=region_name)

        for attempt in range(max_retries):
            try:
                response = client.get_secret_value(SecretId=secret_id)
                secret_string = response.get("SecretString")
                if not secret_string:
                    raise RuntimeError(f"Secret {secret_id} has empty value")
                return json.loads(secret_string)
            except ClientError as e:
                error_code = e.response["Error"]["Code"]
                if error_code == "ResourceNotFoundException":
                    raise RuntimeError(
                        f"Secret '{secret_id}' not found in Secrets Manager ({region_name})"
                    ) from e
                elif error_code in ["AccessDeniedException", "UnauthorizedOperation"]:
                    raise RuntimeError(
                        f"Access denied to secret '{secret_id}'. "
                        f"Verify the execution role has secretsmanager:GetSecretValue permission"
                    ) from e
                elif attempt < max_retries - 1:
                    wait_time = base_wait * (2**attempt)
                    logger.warning(
                        f"Transient error fetching secret {secret_id}: {error_code}. "
                        f"Retrying in {wait_time}s (attempt {attempt + 1}/{max_retries})"
                    )
                    time.sleep(wait_time)
                else:
                    raise RuntimeError(
                        f"Failed to retrieve secret '{secret_id}' after {max_retries} attempts: {error_code}"
                    ) from e
            except json.JSONDecodeError as e:
                raise RuntimeError(f"Secret '{secret_id}' contains invalid JSON: {str(e)}") from e

        raise RuntimeError(f"Failed to retrieve secret '{secret_id}' - exhausted all retry attempts")

    @staticmethod
    def _load_from_local_file(filepath: str) -> Dict[str, Any]:
        """
        Load secrets from local JSON file for development.

        Raises:
            RuntimeError: If file cannot be read or contains invalid JSON
        """
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            raise RuntimeError(
                f"Local secrets file not found: {filepath}. "
                f"Use AWS Secrets Manager or provide USE_LOCAL_SECRETS_FILE=true and LOCAL_SECRETS_FILE_PATH"
            )
        except json.JSONDecodeError as e:
            raise RuntimeError(f"Local secrets file contains invalid JSON: {str(e)}")

    def _load_secret(self, secret_id: str, local_key: str) -> Dict[str, Any]:
        if secret_id in _SECRETS_CACHE:
            return _SECRETS_CACHE[secret_id]

        if USE_LOCAL_SECRETS:
            credentials = self._load_from_local_file(LOCAL_SECRETS_FILE).get(local_key, {})
        else:
            credentials = self._get_secret_value(secret_id, region_name=self.region_name)

        _SECRETS_CACHE[secret_id] = credentials
        return credentials

    def load_identity_credentials(self) -> Dict[str, str]:
        """
        Load the identity provider (Firebase) web API key.

        Priority: IDENTITY_API_KEY environment variable, local secrets file,
        Secrets Manager.

        Returns:
            Dictionary with 'api_key'

        Raises:
            RuntimeError: If credentials cannot be loaded
        """
        env_key = os.getenv("IDENTITY_API_KEY")
        if env_key:
            return {"api_key": env_key}

        credentials = self._load_secret(IDENTITY_SECRET_ID, "identity")
        if "api_key" not in credentials:
            raise RuntimeError(
                f"Identity credentials missing required keys. "
                f"Expected: api_key. Got: {list(credentials.keys())}"
            )
        return credentials

    def load_whatsapp_credentials(self) -> Dict[str, str]:
        """
        Load WhatsApp messaging API credentials.

        Returns an empty dict when WhatsApp delivery is disabled or nothing is
        configured; the WhatsApp service then only logs prepared payloads.
        """
        if not self.whatsapp_enabled:
            return {}

        env_url = os.getenv("WHATSAPP_API_URL")
        env_token = os.getenv("WHATSAPP_API_TOKEN")
        if env_url and env_token:
            return {"api_url": env_url, "token": env_token}

        try:
            return self._load_secret(WHATSAPP_SECRET_ID, "whatsapp")
        except RuntimeError as e:
            logger.warning(f"WhatsApp credentials unavailable; delivery disabled: {e}")
            return {}

    def load_catalog(
        self,
        catalog_path: Path = CATALOG_PATH,
        schema_path: Path = CATALOG_SCHEMA_PATH,
    ) -> Dict[str, Any]:
        """
        Load the booking catalog (session types, time slots, slot limits)
        from YAML and validate it against the JSON schema.

        Raises:
            FileNotFoundError: If config files not found
            ValueError: If YAML/JSON is malformed or fails schema validation
        """
        try:
            with open(schema_path, "r", encoding="utf-8") as f:
                schema = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {schema_path}: {e}") from e

        try:
            with open(catalog_path, "r", encoding="utf-8") as f:
                catalog = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {catalog_path}: {e}") from e

        try:
            jsonschema.validate(instance=catalog, schema=schema)
        except jsonschema.ValidationError as e:
            logger.error(f"Catalog configuration failed schema validation: {e.message}")
            raise ValueError(f"Catalog configuration validation failed: {e.message}") from e

        self.catalog = catalog
        logger.info(
            f"Loaded {len(catalog['session_types'])} session types and "
            f"{len(catalog['time_slots'])} time slots from {catalog_path}"
        )
        return catalog

    def setup_redaction_filter(self, logger_instance: logging.Logger) -> None:
        """Attach a SecretRedactionFilter built from whatever secrets are loadable."""
        all_secrets: Dict[str, Any] = {}
        try:
            all_secrets.update(self.load_identity_credentials())
        except RuntimeError:
            pass
        all_secrets.update(self.load_whatsapp_credentials())
        logger_instance.addFilter(SecretRedactionFilter(all_secrets))


def setup_logging_redaction(settings: Optional[Settings] = None) -> None:
    """Setup logging redaction for root logger."""
    (settings or Settings()).setup_redaction_filter(logging.getLogger())
