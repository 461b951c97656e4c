"""
Configuration loader for the paratransit client.

Reads deployment settings from environment variables, fetches the session
encryption secret from AWS Secrets Manager with exponential backoff, and
loads the booking policy from YAML validated against a JSON schema.
"""

import json
import logging
import os
import time
from typing import Any, Dict, Mapping, Optional

import boto3
import jsonschema
import pytz
import yaml
from botocore.exceptions import BotoCoreError, ClientError

from paratransit_client.api.soap_client import DEFAULT_BASE_URL, DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT
from paratransit_client.utils.logger import register_log_filter
from paratransit_client.utils.rate_limiter import DEFAULT_RATE_LIMIT_MS
from paratransit_client.utils.timezone import DEFAULT_TIMEZONE
from paratransit_client.validation.booking_rules import BookingPolicy

logger = logging.getLogger(__name__)

CONFIG_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_POLICY_PATH = os.path.join(CONFIG_DIR, "booking_policy.yaml")
DEFAULT_POLICY_SCHEMA_PATH = os.path.join(CONFIG_DIR, "booking_policy.schema.json")

DEFAULT_REGION = "ca-central-1"
DEFAULT_SESSION_FILE = ".paratransit/session.json"
DEFAULT_KEY_FILE = ".paratransit/session.key"

BACKEND_LOCAL = "local"
BACKEND_DYNAMODB = "dynamodb"
SESSION_BACKENDS = (BACKEND_LOCAL, BACKEND_DYNAMODB)

# Key inside the Secrets Manager secret JSON
ENCRYPTION_SECRET_FIELD = "encryption_key"  # nosec B105


class ConfigurationError(Exception):
    """Exception raised for configuration-related errors."""

    pass


class SecretRedactionFilter(logging.Filter):
    """
    Logging filter that redacts secret values from log records.
    Replaces secret substrings with ***REDACTED*** to prevent accidental leakage.
    """

    def __init__(self, secrets: Optional[Dict[str, Any]] = None):
        """
        Initialize filter with secrets to redact.

        Args:
            secrets: Dictionary of secrets to redact (values will be masked)
        """
        super().__init__()
        self.secrets = secrets or {}
        self.redacted_values: set = set()
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
            # Short values would redact ordinary words
            self.redacted_values.add(obj)

    def add_secrets(self, secrets: Dict[str, Any]) -> None:
        """Start redacting further secrets."""
        self.secrets.update(secrets)
        self._extract_secret_values(secrets)

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
        """Redact all secret values from string."""
        for secret in self.redacted_values:
            if secret in text:
                text = text.replace(secret, "***REDACTED***")
        return text


# Shared by every package logger; secrets accumulate as they are resolved
_redaction_filter = SecretRedactionFilter()


def _int_setting(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


class Settings:
    """
    Deployment settings read from environment variables.

    Environment variables:
        PARATRANSIT_BASE_URL: Remote service base URL
        PARATRANSIT_TIMEZONE: Service home zone (IANA name)
        PARATRANSIT_RATE_LIMIT_MS: Minimum delay between remote requests
        PARATRANSIT_REQUEST_TIMEOUT: Per-request timeout in seconds
        PARATRANSIT_MAX_RETRIES: Attempts for retryable failures
        SESSION_BACKEND: "local" (encrypted file) or "dynamodb"
        SESSION_FILE_PATH / SESSION_KEY_FILE_PATH: Local store files
        SESSION_STORE_TABLE / SESSION_STORE_REGION / SESSION_STORE_ENDPOINT: DynamoDB store
        SESSION_TTL_HOURS: Session lifetime
        SESSION_ENCRYPTION_KEY: Operator secret for key derivation
        SESSION_ENCRYPTION_SECRET_ID: Secrets Manager secret holding the operator secret
    """

    def __init__(self, env: Optional[Mapping[str, str]] = None):
        """
        Initialize Settings.

        Args:
            env: Variables to read (default: os.environ)

        Raises:
            ConfigurationError: If a value is missing or malformed
        """
        env = os.environ if env is None else env

        self.base_url = env.get("PARATRANSIT_BASE_URL") or DEFAULT_BASE_URL
        self.timezone = env.get("PARATRANSIT_TIMEZONE") or DEFAULT_TIMEZONE
        self.rate_limit_ms = _int_setting(env, "PARATRANSIT_RATE_LIMIT_MS", DEFAULT_RATE_LIMIT_MS)
        self.request_timeout = _int_setting(env, "PARATRANSIT_REQUEST_TIMEOUT", DEFAULT_TIMEOUT, minimum=1)
        self.max_retries = _int_setting(env, "PARATRANSIT_MAX_RETRIES", DEFAULT_MAX_RETRIES, minimum=1)

        self.session_backend = (env.get("SESSION_BACKEND") or BACKEND_LOCAL).lower()
        self.session_file_path = env.get("SESSION_FILE_PATH") or DEFAULT_SESSION_FILE
        self.session_key_file_path = env.get("SESSION_KEY_FILE_PATH") or DEFAULT_KEY_FILE
        self.session_table = env.get("SESSION_STORE_TABLE") or "paratransit-sessions"
        self.session_region = env.get("SESSION_STORE_REGION") or DEFAULT_REGION
        self.session_endpoint = env.get("SESSION_STORE_ENDPOINT") or None
        self.session_ttl_hours = _int_setting(env, "SESSION_TTL_HOURS", 24, minimum=1)

        self.encryption_key = env.get("SESSION_ENCRYPTION_KEY") or None
        self.encryption_secret_id = env.get("SESSION_ENCRYPTION_SECRET_ID") or None

        self._validate()

    def _validate(self) -> None:
        if self.session_backend not in SESSION_BACKENDS:
            raise ConfigurationError(
                f"SESSION_BACKEND must be one of {SESSION_BACKENDS}, got {self.session_backend!r}"
            )
        if not self.base_url.startswith("https://") and not self.base_url.startswith("http://"):
            raise ConfigurationError(f"PARATRANSIT_BASE_URL is not an http(s) URL: {self.base_url!r}")
        try:
            pytz.timezone(self.timezone)
        except pytz.UnknownTimeZoneError as e:
            raise ConfigurationError(f"Unknown PARATRANSIT_TIMEZONE: {self.timezone!r}") from e
        if self.session_backend == BACKEND_DYNAMODB and not (self.encryption_key or self.encryption_secret_id):
            raise ConfigurationError(
                "The dynamodb session backend needs SESSION_ENCRYPTION_KEY or SESSION_ENCRYPTION_SECRET_ID"
            )

    def load_encryption_secret(self) -> Optional[str]:
        """
        Operator secret used to derive the session key.

        Priority:
        1. SESSION_ENCRYPTION_KEY environment variable
        2. Secrets Manager secret named by SESSION_ENCRYPTION_SECRET_ID

        Returns:
            Secret string, or None when neither is configured (the local
            backend then bootstraps a key file)
        """
        if self.encryption_key:
            return self.encryption_key
        if not self.encryption_secret_id:
            return None

        secret = Settings._get_secret_value(self.encryption_secret_id, region_name=self.session_region)
        value = secret.get(ENCRYPTION_SECRET_FIELD)
        if not value:
            raise ConfigurationError(
                f"Secret '{self.encryption_secret_id}' has no '{ENCRYPTION_SECRET_FIELD}' field. "
                f"Got: {list(secret.keys())}"
            )
        return value

    @staticmethod
    def _get_secret_value(
        secret_id: str,
        region_name: str = DEFAULT_REGION,
        max_retries: int = 3,
        base_wait: float = 1.0,
    ) -> Dict[str, Any]:
        """
        Fetch secret from Secrets Manager with exponential backoff.

        Args:
            secret_id: Secret identifier in Secrets Manager
            region_name: AWS region holding the secret
            max_retries: Maximum number of retry attempts
            base_wait: Base wait time in seconds for exponential backoff

        Returns:
            Parsed secret JSON as dictionary

        Raises:
            ConfigurationError: If secret cannot be retrieved after retries
        """
        client = boto3.client("secretsmanager", region_name=region_name)

        for attempt in range(max_retries):
            try:
                response = client.get_secret_value(SecretId=secret_id)
                secret_string = response.get("SecretString")
                if not secret_string:
                    raise ConfigurationError(f"Secret {secret_id} has empty value")
                return json.loads(secret_string)
            except ClientError as e:
                error_code = e.response["Error"]["Code"]
                if error_code == "ResourceNotFoundException":
                    raise ConfigurationError(
                        f"Secret '{secret_id}' not found in Secrets Manager. "
                        f"Please verify the secret exists in region {region_name}"
                    ) from e
                elif error_code in ["AccessDeniedException", "UnauthorizedOperation"]:
                    raise ConfigurationError(
                        f"Access denied to secret '{secret_id}'. "
                        f"Verify the execution role has secretsmanager:GetSecretValue permission"
                    ) from e
                elif error_code == "DecryptionFailure":
                    raise ConfigurationError(
                        f"Failed to decrypt secret '{secret_id}'. Verify KMS key permissions"
                    ) from e
                elif attempt < max_retries - 1:
                    wait_time = base_wait * (2**attempt)
                    logger.warning(
                        f"Transient error fetching secret {secret_id}: {error_code}. "
                        f"Retrying in {wait_time}s (attempt {attempt + 1}/{max_retries})"
                    )
                    time.sleep(wait_time)
                else:
                    raise ConfigurationError(
                        f"Failed to retrieve secret '{secret_id}' after {max_retries} attempts: {error_code}"
                    ) from e
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Secret '{secret_id}' contains invalid JSON: {str(e)}") from e
            except BotoCoreError as e:
                if attempt < max_retries - 1:
                    wait_time = base_wait * (2**attempt)
                    logger.warning(
                        f"Connection error fetching secret {secret_id}: {str(e)}. "
                        f"Retrying in {wait_time}s (attempt {attempt + 1}/{max_retries})"
                    )
                    time.sleep(wait_time)
                else:
                    raise ConfigurationError(f"Could not reach Secrets Manager for '{secret_id}': {str(e)}") from e

        raise ConfigurationError(f"Failed to retrieve secret '{secret_id}' - exhausted all retry attempts")

    @staticmethod
    def load_policy(
        policy_path: str = DEFAULT_POLICY_PATH,
        schema_path: str = DEFAULT_POLICY_SCHEMA_PATH,
    ) -> BookingPolicy:
        """
        Load booking policy constants from YAML and validate against schema.

        Args:
            policy_path: Path to booking_policy.yaml
            schema_path: Path to booking_policy.schema.json

        Raises:
            FileNotFoundError: If config files not found
            ConfigurationError: If YAML, schema or values are invalid
        """
        try:
            with open(schema_path, "r", encoding="utf-8") as f:
                schema = json.load(f)
        except FileNotFoundError:
            logger.error(f"Policy schema file not found: {schema_path}")
            raise
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {schema_path}: {e}") from e

        try:
            with open(policy_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except FileNotFoundError:
            logger.error(f"Policy configuration file not found: {policy_path}")
            raise
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {policy_path}: {e}") from e

        if not config:
            logger.warning(f"Empty policy configuration, using defaults: {policy_path}")
            return BookingPolicy()

        try:
            jsonschema.validate(instance=config, schema=schema)
        except jsonschema.ValidationError as e:
            raise ConfigurationError(f"Policy configuration validation failed: {e.message}") from e
        except jsonschema.SchemaError as e:
            raise ConfigurationError(f"Policy schema is invalid: {e.message}") from e

        policy = BookingPolicy.from_dict(config.get("policy", {}))
        logger.info(f"Loaded booking policy from {policy_path}")
        return policy

    def setup_redaction_filter(self, resolved_secret: Optional[str] = None) -> SecretRedactionFilter:
        """
        Redact the configured secrets from every package logger.

        The process keeps one shared filter; each call adds secrets to it.

        Args:
            resolved_secret: Operator secret fetched at runtime (e.g. from Secrets Manager)
        """
        secrets = {}
        if self.encryption_key:
            secrets["encryption_key"] = self.encryption_key
        if resolved_secret:
            secrets["resolved_secret"] = resolved_secret

        _redaction_filter.add_secrets(secrets)
        register_log_filter(_redaction_filter)
        logger.addFilter(_redaction_filter)
        return _redaction_filter
