"""Configuration management with validation.

Runtime settings are read from the environment and validated at load time.
The landing zone layout itself (groups, subscriptions, policies) lives in a
YAML file referenced by LZ_CONFIG_FILE and is loaded by spec_loader.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Settling delay after management group creation (directory replication lag)
DEFAULT_SETTLE_DELAY_SECONDS = 5
MIN_SETTLE_DELAY_SECONDS = 0
MAX_SETTLE_DELAY_SECONDS = 300

# Security constraints - enforced limits to prevent abuse
MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max config file

# Azure naming limits
MAX_MANAGEMENT_GROUP_ID_LENGTH = 90
MAX_ASSIGNMENT_NAME_LENGTH = 24

# Input validation patterns
VALID_SUBSCRIPTION_ID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
VALID_MANAGEMENT_GROUP_ID_PATTERN = r"^[A-Za-z0-9_().-]+$"
VALID_PREFIX_PATTERN = r"^[A-Za-z0-9-]*$"
VALID_LOCATION_PATTERN = r"^[a-z]{2,}[a-z0-9]*$"
ASSIGNMENT_NAME_DISALLOWED_PATTERN = r"[^A-Za-z0-9-]"


def is_valid_subscription_id(value: str) -> bool:
    """Check whether a value is a subscription GUID."""
    return re.match(VALID_SUBSCRIPTION_ID_PATTERN, value.lower()) is not None


@dataclass(frozen=True)
class Config:
    """Provisioner configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    # Required fields
    config_file: Path
    subscription_id: str

    # Behavior
    simulate_only: bool | None = None  # None: use the value from the config file
    settle_delay_seconds: int = DEFAULT_SETTLE_DELAY_SECONDS

    # Authentication
    client_id: str | None = None
    use_managed_identity: bool = False

    # Logging
    enable_audit_logging: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if self.config_file == Path():
            errors.append("LZ_CONFIG_FILE is required")
        elif not self.config_file.is_file():
            errors.append(f"LZ_CONFIG_FILE does not exist: {self.config_file}")

        if not self.subscription_id:
            errors.append("AZURE_SUBSCRIPTION_ID is required")
        elif not is_valid_subscription_id(self.subscription_id):
            errors.append(f"AZURE_SUBSCRIPTION_ID must be a valid GUID: {self.subscription_id}")

        if not (
            MIN_SETTLE_DELAY_SECONDS <= self.settle_delay_seconds <= MAX_SETTLE_DELAY_SECONDS
        ):
            errors.append(
                f"SETTLE_DELAY_SECONDS must be between {MIN_SETTLE_DELAY_SECONDS} "
                f"and {MAX_SETTLE_DELAY_SECONDS} seconds"
            )

        if self.client_id is not None and not is_valid_subscription_id(self.client_id):
            errors.append(f"AZURE_CLIENT_ID must be a valid GUID: {self.client_id}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            LZ_CONFIG_FILE: Path to the landing zone YAML configuration
            AZURE_SUBSCRIPTION_ID: Subscription used as API context for policy calls
            SIMULATE_ONLY: If set, overrides simulateOnly from the config file
            SETTLE_DELAY_SECONDS: Wait after creating a management group (default: 5)
            AZURE_CLIENT_ID: Client ID of a user-assigned managed identity
            USE_MANAGED_IDENTITY: Authenticate with managed identity instead of
                the Azure CLI login (default: false)
            ENABLE_AUDIT_LOGGING: Emit JSON logs (default: true)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        def get_optional_bool(key: str) -> bool | None:
            if not os.environ.get(key):
                return None
            return get_bool(key, False)

        return cls(
            config_file=Path(os.environ.get("LZ_CONFIG_FILE", "")),
            subscription_id=os.environ.get("AZURE_SUBSCRIPTION_ID", ""),
            simulate_only=get_optional_bool("SIMULATE_ONLY"),
            settle_delay_seconds=get_int("SETTLE_DELAY_SECONDS", DEFAULT_SETTLE_DELAY_SECONDS),
            client_id=os.environ.get("AZURE_CLIENT_ID") or None,
            use_managed_identity=get_bool("USE_MANAGED_IDENTITY", False),
            enable_audit_logging=get_bool("ENABLE_AUDIT_LOGGING", True),
        )
