"""Configuration management with validation.

All settings are validated at construction time so a bad environment fails
before any Azure call is made.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class AzureCloud(str, Enum):
    """Supported Azure clouds."""

    PUBLIC = "AzureCloud"
    US_GOVERNMENT = "AzureUSGovernment"
    CHINA = "AzureChinaCloud"


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Retry behaviour for role assignment creation
DEFAULT_CREATE_MAX_ATTEMPTS = 5
MIN_CREATE_MAX_ATTEMPTS = 1
MAX_CREATE_MAX_ATTEMPTS = 20

DEFAULT_CREATE_RETRY_INTERVAL_SECONDS = 10.0
MAX_CREATE_RETRY_INTERVAL_SECONDS = 300.0

# Plan and settings files
MAX_PLAN_FILE_SIZE_BYTES = 5 * 1024 * 1024  # 5MB max roles plan
MAX_SETTINGS_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max global settings
PLAN_FILE_NAME = "roles-plan.json"
SETTINGS_FILE_NAME = "global-settings.yaml"

DEFAULT_INPUT_FOLDER = "./Output"
DEFAULT_DEFINITIONS_FOLDER = "./Definitions"

# Input validation patterns
VALID_PAC_SELECTOR_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$"
VALID_TENANT_ID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-interval retry budget for role assignment creation.

    Role assignments frequently fail right after a managed identity is
    created because Entra ID has not replicated the principal yet. Creation
    is retried at a fixed interval, without backoff or jitter.
    """

    # Total attempts, including the first one
    max_attempts: int = DEFAULT_CREATE_MAX_ATTEMPTS

    # Seconds to wait between failed attempts
    interval_seconds: float = DEFAULT_CREATE_RETRY_INTERVAL_SECONDS


@dataclass(frozen=True)
class Config:
    """Deployer configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-run.
    """

    # Required fields
    pac_selector: str

    # Paths
    input_folder: Path = field(default_factory=lambda: Path(DEFAULT_INPUT_FOLDER))
    definitions_folder: Path = field(default_factory=lambda: Path(DEFAULT_DEFINITIONS_FOLDER))

    # Environment context
    # Unset cloud and tenant fall back to the selected pac environment
    cloud: AzureCloud | None = None
    tenant_id: str | None = None
    interactive: bool = False
    client_id: str | None = None

    # Behavior
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    fail_on_degraded: bool = True
    json_logging: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.pac_selector:
            errors.append("PAC_ENVIRONMENT_SELECTOR is required")
        elif not re.match(VALID_PAC_SELECTOR_PATTERN, self.pac_selector):
            errors.append(
                f"PAC_ENVIRONMENT_SELECTOR must match pattern {VALID_PAC_SELECTOR_PATTERN}: "
                f"{self.pac_selector}"
            )

        if self.tenant_id and not re.match(VALID_TENANT_ID_PATTERN, self.tenant_id.lower()):
            errors.append(f"AZURE_TENANT_ID must be a valid GUID: {self.tenant_id}")

        if not self.input_folder.exists():
            errors.append(f"Input folder does not exist: {self.input_folder}")

        if not (MIN_CREATE_MAX_ATTEMPTS <= self.retry.max_attempts <= MAX_CREATE_MAX_ATTEMPTS):
            errors.append(
                f"CREATE_MAX_ATTEMPTS must be between {MIN_CREATE_MAX_ATTEMPTS} "
                f"and {MAX_CREATE_MAX_ATTEMPTS}"
            )

        if not (0 <= self.retry.interval_seconds <= MAX_CREATE_RETRY_INTERVAL_SECONDS):
            errors.append(
                f"CREATE_RETRY_INTERVAL must be between 0 "
                f"and {MAX_CREATE_RETRY_INTERVAL_SECONDS:g} seconds"
            )

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def azure_cloud(self) -> AzureCloud:
        """The cloud to target, defaulting to the public cloud."""
        return self.cloud or AzureCloud.PUBLIC

    @property
    def settings_path(self) -> Path:
        """Location of the global settings file."""
        return self.definitions_folder / SETTINGS_FILE_NAME

    @classmethod
    def from_env(cls, **overrides: Any) -> Config:
        """Load configuration from environment variables.

        Keyword arguments name Config fields and take precedence over the
        environment, so callers can layer command-line options on top.

        Environment Variables:
            PAC_ENVIRONMENT_SELECTOR: Environment whose plan is deployed
            PAC_INPUT_FOLDER: Folder holding plans-<selector>/ (default: ./Output)
            PAC_DEFINITIONS_FOLDER: Folder holding global-settings.yaml (default: ./Definitions)
            AZURE_CLOUD: AzureCloud, AzureUSGovernment or AzureChinaCloud
            AZURE_TENANT_ID: Tenant to authenticate against
            INTERACTIVE: If "true", use interactive browser login
            MANAGED_IDENTITY_CLIENT_ID: Client ID of a user-assigned identity
            CREATE_MAX_ATTEMPTS: Attempts per role assignment creation (default: 5)
            CREATE_RETRY_INTERVAL: Seconds between attempts (default: 10)
            FAIL_ON_DEGRADED: Exit non-zero when an addition is not applied (default: true)
            ENABLE_JSON_LOGGING: Emit JSON logs (default: true)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_float(key: str, default: float) -> float:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return float(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        def get_cloud(value: str | None) -> AzureCloud | None:
            if not value:
                return None
            try:
                return AzureCloud(value)
            except ValueError as e:
                valid = [c.value for c in AzureCloud]
                raise ConfigurationError(f"AZURE_CLOUD must be one of {valid}: {value}") from e

        values: dict[str, Any] = dict(
            pac_selector=os.environ.get("PAC_ENVIRONMENT_SELECTOR", ""),
            input_folder=Path(os.environ.get("PAC_INPUT_FOLDER", DEFAULT_INPUT_FOLDER)),
            definitions_folder=Path(
                os.environ.get("PAC_DEFINITIONS_FOLDER", DEFAULT_DEFINITIONS_FOLDER)
            ),
            cloud=get_cloud(os.environ.get("AZURE_CLOUD")),
            tenant_id=os.environ.get("AZURE_TENANT_ID") or None,
            interactive=get_bool("INTERACTIVE", False),
            client_id=os.environ.get("MANAGED_IDENTITY_CLIENT_ID") or None,
            retry=RetryPolicy(
                max_attempts=get_int("CREATE_MAX_ATTEMPTS", DEFAULT_CREATE_MAX_ATTEMPTS),
                interval_seconds=get_float(
                    "CREATE_RETRY_INTERVAL", DEFAULT_CREATE_RETRY_INTERVAL_SECONDS
                ),
            ),
            fail_on_degraded=get_bool("FAIL_ON_DEGRADED", True),
            json_logging=get_bool("ENABLE_JSON_LOGGING", True),
        )
        values.update(overrides)
        return cls(**values)
