"""Pac environment selection from global settings.

global-settings.yaml lists the environments a plan can target:

    pacEnvironments:
      - pacSelector: prod
        cloud: AzureCloud
        tenantId: 00000000-0000-0000-0000-000000000000
        deploymentRootScope: /providers/Microsoft.Management/managementGroups/contoso
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import MAX_SETTINGS_FILE_SIZE_BYTES, AzureCloud, Config
from .plan_loader import format_validation_error

logger = logging.getLogger(__name__)


class EnvironmentSelectionError(Exception):
    """Raised when the global settings are invalid or the selector is unknown."""

    pass


class PacEnvironment(BaseModel):
    """One deployment target."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    pac_selector: str = Field(alias="pacSelector", min_length=1)
    cloud: AzureCloud = AzureCloud.PUBLIC
    tenant_id: str | None = Field(None, alias="tenantId")
    deployment_root_scope: str | None = Field(None, alias="deploymentRootScope")


class GlobalSettings(BaseModel):
    """Parsed global-settings.yaml."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    pac_environments: list[PacEnvironment] = Field(
        default_factory=list, alias="pacEnvironments"
    )


def load_global_settings(settings_path: Path) -> GlobalSettings | None:
    """Load global settings, or None if the file does not exist.

    Raises:
        EnvironmentSelectionError: If the file is unreadable or invalid.
    """
    if not settings_path.exists():
        return None

    try:
        if settings_path.stat().st_size > MAX_SETTINGS_FILE_SIZE_BYTES:
            raise EnvironmentSelectionError(
                f"Settings file exceeds maximum size of {MAX_SETTINGS_FILE_SIZE_BYTES} bytes: "
                f"{settings_path}"
            )
        content = settings_path.read_text(encoding="utf-8")
    except OSError as e:
        raise EnvironmentSelectionError(
            f"Failed to read settings file {settings_path}: {e}"
        ) from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise EnvironmentSelectionError(f"Invalid YAML in {settings_path}: {e}") from e

    if raw_data is None:
        raw_data = {}
    if not isinstance(raw_data, dict):
        raise EnvironmentSelectionError(f"Settings file must contain a YAML mapping: {settings_path}")

    try:
        return GlobalSettings.model_validate(raw_data)
    except ValidationError as e:
        raise EnvironmentSelectionError(
            f"Validation failed for {settings_path}:\n{format_validation_error(e)}"
        ) from e


def select_environment(settings: GlobalSettings, pac_selector: str) -> PacEnvironment:
    """Find the environment for a selector.

    Raises:
        EnvironmentSelectionError: If the selector is unknown or defined twice.
    """
    matches = [env for env in settings.pac_environments if env.pac_selector == pac_selector]

    if not matches:
        valid = [env.pac_selector for env in settings.pac_environments]
        raise EnvironmentSelectionError(
            f"Unknown pac environment '{pac_selector}'. Valid selectors: {valid}"
        )
    if len(matches) > 1:
        raise EnvironmentSelectionError(
            f"Pac environment '{pac_selector}' is defined {len(matches)} times"
        )
    return matches[0]


def resolve_environment(config: Config) -> Config:
    """Fill cloud and tenant from global settings where not set explicitly.

    Without a settings file the configuration is returned unchanged.
    """
    settings = load_global_settings(config.settings_path)
    if settings is None:
        return config

    environment = select_environment(settings, config.pac_selector)
    logger.info(
        "Selected pac environment",
        extra={
            "pac_selector": environment.pac_selector,
            "cloud": environment.cloud.value,
            "tenant_id": environment.tenant_id,
        },
    )
    return dataclasses.replace(
        config,
        cloud=config.cloud or environment.cloud,
        tenant_id=config.tenant_id or environment.tenant_id,
    )
