"""Credential acquisition for the secretless deployer.

SECURITY INVARIANTS:
1. Client secrets, certificates and passwords must never be present in the environment
2. Non-interactive runs authenticate with a managed identity only
3. Interactive runs use the browser login of the operator running the deployment
"""

from __future__ import annotations

import logging
import os

from azure.core.credentials import TokenCredential
from azure.identity import (
    AzureAuthorityHosts,
    InteractiveBrowserCredential,
    ManagedIdentityCredential,
)

from .config import AzureCloud, Config

logger = logging.getLogger(__name__)

# Environment variables that indicate credential leakage
FORBIDDEN_CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "AZURE_CLIENT_SECRET",
    "AZURE_CLIENT_CERTIFICATE_PATH",
    "AZURE_CLIENT_CERTIFICATE_PASSWORD",
    "AZURE_USERNAME",
    "AZURE_PASSWORD",
)

AUTHORITY_HOSTS: dict[AzureCloud, str] = {
    AzureCloud.PUBLIC: AzureAuthorityHosts.AZURE_PUBLIC_CLOUD,
    AzureCloud.US_GOVERNMENT: AzureAuthorityHosts.AZURE_GOVERNMENT,
    AzureCloud.CHINA: AzureAuthorityHosts.AZURE_CHINA,
}

SECRETLESS_VIOLATION_MESSAGE = (
    "SECURITY VIOLATION: {env_var} is set. Role assignments are deployed with a "
    "managed identity or an interactive login only. Remove all credential "
    "environment variables and grant the identity User Access Administrator "
    "on the deployment root scope."
)


class SecretlessViolationError(Exception):
    """Raised when credential secrets are found in the environment.

    This is a fatal error; the deployer must not proceed.
    """

    pass


def enforce_secretless_architecture() -> None:
    """Enforce that no credential secrets are present in the environment.

    Raises:
        SecretlessViolationError: If any credential environment variables detected.
    """
    for env_var in FORBIDDEN_CREDENTIAL_ENV_VARS:
        if os.environ.get(env_var):
            logger.critical(
                "Secretless architecture violation",
                extra={
                    "security_event": "credential_detected",
                    "env_var": env_var,
                    "action": "startup_blocked",
                },
            )
            raise SecretlessViolationError(SECRETLESS_VIOLATION_MESSAGE.format(env_var=env_var))

    logger.info(
        "Secretless architecture verified",
        extra={"security_event": "secretless_verified"},
    )


def get_credential(config: Config) -> TokenCredential:
    """Get a credential after verifying the environment holds no secrets.

    This is the ONLY way to obtain credentials in this codebase.

    Args:
        config: Deployer configuration (cloud, tenant, interactive flag).

    Returns:
        InteractiveBrowserCredential when interactive, otherwise a
        ManagedIdentityCredential.

    Raises:
        SecretlessViolationError: If credential environment variables detected.
    """
    enforce_secretless_architecture()

    if config.interactive:
        logger.info(
            "Using interactive browser login",
            extra={"tenant_id": config.tenant_id, "cloud": config.azure_cloud.value},
        )
        if config.tenant_id:
            return InteractiveBrowserCredential(
                tenant_id=config.tenant_id,
                authority=AUTHORITY_HOSTS[config.azure_cloud],
            )
        return InteractiveBrowserCredential(authority=AUTHORITY_HOSTS[config.azure_cloud])

    if config.client_id:
        client_id = config.client_id
        logger.info(
            "Using user-assigned managed identity",
            extra={"client_id": client_id[:8] + "..." if len(client_id) > 8 else client_id},
        )
        return ManagedIdentityCredential(client_id=client_id)

    logger.info("Using system-assigned managed identity")
    return ManagedIdentityCredential()


def log_security_audit_event(
    event_type: str,
    target_resource: str | None = None,
    action: str | None = None,
    result: str | None = None,
    principal_id: str | None = None,
) -> None:
    """Log a security-relevant audit event.

    Every role assignment mutation is logged with structured data for SIEM ingestion.
    """
    logger.info(
        f"Security audit: {event_type}",
        extra={
            "security_audit": True,
            "event_type": event_type,
            "target_resource": target_resource,
            "action": action,
            "result": result,
            "principal_id": principal_id,
        },
    )
