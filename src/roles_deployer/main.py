"""Main entry point for the role assignment deployer.

Loads the roles plan for the selected pac environment and applies it once.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Callable
from datetime import UTC, datetime

from azure.core.credentials import TokenCredential

from .applier import ApplyResult, PlanApplier
from .backend import AzureRoleAssignmentBackend, RoleAssignmentBackend
from .config import Config, ConfigurationError
from .environments import EnvironmentSelectionError, resolve_environment
from .plan_loader import PlanLoadError, load_plan
from .security import SecretlessViolationError, get_credential

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_SECURITY_VIOLATION = 2
EXIT_DEGRADED = 3

BackendFactory = Callable[[Config, TokenCredential], RoleAssignmentBackend]

# LogRecord attributes that are not user-supplied extras
_RESERVED_LOG_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    )
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_LOG_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(json_output: bool = True) -> None:
    """Configure logging on stdout, JSON for pipelines or plain text for humans."""
    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-8s %(message)s"))
    handler.set_name("roles_deployer")

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if existing.get_name() == "roles_deployer":
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO)

    # Reduce noise from Azure SDK
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def default_backend_factory(config: Config, credential: TokenCredential) -> RoleAssignmentBackend:
    return AzureRoleAssignmentBackend(credential, cloud=config.azure_cloud)


def exit_code_for(result: ApplyResult, fail_on_degraded: bool) -> int:
    """Map an apply result to the process exit status."""
    if result.degraded and fail_on_degraded:
        return EXIT_DEGRADED
    return EXIT_OK


async def deploy_roles(
    config: Config,
    backend_factory: BackendFactory = default_backend_factory,
) -> int:
    """Load the plan for the configured environment and apply it.

    Returns:
        Exit code (0 success, 1 error, 2 security violation, 3 degraded).
    """
    logger = logging.getLogger(__name__)

    try:
        config = resolve_environment(config)
    except (EnvironmentSelectionError, ConfigurationError) as e:
        logger.error("Environment selection failed", extra={"error": str(e)})
        return EXIT_ERROR

    logger.info(
        "Deploying role assignments",
        extra={
            "pac_selector": config.pac_selector,
            "cloud": config.azure_cloud.value,
            "tenant_id": config.tenant_id,
            "interactive": config.interactive,
        },
    )

    try:
        plan = load_plan(config.input_folder, config.pac_selector)
    except PlanLoadError as e:
        logger.error(
            "Roles plan loading failed",
            extra={"error": str(e), "input_folder": str(config.input_folder)},
        )
        return EXIT_ERROR

    if plan is None or plan.is_empty:
        # Nothing to change: skip authentication entirely
        result = await PlanApplier(_NoBackend(), policy=config.retry).apply(plan)
        return exit_code_for(result, config.fail_on_degraded)

    try:
        credential = get_credential(config)
        backend = backend_factory(config, credential)
    except SecretlessViolationError as e:
        logger.critical(
            "Security violation: credentials detected in environment",
            extra={"error": str(e)},
        )
        return EXIT_SECURITY_VIOLATION
    except Exception as e:
        logger.error(
            "Failed to initialize authorization backend",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return EXIT_ERROR

    applier = PlanApplier(backend, policy=config.retry)
    result = await applier.apply(plan)

    exit_code = exit_code_for(result, config.fail_on_degraded)
    if result.degraded:
        logger.warning(
            "Role assignments deployed with failures",
            extra={
                "exhausted": result.exhausted,
                "unresolved": result.unresolved,
                "failed": result.failed,
                "exit_code": exit_code,
            },
        )
    return exit_code


class _NoBackend:
    """Backend for plans that require no calls; any call is a bug."""

    def lookup_assignment(self, assignment_id: str) -> None:
        raise RuntimeError("lookup_assignment called for an empty plan")

    def query_binding(self, scope: str, principal_id: str, role_definition_id: str) -> bool:
        raise RuntimeError("query_binding called for an empty plan")

    def create_binding(self, *args: object, **kwargs: object) -> str | None:
        raise RuntimeError("create_binding called for an empty plan")

    def delete_binding(self, *args: object, **kwargs: object) -> None:
        raise RuntimeError("delete_binding called for an empty plan")


async def main() -> int:
    """Run the deployer from environment configuration.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        setup_logging()
        logging.getLogger(__name__).error("Configuration error", extra={"error": str(e)})
        return EXIT_ERROR

    setup_logging(json_output=config.json_logging)
    return await deploy_roles(config)


def run() -> None:
    """Entry point for the deploy-roles console script."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
