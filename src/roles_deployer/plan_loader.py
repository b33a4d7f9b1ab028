"""Roles plan loading with validation.

SECURITY: File size is checked before reading to prevent DoS via large
files. Input validation is performed at the boundary.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from .config import MAX_PLAN_FILE_SIZE_BYTES, PLAN_FILE_NAME
from .models import RolesPlan

logger = logging.getLogger(__name__)


class PlanLoadError(Exception):
    """Raised when a roles plan exists but cannot be loaded or validated."""

    pass


def get_plan_path(input_folder: Path, pac_selector: str) -> Path:
    """Return where the plan for a pac environment is written."""
    return input_folder / f"plans-{pac_selector}" / PLAN_FILE_NAME


def format_validation_error(error: ValidationError) -> str:
    """Format pydantic errors one per line for readability."""
    lines = []
    for item in error.errors():
        loc = ".".join(str(x) for x in item["loc"])
        lines.append(f"  - {loc}: {item['msg']}")
    return "\n".join(lines)


def load_plan(input_folder: Path, pac_selector: str) -> RolesPlan | None:
    """Load and validate the roles plan for a pac environment.

    A missing plan file is not an error: the planning step writes no file
    when there is nothing to change.

    Args:
        input_folder: Folder containing plans-<pac_selector>/ subfolders.
        pac_selector: The pac environment selector.

    Returns:
        Validated plan, or None when no plan was produced.

    Raises:
        PlanLoadError: If the plan cannot be read or fails validation.
    """
    plan_path = get_plan_path(input_folder, pac_selector)

    if not plan_path.exists():
        logger.info(
            "No roles plan found",
            extra={"plan_path": str(plan_path), "pac_selector": pac_selector},
        )
        return None

    try:
        file_size = plan_path.stat().st_size
    except OSError as e:
        raise PlanLoadError(f"Failed to stat plan file {plan_path}: {e}") from e

    if file_size > MAX_PLAN_FILE_SIZE_BYTES:
        raise PlanLoadError(
            f"Plan file exceeds maximum size of {MAX_PLAN_FILE_SIZE_BYTES} bytes: {plan_path}"
        )

    try:
        content = plan_path.read_text(encoding="utf-8-sig")
    except OSError as e:
        raise PlanLoadError(f"Failed to read plan file {plan_path}: {e}") from e

    try:
        raw_data = json.loads(content)
    except json.JSONDecodeError as e:
        raise PlanLoadError(f"Invalid JSON in {plan_path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise PlanLoadError(f"Plan file must contain a JSON object: {plan_path}")

    try:
        plan = RolesPlan.model_validate(raw_data)
    except ValidationError as e:
        raise PlanLoadError(
            f"Validation failed for {plan_path}:\n{format_validation_error(e)}"
        ) from e

    logger.info(
        "Loaded roles plan from %s",
        plan_path,
        extra={
            "created_on": plan.created_on.isoformat(),
            "added": len(plan.added),
            "removed": len(plan.removed),
        },
    )
    return plan
