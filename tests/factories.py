"""Builders for plans and records used across tests."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from roles_deployer.models import RoleAssignmentRecord, RolesPlan

PLAN_CREATED_ON = datetime(2026, 10, 1, 8, 30, tzinfo=UTC)
SCOPE = "/subscriptions/00000000-0000-0000-0000-000000000001/resourceGroups/rg1"
READER = "/providers/Microsoft.Authorization/roleDefinitions/acdd72a7-3385-48ef-bd42-f606fba81ae7"
CONTRIBUTOR = (
    "/providers/Microsoft.Authorization/roleDefinitions/b24988ac-6180-42a0-ab88-20f7382dd24c"
)
POLICY_ASSIGNMENT = (
    "/providers/Microsoft.Management/managementGroups/contoso"
    "/providers/Microsoft.Authorization/policyAssignments/deploy-diagnostics"
)


def make_record(**fields: Any) -> RoleAssignmentRecord:
    """Build a record from camelCase plan fields with sensible defaults."""
    data: dict[str, Any] = {"scope": SCOPE, "roleDefinitionId": READER}
    data.update(fields)
    return RoleAssignmentRecord.model_validate(data)


def make_plan(
    added: list[RoleAssignmentRecord] | None = None,
    removed: list[RoleAssignmentRecord] | None = None,
) -> RolesPlan:
    return RolesPlan(
        created_on=PLAN_CREATED_ON,
        role_assignments={"added": added or [], "removed": removed or []},
    )


def write_plan(input_folder: Path, pac_selector: str, data: Any) -> Path:
    """Write a roles plan where the loader expects it."""
    plan_dir = input_folder / f"plans-{pac_selector}"
    plan_dir.mkdir(parents=True, exist_ok=True)
    plan_path = plan_dir / "roles-plan.json"
    plan_path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")
    return plan_path


def plan_document(
    added: list[dict[str, Any]] | None = None,
    removed: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """A roles-plan.json document."""
    return {
        "createdOn": PLAN_CREATED_ON.isoformat(),
        "roleAssignments": {"added": added or [], "removed": removed or []},
    }
