"""Pydantic models for the roles plan.

These models provide:
1. Type-safe parsing of roles-plan.json
2. Validation at the boundary (fail fast, fail loudly)
3. Immutable records, so applying a plan never rewrites it
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Role Assignment Records
# =============================================================================


class PrincipalType(str, Enum):
    """Entra ID principal types accepted when creating a role assignment.

    Plans may carry other object types (Azure reports "Unknown" for deleted
    principals), so records keep the raw string.
    """

    USER = "User"
    GROUP = "Group"
    SERVICE_PRINCIPAL = "ServicePrincipal"
    FOREIGN_GROUP = "ForeignGroup"
    DEVICE = "Device"


class RoleAssignmentRecord(BaseModel):
    """A single role assignment to add or remove.

    When the plan was computed before a policy assignment's managed identity
    existed, principal_id is absent and assignment_id names the policy
    assignment whose identity receives the role.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    principal_id: str | None = Field(None, alias="principalId")
    object_type: str | None = Field(None, alias="objectType")
    scope: Annotated[str, Field(min_length=1)]
    role_definition_id: Annotated[str, Field(min_length=1, alias="roleDefinitionId")]
    assignment_id: str | None = Field(None, alias="assignmentId")

    # Diagnostic only
    display_name: str = Field("", alias="displayName")
    role_display_name: str = Field("", alias="roleDisplayName")
    description: str | None = None

    # Resource id of the live role assignment (removals only)
    id: str | None = None

    @property
    def needs_resolution(self) -> bool:
        """True if the principal must be looked up from the policy assignment."""
        return self.principal_id is None

    @property
    def principal_type(self) -> PrincipalType | None:
        """The object type as a creatable principal type, if it is one."""
        if not self.object_type:
            return None
        try:
            return PrincipalType(self.object_type)
        except ValueError:
            return None

    @property
    def label(self) -> str:
        """Short human-readable description for progress output."""
        name = self.display_name or self.principal_id or self.assignment_id or "unknown"
        role = self.role_display_name or self.role_definition_id
        return f"{name}: {role} at {self.scope}"

    def with_principal_id(self, principal_id: str | None) -> RoleAssignmentRecord:
        """Return a copy carrying the resolved principal id."""
        return self.model_copy(update={"principal_id": principal_id})


class RoleAssignmentChanges(BaseModel):
    """Ordered additions and removals. Order is significant."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    added: list[RoleAssignmentRecord] = Field(default_factory=list)
    removed: list[RoleAssignmentRecord] = Field(default_factory=list)


class RolesPlan(BaseModel):
    """Precomputed role assignment changes for one pac environment."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    created_on: datetime = Field(alias="createdOn")
    role_assignments: RoleAssignmentChanges = Field(
        default_factory=RoleAssignmentChanges, alias="roleAssignments"
    )

    @property
    def added(self) -> list[RoleAssignmentRecord]:
        return self.role_assignments.added

    @property
    def removed(self) -> list[RoleAssignmentRecord]:
        return self.role_assignments.removed

    @property
    def is_empty(self) -> bool:
        return not self.added and not self.removed


# =============================================================================
# Managed Identity
# =============================================================================


class ManagedIdentity(BaseModel):
    """Identity attached to a policy assignment."""

    model_config = ConfigDict(frozen=True)

    principal_id: str | None = None
    tenant_id: str | None = None
    identity_type: str = "SystemAssigned"
