"""In-memory RoleAssignmentBackend for testing the plan applier.

Records every call in order so tests can assert on exact call sequences,
and supports failure injection per binding.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from azure.core.exceptions import ResourceNotFoundError

from roles_deployer.models import ManagedIdentity, PrincipalType

# Sentinel for create_failures: fail every attempt
ALWAYS = -1


@dataclass(frozen=True)
class Binding:
    """A role assignment as stored by the fake."""

    scope: str
    principal_id: str
    role_definition_id: str


@dataclass
class RecordedCall:
    """A single backend call."""

    operation: str
    args: tuple[Any, ...] = field(default_factory=tuple)


class FakeRoleAssignmentBackend:
    """Fake authorization backend holding bindings and identities in memory."""

    def __init__(
        self,
        *,
        bindings: list[Binding] | None = None,
        identities: dict[str, ManagedIdentity | None] | None = None,
    ) -> None:
        self.bindings: set[Binding] = set(bindings or [])
        self.identities: dict[str, ManagedIdentity | None] = dict(identities or {})
        self.calls: list[RecordedCall] = []

        # Number of failing create attempts per binding (ALWAYS = never succeeds)
        self.create_failures: dict[Binding, int] = {}
        self.create_raises: bool = False
        self.delete_failures: set[Binding] = set()
        self.query_raises: bool = False
        self.lookup_raises: bool = False

    # -- call inspection ---------------------------------------------------

    def calls_to(self, operation: str) -> list[RecordedCall]:
        return [call for call in self.calls if call.operation == operation]

    def count(self, operation: str) -> int:
        return len(self.calls_to(operation))

    @property
    def mutation_count(self) -> int:
        return self.count("create_binding") + self.count("delete_binding")

    # -- RoleAssignmentBackend ---------------------------------------------

    def lookup_assignment(self, assignment_id: str) -> ManagedIdentity | None:
        self.calls.append(RecordedCall("lookup_assignment", (assignment_id,)))
        if self.lookup_raises:
            raise RuntimeError(f"lookup failed for {assignment_id}")
        return self.identities.get(assignment_id)

    def query_binding(self, scope: str, principal_id: str, role_definition_id: str) -> bool:
        self.calls.append(RecordedCall("query_binding", (scope, principal_id, role_definition_id)))
        if self.query_raises:
            raise RuntimeError("query failed")
        return Binding(scope, principal_id, role_definition_id) in self.bindings

    def create_binding(
        self,
        principal_id: str,
        object_type: PrincipalType | None,
        scope: str,
        role_definition_id: str,
        description: str | None = None,
    ) -> str | None:
        self.calls.append(
            RecordedCall("create_binding", (principal_id, object_type, scope, role_definition_id))
        )
        binding = Binding(scope, principal_id, role_definition_id)

        remaining = self.create_failures.get(binding, 0)
        if remaining == ALWAYS:
            if self.create_raises:
                raise RuntimeError("PrincipalNotFound")
            return None
        if remaining > 0:
            self.create_failures[binding] = remaining - 1
            if self.create_raises:
                raise RuntimeError("PrincipalNotFound")
            return None

        self.bindings.add(binding)
        return f"{scope}/providers/Microsoft.Authorization/roleAssignments/{len(self.bindings)}"

    def delete_binding(
        self,
        principal_id: str,
        scope: str,
        role_definition_id: str,
        assignment_resource_id: str | None = None,
    ) -> None:
        self.calls.append(RecordedCall("delete_binding", (principal_id, scope, role_definition_id)))
        binding = Binding(scope, principal_id, role_definition_id)
        if binding in self.delete_failures:
            raise RuntimeError(f"delete failed for {binding}")
        if binding not in self.bindings:
            raise ResourceNotFoundError(f"role assignment not found: {binding}")
        self.bindings.discard(binding)


class RecordingSleep:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
