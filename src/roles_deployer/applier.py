"""Applies a roles plan to Azure RBAC.

Removals are processed first, then additions, each in plan order. For
every addition:

    Unresolved -> Resolved -> AlreadyExists
                           -> Creating -> Created | Exhausted
    Unresolved -> (no principal) -> skipped

Additions whose role cannot be recognized, or that raise unexpectedly,
end as Failed.

No single record aborts the run. A failure is logged and recorded as an
event before processing moves on to the next record.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from .assignments import ExistenceChecker, Remover, RetryingCreator, SleepFunc
from .backend import RoleAssignmentBackend
from .config import RetryPolicy
from .identity import IdentityResolver
from .models import RoleAssignmentRecord, RolesPlan
from .roles import normalize_role_definition_id

module_logger = logging.getLogger(__name__)


class RecordKind(str, Enum):
    ADDITION = "addition"
    REMOVAL = "removal"


class AdditionOutcome(str, Enum):
    """Terminal states of an addition."""

    ALREADY_EXISTS = "AlreadyExists"
    CREATED = "Created"
    EXHAUSTED = "Exhausted"
    UNRESOLVED = "Unresolved"
    FAILED = "Failed"


class RemovalOutcome(str, Enum):
    """Terminal states of a removal."""

    REMOVED = "Removed"
    FAILED = "Failed"


@dataclass(frozen=True)
class RecordEvent:
    """Progress event emitted once per processed record."""

    kind: RecordKind
    outcome: AdditionOutcome | RemovalOutcome
    record: RoleAssignmentRecord
    attempts: int = 0
    message: str = ""


@dataclass
class ApplyResult:
    """Result of applying one roles plan."""

    skipped: bool = False
    plan_created_on: datetime | None = None
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    events: list[RecordEvent] = field(default_factory=list)

    def _count(self, outcome: AdditionOutcome | RemovalOutcome) -> int:
        return sum(1 for event in self.events if event.outcome is outcome)

    @property
    def created(self) -> int:
        return self._count(AdditionOutcome.CREATED)

    @property
    def already_existed(self) -> int:
        return self._count(AdditionOutcome.ALREADY_EXISTS)

    @property
    def exhausted(self) -> int:
        return self._count(AdditionOutcome.EXHAUSTED)

    @property
    def unresolved(self) -> int:
        return self._count(AdditionOutcome.UNRESOLVED)

    @property
    def failed(self) -> int:
        return self._count(AdditionOutcome.FAILED)

    @property
    def removed(self) -> int:
        return self._count(RemovalOutcome.REMOVED)

    @property
    def removal_failures(self) -> int:
        return self._count(RemovalOutcome.FAILED)

    @property
    def degraded(self) -> bool:
        """True if any addition was not applied."""
        return self.exhausted > 0 or self.unresolved > 0 or self.failed > 0

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()


class PlanApplier:
    """Runs the per-record state machine over a plan.

    The identity cache lives for a single apply() call.
    """

    def __init__(
        self,
        backend: RoleAssignmentBackend,
        policy: RetryPolicy | None = None,
        sleep: SleepFunc = asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._backend = backend
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self._logger = logger or module_logger

        self._checker = ExistenceChecker(backend)
        self._creator = RetryingCreator(backend, self._policy, sleep)
        self._remover = Remover(backend)

    async def apply(self, plan: RolesPlan | None) -> ApplyResult:
        """Apply all removals, then all additions.

        Args:
            plan: The plan to apply, or None when no plan was produced.

        Returns:
            ApplyResult with one event per processed record.
        """
        result = ApplyResult()

        if plan is None:
            self._logger.info("No roles plan, deployment skipped")
            result.skipped = True
            result.end_time = datetime.now(UTC)
            return result

        result.plan_created_on = plan.created_on
        self._logger.info(
            "Applying roles plan",
            extra={
                "created_on": plan.created_on.isoformat(),
                "removals": len(plan.removed),
                "additions": len(plan.added),
            },
        )

        if plan.removed:
            self._logger.info(f"Removing {len(plan.removed)} role assignment(s)")
        for record in plan.removed:
            result.events.append(self._apply_removal(record))

        resolver = IdentityResolver(self._backend)
        if plan.added:
            self._logger.info(f"Adding {len(plan.added)} role assignment(s)")
        for record in plan.added:
            try:
                event = await self._apply_addition(record, resolver)
            except Exception as e:
                self._logger.exception(
                    "Unexpected error applying role assignment",
                    extra={"scope": record.scope, "error": str(e)},
                )
                event = RecordEvent(
                    kind=RecordKind.ADDITION,
                    outcome=AdditionOutcome.FAILED,
                    record=record,
                    message=f"unexpected error: {e}",
                )
            result.events.append(event)

        result.end_time = datetime.now(UTC)
        self._logger.info(
            "Roles plan applied",
            extra={
                "created_on": plan.created_on.isoformat(),
                "removed": result.removed,
                "removal_failures": result.removal_failures,
                "created": result.created,
                "already_existed": result.already_existed,
                "exhausted": result.exhausted,
                "unresolved": result.unresolved,
                "failed": result.failed,
                "duration_seconds": result.duration_seconds,
            },
        )
        return result

    def _apply_removal(self, record: RoleAssignmentRecord) -> RecordEvent:
        if self._remover.remove(record):
            self._logger.info(f"Removed {record.label}")
            return RecordEvent(
                kind=RecordKind.REMOVAL,
                outcome=RemovalOutcome.REMOVED,
                record=record,
                attempts=1,
            )

        self._logger.warning(f"Failed to remove {record.label}")
        return RecordEvent(
            kind=RecordKind.REMOVAL,
            outcome=RemovalOutcome.FAILED,
            record=record,
            attempts=1,
            message="delete failed",
        )

    async def _apply_addition(
        self, record: RoleAssignmentRecord, resolver: IdentityResolver
    ) -> RecordEvent:
        try:
            normalize_role_definition_id(record.role_definition_id)
        except ValueError as e:
            self._logger.warning(f"Skipping {record.label}: {e}")
            return RecordEvent(
                kind=RecordKind.ADDITION,
                outcome=AdditionOutcome.FAILED,
                record=record,
                message=str(e),
            )

        resolved = resolver.resolve(record)
        if resolved.principal_id is None:
            reason = (
                "no managed identity on policy assignment"
                if record.assignment_id
                else "neither principalId nor assignmentId"
            )
            self._logger.warning(
                f"Skipping {record.label}: {reason}",
                extra={"assignment_id": record.assignment_id},
            )
            return RecordEvent(
                kind=RecordKind.ADDITION,
                outcome=AdditionOutcome.UNRESOLVED,
                record=resolved,
                message="principal could not be resolved",
            )

        if self._checker.exists(
            resolved.scope, resolved.principal_id, resolved.role_definition_id
        ):
            self._logger.info(f"Already exists {resolved.label}")
            return RecordEvent(
                kind=RecordKind.ADDITION,
                outcome=AdditionOutcome.ALREADY_EXISTS,
                record=resolved,
            )

        creation = await self._creator.create(resolved)
        if creation.succeeded:
            self._logger.info(
                f"Added {resolved.label}",
                extra={"attempts": creation.attempts},
            )
            return RecordEvent(
                kind=RecordKind.ADDITION,
                outcome=AdditionOutcome.CREATED,
                record=resolved,
                attempts=creation.attempts,
            )

        self._logger.warning(
            f"Failed to add {resolved.label} after {creation.attempts} attempt(s)",
            extra={"error": creation.last_error},
        )
        return RecordEvent(
            kind=RecordKind.ADDITION,
            outcome=AdditionOutcome.EXHAUSTED,
            record=resolved,
            attempts=creation.attempts,
            message=creation.last_error or "",
        )
