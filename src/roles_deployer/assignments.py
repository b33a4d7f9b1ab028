"""Existence checks and retried creation for additions, single-shot removal."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .backend import RoleAssignmentBackend
from .config import RetryPolicy
from .models import RoleAssignmentRecord

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class CreationResult:
    """Outcome of a creation attempt sequence."""

    succeeded: bool
    attempts: int
    role_assignment_id: str | None = None
    last_error: str | None = None


class ExistenceChecker:
    """Answers whether a role assignment is already in place."""

    def __init__(self, backend: RoleAssignmentBackend) -> None:
        self._backend = backend

    def exists(self, scope: str, principal_id: str, role_definition_id: str) -> bool:
        """Return True iff the binding exists.

        A failing query is treated as "does not exist" so that creation is
        still attempted.
        """
        try:
            return bool(self._backend.query_binding(scope, principal_id, role_definition_id))
        except Exception as e:
            logger.warning(
                f"Existence check failed, assuming absent: {e}",
                extra={
                    "scope": scope,
                    "principal_id": principal_id,
                    "role_definition_id": role_definition_id,
                },
            )
            return False


class RetryingCreator:
    """Creates role assignments, retrying at a fixed interval.

    Entra ID replication makes a freshly created principal invisible to
    Azure RBAC for a while, so every failure is treated as transient.
    """

    def __init__(
        self,
        backend: RoleAssignmentBackend,
        policy: RetryPolicy | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._backend = backend
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def create(self, record: RoleAssignmentRecord) -> CreationResult:
        """Create the binding for a resolved record.

        Returns:
            CreationResult; exhaustion is reported, never raised.

        Raises:
            ValueError: If the record has no principal id.
        """
        if record.principal_id is None:
            raise ValueError(f"Cannot create unresolved role assignment: {record.label}")

        attempts = 0
        last_error: str | None = None

        while attempts < self._policy.max_attempts:
            attempts += 1
            try:
                created = self._backend.create_binding(
                    record.principal_id,
                    record.principal_type,
                    record.scope,
                    record.role_definition_id,
                    record.description,
                )
            except Exception as e:
                created = None
                last_error = str(e) or type(e).__name__
            else:
                if created:
                    return CreationResult(
                        succeeded=True, attempts=attempts, role_assignment_id=created
                    )
                last_error = "create returned no result"

            if attempts < self._policy.max_attempts:
                logger.warning(
                    "Role assignment creation failed, retrying",
                    extra={
                        "attempt": attempts,
                        "max_attempts": self._policy.max_attempts,
                        "wait_seconds": self._policy.interval_seconds,
                        "scope": record.scope,
                        "principal_id": record.principal_id,
                    },
                )
                await self._sleep(self._policy.interval_seconds)

        logger.error(
            "Role assignment creation failed after all attempts",
            extra={
                "attempts": attempts,
                "scope": record.scope,
                "principal_id": record.principal_id,
                "role_definition_id": record.role_definition_id,
                "error": last_error,
            },
        )
        return CreationResult(succeeded=False, attempts=attempts, last_error=last_error)


class Remover:
    """Deletes obsolete role assignments, one attempt each."""

    def __init__(self, backend: RoleAssignmentBackend) -> None:
        self._backend = backend

    def remove(self, record: RoleAssignmentRecord) -> bool:
        """Delete the binding; return False if the backend raised."""
        try:
            self._backend.delete_binding(
                record.principal_id or "",
                record.scope,
                record.role_definition_id,
                record.id,
            )
        except Exception as e:
            logger.warning(
                f"Failed to remove role assignment: {e}",
                extra={
                    "scope": record.scope,
                    "principal_id": record.principal_id,
                    "role_definition_id": record.role_definition_id,
                    "error_type": type(e).__name__,
                },
            )
            return False
        return True
