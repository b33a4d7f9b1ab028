"""Principal resolution for role assignments owned by policy assignments.

Policies with a deployIfNotExists or modify effect get a managed identity
when their assignment is created. A plan computed before that identity
existed only knows the policy assignment id; the principal is looked up
here, once per policy assignment per run.
"""

from __future__ import annotations

import logging

from .backend import RoleAssignmentBackend
from .models import ManagedIdentity, RoleAssignmentRecord

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Resolves and caches policy assignment identities for a single run.

    A failed or empty lookup is cached as None, so every distinct
    assignment id costs at most one backend call.
    """

    def __init__(self, backend: RoleAssignmentBackend) -> None:
        self._backend = backend
        self._cache: dict[str, ManagedIdentity | None] = {}
        self._lookup_count = 0

    @property
    def lookup_count(self) -> int:
        """Number of backend lookups issued so far."""
        return self._lookup_count

    @property
    def cache(self) -> dict[str, ManagedIdentity | None]:
        """Snapshot of the identity cache."""
        return dict(self._cache)

    def _lookup(self, assignment_id: str) -> ManagedIdentity | None:
        if assignment_id in self._cache:
            return self._cache[assignment_id]

        self._lookup_count += 1
        identity: ManagedIdentity | None
        try:
            identity = self._backend.lookup_assignment(assignment_id)
        except Exception as e:
            logger.warning(
                f"Identity lookup failed: {e}",
                extra={"assignment_id": assignment_id, "error_type": type(e).__name__},
            )
            identity = None

        self._cache[assignment_id] = identity
        return identity

    def resolve(self, record: RoleAssignmentRecord) -> RoleAssignmentRecord:
        """Return the record with its principal id filled in.

        Records that already carry a principal id are returned unchanged.
        If resolution fails the returned copy still has principal_id None.
        """
        if not record.needs_resolution:
            return record
        if not record.assignment_id:
            return record

        identity = self._lookup(record.assignment_id)
        principal_id = identity.principal_id if identity else None
        if principal_id:
            logger.debug(
                "Resolved principal from policy assignment",
                extra={"assignment_id": record.assignment_id, "principal_id": principal_id},
            )
        return record.with_principal_id(principal_id)
