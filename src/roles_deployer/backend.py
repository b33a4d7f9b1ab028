"""Authorization backend used by the plan applier.

The applier only talks to a RoleAssignmentBackend. AzureRoleAssignmentBackend
implements it with the Azure SDK; tests substitute an in-memory fake.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Protocol

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError
from azure.mgmt.authorization import AuthorizationManagementClient
from azure.mgmt.authorization.models import RoleAssignmentCreateParameters
from azure.mgmt.resource import ResourceManagementClient

from .config import AzureCloud
from .models import ManagedIdentity, PrincipalType
from .roles import normalize_role_definition_id, role_definition_guid
from .security import log_security_audit_event

logger = logging.getLogger(__name__)

ARM_ENDPOINTS: dict[AzureCloud, str] = {
    AzureCloud.PUBLIC: "https://management.azure.com",
    AzureCloud.US_GOVERNMENT: "https://management.usgovcloudapi.net",
    AzureCloud.CHINA: "https://management.chinacloudapi.cn",
}

POLICY_ASSIGNMENT_API_VERSION = "2023-04-01"

# Scope-based operations ignore the client's subscription, but the SDK
# clients still require one at construction.
SCOPE_ONLY_SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000000"


class RoleAssignmentBackend(Protocol):
    """Operations the applier needs from the authorization service."""

    def lookup_assignment(self, assignment_id: str) -> ManagedIdentity | None:
        """Return the managed identity of a policy assignment, if any."""
        ...

    def query_binding(self, scope: str, principal_id: str, role_definition_id: str) -> bool:
        """Return True if the role assignment already exists."""
        ...

    def create_binding(
        self,
        principal_id: str,
        object_type: PrincipalType | None,
        scope: str,
        role_definition_id: str,
        description: str | None = None,
    ) -> str | None:
        """Create a role assignment; return its id, or None on failure."""
        ...

    def delete_binding(
        self,
        principal_id: str,
        scope: str,
        role_definition_id: str,
        assignment_resource_id: str | None = None,
    ) -> None:
        """Delete a role assignment."""
        ...


def same_scope(left: str | None, right: str) -> bool:
    """ARM scopes compare case-insensitively and ignore a trailing slash."""
    if left is None:
        return False
    return left.rstrip("/").lower() == right.rstrip("/").lower()


def role_assignment_name(principal_id: str, role_definition_id: str, scope: str) -> str:
    """Deterministic role assignment name, so re-runs target the same resource."""
    key = f"{principal_id}:{role_definition_guid(role_definition_id)}:{scope.lower()}"
    return str(uuid.uuid5(uuid.NAMESPACE_DNS, key))


def identity_from_resource(resource: Any) -> ManagedIdentity | None:
    """Extract the managed identity from a generic policy assignment resource.

    System-assigned identities carry the principal id directly; for a
    user-assigned identity it is read from the single attached identity.
    """
    identity = getattr(resource, "identity", None)
    if identity is None:
        return None

    identity_type = str(getattr(identity, "type", None) or "None")
    if identity_type.lower() == "none":
        return None

    principal_id = getattr(identity, "principal_id", None)
    if not principal_id:
        user_assigned = getattr(identity, "user_assigned_identities", None) or {}
        for value in user_assigned.values():
            principal_id = getattr(value, "principal_id", None)
            if principal_id:
                break

    return ManagedIdentity(
        principal_id=principal_id,
        tenant_id=getattr(identity, "tenant_id", None),
        identity_type=identity_type,
    )


class AzureRoleAssignmentBackend:
    """RoleAssignmentBackend backed by Azure Resource Manager.

    Failures of lookup, query and create are logged and reported through the
    return value. Delete errors propagate so the caller can account for them.
    """

    def __init__(
        self,
        credential: TokenCredential,
        cloud: AzureCloud = AzureCloud.PUBLIC,
    ) -> None:
        base_url = ARM_ENDPOINTS[cloud]
        credential_scopes = [f"{base_url}/.default"]

        self._authorization_client = AuthorizationManagementClient(
            credential=credential,
            subscription_id=SCOPE_ONLY_SUBSCRIPTION_ID,
            base_url=base_url,
            credential_scopes=credential_scopes,
        )
        self._resource_client = ResourceManagementClient(
            credential=credential,
            subscription_id=SCOPE_ONLY_SUBSCRIPTION_ID,
            base_url=base_url,
            credential_scopes=credential_scopes,
        )

    def lookup_assignment(self, assignment_id: str) -> ManagedIdentity | None:
        try:
            resource = self._resource_client.resources.get_by_id(
                resource_id=assignment_id,
                api_version=POLICY_ASSIGNMENT_API_VERSION,
            )
        except ResourceNotFoundError:
            logger.warning("Policy assignment not found", extra={"assignment_id": assignment_id})
            return None
        except AzureError as e:
            logger.warning(
                f"Azure error reading policy assignment: {e}",
                extra={"assignment_id": assignment_id, "error_type": type(e).__name__},
            )
            return None

        identity = identity_from_resource(resource)
        if identity is None:
            logger.warning(
                "Policy assignment has no managed identity",
                extra={"assignment_id": assignment_id},
            )
        return identity

    def _find(self, scope: str, principal_id: str, role_definition_id: str) -> list[Any]:
        wanted_role = role_definition_guid(role_definition_id)
        assignments = self._authorization_client.role_assignments.list_for_scope(
            scope=scope,
            filter=f"principalId eq '{principal_id}'",
        )
        return [
            ra
            for ra in assignments
            if same_scope(ra.scope, scope)
            and ra.role_definition_id
            and role_definition_guid(ra.role_definition_id) == wanted_role
        ]

    def query_binding(self, scope: str, principal_id: str, role_definition_id: str) -> bool:
        try:
            return bool(self._find(scope, principal_id, role_definition_id))
        except AzureError as e:
            logger.warning(
                f"Failed to query role assignments: {e}",
                extra={
                    "scope": scope,
                    "principal_id": principal_id,
                    "role_definition_id": role_definition_id,
                },
            )
            return False

    def create_binding(
        self,
        principal_id: str,
        object_type: PrincipalType | None,
        scope: str,
        role_definition_id: str,
        description: str | None = None,
    ) -> str | None:
        name = role_assignment_name(principal_id, role_definition_id, scope)
        parameters = RoleAssignmentCreateParameters(
            role_definition_id=normalize_role_definition_id(role_definition_id),
            principal_id=principal_id,
            principal_type=object_type.value if object_type else None,
            description=description,
        )

        try:
            created = self._authorization_client.role_assignments.create(
                scope=scope,
                role_assignment_name=name,
                parameters=parameters,
            )
        except HttpResponseError as e:
            error_code = e.error.code if e.error else None
            # Another writer created it between the existence check and now
            if e.status_code == 409 and error_code == "RoleAssignmentExists":
                logger.info(
                    "Role assignment already exists",
                    extra={"scope": scope, "principal_id": principal_id},
                )
                return f"{scope.rstrip('/')}/providers/Microsoft.Authorization/roleAssignments/{name}"
            logger.warning(
                f"Azure API error creating role assignment: {e.message}",
                extra={
                    "status_code": e.status_code,
                    "error_code": error_code,
                    "scope": scope,
                    "principal_id": principal_id,
                },
            )
            return None
        except AzureError as e:
            logger.warning(
                f"Azure error creating role assignment: {e}",
                extra={"scope": scope, "principal_id": principal_id},
            )
            return None

        log_security_audit_event(
            "role_assignment",
            target_resource=scope,
            action="create",
            result="success",
            principal_id=principal_id,
        )
        return created.id if created is not None else None

    def delete_binding(
        self,
        principal_id: str,
        scope: str,
        role_definition_id: str,
        assignment_resource_id: str | None = None,
    ) -> None:
        """Delete the role assignment by resource id, or every match at the scope.

        Every target is attempted. The first error is raised afterwards.

        Raises:
            ResourceNotFoundError: If there is nothing to delete.
            AzureError: If a delete call failed.
        """
        if assignment_resource_id:
            targets = [assignment_resource_id]
        elif principal_id:
            targets = [ra.id for ra in self._find(scope, principal_id, role_definition_id)]
        else:
            raise ResourceNotFoundError(
                f"Cannot locate role assignment at {scope} without principal or resource id"
            )

        if not targets:
            raise ResourceNotFoundError(
                f"No role assignment for principal {principal_id} with role "
                f"{role_definition_id} at {scope}"
            )

        errors: list[AzureError] = []
        for target in targets:
            try:
                self._authorization_client.role_assignments.delete_by_id(role_assignment_id=target)
            except AzureError as e:
                logger.warning(
                    f"Failed to delete role assignment: {e}",
                    extra={"role_assignment_id": target, "error_type": type(e).__name__},
                )
                errors.append(e)
                continue
            log_security_audit_event(
                "role_assignment",
                target_resource=target,
                action="delete",
                result="success",
                principal_id=principal_id,
            )

        if errors:
            raise errors[0]
