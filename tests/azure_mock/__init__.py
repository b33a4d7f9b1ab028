"""Azure API mocks for testing.

- FakeRoleAssignmentBackend: in-memory backend for the plan applier
- MockAzureContext: patches the Azure SDK clients used by AzureRoleAssignmentBackend

Usage:
    backend = FakeRoleAssignmentBackend(identities={"pa1": ManagedIdentity(principal_id="p-1")})
    result = await PlanApplier(backend, sleep=RecordingSleep()).apply(plan)
    assert backend.count("lookup_assignment") == 1
"""

from .authorization import (
    MockAuthorizationState,
    MockGenericResource,
    MockIdentity,
    MockIdentityValue,
    make_http_error,
)
from .backend import ALWAYS, Binding, FakeRoleAssignmentBackend, RecordingSleep
from .context import MockAzureContext
from .credential import MockCredential, MockCredentialFactory

__all__ = [
    "ALWAYS",
    "Binding",
    "FakeRoleAssignmentBackend",
    "MockAuthorizationState",
    "MockAzureContext",
    "MockCredential",
    "MockCredentialFactory",
    "MockGenericResource",
    "MockIdentity",
    "MockIdentityValue",
    "RecordingSleep",
    "make_http_error",
]
