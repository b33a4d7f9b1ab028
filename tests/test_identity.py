"""Tests for principal resolution from policy assignment identities."""

from __future__ import annotations

from azure_mock import FakeRoleAssignmentBackend
from factories import make_record

from roles_deployer.identity import IdentityResolver
from roles_deployer.models import ManagedIdentity


class TestIdentityResolver:
    """Tests for IdentityResolver."""

    def test_cache_hit_avoids_lookup(self) -> None:
        """Test that the second record for an assignment uses the cache."""
        backend = FakeRoleAssignmentBackend(identities={"pa1": ManagedIdentity(principal_id="p-1")})
        resolver = IdentityResolver(backend)

        first = resolver.resolve(make_record(assignmentId="pa1"))
        second = resolver.resolve(make_record(assignmentId="pa1", scope="/subscriptions/x"))

        assert first.principal_id == "p-1"
        assert second.principal_id == "p-1"
        assert resolver.lookup_count == 1
        assert backend.count("lookup_assignment") == 1
        assert set(resolver.cache) == {"pa1"}

    def test_returns_copy(self) -> None:
        """Test that the input record is left untouched."""
        backend = FakeRoleAssignmentBackend(identities={"pa1": ManagedIdentity(principal_id="p-1")})
        record = make_record(assignmentId="pa1")

        resolved = IdentityResolver(backend).resolve(record)

        assert resolved is not record
        assert record.principal_id is None
        assert resolved.assignment_id == "pa1"

    def test_record_with_principal_unchanged(self) -> None:
        """Test that resolved records pass through without calls."""
        backend = FakeRoleAssignmentBackend()
        record = make_record(principalId="p-9")

        assert IdentityResolver(backend).resolve(record) is record
        assert backend.calls == []

    def test_identity_without_principal(self) -> None:
        """Test an identity that carries no principal id."""
        backend = FakeRoleAssignmentBackend(identities={"pa1": ManagedIdentity(principal_id=None)})
        resolver = IdentityResolver(backend)

        resolved = resolver.resolve(make_record(assignmentId="pa1"))

        assert resolved.principal_id is None

    def test_missing_identity_cached(self) -> None:
        """Test that an assignment without identity is looked up once."""
        backend = FakeRoleAssignmentBackend()
        resolver = IdentityResolver(backend)

        for _ in range(3):
            assert resolver.resolve(make_record(assignmentId="pa-missing")).principal_id is None

        assert resolver.lookup_count == 1
        assert resolver.cache == {"pa-missing": None}

    def test_raising_lookup_cached(self) -> None:
        """Test that a failing lookup is swallowed and cached."""
        backend = FakeRoleAssignmentBackend()
        backend.lookup_raises = True
        resolver = IdentityResolver(backend)

        resolver.resolve(make_record(assignmentId="pa1"))
        resolver.resolve(make_record(assignmentId="pa1"))

        assert backend.count("lookup_assignment") == 1

    def test_separate_resolvers_have_separate_caches(self) -> None:
        """Test that caches are not shared between runs."""
        backend = FakeRoleAssignmentBackend(identities={"pa1": ManagedIdentity(principal_id="p-1")})

        IdentityResolver(backend).resolve(make_record(assignmentId="pa1"))
        IdentityResolver(backend).resolve(make_record(assignmentId="pa1"))

        assert backend.count("lookup_assignment") == 2
