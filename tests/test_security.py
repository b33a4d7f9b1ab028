"""Tests for secretless credential acquisition.

The deployer must refuse to start when credential secrets are present in
the environment, and otherwise authenticate with a managed identity or an
interactive login.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from unittest import mock

import pytest

from roles_deployer.config import AzureCloud, Config
from roles_deployer.security import (
    AUTHORITY_HOSTS,
    FORBIDDEN_CREDENTIAL_ENV_VARS,
    SecretlessViolationError,
    enforce_secretless_architecture,
    get_credential,
    log_security_audit_event,
)


class TestSecretlessEnforcement:
    """Tests for secretless architecture enforcement."""

    def test_clean_environment_passes(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            enforce_secretless_architecture()

    @pytest.mark.parametrize("env_var", FORBIDDEN_CREDENTIAL_ENV_VARS)
    def test_forbidden_env_var_raises(self, env_var: str) -> None:
        """Test that each forbidden env var raises SecretlessViolationError."""
        with mock.patch.dict(os.environ, {env_var: "some-secret-value"}, clear=True):
            with pytest.raises(SecretlessViolationError) as exc_info:
                enforce_secretless_architecture()

        assert env_var in str(exc_info.value)
        assert "SECURITY VIOLATION" in str(exc_info.value)

    def test_empty_value_ignored(self) -> None:
        with mock.patch.dict(os.environ, {"AZURE_CLIENT_SECRET": ""}, clear=True):
            enforce_secretless_architecture()

    def test_forbidden_list_is_tuple(self) -> None:
        assert isinstance(FORBIDDEN_CREDENTIAL_ENV_VARS, tuple)


class TestGetCredential:
    """Tests for get_credential."""

    def test_rejects_secret_env_var(self, input_folder: Path) -> None:
        config = Config(pac_selector="dev", input_folder=input_folder)

        with mock.patch.dict(os.environ, {"AZURE_CLIENT_SECRET": "secret"}, clear=True):
            with pytest.raises(SecretlessViolationError):
                get_credential(config)

    @mock.patch("roles_deployer.security.ManagedIdentityCredential")
    def test_system_assigned_by_default(
        self, mock_credential_class: mock.Mock, input_folder: Path
    ) -> None:
        config = Config(pac_selector="dev", input_folder=input_folder)

        with mock.patch.dict(os.environ, {}, clear=True):
            result = get_credential(config)

        mock_credential_class.assert_called_once_with()
        assert result is mock_credential_class.return_value

    @mock.patch("roles_deployer.security.ManagedIdentityCredential")
    def test_user_assigned_with_client_id(
        self, mock_credential_class: mock.Mock, input_folder: Path
    ) -> None:
        config = Config(pac_selector="dev", input_folder=input_folder, client_id="client-12345678")

        with mock.patch.dict(os.environ, {}, clear=True):
            get_credential(config)

        mock_credential_class.assert_called_once_with(client_id="client-12345678")

    @mock.patch("roles_deployer.security.ManagedIdentityCredential")
    @mock.patch("roles_deployer.security.InteractiveBrowserCredential")
    def test_interactive_login(
        self,
        mock_browser_class: mock.Mock,
        mock_managed_class: mock.Mock,
        input_folder: Path,
    ) -> None:
        tenant = "11111111-2222-3333-4444-555555555555"
        config = Config(
            pac_selector="dev",
            input_folder=input_folder,
            interactive=True,
            tenant_id=tenant,
            cloud=AzureCloud.CHINA,
        )

        with mock.patch.dict(os.environ, {}, clear=True):
            result = get_credential(config)

        mock_browser_class.assert_called_once_with(
            tenant_id=tenant, authority=AUTHORITY_HOSTS[AzureCloud.CHINA]
        )
        mock_managed_class.assert_not_called()
        assert result is mock_browser_class.return_value

    @mock.patch("roles_deployer.security.InteractiveBrowserCredential")
    def test_interactive_without_tenant(
        self, mock_browser_class: mock.Mock, input_folder: Path
    ) -> None:
        config = Config(pac_selector="dev", input_folder=input_folder, interactive=True)

        with mock.patch.dict(os.environ, {}, clear=True):
            get_credential(config)

        mock_browser_class.assert_called_once_with(authority=AUTHORITY_HOSTS[AzureCloud.PUBLIC])


class TestSecurityAudit:
    """Tests for audit logging."""

    def test_audit_event_fields(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="roles_deployer.security"):
            log_security_audit_event(
                event_type="role_assignment_created",
                target_resource="/subscriptions/s1",
                action="create",
                result="success",
                principal_id="p-1",
            )

        record = caplog.records[-1]
        assert record.getMessage() == "Security audit: role_assignment_created"
        assert record.security_audit is True  # type: ignore[attr-defined]
        assert record.principal_id == "p-1"  # type: ignore[attr-defined]
