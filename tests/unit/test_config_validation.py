"""Unit tests for configuration validation."""

import pytest
from pydantic import SecretStr

from tenantdb.config.settings import (
    MigrationSettings,
    SecretsBackendName,
    Settings,
    VaultAuthMethod,
)
from tenantdb.config.validation import (
    ValidationResult,
    ValidationSeverity,
    validate_configuration,
    validate_or_raise,
)
from tenantdb.utils.exceptions import ConfigurationError


def errors_for(settings: Settings) -> set[str]:
    return {
        r.field
        for r in validate_configuration(settings)
        if r.severity == ValidationSeverity.ERROR
    }


class TestValidationResult:
    """Tests for ValidationResult class."""

    def test_validation_result_str_error(self):
        """Test string representation for error."""
        result = ValidationResult(
            field="TEST_FIELD",
            severity=ValidationSeverity.ERROR,
            message="Test error message",
        )
        text = str(result)
        assert "[ERROR]" in text
        assert "TEST_FIELD" in text
        assert "Test error message" in text

    def test_validation_result_with_suggestion(self):
        """Test string representation with suggestion."""
        result = ValidationResult(
            field="TEST_FIELD",
            severity=ValidationSeverity.WARNING,
            message="Test message",
            suggestion="Fix this by doing X",
        )
        text = str(result)
        assert "[WARNING]" in text
        assert "Suggestion: Fix this by doing X" in text


class TestSecretsValidation:
    """Tests for secret store checks."""

    def test_environment_backend_allowed_outside_production(self, test_settings: Settings):
        """Test that development settings pass."""
        assert validate_configuration(test_settings) == []

    def test_environment_backend_rejected_in_production(self):
        """Test that production must use Vault."""
        settings = Settings(
            ENVIRONMENT="production", SECRETS_BACKEND=SecretsBackendName.ENVIRONMENT
        )

        assert "SECRETS_BACKEND" in errors_for(settings)

    def test_vault_token_required(self):
        """Test that token auth needs a token."""
        settings = Settings(SECRETS_BACKEND=SecretsBackendName.VAULT)

        assert "VAULT_TOKEN" in errors_for(settings)

    def test_approle_fields_required(self):
        """Test that AppRole needs both IDs."""
        settings = Settings(
            SECRETS_BACKEND=SecretsBackendName.VAULT,
            VAULT_AUTH_METHOD=VaultAuthMethod.APPROLE,
            VAULT_ROLE_ID="role",
        )

        assert errors_for(settings) == {"VAULT_SECRET_ID"}

    def test_invalid_vault_address(self):
        """Test that VAULT_ADDR must be a URL."""
        settings = Settings(
            SECRETS_BACKEND=SecretsBackendName.VAULT,
            VAULT_TOKEN=SecretStr("t"),
            VAULT_ADDR="vault:8200",
        )

        assert errors_for(settings) == {"VAULT_ADDR"}

    def test_plain_http_in_production_warns(self):
        """Test that plain HTTP to Vault in production is a warning."""
        settings = Settings(
            ENVIRONMENT="production",
            SECRETS_BACKEND=SecretsBackendName.VAULT,
            VAULT_TOKEN=SecretStr("t"),
            VAULT_ADDR="http://vault:8200",
        )

        results = validate_configuration(settings)

        assert [r.severity for r in results] == [ValidationSeverity.WARNING]


class TestLocalModeValidation:
    """Tests for the local-mode guard."""

    def test_local_mode_rejected_in_production(self):
        """Test that LOCAL_MODE cannot run in production."""
        settings = Settings(
            ENVIRONMENT="production",
            LOCAL_MODE=True,
            VAULT_TOKEN=SecretStr("t"),
            VAULT_ADDR="https://vault:8200",
        )

        assert errors_for(settings) == {"LOCAL_MODE"}


class TestServiceValidation:
    """Tests for participating service checks."""

    @pytest.mark.parametrize(
        "services",
        [[], ["catalog", "catalog"], ["catalog", "a/b"], ["catalog", " "]],
    )
    def test_invalid_service_lists(self, test_settings: Settings, services: list[str]):
        """Test empty, duplicate and malformed service names."""
        settings = test_settings.model_copy(update={"TENANT_SERVICES": services})

        assert "TENANT_SERVICES" in errors_for(settings)


class TestMigrationValidation:
    """Tests for migration default checks."""

    def test_non_positive_timeout(self, test_settings: Settings):
        """Test that the command timeout must be positive."""
        settings = test_settings.model_copy(
            update={"migration": MigrationSettings(command_timeout_seconds=0)}
        )

        assert "MIGRATION__COMMAND_TIMEOUT_SECONDS" in errors_for(settings)

    def test_disabled_transactions_warn(self, test_settings: Settings):
        """Test that running without transactions is only a warning."""
        settings = test_settings.model_copy(
            update={"migration": MigrationSettings(use_transactions=False)}
        )

        results = validate_configuration(settings)

        assert len(results) == 1
        assert results[0].severity == ValidationSeverity.WARNING
        validate_or_raise(settings)


class TestValidateOrRaise:
    """Tests for validate_or_raise."""

    def test_raises_with_all_errors(self):
        """Test that every error is listed in the exception."""
        settings = Settings(
            ENVIRONMENT="production",
            SECRETS_BACKEND=SecretsBackendName.ENVIRONMENT,
            LOCAL_MODE=True,
        )

        with pytest.raises(ConfigurationError) as exc_info:
            validate_or_raise(settings)

        assert "SECRETS_BACKEND" in str(exc_info.value)
        assert "LOCAL_MODE" in str(exc_info.value)
