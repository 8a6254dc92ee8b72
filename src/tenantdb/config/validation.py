"""Configuration validation for startup checks.

Validates that required configuration is present and consistent before
the service starts provisioning tenants or running migrations.

Usage:
    from tenantdb.config.validation import validate_or_raise

    validate_or_raise()
"""

import logging
from dataclasses import dataclass
from enum import Enum

from tenantdb.config.settings import SecretsBackendName, Settings, VaultAuthMethod, get_settings
from tenantdb.utils.exceptions import ConfigurationError

logger = logging.getLogger("tenantdb.config")


class ValidationSeverity(str, Enum):
    """Severity of configuration validation issues."""

    ERROR = "error"  # Must be fixed, process cannot start
    WARNING = "warning"  # Should be fixed, process can start


@dataclass
class ValidationResult:
    """Result of a configuration validation check."""

    field: str
    severity: ValidationSeverity
    message: str
    suggestion: str | None = None

    def __str__(self) -> str:
        prefix = "ERROR" if self.severity == ValidationSeverity.ERROR else "WARNING"
        result = f"[{prefix}] {self.field}: {self.message}"
        if self.suggestion:
            result += f"\n  Suggestion: {self.suggestion}"
        return result


def validate_configuration(settings: Settings | None = None) -> list[ValidationResult]:
    """Validate application configuration.

    Args:
        settings: Settings to validate (default: global settings)

    Returns:
        List of validation results (empty if all checks pass)
    """
    if settings is None:
        settings = get_settings()

    results: list[ValidationResult] = []
    results.extend(_validate_secrets(settings))
    results.extend(_validate_local_mode(settings))
    results.extend(_validate_services(settings))
    results.extend(_validate_migration(settings))
    return results


def validate_or_raise(settings: Settings | None = None) -> None:
    """Validate configuration and raise if errors found.

    Raises:
        ConfigurationError: If any validation errors are found
    """
    results = validate_configuration(settings)
    errors = [r for r in results if r.severity == ValidationSeverity.ERROR]

    if errors:
        error_messages = "\n".join(str(e) for e in errors)
        raise ConfigurationError(f"Configuration validation failed:\n{error_messages}")

    for warning in (r for r in results if r.severity == ValidationSeverity.WARNING):
        logger.warning(str(warning))


# =============================================================================
# Validators
# =============================================================================


def _validate_secrets(settings: Settings) -> list[ValidationResult]:
    """Validate secret store configuration for the selected auth method."""
    results: list[ValidationResult] = []

    if settings.SECRETS_BACKEND != SecretsBackendName.VAULT:
        if settings.is_production:
            results.append(
                ValidationResult(
                    field="SECRETS_BACKEND",
                    severity=ValidationSeverity.ERROR,
                    message="Environment secrets backend cannot be used in production",
                    suggestion="Set SECRETS_BACKEND=vault",
                )
            )
        return results

    method = settings.VAULT_AUTH_METHOD
    required: dict[VaultAuthMethod, list[tuple[str, object]]] = {
        VaultAuthMethod.TOKEN: [("VAULT_TOKEN", settings.VAULT_TOKEN)],
        VaultAuthMethod.APPROLE: [
            ("VAULT_ROLE_ID", settings.VAULT_ROLE_ID),
            ("VAULT_SECRET_ID", settings.VAULT_SECRET_ID),
        ],
        VaultAuthMethod.KUBERNETES: [("VAULT_KUBERNETES_ROLE", settings.VAULT_KUBERNETES_ROLE)],
        VaultAuthMethod.USERPASS: [
            ("VAULT_USERNAME", settings.VAULT_USERNAME),
            ("VAULT_PASSWORD", settings.VAULT_PASSWORD),
        ],
    }
    for field_name, value in required[method]:
        if not value:
            results.append(
                ValidationResult(
                    field=field_name,
                    severity=ValidationSeverity.ERROR,
                    message=f"{field_name} is required for Vault {method.value} authentication",
                    suggestion=f"Set {field_name} or choose another VAULT_AUTH_METHOD",
                )
            )

    if not settings.VAULT_ADDR.startswith(("http://", "https://")):
        results.append(
            ValidationResult(
                field="VAULT_ADDR",
                severity=ValidationSeverity.ERROR,
                message=f"Invalid Vault address: {settings.VAULT_ADDR}",
                suggestion="Use a full URL such as https://vault.internal:8200",
            )
        )
    elif settings.is_production and settings.VAULT_ADDR.startswith("http://"):
        results.append(
            ValidationResult(
                field="VAULT_ADDR",
                severity=ValidationSeverity.WARNING,
                message="Vault is reached over plain HTTP in production",
            )
        )

    return results


def _validate_local_mode(settings: Settings) -> list[ValidationResult]:
    """Local mode turns migration failures into successes and must never reach production."""
    if settings.LOCAL_MODE and settings.is_production:
        return [
            ValidationResult(
                field="LOCAL_MODE",
                severity=ValidationSeverity.ERROR,
                message="LOCAL_MODE is enabled in production",
                suggestion="Unset LOCAL_MODE for production deployments",
            )
        ]
    return []


def _validate_services(settings: Settings) -> list[ValidationResult]:
    """Validate the participating service list."""
    results: list[ValidationResult] = []

    if not settings.TENANT_SERVICES:
        results.append(
            ValidationResult(
                field="TENANT_SERVICES",
                severity=ValidationSeverity.ERROR,
                message="No services participate in tenant onboarding",
                suggestion='Set TENANT_SERVICES, e.g. ["catalog", "orders", "customer"]',
            )
        )
    elif len(set(settings.TENANT_SERVICES)) != len(settings.TENANT_SERVICES):
        results.append(
            ValidationResult(
                field="TENANT_SERVICES",
                severity=ValidationSeverity.ERROR,
                message="Service names must be unique",
            )
        )

    for name in settings.TENANT_SERVICES:
        if "/" in name or not name.strip():
            results.append(
                ValidationResult(
                    field="TENANT_SERVICES",
                    severity=ValidationSeverity.ERROR,
                    message=f"Invalid service name: {name!r}",
                    suggestion="Service names become secret path segments and cannot contain '/'",
                )
            )

    return results


def _validate_migration(settings: Settings) -> list[ValidationResult]:
    """Validate migration defaults."""
    results: list[ValidationResult] = []

    if settings.migration.command_timeout_seconds <= 0:
        results.append(
            ValidationResult(
                field="MIGRATION__COMMAND_TIMEOUT_SECONDS",
                severity=ValidationSeverity.ERROR,
                message="Command timeout must be positive",
            )
        )

    if not settings.migration.use_transactions:
        results.append(
            ValidationResult(
                field="MIGRATION__USE_TRANSACTIONS",
                severity=ValidationSeverity.WARNING,
                message="Migrations run without a transaction; a failed batch is not rolled back",
            )
        )

    return results
