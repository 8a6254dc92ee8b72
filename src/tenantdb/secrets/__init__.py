"""Secret store client for tenant database credentials.

This module provides:
- The ``SecretStore`` protocol for backend-agnostic credential access
- ``VaultSecretStore`` for HashiCorp Vault (KV v2)
- ``EnvironmentSecretStore`` for local development without Vault
- ``CachedSecretStore``, the TTL cache placed in front of every backend
- The credential bundle types and connection-string builder

Example:
    from tenantdb.secrets import SecretPaths, AccessLevel, initialize_secrets

    store = await initialize_secrets()
    path = SecretPaths("database").shared("catalog", AccessLevel.WRITE)
    creds = await store.get_credentials_by_path(path)
"""

from tenantdb.secrets.cache import CachedSecretStore, SecretCache
from tenantdb.secrets.config import SecretsConfig, VaultConfig, create_secrets_config
from tenantdb.secrets.environment import EnvironmentSecretStore
from tenantdb.secrets.exceptions import (
    SecretNotFoundError,
    SecretsAccessError,
    SecretsConnectionError,
    SecretsError,
    SecretValidationError,
)
from tenantdb.secrets.manager import get_secret_store, initialize_secrets, shutdown_secrets
from tenantdb.secrets.memory import InMemorySecretStore
from tenantdb.secrets.paths import AccessLevel, SecretPaths, connection_env_key
from tenantdb.secrets.protocol import SecretStore
from tenantdb.secrets.types import (
    CredentialRole,
    DatabaseCredentials,
    InvalidConnectionParameterError,
    UserCredentials,
    build_connection_string,
)

__all__ = [
    # Protocol
    "SecretStore",
    # Types
    "CredentialRole",
    "DatabaseCredentials",
    "UserCredentials",
    "InvalidConnectionParameterError",
    "build_connection_string",
    # Paths
    "AccessLevel",
    "SecretPaths",
    "connection_env_key",
    # Configuration
    "SecretsConfig",
    "VaultConfig",
    "create_secrets_config",
    # Implementations
    "CachedSecretStore",
    "EnvironmentSecretStore",
    "InMemorySecretStore",
    "SecretCache",
    # Errors
    "SecretsError",
    "SecretNotFoundError",
    "SecretValidationError",
    "SecretsAccessError",
    "SecretsConnectionError",
    # Manager functions
    "get_secret_store",
    "initialize_secrets",
    "shutdown_secrets",
]
