"""Tests for secrets configuration, store factory and global instance."""

import pytest

import tenantdb.secrets.manager as manager_module
from tenantdb.config.settings import SecretsBackendName, Settings
from tenantdb.secrets.cache import CachedSecretStore
from tenantdb.secrets.config import (
    SecretsBackend,
    SecretsConfig,
    VaultConfig,
    create_secrets_config,
)
from tenantdb.secrets.environment import EnvironmentSecretStore
from tenantdb.secrets.exceptions import SecretsConnectionError
from tenantdb.secrets.manager import (
    create_secret_store,
    get_secret_store,
    initialize_secrets,
    shutdown_secrets,
)
from tenantdb.secrets.vault import VaultSecretStore


# Reset global state before each test
@pytest.fixture(autouse=True)
async def reset_secret_store():
    """Reset the global secret store before and after each test."""
    manager_module._secret_store = None
    yield
    if manager_module._secret_store is not None:
        await manager_module._secret_store.close()
    manager_module._secret_store = None


class TestCreateSecretsConfig:
    """Tests for deriving secrets configuration from settings."""

    def test_environment_backend(self, test_settings: Settings) -> None:
        """Test selecting the environment backend."""
        config = create_secrets_config(test_settings)

        assert config.backend is SecretsBackend.ENVIRONMENT

    def test_vault_fields_unwrapped(self) -> None:
        """Test that secret settings are unwrapped into the Vault config."""
        settings = Settings(
            SECRETS_BACKEND=SecretsBackendName.VAULT,
            VAULT_TOKEN="root-token",
            VAULT_MOUNT_POINT="kv",
        )

        config = create_secrets_config(settings)

        assert config.vault.token == "root-token"
        assert config.vault.mount_point == "kv"

    def test_zero_ttl_disables_cache(self) -> None:
        """Test that a zero TTL turns caching off."""
        settings = Settings(SECRETS_CACHE_TTL_SECONDS=0)

        assert create_secrets_config(settings).cache.enabled is False


class TestCreateSecretStore:
    """Tests for create_secret_store."""

    def test_environment_store_is_cached(self) -> None:
        """Test that every store is wrapped in the cache decorator."""
        store = create_secret_store(SecretsConfig(backend=SecretsBackend.ENVIRONMENT))

        assert isinstance(store, CachedSecretStore)
        assert isinstance(store.inner, EnvironmentSecretStore)

    def test_vault_store(self) -> None:
        """Test building a Vault-backed store."""
        store = create_secret_store(
            SecretsConfig(backend=SecretsBackend.VAULT, vault=VaultConfig(token="t"))
        )

        assert isinstance(store.inner, VaultSecretStore)

    def test_vault_store_without_auth_fails(self) -> None:
        """Test that incomplete Vault auth fails at construction."""
        with pytest.raises(SecretsConnectionError):
            create_secret_store(SecretsConfig(backend=SecretsBackend.VAULT))


class TestGlobalSecretStore:
    """Tests for the process-wide store."""

    def test_get_before_initialize(self) -> None:
        """Test that the store must be initialized first."""
        with pytest.raises(RuntimeError):
            get_secret_store()

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, test_settings: Settings) -> None:
        """Test that repeated initialization returns the first instance."""
        first = await initialize_secrets(test_settings)
        second = await initialize_secrets(test_settings)

        assert first is second
        assert get_secret_store() is first

    @pytest.mark.asyncio
    async def test_shutdown(self, test_settings: Settings) -> None:
        """Test shutting down the global store."""
        await initialize_secrets(test_settings)

        await shutdown_secrets()

        with pytest.raises(RuntimeError):
            get_secret_store()
