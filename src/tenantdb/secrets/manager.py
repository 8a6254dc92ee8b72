"""Secret store factory and global instance management.

This module builds the configured secret store, always wrapped in the
caching decorator, and manages the process-wide instance.
"""

import asyncio
import logging

from tenantdb.config.settings import Settings, get_settings
from tenantdb.secrets.cache import CachedSecretStore, SecretCache
from tenantdb.secrets.config import SecretsBackend, SecretsConfig, create_secrets_config
from tenantdb.secrets.environment import EnvironmentSecretStore
from tenantdb.secrets.protocol import SecretStore

logger = logging.getLogger(__name__)

# Global secret store instance
_secret_store: CachedSecretStore | None = None
_init_lock = asyncio.Lock()


def create_secret_store(config: SecretsConfig) -> CachedSecretStore:
    """Create a cached secret store for the configured backend.

    Raises:
        SecretsConnectionError: If the Vault auth configuration is incomplete
    """
    inner: SecretStore
    if config.backend == SecretsBackend.VAULT:
        from tenantdb.secrets.vault import VaultSecretStore

        inner = VaultSecretStore(config.vault)
    else:
        inner = EnvironmentSecretStore(config.environment)

    return CachedSecretStore(inner, SecretCache(config.cache))


async def initialize_secrets(settings: Settings | None = None) -> CachedSecretStore:
    """Initialize the global secret store.

    Call once during startup. Safe to call again; the first instance wins.

    Example:
        store = await initialize_secrets()
        creds = await store.get_credentials_by_path(path)
    """
    global _secret_store

    async with _init_lock:
        if _secret_store is not None:
            logger.debug("Secret store already initialized")
            return _secret_store

        config = create_secrets_config(settings or get_settings())
        logger.info("Initializing secret store with backend: %s", config.backend.value)

        store = create_secret_store(config)
        await store.cache.start()
        _secret_store = store
        return store


def get_secret_store() -> CachedSecretStore:
    """Get the global secret store instance.

    Raises:
        RuntimeError: If the store has not been initialized
    """
    if _secret_store is None:
        raise RuntimeError("Secret store not initialized. Call initialize_secrets() first.")
    return _secret_store


async def shutdown_secrets() -> None:
    """Close the global secret store."""
    global _secret_store

    async with _init_lock:
        if _secret_store is not None:
            try:
                await _secret_store.close()
                logger.info("Secret store shut down")
            finally:
                _secret_store = None
