"""Environment-based secret store for local development.

Reads credential payloads from environment variables so services can run
without Vault. Writes are kept in process memory and shadow the
environment for the lifetime of the store.

Environment variable naming convention:
    {prefix}{PATH_WITH_UNDERSCORES}__{KEY}

e.g. for path ``database/shared/shared/catalog/write``::

    DEV_SECRET__DATABASE_SHARED_SHARED_CATALOG_WRITE__HOST=localhost
    DEV_SECRET__DATABASE_SHARED_SHARED_CATALOG_WRITE__ADMIN_USERNAME=postgres
"""

import logging
import os
from collections.abc import Mapping

from tenantdb.secrets.config import EnvironmentSecretsConfig
from tenantdb.secrets.exceptions import SecretNotFoundError
from tenantdb.secrets.types import DatabaseCredentials

logger = logging.getLogger(__name__)


class EnvironmentSecretStore:
    """Secret store that reads from environment variables."""

    def __init__(
        self,
        config: EnvironmentSecretsConfig | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        """Initialize the environment store.

        Args:
            config: Configuration for environment secrets
            environ: Environment mapping (defaults to ``os.environ``)
        """
        self.config = config or EnvironmentSecretsConfig()
        self._environ = environ if environ is not None else os.environ
        self._written: dict[str, dict[str, str]] = {}

    def path_to_env_prefix(self, path: str) -> str:
        """Convert a secret path to its environment variable prefix.

        Args:
            path: Secret path (e.g., "database/tenants/acme/catalog/write")

        Returns:
            Prefix (e.g., "DEV_SECRET__DATABASE_TENANTS_ACME_CATALOG_WRITE__")
        """
        env_name = path.strip("/").replace("/", "_").replace("-", "_").upper()
        return f"{self.config.prefix}{env_name}__"

    def _from_environment(self, path: str) -> dict[str, str]:
        prefix = self.path_to_env_prefix(path)
        return {
            key[len(prefix) :].lower(): value
            for key, value in self._environ.items()
            if key.startswith(prefix) and len(key) > len(prefix)
        }

    async def read_secret(self, path: str) -> dict[str, str]:
        if path in self._written:
            return dict(self._written[path])

        data = self._from_environment(path)
        if not data:
            raise SecretNotFoundError(path)
        logger.debug("Loaded secret from environment: %s", path)
        return data

    async def get_credentials_by_path(self, path: str) -> DatabaseCredentials:
        return DatabaseCredentials.from_secret_data(path, await self.read_secret(path))

    async def store_credentials(self, path: str, credentials: DatabaseCredentials) -> None:
        await self.store_secret(path, credentials.to_secret_data())

    async def get_secret(self, path: str, key: str) -> str | None:
        try:
            data = await self.read_secret(path)
        except SecretNotFoundError:
            return None
        return data.get(key)

    async def store_secret(self, path: str, data: dict[str, str]) -> None:
        self._written[path] = dict(data)
        logger.debug("Stored secret in memory: %s", path)

    async def credentials_exist(self, path: str) -> bool:
        return path in self._written or bool(self._from_environment(path))

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        self._written.clear()
