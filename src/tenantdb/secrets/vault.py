"""HashiCorp Vault secret store implementation.

Stores tenant credential bundles in Vault's KV v2 engine. The hvac client
is synchronous, so every call runs in the default executor and is bounded
by the configured timeout.
"""

import asyncio
import logging
from collections.abc import Callable
from functools import cached_property
from pathlib import Path
from typing import Any, TypeVar

from tenantdb.config.settings import VaultAuthMethod
from tenantdb.secrets.config import VaultConfig
from tenantdb.secrets.exceptions import (
    SecretNotFoundError,
    SecretsAccessError,
    SecretsConnectionError,
)
from tenantdb.secrets.types import DatabaseCredentials

logger = logging.getLogger(__name__)

__all__ = ["VaultConfig", "VaultSecretStore"]

T = TypeVar("T")


class VaultSecretStore:
    """Secret store backed by HashiCorp Vault.

    Features:
    - Token, AppRole, Kubernetes and UserPass authentication
    - KV v2 secrets engine
    - Required auth fields checked at construction

    Example:
        config = VaultConfig(
            url="https://vault.example.com:8200",
            auth_method=VaultAuthMethod.APPROLE,
            role_id="...",
            secret_id="...",
        )
        store = VaultSecretStore(config)
        creds = await store.get_credentials_by_path("database/tenants/acme/catalog/write")
    """

    def __init__(self, config: VaultConfig, client: Any | None = None):
        """Initialize the Vault store.

        Args:
            config: Vault configuration
            client: Pre-built hvac client (authentication still runs on connect)

        Raises:
            SecretsConnectionError: If the auth method lacks required fields
        """
        config.validate()
        self.config = config
        self._client: Any | None = client
        self._connected = False
        self._connect_lock = asyncio.Lock()

    @cached_property
    def _hvac(self) -> Any:
        """Lazy import of hvac module."""
        import hvac  # type: ignore[import-untyped]

        return hvac

    async def _call(self, fn: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        try:
            async with asyncio.timeout(self.config.timeout):
                return await loop.run_in_executor(None, fn)
        except TimeoutError as e:
            raise SecretsAccessError(
                f"Vault call timed out after {self.config.timeout}s", e
            ) from e

    async def connect(self) -> None:
        """Create the client and authenticate.

        Raises:
            SecretsConnectionError: If authentication fails
        """
        async with self._connect_lock:
            if self._connected:
                return
            try:
                if self._client is None:
                    self._client = self._hvac.Client(
                        url=self.config.url,
                        token=(
                            self.config.token
                            if self.config.auth_method is VaultAuthMethod.TOKEN
                            else None
                        ),
                        namespace=self.config.namespace,
                        verify=self.config.tls_verify,
                        timeout=self.config.timeout,
                    )

                await self._authenticate()

                if not await self._call(self._client.is_authenticated):
                    raise SecretsAccessError("Vault rejected the configured credentials")
            except SecretsConnectionError:
                raise
            except Exception as e:
                logger.error("Failed to connect to Vault at %s: %s", self.config.url, e)
                raise SecretsConnectionError("Vault", e) from e

            self._connected = True
            logger.info(
                "Connected to Vault at %s using %s auth",
                self.config.url,
                self.config.auth_method.value,
            )

    async def _authenticate(self) -> None:
        client = self._client
        match self.config.auth_method:
            case VaultAuthMethod.TOKEN:
                if self.config.token:
                    client.token = self.config.token
            case VaultAuthMethod.APPROLE:
                await self._call(
                    lambda: client.auth.approle.login(
                        role_id=self.config.role_id,
                        secret_id=self.config.secret_id,
                    )
                )
            case VaultAuthMethod.KUBERNETES:
                token_path = Path(self.config.kubernetes_token_path)
                try:
                    jwt = token_path.read_text().strip()
                except FileNotFoundError as e:
                    raise SecretsAccessError(
                        f"Kubernetes service account token not found at {token_path}", e
                    ) from e
                await self._call(
                    lambda: client.auth.kubernetes.login(
                        role=self.config.kubernetes_role,
                        jwt=jwt,
                        mount_point=self.config.kubernetes_mount,
                    )
                )
            case VaultAuthMethod.USERPASS:
                await self._call(
                    lambda: client.auth.userpass.login(
                        username=self.config.username,
                        password=self.config.password,
                    )
                )
        logger.debug("Authenticated with Vault using %s", self.config.auth_method.value)

    async def read_secret(self, path: str) -> dict[str, str]:
        if not self._connected:
            await self.connect()

        try:
            response = await self._call(
                lambda: self._client.secrets.kv.v2.read_secret_version(  # type: ignore[union-attr]
                    path=path,
                    mount_point=self.config.mount_point,
                    raise_on_deleted_version=True,
                )
            )
        except self._hvac.exceptions.InvalidPath as e:
            raise SecretNotFoundError(path) from e
        except self._hvac.exceptions.Forbidden as e:
            raise SecretsAccessError(f"Access denied to secret: {path}", e) from e
        except SecretsAccessError:
            raise
        except Exception as e:
            raise SecretsAccessError(f"Failed to read secret: {path}", e) from e

        if not response or not response.get("data"):
            raise SecretNotFoundError(path)
        data = response["data"].get("data") or {}
        return {key: str(value) for key, value in data.items()}

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
        if not self._connected:
            await self.connect()

        try:
            await self._call(
                lambda: self._client.secrets.kv.v2.create_or_update_secret(  # type: ignore[union-attr]
                    path=path,
                    secret=dict(data),
                    mount_point=self.config.mount_point,
                )
            )
        except self._hvac.exceptions.Forbidden as e:
            raise SecretsAccessError(f"Access denied to write secret: {path}", e) from e
        except SecretsAccessError:
            raise
        except Exception as e:
            raise SecretsAccessError(f"Failed to write secret: {path}", e) from e

        logger.info("Stored secret at %s/%s", self.config.mount_point, path)

    async def credentials_exist(self, path: str) -> bool:
        if not self._connected:
            await self.connect()

        try:
            await self._call(
                lambda: self._client.secrets.kv.v2.read_secret_metadata(  # type: ignore[union-attr]
                    path=path,
                    mount_point=self.config.mount_point,
                )
            )
        except self._hvac.exceptions.InvalidPath:
            return False
        except self._hvac.exceptions.Forbidden as e:
            raise SecretsAccessError(f"Access denied to secret metadata: {path}", e) from e
        except SecretsAccessError:
            raise
        except Exception as e:
            raise SecretsAccessError(f"Failed to check secret: {path}", e) from e
        return True

    async def health_check(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(await self._call(self._client.is_authenticated))
        except Exception as e:
            logger.warning("Vault health check failed: %s", e)
            return False

    async def close(self) -> None:
        self._connected = False
        self._client = None
        logger.info("Disconnected from Vault")
