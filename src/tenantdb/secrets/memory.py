"""Dict-backed secret store for single-process deployments and tests."""

from dataclasses import dataclass, field

from tenantdb.secrets.exceptions import SecretNotFoundError, SecretsAccessError
from tenantdb.secrets.types import DatabaseCredentials


@dataclass
class InMemorySecretStore:
    """Secret store holding payloads in process memory.

    Attributes:
        secrets: Stored payloads by path
        writes: Every path written, in order
        fail_on: Paths whose writes raise ``SecretsAccessError``
    """

    secrets: dict[str, dict[str, str]] = field(default_factory=dict)
    writes: list[str] = field(default_factory=list)
    fail_on: set[str] = field(default_factory=set)

    async def read_secret(self, path: str) -> dict[str, str]:
        if path not in self.secrets:
            raise SecretNotFoundError(path)
        return dict(self.secrets[path])

    async def get_credentials_by_path(self, path: str) -> DatabaseCredentials:
        return DatabaseCredentials.from_secret_data(path, await self.read_secret(path))

    async def store_credentials(self, path: str, credentials: DatabaseCredentials) -> None:
        await self.store_secret(path, credentials.to_secret_data())

    async def get_secret(self, path: str, key: str) -> str | None:
        return self.secrets.get(path, {}).get(key)

    async def store_secret(self, path: str, data: dict[str, str]) -> None:
        if path in self.fail_on:
            raise SecretsAccessError(f"Failed to write secret: {path}")
        self.secrets[path] = dict(data)
        self.writes.append(path)

    async def credentials_exist(self, path: str) -> bool:
        return path in self.secrets

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        return None
