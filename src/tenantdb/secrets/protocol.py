"""Secret store protocol.

This module defines the contract every secret store backend (and the
caching decorator in front of it) implements. Paths are relative to the
store's KV mount; see ``tenantdb.secrets.paths`` for the layout.
"""

from typing import Protocol, runtime_checkable

from tenantdb.secrets.exceptions import (
    SecretNotFoundError,
    SecretsAccessError,
    SecretsConnectionError,
    SecretsError,
    SecretValidationError,
)
from tenantdb.secrets.types import DatabaseCredentials

__all__ = [
    "SecretNotFoundError",
    "SecretStore",
    "SecretsAccessError",
    "SecretsConnectionError",
    "SecretsError",
    "SecretValidationError",
]


@runtime_checkable
class SecretStore(Protocol):
    """Protocol for secret store implementations.

    Cancellation follows asyncio: cancelling the awaiting task abandons
    the call. Implementations bound each backend call by their configured
    timeout and surface expiry as ``SecretsAccessError``.
    """

    async def read_secret(self, path: str) -> dict[str, str]:
        """Read the raw key/value payload stored at a path.

        Raises:
            SecretNotFoundError: If nothing is stored at the path
            SecretsAccessError: On access denial or backend failure
        """
        ...

    async def get_credentials_by_path(self, path: str) -> DatabaseCredentials:
        """Retrieve and parse a credential bundle.

        Raises:
            SecretNotFoundError: If nothing is stored at the path
            SecretValidationError: If a required field is missing
            SecretsAccessError: On access denial or backend failure
        """
        ...

    async def store_credentials(self, path: str, credentials: DatabaseCredentials) -> None:
        """Store a credential bundle, replacing any previous version.

        Raises:
            SecretsAccessError: On access denial or backend failure
        """
        ...

    async def get_secret(self, path: str, key: str) -> str | None:
        """Get one key of the payload at a path, or None if absent."""
        ...

    async def store_secret(self, path: str, data: dict[str, str]) -> None:
        """Store an arbitrary key/value payload."""
        ...

    async def credentials_exist(self, path: str) -> bool:
        """Whether any payload is stored at the path."""
        ...

    async def health_check(self) -> bool:
        """Check if the secrets backend is reachable and authenticated."""
        ...

    async def close(self) -> None:
        """Close connections and cleanup resources."""
        ...
