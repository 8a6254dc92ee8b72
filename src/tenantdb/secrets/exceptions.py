"""Secret store exceptions.

``SecretNotFoundError`` and ``SecretValidationError`` are permanent: a
missing path or a partially-populated bundle will not fix itself on retry.
``SecretsAccessError`` and ``SecretsConnectionError`` cover transient
network and authentication failures that the caller or transport may retry.
"""

from tenantdb.utils.exceptions import TenantDbError


class SecretsError(TenantDbError):
    """Base exception for secrets-related errors."""

    transient: bool = False


class SecretNotFoundError(SecretsError):
    """Raised when a secret is not found."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Secret not found: {path}")


class SecretValidationError(SecretsError):
    """Raised when a stored payload is missing a field or holds a bad value."""

    def __init__(self, path: str, message: str, key: str | None = None):
        self.path = path
        self.key = key
        super().__init__(message)

    @classmethod
    def missing_key(cls, path: str, key: str) -> "SecretValidationError":
        return cls(path, f"Required key '{key}' not found in credentials at {path}", key=key)


class SecretsAccessError(SecretsError):
    """Raised when access to secrets is denied or fails."""

    transient = True

    def __init__(self, message: str, cause: BaseException | None = None):
        self.cause = cause
        super().__init__(message)


class SecretsConnectionError(SecretsError):
    """Raised when the secret store cannot be configured or reached."""

    transient = True

    def __init__(self, backend: str, cause: BaseException | None = None):
        self.backend = backend
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to connect to secrets backend: {backend}{detail}")
