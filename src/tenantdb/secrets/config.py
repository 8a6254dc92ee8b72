"""Secrets management configuration.

Frozen configuration records for each backend, plus a factory that
derives them from application ``Settings``.
"""

from dataclasses import dataclass, field
from enum import Enum

from tenantdb.config.settings import SecretsBackendName, Settings, VaultAuthMethod
from tenantdb.secrets.exceptions import SecretsConnectionError


class SecretsBackend(str, Enum):
    """Supported secrets backends."""

    VAULT = "vault"
    ENVIRONMENT = "environment"


@dataclass(frozen=True, slots=True)
class VaultConfig:
    """Configuration for HashiCorp Vault backend.

    Attributes:
        url: Vault server URL
        auth_method: Authentication method
        token: Vault token (token auth)
        role_id: AppRole role ID
        secret_id: AppRole secret ID
        kubernetes_role: Kubernetes auth role
        kubernetes_mount: Kubernetes auth mount point
        kubernetes_token_path: Service account token file
        username: UserPass user name
        password: UserPass password
        namespace: Vault namespace (enterprise feature)
        mount_point: KV v2 secrets engine mount point
        tls_verify: Whether to verify TLS certificates
        timeout: Per-request timeout in seconds
    """

    url: str = "http://localhost:8200"
    auth_method: VaultAuthMethod = VaultAuthMethod.TOKEN
    token: str | None = None
    role_id: str | None = None
    secret_id: str | None = None
    kubernetes_role: str | None = None
    kubernetes_mount: str = "kubernetes"
    kubernetes_token_path: str = "/var/run/secrets/kubernetes.io/serviceaccount/token"
    username: str | None = None
    password: str | None = None
    namespace: str | None = None
    mount_point: str = "secret"
    tls_verify: bool = True
    timeout: int = 30

    def validate(self) -> None:
        """Fail fast when the selected auth method lacks required fields.

        Raises:
            SecretsConnectionError: Naming the missing fields
        """
        required: dict[VaultAuthMethod, tuple[str, ...]] = {
            VaultAuthMethod.TOKEN: ("token",),
            VaultAuthMethod.APPROLE: ("role_id", "secret_id"),
            VaultAuthMethod.KUBERNETES: ("kubernetes_role",),
            VaultAuthMethod.USERPASS: ("username", "password"),
        }
        missing = [name for name in required[self.auth_method] if not getattr(self, name)]
        if missing:
            raise SecretsConnectionError(
                "Vault",
                ValueError(
                    f"{self.auth_method.value} authentication requires: {', '.join(missing)}"
                ),
            )
        if not self.url:
            raise SecretsConnectionError("Vault", ValueError("Vault url is required"))


@dataclass(frozen=True, slots=True)
class EnvironmentSecretsConfig:
    """Configuration for environment-based secrets (local development).

    Attributes:
        prefix: Environment variable prefix
    """

    prefix: str = "DEV_SECRET__"


@dataclass(frozen=True, slots=True)
class CacheConfig:
    """Configuration for secrets caching.

    Attributes:
        enabled: Whether caching is enabled
        default_ttl_seconds: TTL for cached reads
        max_entries: Maximum number of cached entries
    """

    enabled: bool = True
    default_ttl_seconds: int = 300
    max_entries: int = 1000


@dataclass(frozen=True, slots=True)
class SecretsConfig:
    """Complete secrets configuration.

    Attributes:
        backend: Which backend to use
        vault: Vault configuration
        environment: Environment backend configuration
        cache: Cache configuration
    """

    backend: SecretsBackend = SecretsBackend.VAULT
    vault: VaultConfig = field(default_factory=VaultConfig)
    environment: EnvironmentSecretsConfig = field(default_factory=EnvironmentSecretsConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)


def _secret(value) -> str | None:
    return value.get_secret_value() if value is not None else None


def create_secrets_config(settings: Settings) -> SecretsConfig:
    """Derive secrets configuration from application settings."""
    backend = (
        SecretsBackend.VAULT
        if settings.SECRETS_BACKEND == SecretsBackendName.VAULT
        else SecretsBackend.ENVIRONMENT
    )
    return SecretsConfig(
        backend=backend,
        vault=VaultConfig(
            url=settings.VAULT_ADDR,
            auth_method=settings.VAULT_AUTH_METHOD,
            token=_secret(settings.VAULT_TOKEN),
            role_id=settings.VAULT_ROLE_ID,
            secret_id=_secret(settings.VAULT_SECRET_ID),
            kubernetes_role=settings.VAULT_KUBERNETES_ROLE,
            kubernetes_token_path=settings.VAULT_KUBERNETES_TOKEN_PATH,
            username=settings.VAULT_USERNAME,
            password=_secret(settings.VAULT_PASSWORD),
            namespace=settings.VAULT_NAMESPACE,
            mount_point=settings.VAULT_MOUNT_POINT,
            tls_verify=settings.VAULT_TLS_VERIFY,
            timeout=settings.VAULT_TIMEOUT_SECONDS,
        ),
        cache=CacheConfig(
            enabled=settings.SECRETS_CACHE_TTL_SECONDS > 0,
            default_ttl_seconds=max(settings.SECRETS_CACHE_TTL_SECONDS, 1),
            max_entries=settings.SECRETS_CACHE_MAX_ENTRIES,
        ),
    )
