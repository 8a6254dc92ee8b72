"""System-generated credential bundles for Shared and Dedicated databases."""

from secrets import token_urlsafe

from tenantdb.models.database import DatabaseProvider, DatabaseStrategy
from tenantdb.secrets.types import DatabaseCredentials, UserCredentials

PASSWORD_BYTES = 24


def generate_password(nbytes: int = PASSWORD_BYTES) -> str:
    """URL-safe random password; never contains a connection-string separator."""
    return token_urlsafe(nbytes)


def credential_prefix(strategy: DatabaseStrategy, tenant_identifier: str) -> str:
    if strategy is DatabaseStrategy.SHARED:
        return "shared"
    return tenant_identifier.replace("-", "_")


def generate_credentials(
    service_name: str,
    provider: DatabaseProvider,
    strategy: DatabaseStrategy,
    tenant_identifier: str,
    *,
    read_only: bool = False,
    host: str = "localhost",
) -> DatabaseCredentials:
    """Generate a fresh admin/application pair for one service database.

    The admin and application users are always distinct; read bundles get
    ``_ro`` users.

    Args:
        service_name: Participating service
        provider: Database provider (decides the default port)
        strategy: Shared or Dedicated
        tenant_identifier: Tenant slug, used for dedicated names
        read_only: Generate the read replica bundle
        host: Database host recorded in the bundle
    """
    prefix = credential_prefix(strategy, tenant_identifier)
    suffix = "_ro" if read_only else ""
    if strategy is DatabaseStrategy.SHARED:
        database = f"{service_name}_shared"
    else:
        database = f"{service_name}_{prefix}"

    return DatabaseCredentials(
        admin=UserCredentials(f"{prefix}_{service_name}_admin{suffix}", generate_password()),
        application=UserCredentials(f"{prefix}_{service_name}_app{suffix}", generate_password()),
        host=host,
        port=provider.default_port,
        database=database,
        provider=provider,
    )
