"""Secret path convention for tenant database credentials.

Paths have the form::

    {database-secrets-root}/{tenants|shared}/{tenant-identifier|shared}/{service}/{write|read}

and live under the store's KV mount (``secret`` by default), which is
passed to the store separately. The layout is stable: existing secrets
are located by it, so changing it requires moving stored bundles.
"""

from dataclasses import dataclass
from enum import Enum

from tenantdb.models.database import DatabaseStrategy

SHARED_SEGMENT = "shared"


class AccessLevel(str, Enum):
    """Read/write split of a service database."""

    WRITE = "write"
    READ = "read"


@dataclass(frozen=True, slots=True)
class SecretPaths:
    """Builds credential paths under a database secrets root.

    Attributes:
        root: Database secrets root, e.g. ``database``
    """

    root: str = "database"

    def for_tenant(
        self,
        strategy: DatabaseStrategy,
        tenant_identifier: str,
        service_name: str,
        access: AccessLevel,
    ) -> str:
        """Path holding one service's bundle for a tenant under a strategy.

        Shared tenants all resolve to the single shared bundle of the service.
        """
        if strategy is DatabaseStrategy.SHARED:
            return self.shared(service_name, access)
        return self._join(strategy.path_scope, tenant_identifier, service_name, access)

    def shared(self, service_name: str, access: AccessLevel) -> str:
        """Path of a service's shared database bundle."""
        return self._join(SHARED_SEGMENT, SHARED_SEGMENT, service_name, access)

    def _join(self, scope: str, owner: str, service_name: str, access: AccessLevel) -> str:
        for segment in (owner, service_name):
            if not segment or "/" in segment:
                raise ValueError(f"Invalid secret path segment: {segment!r}")
        parts = (self.root.strip("/"), scope, owner, service_name, access.value)
        return "/".join(part for part in parts if part)


def connection_env_key(tenant_identifier: str, service_name: str, access: AccessLevel) -> str:
    """Environment/configuration key a service reads its connection string from."""
    suffix = "Write" if access is AccessLevel.WRITE else "Read"
    return f"ConnectionStrings__Tenants__{tenant_identifier}__{service_name}__{suffix}"
