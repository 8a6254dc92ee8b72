"""Tenant provisioning: create tenants, track service migrations, answer readiness."""

from tenantdb.provisioning.commands import (
    CreateTenantCommand,
    CustomCredentials,
    UpdateMigrationStatusCommand,
)
from tenantdb.provisioning.credentials import generate_credentials, generate_password
from tenantdb.provisioning.dtos import (
    MigrationStatusDto,
    ServiceDatabaseInfoDto,
    ServiceReadinessDto,
    TenantDatabaseDto,
    TenantDto,
    UpdateMigrationStatusRequest,
)
from tenantdb.provisioning.events import EventPublisher, InMemoryEventBus, TenantCreatedEvent
from tenantdb.provisioning.handlers import (
    DEFAULT_SERVICES,
    CreateTenantHandler,
    UpdateMigrationStatusHandler,
)
from tenantdb.provisioning.queries import (
    CheckServiceReadinessHandler,
    GetMigrationStatusHandler,
    GetTenantByIdHandler,
    GetTenantDatabaseInfoHandler,
)
from tenantdb.provisioning.reconciler import ProvisioningReconciler, ReconciliationChange

__all__ = [
    # Commands
    "CreateTenantCommand",
    "CustomCredentials",
    "UpdateMigrationStatusCommand",
    # DTOs
    "MigrationStatusDto",
    "ServiceDatabaseInfoDto",
    "ServiceReadinessDto",
    "TenantDatabaseDto",
    "TenantDto",
    "UpdateMigrationStatusRequest",
    # Events
    "EventPublisher",
    "InMemoryEventBus",
    "TenantCreatedEvent",
    # Handlers
    "DEFAULT_SERVICES",
    "CreateTenantHandler",
    "UpdateMigrationStatusHandler",
    "CheckServiceReadinessHandler",
    "GetMigrationStatusHandler",
    "GetTenantByIdHandler",
    "GetTenantDatabaseInfoHandler",
    "ProvisioningReconciler",
    "ReconciliationChange",
    # Credentials
    "generate_credentials",
    "generate_password",
]
