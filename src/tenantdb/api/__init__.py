"""HTTP surface of the tenant service."""

from tenantdb.api.app import create_app

__all__ = ["create_app"]
