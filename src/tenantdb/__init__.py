"""Tenant database provisioning and migration orchestration."""

__version__ = "0.1.0"
