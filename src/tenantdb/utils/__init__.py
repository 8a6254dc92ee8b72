"""Shared utilities for tenantdb."""
