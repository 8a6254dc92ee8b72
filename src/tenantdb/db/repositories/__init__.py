"""Database repositories for clean data access."""

from .base import BaseRepository
from .tenant import TenantRepository

__all__ = ["BaseRepository", "TenantRepository"]
