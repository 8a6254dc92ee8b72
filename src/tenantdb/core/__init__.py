"""Core building blocks: logging and typed handler results."""

from tenantdb.core.result import Error, ErrorType, Outcome

__all__ = ["Error", "ErrorType", "Outcome"]
