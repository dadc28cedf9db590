"""Exception hierarchy shared by the ingestion and query pipelines.

- ConfigurationError: missing credentials, unknown provider names, unusable storage paths.
  Surfaced immediately, never retried.
- ProviderError: an embedding/generation/source provider call failed or returned
  malformed output. Retried inside the embedding orchestrator.
- EmptyIndexError: a query was made before anything was indexed.
"""
from typing import Any, Dict, Optional


class ArchivistError(Exception):
    """Base exception carrying a message and optional debugging context."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(ArchivistError):
    """Raised when a required setting or credential is missing or invalid."""


class ProviderError(ArchivistError):
    """Raised when an external provider call fails or returns unusable data."""


class EmptyIndexError(ArchivistError):
    """Raised when a query arrives and no chunks have been indexed yet."""

    def __init__(self, message: str = "Index is empty. Run a sync first.") -> None:
        super().__init__(message)
