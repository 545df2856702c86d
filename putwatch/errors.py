"""Exception hierarchy shared across the package."""

from __future__ import annotations


class PutWatchError(Exception):
    """Base class for every error raised by putwatch."""


class ValidationError(PutWatchError, ValueError):
    """Raised when input is rejected before anything is persisted."""


class ConfigurationError(PutWatchError):
    """Raised when a required collaborator or setting is missing."""


class PersistenceError(PutWatchError, RuntimeError):
    """Raised when a storage backend encounters an unrecoverable error."""


class UpstreamFetchError(PutWatchError):
    """Base exception raised for market data retrieval failures."""


class RateLimitError(UpstreamFetchError):
    """Raised when a provider reports rate limiting errors."""


class DataNotAvailable(UpstreamFetchError):
    """Raised when requested data is not available from a provider."""


class FetchTimeoutError(UpstreamFetchError):
    """Raised when an upstream call exceeds its time budget."""


__all__ = [
    "ConfigurationError",
    "DataNotAvailable",
    "FetchTimeoutError",
    "PersistenceError",
    "PutWatchError",
    "RateLimitError",
    "UpstreamFetchError",
    "ValidationError",
]
