"""
Exception hierarchy for TradeSync.

Per-pair fetch failures are logged and recovered inside the gateways; only the
errors below are raised across module boundaries.
"""
from typing import Any, Optional


class TradeSyncError(Exception):
    """Base class for every error raised by this package."""


class CredentialError(TradeSyncError):
    """Credentials are missing, undecryptable or incomplete for an exchange."""

    def __init__(self, message: str, exchange: Optional[str] = None):
        self.exchange = exchange
        super().__init__(message)


class ExchangeInitError(TradeSyncError):
    """The trading client for an exchange could not be constructed."""

    def __init__(self, message: str, exchange: Optional[str] = None):
        self.exchange = exchange
        super().__init__(message)


class CacheRepopulationError(TradeSyncError):
    """A bulk fetch meant to refill the trade cache failed. The cache is left empty."""

    def __init__(self, exchange: str, cause: Exception):
        self.exchange = exchange
        self.cause = cause
        super().__init__(f"Bulk trade fetch failed for {exchange}: {cause}")


class InvalidNumericValue(TradeSyncError, ValueError):
    """A value crossing the persistence boundary is not a usable number."""

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = value
        super().__init__(f"Invalid numeric value for '{field}': {value!r}")
