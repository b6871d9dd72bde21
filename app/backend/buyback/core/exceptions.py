"""
Custom exception classes for the buyback engine.

Clients raise these at the network boundary; pipeline components turn
them into result values so that only configuration problems and
overlapping triggers ever reach the caller.
"""

from typing import Any, Optional, Dict


class BuybackException(Exception):
    """Base exception class for the buyback engine."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(BuybackException):
    """Raised when required configuration is missing or invalid."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class DatabaseError(BuybackException):
    """Raised when there's a database error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DATABASE_ERROR", details)


class SolanaError(BuybackException):
    """Raised when there's a Solana ledger error."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: str = "SOLANA_ERROR"
    ):
        super().__init__(message, code, details)


class LedgerUnreachableError(SolanaError):
    """The RPC node could not be reached or did not answer in time."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, "LEDGER_UNREACHABLE")


class TransactionFailedError(SolanaError):
    """A transaction was rejected, failed on-chain or was not confirmed."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: str = "TRANSACTION_FAILED"
    ):
        super().__init__(message, details, code)


class SlippageExceededError(TransactionFailedError):
    """A swap failed because the price moved beyond the allowed tolerance."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, "SLIPPAGE_EXCEEDED")


class ExternalServiceError(BuybackException):
    """Raised when an external service error occurs."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: str = "EXTERNAL_SERVICE_ERROR"
    ):
        super().__init__(message, code, details)


class VenueUnreachableError(ExternalServiceError):
    """The claim or swap venue could not be reached."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, "VENUE_UNREACHABLE")


class VenueRejectedError(ExternalServiceError):
    """The claim or swap venue refused to build a transaction."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, "VENUE_REJECTED")


class ProviderUnreachableError(ExternalServiceError):
    """The chain-data provider could not be reached or returned garbage."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, "PROVIDER_UNREACHABLE")


class RateLimitError(ExternalServiceError):
    """Raised when rate limit is exceeded."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, "RATE_LIMIT_ERROR")


class OwnerResolutionError(ExternalServiceError):
    """A token account's owner could not be determined."""

    def __init__(self, account: str, reason: str):
        super().__init__(
            f"Could not resolve owner of {account}: {reason}",
            {"account": account, "reason": reason},
            "OWNER_RESOLUTION_ERROR"
        )


class CycleInProgressError(BuybackException):
    """A cycle was triggered while another one is still running."""

    def __init__(self, cycle_id: Optional[str] = None):
        super().__init__(
            "A buyback cycle is already in progress",
            "CYCLE_IN_PROGRESS",
            {"cycle_id": cycle_id} if cycle_id else None
        )
