"""
Custom exceptions for the sync pipeline with structured error context.

This module provides the exception hierarchy used throughout the fetch,
upsert and reconcile stages. Each exception carries context information
that is copied into the run's error list and the run summary.

Exception Hierarchy:
    SyncException (base)
    ├── FetchError
    │   ├── APIRequestError
    │   │   ├── NetworkError (retryable)
    │   │   ├── RateLimitError (retryable)
    │   │   └── AuthenticationError (non-retryable)
    │   └── ResourceNotFoundError (non-retryable)
    ├── LoadError
    │   └── UpsertError
    ├── ReconciliationError
    ├── RunSealedError
    ├── LeaseHeldError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class SyncException(Exception):
    """
    Base exception for all sync-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, page, member, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(SyncException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts
    - Rate limiting (HTTP 429)
    - Service unavailable (HTTP 5xx)
    """
    pass


class NonRetryableError(SyncException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Authentication failures (HTTP 401, 403)
    - Resource not found (HTTP 404)
    """
    pass


# ============================================================================
# Fetch Errors
# ============================================================================

class FetchError(SyncException):
    """Base exception for upstream fetch failures."""
    pass


class APIRequestError(FetchError):
    """
    Exception raised when a request to an upstream API fails.

    Context should include:
        - url: The endpoint that failed
        - status_code: HTTP status code (if applicable)
        - response_body: Response body (truncated)
        - attempts: Number of attempts made
    """
    pass


class NetworkError(RetryableError, APIRequestError):
    """Timeouts, transport failures and 5xx responses."""
    pass


class RateLimitError(RetryableError, APIRequestError):
    """Rate limiting errors (HTTP 429) that should be retried with backoff."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after is not None:
            self.context["retry_after"] = retry_after


class AuthenticationError(NonRetryableError, APIRequestError):
    """Authentication failures (HTTP 401, 403) that should not be retried."""
    pass


class ResourceNotFoundError(NonRetryableError, FetchError):
    """Resource not found errors (HTTP 404) that should not be retried."""
    pass


class UnexpectedResponseError(NonRetryableError, FetchError):
    """
    A successful response whose JSON body does not have the expected shape.

    Context should include:
        - url: The endpoint that answered
        - expected: The expected JSON type
        - received: The JSON type actually returned
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(SyncException):
    """Base exception for store write failures."""
    pass


class UpsertError(LoadError):
    """
    Exception raised when an upsert batch fails.

    Context should include:
        - table_name: Target table
        - batch_index: Index of the failed batch
        - batch_size: Number of rows in the batch
    """
    pass


# ============================================================================
# Reconciliation, run state and leasing
# ============================================================================

class ReconciliationError(SyncException):
    """Exception raised when the stale-row deletion fails."""
    pass


class RunSealedError(SyncException):
    """Raised when a sealed sync run is mutated or sealed a second time."""
    pass


class LeaseHeldError(SyncException):
    """
    Raised when another live run already holds the lease for a scope.

    Context should include:
        - source: Source being synced
        - scope_key: Scope the lease protects
        - holder: Run id currently holding the lease
        - expires_at: Lease expiry
    """
    pass
