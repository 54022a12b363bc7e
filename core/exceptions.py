"""
Custom exceptions for the checkpoint ingestion pipeline with structured error context.

Every exception carries a context dictionary so that failures can be logged
and audited with enough information to locate the offending checkpoint,
transaction or event.

Exception Hierarchy:
    IndexerException (base)
    ├── SourceError
    │   ├── CheckpointNotAvailableError (transient, retryable)
    │   ├── NetworkError (retryable)
    │   └── CheckpointFetchError (fatal)
    ├── ProjectionError (fatal)
    │   ├── EventValidationError
    │   └── UsernameConflictError
    ├── CursorError (fatal)
    ├── ReconciliationError
    └── RetryableError / NonRetryableError (mixins)

Per-event errors (EventValidationError, UsernameConflictError) are recorded and
skipped; they never abort a checkpoint. Payload parse failures are not raised
at all: the extractor returns them as RejectedEvent values.
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class IndexerException(Exception):
    """
    Base exception for all indexer errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (checkpoint, event id, etc.)
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

        self.context["error_timestamp"] = self.timestamp.isoformat()

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

class RetryableError(IndexerException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts and connection resets
    - Rate limiting (HTTP 429)
    - Upstream unavailable (HTTP 5xx)
    - Checkpoint not yet produced by the chain

    The retry budget belongs to the caller (CheckpointSourceClient), not the
    exception.
    """
    pass


class NonRetryableError(IndexerException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Malformed checkpoint envelopes
    - Retry budget exhausted
    """
    pass


# ============================================================================
# Source Errors
# ============================================================================

class SourceError(IndexerException):
    """
    Base exception for checkpoint source failures.

    Context should include:
        - source_url: The checkpoint endpoint
        - checkpoint: Requested sequence number
        - status_code: HTTP status code (if applicable)
    """
    pass


class CheckpointNotAvailableError(RetryableError, SourceError):
    """The requested checkpoint is beyond the chain tip. Back off and retry."""
    pass


class NetworkError(RetryableError, SourceError):
    """Network-related errors that should be retried."""
    pass


class CheckpointFetchError(NonRetryableError, SourceError):
    """Checkpoint could not be obtained after exhausting retries, or is malformed."""
    pass


# ============================================================================
# Projection Errors
# ============================================================================

class ProjectionError(IndexerException):
    """
    Exception raised when a checkpoint cannot be applied to the projection.

    The checkpoint transaction has been rolled back and the cursor was not
    advanced.

    Context should include:
        - checkpoint: Checkpoint sequence number
        - event_id: Event being applied when the failure happened
        - event_kind: Domain event kind
    """
    pass


class EventValidationError(NonRetryableError, ProjectionError):
    """A domain rule rejected a single event (for example a self-follow)."""
    pass


class UsernameConflictError(NonRetryableError, ProjectionError):
    """
    A username change targets a name owned by another profile.

    Context should include:
        - username: Requested username
        - profile_id: Profile requesting it
        - owner_profile_id: Profile currently holding it
    """
    pass


# ============================================================================
# Cursor and Reconciliation Errors
# ============================================================================

class CursorError(IndexerException):
    """
    Exception raised when the progress cursor cannot be read or advanced.

    Context should include:
        - worker_id: Worker identity
        - checkpoint: Checkpoint value involved
        - operation: read or advance
    """
    pass


class ReconciliationError(IndexerException):
    """Exception raised when a counter reconciliation pass fails."""
    pass
