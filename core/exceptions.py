"""
Custom exceptions for the deal ingestion pipeline with structured error context.

This module provides the exception hierarchy used by every pipeline stage.
Each exception carries context information (source, post id, url, ...) so
that per-item failures can be logged and folded into run counters without
losing the identifying keys.

Exception Hierarchy:
    PipelineException (base)
    ├── ConfigurationError          (fatal, aborts the run)
    ├── RetryableError / NonRetryableError (mixins)
    ├── FetchFailure                (retryable within a target)
    │   └── PageLoadTimeout
    ├── ParseFailure                (item skipped)
    ├── PersistFailure              (item transaction rolled back)
    │   └── CategoryResolutionError
    └── AffiliateConversionError    (candidate skipped)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class PipelineException(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, source_post_id, url, ...)
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
        self.timestamp = datetime.utcnow()

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
# Configuration Errors
# ============================================================================

class ConfigurationError(PipelineException):
    """
    Exception raised when a required setting is missing or invalid.

    Raised before any network or database activity; the batch entrypoints
    terminate the process with a nonzero exit code.

    Context should include:
        - setting: Name of the offending setting
        - value: The rejected value (if any)
    """
    pass


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(PipelineException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Navigation timeouts
    - Connection resets
    - Transient browser crashes
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        max_retries: int = 3,
        retry_delay: float = 0.8
    ):
        super().__init__(message, context, original_exception)
        self.max_retries = max_retries
        self.retry_delay = retry_delay


class NonRetryableError(PipelineException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Malformed extracted markup
    - Constraint violations
    - Invalid affiliate URLs
    """
    pass


# ============================================================================
# Fetch Errors
# ============================================================================

class FetchFailure(RetryableError):
    """
    Exception raised when a detail page cannot be loaded.

    Retryable within a target; terminal only after every URL variant and
    attempt has been exhausted.

    Context should include:
        - source_post_id: Identity of the target post
        - url: The URL variant that failed
        - attempt: Attempt number within the variant
    """
    pass


class PageLoadTimeout(FetchFailure):
    """Navigation exceeded the configured page-load timeout."""
    pass


# ============================================================================
# Parse Errors
# ============================================================================

class ParseFailure(NonRetryableError):
    """
    Exception raised when extracted page data has an unexpected shape.

    Context should include:
        - source: Source board name
        - source_post_id: Identity of the post
        - field_errors: Validation errors (if any)
    """
    pass


# ============================================================================
# Persist Errors
# ============================================================================

class PersistFailure(NonRetryableError):
    """
    Exception raised when an item's reconciliation transaction fails.

    The item's transaction is rolled back; the batch continues.

    Context should include:
        - source: Source board name
        - source_post_id: Identity of the post
        - post_url: Canonical post URL
        - deal_id: Deal id (if it was already resolved)
    """
    pass


class CategoryResolutionError(PersistFailure):
    """No category could be resolved (default category missing)."""
    pass


# ============================================================================
# Affiliate Errors
# ============================================================================

class AffiliateConversionError(NonRetryableError):
    """
    Exception raised when a purchase URL cannot be converted into an affiliate URL.

    Context should include:
        - deal_id: Deal owning the original link
        - url: Original purchase URL
    """
    pass
