"""
Domain-Specific Exceptions for Datastore Wrapper

This module consolidates the exceptions that extend the base
DatastoreWrapperError. They separate configuration mistakes made while
building a query from failures reported by the backend.

Organized by category:
1. Data Validation Errors
2. Query Configuration Errors
3. Backend Errors
4. Aggregation Protocol Errors
"""

from typing import Any, Dict, Optional

from .base import DatastoreWrapperError


# =============================================================================
# Data Validation Errors
# =============================================================================

class ValidationError(DatastoreWrapperError):
    """Raised when data validation fails.

    Used for:
    - Pydantic model validation failures while reading entities
    - Records that cannot be converted into Datastore entities
    - Unsupported builder arguments (e.g. unknown filter operator)
    """

    def __init__(self, message: str, errors: Optional[Dict[str, Any]] = None, original_error: Optional[Exception] = None):
        """Initialize validation error.

        Args:
            message: Human-readable error message
            errors: Dictionary of field-level validation errors
            original_error: The original exception that caused this error
        """
        self.errors = errors or {}
        context = {}
        if self.errors:
            context['validation_errors'] = self.errors
        super().__init__(message, original_error, context)


# =============================================================================
# Query Configuration Errors
# =============================================================================

class PaginationConflictError(DatastoreWrapperError):
    """Raised when an execution path does not match the pagination mode.

    A builder configured with ``with_offset`` cannot run ``select_with_cursor``
    and a builder configured with ``with_cursor`` cannot run ``select``,
    ``select_keys`` or ``get``. Always raised before any backend call.
    """

    def __init__(self, message: str, kind: Optional[str] = None, operation: Optional[str] = None):
        """Initialize pagination conflict error.

        Args:
            message: Human-readable error message
            kind: Entity kind of the offending builder
            operation: Execution method that was rejected
        """
        super().__init__(message, kind=kind, operation=operation)


# =============================================================================
# Backend Errors
# =============================================================================

class BackendError(DatastoreWrapperError):
    """Raised when the Datastore backend reports a failure.

    Wraps errors from query execution, aggregation, put, lookup and delete.
    The backend exception is kept untouched on ``original_error``.
    """

    def __init__(self, message: str, kind: Optional[str] = None, operation: Optional[str] = None, original_error: Optional[Exception] = None):
        """Initialize backend error.

        Args:
            message: Human-readable error message
            kind: Entity kind the operation ran against
            operation: Operation name (e.g. "select", "upsert-multi")
            original_error: The exception raised by the client library
        """
        super().__init__(message, original_error, kind=kind, operation=operation)


class RetryableError(BackendError):
    """Raised for transient backend failures that a caller may retry.

    Used for:
    - ServiceUnavailable / InternalServerError
    - TooManyRequests / ResourceExhausted
    - DeadlineExceeded and cancelled calls
    """


class ConflictError(BackendError):
    """Raised when the backend rejects a write due to contention.

    Used for:
    - Aborted commits (entity group contention)
    - Conflict / AlreadyExists responses
    """


class IndexRequiredError(BackendError):
    """Raised when a query needs a composite index that does not exist.

    Datastore reports this as FAILED_PRECONDITION; the message usually
    contains the suggested index definition.
    """


class PermissionDeniedError(BackendError):
    """Raised when the credentials are rejected by the backend."""


# =============================================================================
# Aggregation Protocol Errors
# =============================================================================

class AggregationError(DatastoreWrapperError):
    """Raised when an aggregation result does not have the expected shape.

    Distinct from BackendError: the call succeeded, but the count alias was
    missing or its value was not an integer.
    """

    def __init__(self, message: str, kind: Optional[str] = None, alias: Optional[str] = None):
        """Initialize aggregation error.

        Args:
            message: Human-readable error message
            kind: Entity kind the aggregation ran against
            alias: Aggregation alias that was expected
        """
        self.alias = alias
        super().__init__(message, context={'alias': alias} if alias else None, kind=kind, operation="total")
