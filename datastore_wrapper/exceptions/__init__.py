# Base exception class
from .base import DatastoreWrapperError

from .connection import ConnectionError

# Domain-specific exceptions
from .domain_exceptions import (
    AggregationError,
    BackendError,
    ConflictError,
    IndexRequiredError,
    PaginationConflictError,
    PermissionDeniedError,
    RetryableError,
    ValidationError,
)

__all__ = [
    # Base exception
    "DatastoreWrapperError",

    # Domain exceptions (alphabetically ordered)
    "AggregationError",
    "BackendError",
    "ConflictError",
    "ConnectionError",
    "IndexRequiredError",
    "PaginationConflictError",
    "PermissionDeniedError",
    "RetryableError",
    "ValidationError",
]
