"""
Datastore Wrapper Library

A type-safe, generic wrapper around Google Cloud Datastore using
google-cloud-datastore and Pydantic. It provides a fluent query builder,
offset and cursor pagination with conflict detection, count aggregation,
and chunked batch upsert / lookup / delete.
"""

from .config import DatastoreConfig
from .core import DatastoreDB, connect, map_datastore_error
from .exceptions import (
    AggregationError,
    BackendError,
    ConflictError,
    ConnectionError,
    DatastoreWrapperError,
    IndexRequiredError,
    PaginationConflictError,
    PermissionDeniedError,
    RetryableError,
    ValidationError,
)
from .models import DatastoreMixin, DateTimeMixin
from .query import (
    FIELD_KEY,
    ApplyOutcome,
    FilterOperator,
    QueryBuilder,
    query,
)

__version__ = "1.0.0"
__all__ = [
    # Configuration
    "DatastoreConfig",

    # Connection
    "DatastoreDB",
    "connect",
    "map_datastore_error",

    # Exceptions
    "AggregationError",
    "BackendError",
    "ConflictError",
    "ConnectionError",
    "DatastoreWrapperError",
    "IndexRequiredError",
    "PaginationConflictError",
    "PermissionDeniedError",
    "RetryableError",
    "ValidationError",

    # Record mixins
    "DatastoreMixin",
    "DateTimeMixin",

    # Query builder
    "FIELD_KEY",
    "ApplyOutcome",
    "FilterOperator",
    "QueryBuilder",
    "query",
]
