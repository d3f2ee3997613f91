"""
Backend error mapping.

Converts exceptions raised by the google-cloud-datastore client into the
wrapper's exception taxonomy. The mapping only classifies; it never retries
and never hides the original exception, which stays available on
``original_error`` and as ``__cause__`` when raised with ``from``.
"""

import logging
from typing import Optional

from google.api_core import exceptions as core_exceptions

from ..exceptions import (
    BackendError,
    ConflictError,
    IndexRequiredError,
    PermissionDeniedError,
    RetryableError,
)

logger = logging.getLogger(__name__)

# Store name used as the first token of every failure log line
STORE_NAME = "datastore"

_RETRYABLE = (
    core_exceptions.ServiceUnavailable,
    core_exceptions.InternalServerError,
    core_exceptions.BadGateway,
    core_exceptions.GatewayTimeout,
    core_exceptions.TooManyRequests,
    core_exceptions.Cancelled,
    core_exceptions.RetryError,
)

_CONFLICT = (
    core_exceptions.Conflict,
)

_PERMISSION = (
    core_exceptions.PermissionDenied,
    core_exceptions.Unauthorized,
    core_exceptions.Forbidden,
)


def map_datastore_error(
    error: Exception,
    operation: str,
    kind: str,
    resource_id: Optional[str] = None
) -> BackendError:
    """Map a client library exception to a domain-specific BackendError.

    Args:
        error: The exception raised by the Datastore client
        operation: The operation that failed (e.g., "select", "upsert-multi")
        kind: The entity kind the operation ran against
        resource_id: Optional entity id for context

    Returns:
        BackendError or one of its subclasses
    """
    context = f"{operation} on {kind}"
    if resource_id:
        context += f" (id: {resource_id})"

    full_message = f"{context}: {error}"

    # DeadlineExceeded subclasses GatewayTimeout; ResourceExhausted subclasses TooManyRequests
    if isinstance(error, _RETRYABLE):
        return RetryableError(f"Transient backend failure - {full_message}", kind, operation, original_error=error)

    # Aborted and AlreadyExists both subclass Conflict
    elif isinstance(error, _CONFLICT):
        return ConflictError(f"Write conflict - {full_message}", kind, operation, original_error=error)

    elif isinstance(error, core_exceptions.FailedPrecondition):
        return IndexRequiredError(f"Query needs a composite index - {full_message}", kind, operation, original_error=error)

    elif isinstance(error, _PERMISSION):
        return PermissionDeniedError(f"Credentials rejected - {full_message}", kind, operation, original_error=error)

    elif isinstance(error, core_exceptions.GoogleAPICallError):
        return BackendError(f"Datastore call failed - {full_message}", kind, operation, original_error=error)

    logger.debug(f"Non-API error '{type(error).__name__}' mapped to BackendError")
    return BackendError(f"Datastore operation failed - {full_message}", kind, operation, original_error=error)

