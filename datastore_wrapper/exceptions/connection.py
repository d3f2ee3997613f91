from typing import Any, Dict, Optional

from .base import DatastoreWrapperError


class ConnectionError(DatastoreWrapperError):
    """Raised when a Datastore client cannot be created.

    Used for:
    - Malformed service account JSON
    - Missing Application Default Credentials
    - Invalid project / database configuration
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None, context: Optional[Dict[str, Any]] = None):
        """Initialize connection error.

        Args:
            message: Human-readable error message
            original_error: The original exception that caused this error
            context: Additional context information (e.g., project_id, database_id)
        """
        super().__init__(message, original_error, context)
