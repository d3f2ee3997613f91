from typing import Any, Dict, Optional


class DatastoreWrapperError(Exception):
    """Base exception for all Datastore wrapper errors.

    Attributes:
        message: Human-readable error message
        original_error: The exception raised by the client library (if any)
        context: Additional context; includes ``kind`` and ``operation`` when known
        kind: Entity kind the failing call ran against
        operation: Builder or connection operation that failed (e.g. "select")
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None,
        kind: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        self.message = message
        self.original_error = original_error
        self.kind = kind
        self.operation = operation

        self.context: Dict[str, Any] = {}
        if kind:
            self.context['kind'] = kind
        if operation:
            self.context['operation'] = operation
        self.context.update(context or {})
        super().__init__(message)

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} (Context: {details})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(message={self.message!r}, kind={self.kind!r}, "
            f"operation={self.operation!r}, original_error={self.original_error!r})"
        )
