"""Exception hierarchy shared by the ingestion and retention paths."""


class LogshipError(Exception):
    """Base class for every error raised by logship."""


class StoreError(LogshipError):
    """The document store could not complete a request (network, timeout, non-2xx)."""

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"store {operation} failed{detail}")


class SchemaMismatchError(LogshipError):
    """The event model and the declared index mapping disagree on a field."""

    def __init__(self, field: str, missing_from: str):
        self.field = field
        self.missing_from = missing_from
        super().__init__(f"field '{field}' does not exist in {missing_from}")


class InvalidTargetError(LogshipError, ValueError):
    """A target descriptor could not be parsed."""


class SweepAbortedError(LogshipError):
    """A retention sweep exhausted its configured retry bound."""
