"""Error taxonomy for classification, category storage and reconciliation."""

from enum import StrEnum


class ErrorKind(StrEnum):
    """Discriminates every failure a classification call can surface."""

    VALIDATION = "VALIDATION_ERROR"
    RATE_LIMIT = "RATE_LIMIT_ERROR"
    AUTH = "AUTH_ERROR"
    NETWORK = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT_ERROR"
    SERVER = "SERVER_ERROR"
    PARSE = "PARSE_ERROR"
    UNKNOWN = "UNKNOWN_ERROR"


class ClassificationError(Exception):
    """A typed classification failure.

    Calling code branches on ``kind``; ``cause`` keeps the underlying exception for
    diagnostics and ``retry_after`` (seconds) is set for local rate-limit rejections.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        cause: BaseException | None = None,
        retry_after: float | None = None,
    ) -> None:
        """Initialize the error with its message, kind and optional cause."""
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.cause = cause
        self.retry_after = retry_after

    def __repr__(self) -> str:
        return f"ClassificationError(kind={self.kind.value!r}, message={self.message!r})"


class CategoryStoreError(Exception):
    """Raised when the category store cannot read or write categories."""


class ReconciliationError(Exception):
    """Raised when a batch could not be reconciled; no category was assigned."""
