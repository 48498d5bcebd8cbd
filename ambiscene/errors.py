"""Domain exceptions and error taxonomy for the soundscape pipeline.

Responsibilities:
- Name the failure kinds recorded on books, pages, and scenes.
- Carry provider failure metadata (kind, HTTP status, retryability).
- Provide CLI-facing stage errors with actionable hints.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Failure kinds recorded in book error lists."""

    TRANSIENT_TRANSPORT = "transient_transport"
    PERMANENT_REQUEST = "permanent_request"
    PARSE_FAILURE = "parse_failure"
    SYNTHESIS_FAILED = "synthesis_failed"
    SYNTHESIS_CANCELED = "synthesis_canceled"
    SYNTHESIS_TIMEOUT = "synthesis_timeout"
    STORAGE_FAILURE = "storage_failure"
    ALL_SCENES_FAILED = "all_scenes_failed"
    BOOK_TIMEOUT = "book_timeout"
    NO_PAGES = "no_pages"
    HIGH_FAILURE_RATE = "high_failure_rate"
    STAGE_CRASHED = "stage_crashed"


class ClassificationFailure(str, Enum):
    """Reasons a classification call can fail."""

    MISSING_KEYS = "missing_keys"
    UNPARSEABLE = "unparseable"
    TRANSPORT = "transport"
    EMPTY_INPUT = "empty_input"


class PipelineStageError(RuntimeError):
    """Raised when a specific pipeline or CLI stage fails."""

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        hint: str | None = None,
    ) -> None:
        """Initialize a stage-scoped pipeline error."""

        super().__init__(detail)
        self.stage = stage
        self.detail = detail
        self.hint = hint


class ProviderError(RuntimeError):
    """Raised when an external service request fails or returns unusable output."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.PERMANENT_REQUEST,
        status_code: int | None = None,
    ) -> None:
        """Initialize provider error metadata for retry decisions and diagnostics."""

        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """Return whether the failure is transient and worth another attempt."""

        return self.kind == ErrorKind.TRANSIENT_TRANSPORT


class ClassificationError(ProviderError):
    """Raised when a page cannot be turned into a complete descriptor set."""

    def __init__(
        self,
        message: str,
        *,
        reason: ClassificationFailure,
        kind: ErrorKind | None = None,
        status_code: int | None = None,
        missing_keys: tuple[str, ...] = (),
    ) -> None:
        """Initialize classification failure with its reason and provider metadata."""

        if kind is None:
            kind = (
                ErrorKind.PERMANENT_REQUEST
                if reason in (ClassificationFailure.TRANSPORT, ClassificationFailure.EMPTY_INPUT)
                else ErrorKind.PARSE_FAILURE
            )
        super().__init__(message, kind=kind, status_code=status_code)
        self.reason = reason
        self.missing_keys = missing_keys

    @classmethod
    def from_provider_error(cls, exc: ProviderError) -> ClassificationError:
        """Wrap a transport-level provider error as a classification failure."""

        return cls(
            str(exc),
            reason=ClassificationFailure.TRANSPORT,
            kind=exc.kind,
            status_code=exc.status_code,
        )


class SynthesisError(ProviderError):
    """Raised when an audio synthesis job fails, is canceled, or times out."""


class StorageError(RuntimeError):
    """Raised when object storage cannot persist or return an asset."""


class InvalidStatusTransition(RuntimeError):
    """Raised when a book is moved along an edge the state machine forbids."""

    def __init__(self, book_id: str, current: str, requested: str) -> None:
        """Initialize transition error with both endpoint states."""

        super().__init__(
            f"Book `{book_id}` cannot move from `{current}` to `{requested}`."
        )
        self.book_id = book_id
        self.current = current
        self.requested = requested
