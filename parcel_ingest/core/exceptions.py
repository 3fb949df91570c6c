"""Unified ingestion exception taxonomy.

Every domain exception inherits from ``IngestError`` and carries a
stable machine-readable code, a human message, and structured details
(counts, sample offending coordinates, affected feature indices) so the
calling layer can render precise guidance.

Taxonomy categories
-------------------
- ``ValidationError``   — input/contract violations, never retryable.
- ``TransientError``    — temporary failures (cancellation, store), retryable.
- ``PermanentError``    — unrecoverable failures (corrupt file), not retryable.
- ``ContractError``     — payload/schema drift between layers, never retryable.

Every exception exposes ``to_error_dict()`` for a stable structured
error payload suitable for API responses and logging.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from parcel_ingest.models.contracts import ErrorPayload


class IngestError(Exception):
    """Base exception for all ingestion-domain errors.

    Attributes:
        message: Human-readable error description.
        stage: Stage where the error occurred (e.g. ``"parse"``, ``"apply"``).
        code: Machine-readable error code (e.g. ``"FILE_CORRUPT"``).
        retryable: Whether the caller may retry the operation unchanged.
        details: Structured context (counts, indices, sample coordinates).
        requires_confirmation: Whether the caller must confirm before proceeding.
    """

    #: Default stage for subclasses (override via class attribute or kwarg).
    default_stage: str = ""
    #: Default code for subclasses (override via class attribute or kwarg).
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "",
        *,
        stage: str = "",
        code: str = "",
        retryable: bool = False,
        details: dict[str, object] | None = None,
        requires_confirmation: bool = False,
    ) -> None:
        self.message = message
        self.stage = stage or self.default_stage
        self.code = code or self.default_code
        self.retryable = retryable
        self.details = dict(details) if details else {}
        self.requires_confirmation = requires_confirmation
        super().__init__(message)

    @property
    def category(self) -> str:
        """Return the error category based on concrete class."""
        if isinstance(self, ContractError):
            return "contract"
        if isinstance(self, ValidationError):
            return "validation"
        if isinstance(self, TransientError):
            return "transient"
        if isinstance(self, PermanentError):
            return "permanent"
        return "transient" if self.retryable else "permanent"

    def to_error_dict(self) -> ErrorPayload:
        """Return a structured error payload with stable keys."""
        return {
            "category": self.category,
            "code": self.code,
            "stage": self.stage,
            "message": self.message,
            "retryable": self.retryable,
            "details": dict(self.details),
            "requires_confirmation": self.requires_confirmation,
        }


# ---------------------------------------------------------------------------
# Category base classes
# ---------------------------------------------------------------------------


class ValidationError(IngestError):
    """Input or domain-model validation failure. Never retryable."""

    default_code = "VALIDATION_ERROR"

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class TransientError(IngestError):
    """Temporary failure that may succeed on retry."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class PermanentError(IngestError):
    """Unrecoverable domain failure. Not retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class ContractError(IngestError):
    """Payload or schema drift between layers. Never retryable."""

    default_code = "CONTRACT_VIOLATION"

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Shared domain errors
# ---------------------------------------------------------------------------


class ModelValidationError(ValueError, ValidationError):
    """Raised when a domain model is constructed with invalid field values.

    Attributes:
        model: Name of the model class that failed validation.
        field_name: The field that violated the invariant.
        value: The invalid value.
    """

    default_stage = "model_validation"

    def __init__(self, model: str, field_name: str, value: object, message: str) -> None:
        self.model = model
        self.field_name = field_name
        self.value = value
        formatted = f"{model}.{field_name}={value!r}: {message}"
        ValidationError.__init__(
            self, formatted, details={"model": model, "field": field_name}
        )


class NotFoundError(ValidationError):
    """Raised when a referenced import file, farmer or supplier does not exist."""

    default_code = "NOT_FOUND"


class LimitExceededError(ValidationError):
    """Raised when an upload or parse exceeds a configured limit."""

    default_code = "LIMIT_EXCEEDED"


class StoreError(TransientError):
    """Raised by a ``ParcelStore`` when persistence fails."""

    default_stage = "store"
    default_code = "STORE_ERROR"
