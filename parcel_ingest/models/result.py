"""Result wrapper returned by every session operation.

Session operations never let an ``IngestError`` escape: they return an
``OperationResult`` that is either ``ok`` with a value (and possibly
warnings) or carries a structured error payload.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from parcel_ingest.core.exceptions import IngestError
    from parcel_ingest.models.contracts import ErrorPayload, ParseIssuePayload

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class OperationResult(Generic[T]):
    """Success-with-warnings or failure.

    Attributes:
        value: The operation's output when ``ok``.
        error: Structured error payload when not ``ok``.
        warnings: Advisory issues attached to a successful result.
    """

    value: T | None = None
    error: ErrorPayload | None = None
    warnings: tuple[ParseIssuePayload, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_code(self) -> str | None:
        return self.error["code"] if self.error is not None else None

    @classmethod
    def success(
        cls, value: T, warnings: tuple[ParseIssuePayload, ...] = ()
    ) -> OperationResult[T]:
        return cls(value=value, warnings=warnings)

    @classmethod
    def failure(cls, exc: IngestError) -> OperationResult[T]:
        return cls(error=exc.to_error_dict())
