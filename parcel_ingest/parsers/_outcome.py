"""Parser output container shared by every format."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from parcel_ingest.models.feature import ParseIssue

if TYPE_CHECKING:
    from parcel_ingest.core.exceptions import IngestError
    from parcel_ingest.models.feature import RawFeature


@dataclass(slots=True)
class ParseOutcome:
    """Everything a parser extracted from one file.

    A file-level fatal error sets ``fatal_error`` and leaves ``features``
    empty. A successful run may still carry per-feature ``errors`` and
    advisory ``warnings``; an empty feature list without ``fatal_error``
    is a valid (if unhelpful) file.

    Attributes:
        features: Raw polygonal features, in source order.
        errors: Per-feature errors (the feature was skipped).
        warnings: Advisory issues (file-level or per-feature).
        available_attribute_fields: Attribute names seen, in first-seen order.
        has_projection_file: Whether a shapefile ``.prj`` member was present.
        fatal_error: The file-level error that aborted the parse, if any.
    """

    features: list[RawFeature] = field(default_factory=list)
    errors: list[ParseIssue] = field(default_factory=list)
    warnings: list[ParseIssue] = field(default_factory=list)
    available_attribute_fields: list[str] = field(default_factory=list)
    has_projection_file: bool = False
    fatal_error: ParseIssue | None = None

    @property
    def ok(self) -> bool:
        return self.fatal_error is None

    @property
    def requires_confirmation(self) -> bool:
        return any(w.requires_confirmation for w in self.warnings)

    @classmethod
    def from_fatal(cls, exc: IngestError) -> ParseOutcome:
        return cls(fatal_error=issue_from_error(exc))

    def add_error(self, exc: IngestError, feature_index: int | None) -> None:
        self.errors.append(issue_from_error(exc, feature_index))

    def warn(
        self,
        code: str,
        message: str,
        *,
        feature_index: int | None = None,
        requires_confirmation: bool = False,
        **details: object,
    ) -> None:
        self.warnings.append(
            ParseIssue(
                code=code,
                message=message,
                feature_index=feature_index,
                details=details,
                requires_confirmation=requires_confirmation,
            )
        )

    def note_fields(self, names: list[str] | tuple[str, ...]) -> None:
        for name in names:
            if name not in self.available_attribute_fields:
                self.available_attribute_fields.append(name)


def issue_from_error(exc: IngestError, feature_index: int | None = None) -> ParseIssue:
    """Convert an ``IngestError`` into a ``ParseIssue``."""
    return ParseIssue(
        code=exc.code,
        message=exc.message,
        feature_index=feature_index,
        details=dict(exc.details),
        requires_confirmation=exc.requires_confirmation,
    )
