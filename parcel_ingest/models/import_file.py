"""Import file lifecycle.

An ``ImportFile`` moves through a small state machine::

    uploaded ──parse──▶ parsed ──apply──▶ applied
        │                 │  ▲
        └──fatal──▶ failed◀┘  └─ re-parse (idempotent)

``applied`` and ``failed`` are terminal. Every transition goes through
``ImportFile.transition_to`` so an illegal move (e.g. apply after apply)
is a single guarded check.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from parcel_ingest.core.constants import IMPORT_ALREADY_APPLIED, INVALID_IMPORT_STATUS
from parcel_ingest.core.exceptions import ValidationError
from parcel_ingest.models.parcel import ParcelSource

if TYPE_CHECKING:
    from parcel_ingest.models.contracts import ParseReportPayload


class InvalidTransitionError(ValidationError):
    """Raised when an import file is asked to make an illegal status move."""

    default_stage = "import_session"
    default_code = INVALID_IMPORT_STATUS


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ImportStatus(enum.Enum):
    """Lifecycle state of an import file.

    Values:
        UPLOADED: Bytes stored, not yet parsed.
        PARSED:   Features extracted and previewable.
        FAILED:   A file-level error stopped the parse (terminal).
        APPLIED:  Parcels materialized (terminal).
    """

    UPLOADED = "uploaded"
    PARSED = "parsed"
    FAILED = "failed"
    APPLIED = "applied"

    @property
    def is_terminal(self) -> bool:
        return self in (ImportStatus.FAILED, ImportStatus.APPLIED)

    def can_transition_to(self, target: ImportStatus) -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[ImportStatus, frozenset[ImportStatus]] = {
    ImportStatus.UPLOADED: frozenset({ImportStatus.PARSED, ImportStatus.FAILED}),
    ImportStatus.PARSED: frozenset(
        {ImportStatus.PARSED, ImportStatus.APPLIED, ImportStatus.FAILED}
    ),
    ImportStatus.FAILED: frozenset(),
    ImportStatus.APPLIED: frozenset(),
}


class SourceFormat(enum.Enum):
    """Upload format, detected from the file extension."""

    SHAPEFILE_ZIP = "shapefile_zip"
    KML = "kml"
    KMZ = "kmz"
    GEOJSON = "geojson"

    @property
    def parcel_source(self) -> ParcelSource:
        """The ``Parcel.source`` recorded for parcels created from this format."""
        if self is SourceFormat.SHAPEFILE_ZIP:
            return ParcelSource.SHAPEFILE
        if self in (SourceFormat.KML, SourceFormat.KMZ):
            return ParcelSource.KML
        return ParcelSource.GEOJSON


_EXTENSIONS: dict[str, SourceFormat] = {
    ".zip": SourceFormat.SHAPEFILE_ZIP,
    ".kml": SourceFormat.KML,
    ".kmz": SourceFormat.KMZ,
    ".geojson": SourceFormat.GEOJSON,
    ".json": SourceFormat.GEOJSON,
}


def detect_source_format(filename: str) -> SourceFormat | None:
    """Return the format implied by *filename*'s extension, or ``None``."""
    lowered = filename.lower().strip()
    for ext, fmt in _EXTENSIONS.items():
        if lowered.endswith(ext):
            return fmt
    return None


# ---------------------------------------------------------------------------
# Import file
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ImportFile:
    """An uploaded geometry file and its processing state.

    Attributes:
        id: Store identifier.
        cooperative_id: Owning cooperative.
        filename: Original upload filename.
        source_format: Detected format.
        file_sha256: SHA-256 of the uploaded bytes (duplicate-upload check).
        content: Raw uploaded bytes.
        status: Current lifecycle state.
        has_projection_file: Whether a ``.prj`` accompanied the shapefile.
        parse_report: Errors, warnings and counts from the last parse.
        nb_features: Number of parsed features.
        nb_applied: Parcels created on apply.
        nb_skipped_duplicates: Duplicate features skipped on apply.
        failed_reason: Message of the fatal error, when ``FAILED``.
        created_at: Upload timestamp (UTC).
    """

    id: str
    cooperative_id: str
    filename: str
    source_format: SourceFormat
    file_sha256: str
    content: bytes = field(default=b"", repr=False)
    status: ImportStatus = ImportStatus.UPLOADED
    has_projection_file: bool = False
    parse_report: ParseReportPayload | None = None
    nb_features: int = 0
    nb_applied: int = 0
    nb_skipped_duplicates: int = 0
    failed_reason: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def transition_to(self, target: ImportStatus, **changes: object) -> ImportFile:
        """Return a copy in state *target* with *changes* applied.

        Raises:
            InvalidTransitionError: If ``status -> target`` is not allowed.
                Re-applying an applied file carries ``IMPORT_ALREADY_APPLIED``.
        """
        if not self.status.can_transition_to(target):
            code = (
                IMPORT_ALREADY_APPLIED
                if self.status is ImportStatus.APPLIED and target is ImportStatus.APPLIED
                else INVALID_IMPORT_STATUS
            )
            msg = (
                f"Import {self.id} cannot move from '{self.status.value}' "
                f"to '{target.value}'"
            )
            raise InvalidTransitionError(
                msg,
                code=code,
                details={"import_file_id": self.id, "status": self.status.value},
            )
        return replace(self, status=target, **changes)  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, object]:
        """Serialise metadata (the raw content is omitted)."""
        return {
            "id": self.id,
            "cooperative_id": self.cooperative_id,
            "filename": self.filename,
            "source_format": self.source_format.value,
            "file_sha256": self.file_sha256,
            "status": self.status.value,
            "has_projection_file": self.has_projection_file,
            "parse_report": self.parse_report,
            "nb_features": self.nb_features,
            "nb_applied": self.nb_applied,
            "nb_skipped_duplicates": self.nb_skipped_duplicates,
            "failed_reason": self.failed_reason,
            "created_at": self.created_at.isoformat(),
        }
