"""Import session — the request/response surface of the ingestion core.

Coordinates one import file through its lifecycle:

1. ``upload``   — type detection, size limit, duplicate-file check.
2. ``parse``    — format parser, then per-feature normalization, hashing,
   metrics and duplicate detection (``activities.parse_import``).
3. ``preview`` / ``preview_auto_create`` — read-only views of a parse.
4. ``apply``    — transactional parcel creation (``activities.apply_import``).

Every operation returns an ``OperationResult``. ``IngestError`` never
escapes: it is logged and turned into a structured error payload. Any
other exception raised while parsing, applying or listing (GEOS, PROJ,
store driver) is logged with its traceback and reported as
``INTERNAL_ERROR``.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from typing import TYPE_CHECKING

from parcel_ingest.activities.apply_import import (
    ApplyRejectedError,
    apply_features,
    preview_auto_create,
)
from parcel_ingest.activities.parse_import import ParseReport, build_parse_run
from parcel_ingest.core.config import IngestConfig
from parcel_ingest.core.constants import (
    CONFIRMATION_REQUIRED,
    DUPLICATE_FILE,
    INTERNAL_ERROR,
    UNSUPPORTED_FILE_TYPE,
)
from parcel_ingest.core.exceptions import (
    IngestError,
    LimitExceededError,
    NotFoundError,
    PermanentError,
    ValidationError,
)
from parcel_ingest.geometry.canonical import file_sha256
from parcel_ingest.geometry.metrics import simplify_for_zoom
from parcel_ingest.geometry.spatial_filter import parse_bbox
from parcel_ingest.models.apply import ApplyRequest, ApplyRequestError
from parcel_ingest.models.import_file import ImportFile, ImportStatus, detect_source_format
from parcel_ingest.models.result import OperationResult
from parcel_ingest.parsers import ParseError, parse_file

if TYPE_CHECKING:
    import threading

    from parcel_ingest.geometry.engine import GeometryEngine
    from parcel_ingest.models.apply import ApplyResult, AutoCreatePreview
    from parcel_ingest.models.contracts import ParseReportPayload
    from parcel_ingest.models.feature import ParsedFeature
    from parcel_ingest.models.parcel import BBox, Parcel
    from parcel_ingest.store.base import ParcelStore

logger = logging.getLogger("parcel_ingest.orchestrators.import_session")


class UploadRejectedError(ValidationError):
    """Raised when an upload is refused (unknown type, duplicate file)."""

    default_stage = "upload"


@dataclasses.dataclass(frozen=True, slots=True)
class ImportPreview:
    """Parsed features of an import file, in deterministic order."""

    import_file: ImportFile
    features: tuple[ParsedFeature, ...]

    @property
    def report(self) -> ParseReportPayload | None:
        return self.import_file.parse_report

    def to_dict(self) -> dict[str, object]:
        return {
            "import_file": self.import_file.to_dict(),
            "features": [f.to_dict() for f in self.features],
        }


class ImportSession:
    """Upload → parse → preview → apply, over a ``ParcelStore``.

    Args:
        store: Persistence backend.
        config: Limits and worker settings, defaults to ``IngestConfig()``.
        engine: Geometry engine, defaults to shapely.
    """

    def __init__(
        self,
        store: ParcelStore,
        config: IngestConfig | None = None,
        engine: GeometryEngine | None = None,
    ) -> None:
        self._store = store
        self._config = config or IngestConfig()
        self._engine = engine

    @property
    def store(self) -> ParcelStore:
        return self._store

    @property
    def config(self) -> IngestConfig:
        return self._config

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def upload(
        self, content: bytes, filename: str, cooperative_id: str
    ) -> OperationResult[ImportFile]:
        """Register an uploaded file in state ``uploaded``."""
        try:
            return OperationResult.success(self._upload(content, filename, cooperative_id))
        except IngestError as exc:
            return self._fail("upload", exc)

    def _upload(self, content: bytes, filename: str, cooperative_id: str) -> ImportFile:
        source_format = detect_source_format(filename)
        if source_format is None:
            msg = f"Unsupported file type: {filename!r}"
            raise UploadRejectedError(
                msg,
                code=UNSUPPORTED_FILE_TYPE,
                details={
                    "filename": filename,
                    "allowed": [".zip", ".kml", ".kmz", ".geojson", ".json"],
                },
            )

        limit = self._config.max_file_size_bytes
        if len(content) > limit:
            msg = f"File is {len(content)} bytes, the limit is {limit}"
            raise LimitExceededError(
                msg, stage="upload", details={"size_bytes": len(content), "limit": limit}
            )

        sha = file_sha256(content)
        existing = self._store.find_import_by_sha(cooperative_id, sha)
        if existing is not None:
            msg = f"This file was already uploaded as import {existing.id}"
            raise UploadRejectedError(
                msg,
                code=DUPLICATE_FILE,
                details={"existing_import_id": existing.id, "file_sha256": sha},
            )

        import_file = ImportFile(
            id=str(uuid.uuid4()),
            cooperative_id=cooperative_id,
            filename=filename,
            source_format=source_format,
            file_sha256=sha,
            content=content,
        )
        self._store.save_import_file(import_file)
        logger.info(
            "Upload accepted | import=%s | file=%s | format=%s | size=%d",
            import_file.id,
            filename,
            source_format.value,
            len(content),
        )
        return import_file

    # ------------------------------------------------------------------
    # Parse
    # ------------------------------------------------------------------

    def parse(
        self, import_id: str, cancel_event: threading.Event | None = None
    ) -> OperationResult[ImportPreview]:
        """Parse an uploaded (or re-parse a parsed) file.

        A fatal file error or too many features moves the file to
        ``failed``. Cancellation leaves it untouched.
        """
        try:
            preview = self._parse(import_id, cancel_event)
        except IngestError as exc:
            return self._fail("parse", exc)
        except Exception as exc:
            return self._unexpected("parse", exc)
        report = preview.import_file.parse_report
        warnings = tuple(report["warnings"]) if report else ()
        return OperationResult.success(preview, warnings=warnings)

    def _parse(self, import_id: str, cancel_event: threading.Event | None) -> ImportPreview:
        import_file = self._require_import(import_id)
        if not import_file.status.can_transition_to(ImportStatus.PARSED):
            import_file.transition_to(ImportStatus.PARSED)

        outcome = parse_file(
            import_file.content, import_file.source_format, filename=import_file.filename
        )
        if outcome.fatal_error is not None:
            fatal = outcome.fatal_error
            report = ParseReport(
                errors=(fatal,),
                warnings=tuple(outcome.warnings),
                has_projection_file=outcome.has_projection_file,
            )
            self._mark_failed(import_file, fatal.message, report)
            raise ParseError(fatal.message, code=fatal.code, details=dict(fatal.details))

        limit = self._config.max_features_per_import
        if len(outcome.features) > limit:
            msg = f"File holds {len(outcome.features)} features, the limit is {limit}"
            exc = LimitExceededError(
                msg, stage="parse", details={"nb_features": len(outcome.features), "limit": limit}
            )
            self._mark_failed(import_file, msg, ParseReport(nb_features=len(outcome.features)))
            raise exc

        run = build_parse_run(
            outcome,
            self._store.active_parcel_hashes(),
            workers=self._config.parse_workers,
            timeout_s=self._config.parse_timeout_s,
            cancel_event=cancel_event,
            engine=self._engine,
        )

        parsed = import_file.transition_to(
            ImportStatus.PARSED,
            has_projection_file=run.report.has_projection_file,
            parse_report=run.report.to_dict(),
            nb_features=run.report.nb_features,
            failed_reason=None,
        )
        self._store.save_preview(parsed.id, list(run.features))
        self._store.save_import_file(parsed)
        logger.info(
            "Parse complete | import=%s | features=%d | valid=%d | duplicates=%d",
            parsed.id,
            run.report.nb_features,
            run.report.nb_valid,
            run.report.nb_duplicates,
        )
        return ImportPreview(import_file=parsed, features=run.features)

    def _mark_failed(self, import_file: ImportFile, reason: str, report: ParseReport) -> None:
        failed = import_file.transition_to(
            ImportStatus.FAILED, failed_reason=reason, parse_report=report.to_dict()
        )
        self._store.save_import_file(failed)
        logger.warning("Import failed | import=%s | reason=%s", import_file.id, reason)

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    def preview(self, import_id: str) -> OperationResult[ImportPreview]:
        """Return the stored parse of an import file."""
        try:
            import_file = self._require_import(import_id)
            features = tuple(self._store.get_preview(import_id))
        except IngestError as exc:
            return self._fail("preview", exc)
        return OperationResult.success(ImportPreview(import_file=import_file, features=features))

    def preview_auto_create(
        self, import_id: str, farmer_name_field: str
    ) -> OperationResult[AutoCreatePreview]:
        """Describe which farmers ``auto_create`` would match or create."""
        try:
            import_file = self._require_import(import_id)
            if not farmer_name_field:
                msg = "farmer_name_field is required"
                raise ApplyRequestError(msg, details={"field": "farmer_name_field"})
            result = preview_auto_create(
                self._store.get_preview(import_id),
                farmer_name_field,
                self._store,
                import_file.cooperative_id,
            )
        except IngestError as exc:
            return self._fail("preview_auto_create", exc)
        return OperationResult.success(result)

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def apply(
        self, import_id: str, request: ApplyRequest | dict[str, object]
    ) -> OperationResult[ApplyResult]:
        """Materialize accepted features; all-or-nothing."""
        try:
            return OperationResult.success(self._apply(import_id, request))
        except IngestError as exc:
            return self._fail("apply", exc)
        except Exception as exc:
            return self._unexpected("apply", exc)

    def _apply(self, import_id: str, request: ApplyRequest | dict[str, object]) -> ApplyResult:
        import_file = self._require_import(import_id)
        if not import_file.status.can_transition_to(ImportStatus.APPLIED):
            import_file.transition_to(ImportStatus.APPLIED)

        if isinstance(request, dict):
            try:
                request = ApplyRequest.from_dict(request)
            except IngestError:
                raise
            except (TypeError, ValueError) as exc:
                raise ApplyRequestError(str(exc)) from exc
        request.validate()

        report = import_file.parse_report
        if report and report["requires_confirmation"] and not request.confirm_warnings:
            codes = sorted({w["code"] for w in report["warnings"] if w["requires_confirmation"]})
            msg = "The parse raised warnings that must be confirmed before applying"
            raise ApplyRejectedError(
                msg,
                code=CONFIRMATION_REQUIRED,
                requires_confirmation=True,
                details={"warnings": codes},
            )

        with self._store.transaction():
            # Re-read under the transaction; a concurrent apply may have won
            import_file = self._require_import(import_id)
            if not import_file.status.can_transition_to(ImportStatus.APPLIED):
                import_file.transition_to(ImportStatus.APPLIED)
            features = self._store.get_preview(import_id)
            result = apply_features(
                import_file,
                features,
                request,
                self._store,
                code_prefix=self._config.parcel_code_prefix,
            )
            self._store.save_import_file(
                import_file.transition_to(
                    ImportStatus.APPLIED,
                    nb_applied=result.nb_created,
                    nb_skipped_duplicates=result.nb_skipped_duplicates,
                )
            )
        return result

    # ------------------------------------------------------------------
    # Parcel queries
    # ------------------------------------------------------------------

    def list_parcels(
        self,
        bbox: str | BBox | None = None,
        *,
        zoom: int | None = None,
        active_only: bool = True,
    ) -> OperationResult[list[Parcel]]:
        """Parcels intersecting *bbox*, geometry simplified for *zoom*."""
        try:
            window = parse_bbox(bbox) if isinstance(bbox, str) else bbox
            parcels = self._store.list_parcels(bbox=window, active_only=active_only)
        except IngestError as exc:
            return self._fail("list_parcels", exc)
        except Exception as exc:
            return self._unexpected("list_parcels", exc)
        if zoom is None and window is None:
            return OperationResult.success(parcels)
        try:
            simplified = [
                dataclasses.replace(
                    p, geometry=simplify_for_zoom(p.geometry, zoom, window, self._engine)
                )
                for p in parcels
            ]
        except Exception as exc:
            return self._unexpected("list_parcels", exc)
        return OperationResult.success(simplified)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_import(self, import_id: str) -> ImportFile:
        import_file = self._store.get_import_file(import_id)
        if import_file is None:
            msg = f"Import file {import_id} not found"
            raise NotFoundError(msg, stage="import_session", details={"import_id": import_id})
        return import_file

    @staticmethod
    def _fail(operation: str, exc: IngestError) -> OperationResult:
        logger.warning(
            "Operation rejected | op=%s | code=%s | category=%s | %s",
            operation,
            exc.code,
            exc.category,
            exc.message,
        )
        return OperationResult.failure(exc)

    @staticmethod
    def _unexpected(operation: str, exc: Exception) -> OperationResult:
        logger.exception("Unexpected failure | op=%s | error=%s", operation, type(exc).__name__)
        msg = f"Unexpected {type(exc).__name__} during {operation}: {exc}"
        return OperationResult.failure(
            PermanentError(
                msg,
                code=INTERNAL_ERROR,
                stage=operation,
                details={"exception": type(exc).__name__},
            )
        )
