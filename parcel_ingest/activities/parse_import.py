"""Parse activity — parser output to the sorted, hashed, measured preview.

Takes the ``ParseOutcome`` of a format parser and, for every raw
feature, runs normalization, hashing and metrics on a thread pool. The
merged features are then:

1. sorted by ``(feature_hash, attributes_sort_key, source_index)``,
2. given a ``temp_id`` derived from hash and occurrence ordinal,
3. checked for duplicates (store and in-file).

Re-running on the same input yields an identical sequence, ids included.

Cancellation:
    An optional ``threading.Event`` and a monotonic deadline are checked
    before each feature is processed and while results are collected.
    Either one raises ``ParseCancelledError``.
"""

from __future__ import annotations

import concurrent.futures
import logging
import time
import uuid
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from parcel_ingest.activities.detect_duplicates import detect_duplicates
from parcel_ingest.core.constants import DISPLAY_PRECISION, PARSE_CANCELLED
from parcel_ingest.core.exceptions import TransientError
from parcel_ingest.geometry.canonical import feature_hash
from parcel_ingest.geometry.engine import get_engine
from parcel_ingest.geometry.metrics import area_ha, centroid
from parcel_ingest.geometry.normalize import normalize
from parcel_ingest.models.feature import Centroid, FeatureValidation, ParsedFeature
from parcel_ingest.utils.attributes import attributes_sort_key, extract_label

if TYPE_CHECKING:
    import threading
    from collections.abc import Mapping

    from parcel_ingest.geometry.engine import GeometryEngine
    from parcel_ingest.geometry.normalize import NormalizationResult
    from parcel_ingest.models.contracts import ParseReportPayload
    from parcel_ingest.models.feature import ParseIssue, RawFeature
    from parcel_ingest.models.geometry import MultiPolygonGeometry
    from parcel_ingest.parsers import ParseOutcome

logger = logging.getLogger("parcel_ingest.activities.parse_import")

_TEMP_ID_NAMESPACE = uuid.UUID("6f1c2a9e-3b7d-5e48-9a21-c4d0b8e7f315")


class ParseCancelledError(TransientError):
    """Raised when a parse is cancelled or runs past its deadline."""

    default_stage = "parse"
    default_code = PARSE_CANCELLED


@dataclass(frozen=True, slots=True)
class ParseReport:
    """Summary of a parse run, stored on the ``ImportFile``.

    Attributes:
        errors: Per-feature errors (skipped features and invalid geometries).
        warnings: Advisory issues, file-level and per-feature.
        available_fields: Attribute names seen, for field mapping.
        has_projection_file: Whether a ``.prj`` was provided.
        nb_features: Parsed features (valid or not).
        nb_valid: Features whose validation passed.
        nb_duplicates: Features flagged as duplicates.
    """

    errors: tuple[ParseIssue, ...] = ()
    warnings: tuple[ParseIssue, ...] = ()
    available_fields: tuple[str, ...] = ()
    has_projection_file: bool = False
    nb_features: int = 0
    nb_valid: int = 0
    nb_duplicates: int = 0

    @property
    def requires_confirmation(self) -> bool:
        return any(w.requires_confirmation for w in self.warnings)

    def to_dict(self) -> ParseReportPayload:
        return {
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "available_fields": list(self.available_fields),
            "has_projection_file": self.has_projection_file,
            "nb_features": self.nb_features,
            "nb_valid": self.nb_valid,
            "nb_duplicates": self.nb_duplicates,
            "requires_confirmation": self.requires_confirmation,
        }


@dataclass(frozen=True, slots=True)
class ParseRun:
    """Features and report produced by ``build_parse_run``."""

    features: tuple[ParsedFeature, ...]
    report: ParseReport


# ---------------------------------------------------------------------------
# Per-feature processing
# ---------------------------------------------------------------------------


def process_feature(
    raw: RawFeature,
    *,
    has_projection_file: bool,
    engine: GeometryEngine | None = None,
) -> tuple[ParsedFeature, NormalizationResult]:
    """Normalize, hash and measure one raw feature.

    Returns:
        The parsed feature (with an empty ``temp_id``) and the
        normalization result carrying its errors and warnings.
        Features that fail validation keep their geometry and hash but
        report an area of ``0.0``.
    """
    engine = engine or get_engine()
    result = normalize(
        raw.geometry,
        has_projection_file=has_projection_file,
        feature_index=raw.source_index,
        engine=engine,
    )
    geom = result.geometry

    if result.ok:
        feature_area = area_ha(geom)
        feature_centroid = centroid(geom, engine)
    else:
        feature_area = 0.0
        feature_centroid = _bounds_center(geom)

    parsed = ParsedFeature(
        temp_id="",
        label=extract_label(raw.attributes),
        geometry=geom,
        area_ha=feature_area,
        centroid=feature_centroid,
        feature_hash=feature_hash(geom),
        validation=FeatureValidation(
            ok=result.ok,
            errors=tuple(issue.code for issue in result.errors),
            warnings=tuple(issue.code for issue in result.warnings),
        ),
        attributes=dict(raw.attributes),
        source_index=raw.source_index,
    )
    logger.debug(
        "Feature processed | index=%d | hash=%s | area_ha=%s | ok=%s",
        raw.source_index,
        parsed.feature_hash[:12],
        feature_area,
        result.ok,
    )
    return parsed, result


def _bounds_center(geom: MultiPolygonGeometry) -> Centroid:
    if geom.is_empty:
        return Centroid(lat=0.0, lng=0.0)
    min_x, min_y, max_x, max_y = geom.bounds
    return Centroid(
        lat=round((min_y + max_y) / 2, DISPLAY_PRECISION),
        lng=round((min_x + max_x) / 2, DISPLAY_PRECISION),
    )


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------


def _check_cancelled(cancel_event: threading.Event | None, deadline: float | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        msg = "Parse cancelled by caller"
        raise ParseCancelledError(msg, details={"reason": "cancelled"})
    if deadline is not None and time.monotonic() > deadline:
        msg = "Parse exceeded its time budget"
        raise ParseCancelledError(msg, details={"reason": "timeout"})


def _remaining(deadline: float | None) -> float | None:
    if deadline is None:
        return None
    return max(deadline - time.monotonic(), 0.0)


def assign_temp_ids(features: list[ParsedFeature]) -> list[ParsedFeature]:
    """Give each feature a uuid5 of ``hash:ordinal`` (ordinal within equal hashes)."""
    seen: dict[str, int] = {}
    result = []
    for feature in features:
        ordinal = seen.get(feature.feature_hash, 0)
        seen[feature.feature_hash] = ordinal + 1
        temp_id = str(uuid.uuid5(_TEMP_ID_NAMESPACE, f"{feature.feature_hash}:{ordinal}"))
        result.append(replace(feature, temp_id=temp_id))
    return result


def sort_key(feature: ParsedFeature) -> tuple[str, str, int]:
    return (feature.feature_hash, attributes_sort_key(feature.attributes), feature.source_index)


def build_parse_run(
    outcome: ParseOutcome,
    active_parcel_hashes: Mapping[str, str],
    *,
    workers: int = 1,
    timeout_s: float | None = None,
    cancel_event: threading.Event | None = None,
    engine: GeometryEngine | None = None,
) -> ParseRun:
    """Turn a successful ``ParseOutcome`` into preview features and a report.

    Args:
        outcome: Parser output without ``fatal_error``.
        active_parcel_hashes: ``{feature_hash: parcel_id}`` of active parcels.
        workers: Thread pool size for per-feature processing.
        timeout_s: Wall-clock budget, ``None`` for no limit.
        cancel_event: Set by the caller to abort the run.
        engine: Geometry engine, defaults to shapely.

    Raises:
        ParseCancelledError: If cancelled or the deadline passes.
    """
    engine = engine or get_engine()
    deadline = time.monotonic() + timeout_s if timeout_s is not None else None
    has_prj = outcome.has_projection_file

    def _task(raw: RawFeature) -> tuple[ParsedFeature, NormalizationResult]:
        _check_cancelled(cancel_event, deadline)
        return process_feature(raw, has_projection_file=has_prj, engine=engine)

    processed: list[tuple[ParsedFeature, NormalizationResult]] = []
    with concurrent.futures.ThreadPoolExecutor(
        max_workers=workers, thread_name_prefix="parcel-parse"
    ) as pool:
        futures = [pool.submit(_task, raw) for raw in outcome.features]
        try:
            for future in futures:
                _check_cancelled(cancel_event, deadline)
                try:
                    processed.append(future.result(timeout=_remaining(deadline)))
                except concurrent.futures.TimeoutError as exc:
                    msg = "Parse exceeded its time budget"
                    raise ParseCancelledError(msg, details={"reason": "timeout"}) from exc
        except ParseCancelledError:
            for future in futures:
                future.cancel()
            logger.warning(
                "Parse cancelled | processed=%d | total=%d", len(processed), len(futures)
            )
            raise

    errors = list(outcome.errors)
    warnings = list(outcome.warnings)
    for _feature, result in processed:
        errors.extend(result.errors)
        warnings.extend(result.warnings)

    features = sorted((feature for feature, _result in processed), key=sort_key)
    features = detect_duplicates(assign_temp_ids(features), active_parcel_hashes)

    report = ParseReport(
        errors=tuple(errors),
        warnings=tuple(warnings),
        available_fields=tuple(outcome.available_attribute_fields),
        has_projection_file=has_prj,
        nb_features=len(features),
        nb_valid=sum(1 for f in features if f.is_valid),
        nb_duplicates=sum(1 for f in features if f.is_duplicate),
    )
    logger.info(
        "Parse run complete | features=%d | valid=%d | duplicates=%d | errors=%d | warnings=%d",
        report.nb_features,
        report.nb_valid,
        report.nb_duplicates,
        len(errors),
        len(warnings),
    )
    return ParseRun(features=tuple(features), report=report)

