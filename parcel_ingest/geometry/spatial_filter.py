"""Bounding-box query helpers.

``parse_bbox`` turns the ``"minLng,minLat,maxLng,maxLat"`` query form
into a clamped ``BBox``; ``filter_parcels`` keeps parcels whose geometry
truly intersects it (not merely whose envelope overlaps).
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from parcel_ingest.core.exceptions import ModelValidationError, ValidationError
from parcel_ingest.geometry.engine import get_engine
from parcel_ingest.models.parcel import BBox
from parcel_ingest.models.result import OperationResult

if TYPE_CHECKING:
    from collections.abc import Iterable

    from parcel_ingest.geometry.engine import GeometryEngine
    from parcel_ingest.models.geometry import MultiPolygonGeometry
    from parcel_ingest.models.parcel import Parcel

logger = logging.getLogger("parcel_ingest.geometry.spatial_filter")


class InvalidBBoxError(ValidationError):
    """Raised when a bbox string cannot be turned into a usable window."""

    default_stage = "query"


def parse_bbox(text: str) -> BBox:
    """Parse ``"minLng,minLat,maxLng,maxLat"`` into a clamped ``BBox``.

    Raises:
        InvalidBBoxError: If the string is malformed, a value is not a
            finite number, ``min >= max`` on either axis, or the box lies
            entirely outside WGS 84 bounds.
    """
    parts = [p.strip() for p in (text or "").split(",")]
    if len(parts) != 4:
        msg = f"bbox must have 4 comma-separated values, got {len(parts)}"
        raise InvalidBBoxError(msg, details={"bbox": text})

    values: list[float] = []
    for part in parts:
        try:
            value = float(part)
        except ValueError as exc:
            msg = f"bbox value {part!r} is not a number"
            raise InvalidBBoxError(msg, details={"bbox": text}) from exc
        if not math.isfinite(value):
            msg = f"bbox value {part!r} is not finite"
            raise InvalidBBoxError(msg, details={"bbox": text})
        values.append(value)

    min_lng, min_lat, max_lng, max_lat = values
    if min_lng >= max_lng or min_lat >= max_lat:
        msg = "bbox minimum must be strictly lower than maximum on both axes"
        raise InvalidBBoxError(msg, details={"bbox": text})

    try:
        return BBox.clamped(min_lng, min_lat, max_lng, max_lat)
    except ModelValidationError as exc:
        msg = "bbox lies entirely outside WGS 84 bounds"
        raise InvalidBBoxError(msg, details={"bbox": text}) from exc


def try_parse_bbox(text: str | None) -> OperationResult[BBox | None]:
    """Non-raising variant for query boundaries.

    A missing bbox is a successful ``None`` (no filtering); an invalid
    one is a failure carrying ``VALIDATION_ERROR``.
    """
    if not text:
        return OperationResult.success(None)
    try:
        return OperationResult.success(parse_bbox(text))
    except InvalidBBoxError as exc:
        logger.debug("Rejected bbox %r: %s", text, exc.message)
        return OperationResult.failure(exc)


def intersects(
    geom: MultiPolygonGeometry, bbox: BBox, engine: GeometryEngine | None = None
) -> bool:
    """Whether *geom* truly intersects *bbox*."""
    engine = engine or get_engine()
    return engine.intersects_box(geom, bbox.as_tuple())


def filter_parcels(
    parcels: Iterable[Parcel],
    bbox: BBox | None,
    *,
    active_only: bool = True,
    engine: GeometryEngine | None = None,
) -> list[Parcel]:
    """Return parcels intersecting *bbox*, sorted by id.

    All parcels match when *bbox* is ``None``.
    """
    engine = engine or get_engine()
    selected = []
    for parcel in parcels:
        if active_only and not parcel.is_active:
            continue
        if bbox is None or intersects(parcel.geometry, bbox, engine):
            selected.append(parcel)
    return sorted(selected, key=lambda p: p.id)
