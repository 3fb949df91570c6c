"""Geometry normalizer — raw parser output to canonical MultiPolygon.

Rules, applied in order:

1. ``wrap_polygon``   — a bare Polygon becomes a one-member MultiPolygon,
   ring order and content unchanged.
2. ``strip_z``        — drop any third coordinate component.
3. ``orient_rings``   — ring 0 counter-clockwise, holes clockwise
   (shoelace sign test). Idempotent.
4. ``find_out_of_bounds`` — collect every coordinate outside WGS 84.
5. ``detect_projected_coordinates`` — out-of-bounds magnitudes without a
   projection file are reported as likely projected and need confirmation.

Self-intersecting rings (kinks) raise a warning and a repair is attempted;
a successful repair replaces the geometry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from parcel_ingest.core.constants import (
    COORDINATES_OUT_OF_BOUNDS,
    INVALID_GEOMETRY,
    LIKELY_PROJECTED_COORDINATES,
    MAX_LATITUDE,
    MAX_LONGITUDE,
    MIN_LATITUDE,
    MIN_LONGITUDE,
    SELF_INTERSECTION,
)
from parcel_ingest.geometry.engine import get_engine
from parcel_ingest.models.feature import ParseIssue
from parcel_ingest.models.geometry import (
    MULTIPOLYGON,
    POLYGON,
    MultiPolygonGeometry,
    RawGeometry,
)

if TYPE_CHECKING:
    from parcel_ingest.geometry.engine import GeometryEngine
    from parcel_ingest.models.geometry import Coord, Ring

logger = logging.getLogger("parcel_ingest.geometry.normalize")

# Number of offending points echoed in issue details
SAMPLE_POINTS = 5


@dataclass(frozen=True, slots=True)
class NormalizationResult:
    """Canonical geometry plus everything noticed while producing it.

    Attributes:
        geometry: Canonical MultiPolygon (repaired if a repair succeeded).
        out_of_bounds: Every coordinate outside WGS 84 bounds.
        likely_projected: Out-of-bounds coordinates with no projection file.
        kinks: ``(polygon_index, ring_index)`` of self-intersecting rings.
        repaired: Whether a repaired geometry was substituted.
        errors: Issues that make the feature unusable for apply.
        warnings: Advisory issues.
    """

    geometry: MultiPolygonGeometry
    out_of_bounds: tuple[Coord, ...] = ()
    likely_projected: bool = False
    kinks: tuple[tuple[int, int], ...] = ()
    repaired: bool = False
    errors: tuple[ParseIssue, ...] = ()
    warnings: tuple[ParseIssue, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def wrap_polygon(raw: RawGeometry) -> RawGeometry:
    """Return *raw* as a MultiPolygon without touching ring content."""
    if raw.geom_type == POLYGON:
        return RawGeometry(MULTIPOLYGON, (raw.coordinates,))
    return raw


def strip_z(raw: RawGeometry) -> MultiPolygonGeometry:
    """Drop third (and further) coordinate components."""
    return MultiPolygonGeometry(
        polygons=tuple(
            tuple(tuple((float(p[0]), float(p[1])) for p in ring) for ring in polygon)
            for polygon in wrap_polygon(raw).polygons()
        )
    )


def ring_orientation_sum(ring: Ring) -> float:
    """Shoelace-style orientation sum ``Σ (x2 - x1)(y2 + y1)``.

    Positive for clockwise rings, negative for counter-clockwise, zero
    for degenerate (collinear) rings.
    """
    total = 0.0
    for (x1, y1), (x2, y2) in zip(ring, ring[1:], strict=False):
        total += (x2 - x1) * (y2 + y1)
    return total


def is_clockwise(ring: Ring) -> bool:
    return ring_orientation_sum(ring) > 0


def orient_rings(geom: MultiPolygonGeometry) -> MultiPolygonGeometry:
    """Make ring 0 of every polygon CCW and every other ring CW.

    Degenerate rings (orientation sum of zero) are left as they are, so
    applying this twice gives the same result as applying it once.
    """
    polygons = []
    for polygon in geom.polygons:
        rings = []
        for idx, ring in enumerate(polygon):
            direction = ring_orientation_sum(ring)
            wrong = direction > 0 if idx == 0 else direction < 0
            rings.append(tuple(reversed(ring)) if wrong else ring)
        polygons.append(tuple(rings))
    return MultiPolygonGeometry(polygons=tuple(polygons))


def find_out_of_bounds(geom: MultiPolygonGeometry) -> list[Coord]:
    """Return every coordinate outside WGS 84 bounds (duplicates removed, order kept)."""
    seen: set[Coord] = set()
    offending: list[Coord] = []
    for lng, lat in geom.iter_coords():
        if MIN_LONGITUDE <= lng <= MAX_LONGITUDE and MIN_LATITUDE <= lat <= MAX_LATITUDE:
            continue
        if (lng, lat) not in seen:
            seen.add((lng, lat))
            offending.append((lng, lat))
    return offending


def detect_projected_coordinates(
    out_of_bounds: list[Coord],
    *,
    has_projection_file: bool,
    feature_index: int | None = None,
) -> ParseIssue | None:
    """Classify out-of-bounds coordinates.

    Without a projection file they are most likely projected metres
    (UTM, Web Mercator ...) and the caller must confirm before applying.
    With a projection file the issue is advisory only.
    """
    if not out_of_bounds:
        return None
    details: dict[str, object] = {
        "count": len(out_of_bounds),
        "sample": [list(c) for c in out_of_bounds[:SAMPLE_POINTS]],
    }
    if not has_projection_file:
        return ParseIssue(
            code=LIKELY_PROJECTED_COORDINATES,
            message=(
                f"{len(out_of_bounds)} coordinate(s) exceed WGS 84 bounds and no .prj "
                "file was provided; the data is likely in a projected system"
            ),
            feature_index=feature_index,
            details=details,
            requires_confirmation=True,
        )
    return ParseIssue(
        code=COORDINATES_OUT_OF_BOUNDS,
        message=f"{len(out_of_bounds)} coordinate(s) exceed WGS 84 bounds",
        feature_index=feature_index,
        details=details,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize(
    raw: RawGeometry | MultiPolygonGeometry,
    *,
    has_projection_file: bool = False,
    feature_index: int | None = None,
    engine: GeometryEngine | None = None,
) -> NormalizationResult:
    """Normalize a raw (or already canonical) geometry.

    Args:
        raw: Parser output, or a ``MultiPolygonGeometry`` to re-normalize.
        has_projection_file: Whether the source declared its CRS.
        feature_index: Source index, attached to the issues raised.
        engine: Geometry engine for kink detection and repair.

    Returns:
        A ``NormalizationResult``. Out-of-bounds coordinates and failed
        repairs are reported as errors; kinks and advisory bounds
        issues as warnings.
    """
    engine = engine or get_engine()
    geom = raw if isinstance(raw, MultiPolygonGeometry) else strip_z(raw)
    geom = orient_rings(geom)

    errors: list[ParseIssue] = []
    warnings: list[ParseIssue] = []

    out_of_bounds = find_out_of_bounds(geom)
    bounds_issue = detect_projected_coordinates(
        out_of_bounds, has_projection_file=has_projection_file, feature_index=feature_index
    )
    if bounds_issue is not None:
        warnings.append(bounds_issue)
        errors.append(
            ParseIssue(
                code=COORDINATES_OUT_OF_BOUNDS,
                message="Coordinates outside WGS 84 bounds",
                feature_index=feature_index,
                details=dict(bounds_issue.details),
            )
        )

    kinks = engine.find_kinks(geom)
    repaired = False
    if kinks or not engine.is_valid(geom):
        reason = engine.invalid_reason(geom)
        if kinks:
            warnings.append(
                ParseIssue(
                    code=SELF_INTERSECTION,
                    message=f"Self-intersecting ring(s) detected: {reason}",
                    feature_index=feature_index,
                    details={"rings": [list(k) for k in kinks]},
                )
            )
        fixed = engine.repair(geom)
        if fixed is not None:
            geom = orient_rings(fixed)
            repaired = True
            logger.info("Geometry repaired | feature=%s | reason=%s", feature_index, reason)
        else:
            errors.append(
                ParseIssue(
                    code=INVALID_GEOMETRY,
                    message=f"Invalid geometry could not be repaired: {reason}",
                    feature_index=feature_index,
                )
            )
            logger.warning(
                "Geometry repair failed | feature=%s | reason=%s", feature_index, reason
            )
        if not kinks and repaired:
            warnings.append(
                ParseIssue(
                    code=INVALID_GEOMETRY,
                    message=f"Invalid geometry repaired: {reason}",
                    feature_index=feature_index,
                )
            )

    return NormalizationResult(
        geometry=geom,
        out_of_bounds=tuple(out_of_bounds),
        likely_projected=bool(out_of_bounds) and not has_projection_file,
        kinks=tuple(kinks),
        repaired=repaired,
        errors=tuple(errors),
        warnings=tuple(warnings),
    )
