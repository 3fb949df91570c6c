"""Geodesic measurements and display helpers.

- ``area_ha``: ellipsoidal (WGS 84) area via ``pyproj.Geod``.
- ``centroid``: point-on-surface, always inside the parcel.
- ``simplify_for_zoom``: zoom-dependent vertex reduction for map display.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from parcel_ingest.core.constants import (
    AREA_PRECISION,
    DEFAULT_SIMPLIFY_TOLERANCE,
    DISPLAY_PRECISION,
    SIMPLIFY_MAX_BBOX_KM2,
    SQ_METRES_PER_HECTARE,
    ZOOM_TOLERANCES,
)
from parcel_ingest.geometry.engine import get_engine
from parcel_ingest.geometry.normalize import orient_rings
from parcel_ingest.models.feature import Centroid

if TYPE_CHECKING:
    from parcel_ingest.geometry.engine import GeometryEngine
    from parcel_ingest.models.geometry import MultiPolygonGeometry, Ring
    from parcel_ingest.models.parcel import BBox

logger = logging.getLogger("parcel_ingest.geometry.metrics")


def _ring_area_m2(ring: Ring) -> float:
    from pyproj import Geod

    geod = Geod(ellps="WGS84")
    lons = [c[0] for c in ring]
    lats = [c[1] for c in ring]
    area, _perimeter = geod.polygon_area_perimeter(lons, lats)
    return abs(area)


def area_m2(geom: MultiPolygonGeometry) -> float:
    """Geodesic area in square metres: exteriors minus holes."""
    total = 0.0
    for polygon in geom.polygons:
        if not polygon:
            continue
        exterior = _ring_area_m2(polygon[0])
        holes = sum(_ring_area_m2(ring) for ring in polygon[1:])
        total += max(exterior - holes, 0.0)
    return total


def area_ha(geom: MultiPolygonGeometry) -> float:
    """Geodesic area in hectares, rounded to ``AREA_PRECISION`` decimals.

    Returns ``0.0`` for an empty geometry.
    """
    if geom.is_empty:
        return 0.0
    return round(area_m2(geom) / SQ_METRES_PER_HECTARE, AREA_PRECISION)


def centroid(geom: MultiPolygonGeometry, engine: GeometryEngine | None = None) -> Centroid:
    """Return a point on the surface of *geom*, rounded for display.

    Unlike the arithmetic centroid, the point always lies inside the
    parcel, even for concave or multi-part shapes.

    Raises:
        ValueError: If the geometry is empty.
    """
    engine = engine or get_engine()
    lng, lat = engine.point_on_surface(geom)
    return Centroid(lat=round(lat, DISPLAY_PRECISION), lng=round(lng, DISPLAY_PRECISION))


def bbox_area_km2(bbox: BBox) -> float:
    """Geodesic area of a viewport in square kilometres."""
    from pyproj import Geod

    geod = Geod(ellps="WGS84")
    lons = [bbox.min_lng, bbox.max_lng, bbox.max_lng, bbox.min_lng]
    lats = [bbox.min_lat, bbox.min_lat, bbox.max_lat, bbox.max_lat]
    area, _perimeter = geod.polygon_area_perimeter(lons, lats)
    return abs(area) / 1_000_000.0


def zoom_tolerance(zoom: int | None) -> float | None:
    """Simplification tolerance (degrees) for a map zoom, ``None`` above zoom 10."""
    if zoom is None:
        return None
    for max_zoom, tolerance in ZOOM_TOLERANCES:
        if zoom <= max_zoom:
            return tolerance
    return None


def simplify_for_zoom(
    geom: MultiPolygonGeometry,
    zoom: int | None,
    bbox: BBox | None = None,
    engine: GeometryEngine | None = None,
) -> MultiPolygonGeometry:
    """Reduce vertex count for display at *zoom*.

    Zoom ≤ 5 uses 0.01°, ≤ 8 uses 0.005°, ≤ 10 uses 0.001°; above that
    the geometry is returned unmodified unless the viewport exceeds
    ``SIMPLIFY_MAX_BBOX_KM2``, in which case 0.001° applies. The result
    is for display only; stored geometries and hashes are untouched.
    """
    tolerance = zoom_tolerance(zoom)
    if tolerance is None and bbox is not None and bbox_area_km2(bbox) > SIMPLIFY_MAX_BBOX_KM2:
        tolerance = DEFAULT_SIMPLIFY_TOLERANCE
    if tolerance is None or geom.is_empty:
        return geom

    engine = engine or get_engine()
    simplified = orient_rings(engine.simplify(geom, tolerance))
    logger.debug(
        "Simplified geometry | zoom=%s | tolerance=%s | vertices=%d->%d",
        zoom,
        tolerance,
        geom.vertex_count,
        simplified.vertex_count,
    )
    return simplified
