"""GeometryEngine abstract base class and the shapely implementation.

The ingestion core keeps its own owned geometry structures
(``MultiPolygonGeometry``) and reaches for computational geometry only
through this interface:

    1. ``is_valid`` / ``invalid_reason`` — topology checks.
    2. ``find_kinks``                    — self-intersecting rings.
    3. ``repair``                        — zero-buffer, then make_valid.
    4. ``point_on_surface``              — interior point for centroids.
    5. ``intersects_box``                — true geometric bbox intersection.
    6. ``simplify``                      — topology-preserving simplification.

``ShapelyEngine`` backs every method with shapely (GEOS). Swap it by
passing another ``GeometryEngine`` to the functions that accept one.
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING

from parcel_ingest.models.geometry import MultiPolygonGeometry

if TYPE_CHECKING:
    from shapely.geometry.base import BaseGeometry

    from parcel_ingest.models.geometry import Coord

logger = logging.getLogger("parcel_ingest.geometry.engine")


class GeometryEngine(abc.ABC):
    """Abstract computational-geometry capability."""

    @abc.abstractmethod
    def is_valid(self, geom: MultiPolygonGeometry) -> bool:
        """Return whether *geom* is topologically valid (OGC rules)."""

    @abc.abstractmethod
    def invalid_reason(self, geom: MultiPolygonGeometry) -> str:
        """Return a human-readable reason for invalidity (``"Valid Geometry"`` if valid)."""

    @abc.abstractmethod
    def find_kinks(self, geom: MultiPolygonGeometry) -> list[tuple[int, int]]:
        """Return ``(polygon_index, ring_index)`` for every self-intersecting ring."""

    @abc.abstractmethod
    def repair(self, geom: MultiPolygonGeometry) -> MultiPolygonGeometry | None:
        """Return a valid, non-empty polygonal repair of *geom*, or ``None``."""

    @abc.abstractmethod
    def point_on_surface(self, geom: MultiPolygonGeometry) -> Coord:
        """Return a point guaranteed to lie inside or on *geom*."""

    @abc.abstractmethod
    def intersects_box(
        self, geom: MultiPolygonGeometry, bounds: tuple[float, float, float, float]
    ) -> bool:
        """Return whether *geom* truly intersects the box ``(minx, miny, maxx, maxy)``."""

    @abc.abstractmethod
    def simplify(self, geom: MultiPolygonGeometry, tolerance: float) -> MultiPolygonGeometry:
        """Return a vertex-reduced, topology-preserving approximation of *geom*."""


class ShapelyEngine(GeometryEngine):
    """``GeometryEngine`` backed by shapely / GEOS."""

    def is_valid(self, geom: MultiPolygonGeometry) -> bool:
        return bool(to_shapely(geom).is_valid)

    def invalid_reason(self, geom: MultiPolygonGeometry) -> str:
        from shapely.validation import explain_validity

        return str(explain_validity(to_shapely(geom)))

    def find_kinks(self, geom: MultiPolygonGeometry) -> list[tuple[int, int]]:
        from shapely.geometry import LinearRing

        kinks: list[tuple[int, int]] = []
        for poly_idx, polygon in enumerate(geom.polygons):
            for ring_idx, ring in enumerate(polygon):
                if len(ring) >= 4 and not LinearRing(ring).is_simple:
                    kinks.append((poly_idx, ring_idx))
        return kinks

    def repair(self, geom: MultiPolygonGeometry) -> MultiPolygonGeometry | None:
        from shapely.validation import make_valid

        shp = to_shapely(geom)
        buffered = shp.buffer(0)
        if not buffered.is_empty and buffered.is_valid:
            repaired = from_shapely(buffered)
            if not repaired.is_empty:
                return repaired

        logger.debug("Zero-buffer repair produced an empty geometry, trying make_valid()")
        repaired = from_shapely(make_valid(shp))
        if repaired.is_empty or not self.is_valid(repaired):
            return None
        return repaired

    def point_on_surface(self, geom: MultiPolygonGeometry) -> Coord:
        point = to_shapely(geom).representative_point()
        if point.is_empty:
            msg = "Cannot compute a point on the surface of an empty geometry"
            raise ValueError(msg)
        return (float(point.x), float(point.y))

    def intersects_box(
        self, geom: MultiPolygonGeometry, bounds: tuple[float, float, float, float]
    ) -> bool:
        from shapely.geometry import box

        if geom.is_empty:
            return False
        return bool(to_shapely(geom).intersects(box(*bounds)))

    def simplify(self, geom: MultiPolygonGeometry, tolerance: float) -> MultiPolygonGeometry:
        simplified = from_shapely(to_shapely(geom).simplify(tolerance, preserve_topology=True))
        return geom if simplified.is_empty else simplified


# ---------------------------------------------------------------------------
# Conversion helpers
# ---------------------------------------------------------------------------


def to_shapely(geom: MultiPolygonGeometry) -> BaseGeometry:
    """Build a shapely ``MultiPolygon`` from a ``MultiPolygonGeometry``."""
    from shapely.geometry import MultiPolygon, Polygon

    return MultiPolygon(
        [Polygon(polygon[0], polygon[1:]) for polygon in geom.polygons if polygon]
    )


def from_shapely(shp: BaseGeometry) -> MultiPolygonGeometry:
    """Extract the polygonal parts of a shapely geometry.

    Points and lines (e.g. from ``make_valid``) are discarded.
    """
    polygons = []
    for part in _polygonal_parts(shp):
        if part.is_empty:
            continue
        exterior = tuple((float(x), float(y)) for x, y, *_ in part.exterior.coords)
        holes = tuple(
            tuple((float(x), float(y)) for x, y, *_ in interior.coords)
            for interior in part.interiors
        )
        polygons.append((exterior, *holes))
    return MultiPolygonGeometry(polygons=tuple(polygons))


def _polygonal_parts(shp: BaseGeometry) -> list:
    geom_type = shp.geom_type
    if geom_type == "Polygon":
        return [shp]
    if geom_type in ("MultiPolygon", "GeometryCollection"):
        parts = []
        for sub in shp.geoms:
            parts.extend(_polygonal_parts(sub))
        return parts
    return []


_DEFAULT_ENGINE: GeometryEngine | None = None


def get_engine() -> GeometryEngine:
    """Return the process-wide default engine (shapely)."""
    global _DEFAULT_ENGINE  # noqa: PLW0603
    if _DEFAULT_ENGINE is None:
        _DEFAULT_ENGINE = ShapelyEngine()
    return _DEFAULT_ENGINE
