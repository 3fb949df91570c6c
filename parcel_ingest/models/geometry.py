"""Owned geometry structures.

Two shapes flow through the pipeline:

- ``RawGeometry``: what a parser read — ``Polygon`` or ``MultiPolygon``,
  arbitrary ring winding, positions of 2 or 3 floats.
- ``MultiPolygonGeometry``: the canonical form — always a MultiPolygon,
  2D ``(lng, lat)`` pairs, exterior ring first and counter-clockwise,
  holes clockwise, coordinates within WGS 84 bounds.

Both are plain nested tuples so they hash, compare and serialise without
any geometry library. Conversions to shapely live in
``parcel_ingest.geometry.engine``.
"""

from __future__ import annotations

import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import ClassVar

from parcel_ingest.core.exceptions import ModelValidationError

Position = tuple[float, ...]
Coord = tuple[float, float]
Ring = tuple[Coord, ...]
PolygonRings = tuple[Ring, ...]

POLYGON = "Polygon"
MULTIPOLYGON = "MultiPolygon"
SUPPORTED_GEOMETRY_TYPES = (POLYGON, MULTIPOLYGON)


@dataclass(frozen=True, slots=True)
class RawGeometry:
    """A polygonal geometry as read from a source file.

    Attributes:
        geom_type: ``"Polygon"`` or ``"MultiPolygon"``.
        coordinates: GeoJSON-shaped nested tuples. A Polygon is a tuple of
            rings; a MultiPolygon is a tuple of Polygons. Positions may
            carry a third (Z) component.
    """

    geom_type: str
    coordinates: tuple

    def __post_init__(self) -> None:
        if self.geom_type not in SUPPORTED_GEOMETRY_TYPES:
            raise ModelValidationError(
                "RawGeometry", "geom_type", self.geom_type, "must be Polygon or MultiPolygon"
            )

    @property
    def has_z(self) -> bool:
        """Whether any position carries a third component."""
        return any(len(pos) > 2 for pos in self.iter_positions())

    def polygons(self) -> tuple[tuple[tuple[Position, ...], ...], ...]:
        """Return the coordinates as a tuple of polygons regardless of type."""
        if self.geom_type == POLYGON:
            return (self.coordinates,)
        return self.coordinates

    def iter_positions(self) -> Iterator[Position]:
        for polygon in self.polygons():
            for ring in polygon:
                yield from ring

    def to_geojson(self) -> dict[str, object]:
        return {"type": self.geom_type, "coordinates": _to_lists(self.coordinates)}


@dataclass(frozen=True, slots=True)
class MultiPolygonGeometry:
    """Canonical 2D MultiPolygon.

    Attributes:
        polygons: Tuple of polygons, each a tuple of rings, each ring a
            tuple of closed ``(lng, lat)`` pairs. Ring 0 is the exterior.
    """

    geom_type: ClassVar[str] = MULTIPOLYGON

    polygons: tuple[PolygonRings, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not any(polygon and polygon[0] for polygon in self.polygons)

    @property
    def polygon_count(self) -> int:
        return len(self.polygons)

    @property
    def ring_count(self) -> int:
        return sum(len(polygon) for polygon in self.polygons)

    @property
    def vertex_count(self) -> int:
        return sum(len(ring) for polygon in self.polygons for ring in polygon)

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """Return ``(min_lng, min_lat, max_lng, max_lat)``.

        Raises:
            ValueError: If the geometry is empty.
        """
        coords = list(self.iter_coords())
        if not coords:
            msg = "Cannot compute bounds of an empty geometry"
            raise ValueError(msg)
        lngs = [c[0] for c in coords]
        lats = [c[1] for c in coords]
        return (min(lngs), min(lats), max(lngs), max(lats))

    def iter_coords(self) -> Iterator[Coord]:
        for polygon in self.polygons:
            for ring in polygon:
                yield from ring

    def to_geojson(self) -> dict[str, object]:
        return {"type": MULTIPOLYGON, "coordinates": _to_lists(self.polygons)}

    @classmethod
    def from_geojson(cls, data: dict[str, object]) -> MultiPolygonGeometry:
        """Build from a GeoJSON ``Polygon`` or ``MultiPolygon`` dict.

        A bare Polygon is wrapped. Any Z component is dropped. Ring
        orientation is taken as-is; run ``normalize`` to enforce winding.

        Raises:
            ModelValidationError: If the type is not polygonal or a
                coordinate is not a finite number pair.
        """
        geom_type = data.get("type")
        raw = data.get("coordinates")
        if geom_type not in SUPPORTED_GEOMETRY_TYPES:
            raise ModelValidationError(
                "MultiPolygonGeometry", "type", geom_type, "must be Polygon or MultiPolygon"
            )
        if not isinstance(raw, list | tuple):
            raise ModelValidationError(
                "MultiPolygonGeometry", "coordinates", type(raw).__name__, "must be an array"
            )
        polygons_raw = [raw] if geom_type == POLYGON else raw
        return cls(
            polygons=tuple(
                tuple(tuple(_to_coord(pos) for pos in ring) for ring in polygon)
                for polygon in polygons_raw
            )
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_coord(pos: object) -> Coord:
    if not isinstance(pos, Sequence) or isinstance(pos, str) or len(pos) < 2:
        raise ModelValidationError(
            "MultiPolygonGeometry", "coordinates", pos, "position must have 2 numbers"
        )
    try:
        lng = float(pos[0])
        lat = float(pos[1])
    except (TypeError, ValueError) as exc:
        raise ModelValidationError(
            "MultiPolygonGeometry", "coordinates", pos, "position must be numeric"
        ) from exc
    if not (math.isfinite(lng) and math.isfinite(lat)):
        raise ModelValidationError(
            "MultiPolygonGeometry", "coordinates", pos, "position must be finite"
        )
    return (lng, lat)


def _to_lists(value: object) -> object:
    """Recursively convert nested tuples to lists (JSON-friendly)."""
    if isinstance(value, tuple | list):
        return [_to_lists(v) for v in value]
    return value
