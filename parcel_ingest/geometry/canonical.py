"""Canonical geometry hashing.

``feature_hash`` identifies a parcel boundary independently of how the
source file happened to encode it:

1. Round every coordinate to ``HASH_PRECISION`` decimals.
2. Orient rings (exterior CCW, holes CW).
3. Sort holes within each polygon, then polygons, by first coordinate.
4. Serialise as compact JSON with sorted keys.
5. SHA-256, lowercase hex.

The same boundary encoded with other winding, other hole order or other
polygon order therefore hashes identically.
"""

from __future__ import annotations

import hashlib
import json

from parcel_ingest.core.constants import HASH_PRECISION
from parcel_ingest.geometry.normalize import orient_rings
from parcel_ingest.models.geometry import MULTIPOLYGON, MultiPolygonGeometry


def _round(value: float, precision: int) -> float:
    # Adding 0.0 folds -0.0 into 0.0 so both serialise the same way
    return round(value, precision) + 0.0


def canonicalize_for_hash(
    geom: MultiPolygonGeometry, precision: int = HASH_PRECISION
) -> MultiPolygonGeometry:
    """Return the rounded, oriented, sorted form of *geom* used for hashing."""
    rounded = MultiPolygonGeometry(
        polygons=tuple(
            tuple(
                tuple((_round(x, precision), _round(y, precision)) for x, y in ring)
                for ring in polygon
            )
            for polygon in geom.polygons
        )
    )
    polygons = []
    for polygon in orient_rings(rounded).polygons:
        if not polygon:
            continue
        exterior, holes = polygon[0], sorted(polygon[1:])
        polygons.append((exterior, *holes))
    polygons.sort()
    return MultiPolygonGeometry(polygons=tuple(polygons))


def serialize_canonical(geom: MultiPolygonGeometry) -> str:
    """Deterministic JSON text of a canonical geometry."""
    payload = {
        "type": MULTIPOLYGON,
        "coordinates": [
            [[[x, y] for x, y in ring] for ring in polygon] for polygon in geom.polygons
        ],
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def feature_hash(geom: MultiPolygonGeometry) -> str:
    """Return the 64-char hex SHA-256 of the canonical form of *geom*."""
    text = serialize_canonical(canonicalize_for_hash(geom))
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def file_sha256(content: bytes) -> str:
    """SHA-256 of raw upload bytes, used for whole-file duplicate detection."""
    return hashlib.sha256(content).hexdigest()
