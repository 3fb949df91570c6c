"""Coordinate and attribute normalization helpers for format parsing.

Responsibilities:
- Convert GeoJSON-style coordinate arrays to position tuples
- Build a ``RawGeometry`` from a GeoJSON geometry object
- Parse KML coordinate text strings
- Extract metadata from lxml ExtendedData elements (typed + untyped)
- Coerce attribute values (DBF dates, bytes, decimals) to scalars
"""

from __future__ import annotations

import datetime as dt
import decimal
import json
import math
from typing import TYPE_CHECKING

from parcel_ingest.models.geometry import MULTIPOLYGON, POLYGON, RawGeometry
from parcel_ingest.parsers._validation import (
    EmptyGeometryError,
    FeatureGeometryError,
    UnsupportedGeometryError,
    validate_polygon_rings,
)

if TYPE_CHECKING:
    from lxml.etree import _Element

    from parcel_ingest.models.feature import Scalar
    from parcel_ingest.models.geometry import Position

# ---------------------------------------------------------------------------
# Coordinate normalization
# ---------------------------------------------------------------------------


def coords_to_positions(raw_coords: object, context: str) -> tuple[Position, ...]:
    """Convert a GeoJSON-style ring to a tuple of positions.

    Keeps a third (Z) component when present; further components (M)
    are dropped.

    Raises:
        FeatureGeometryError: If any coordinate element is malformed.
    """
    if not isinstance(raw_coords, list | tuple):
        msg = f"Ring must be an array in {context}, got {type(raw_coords).__name__}"
        raise FeatureGeometryError(msg)
    positions: list[Position] = []
    for idx, c in enumerate(raw_coords):
        if not isinstance(c, list | tuple):
            msg = (
                f"Malformed coordinate at index {idx} in {context}: "
                f"expected list/tuple, got {type(c).__name__}"
            )
            raise FeatureGeometryError(msg, details={"position": idx})
        if len(c) < 2:
            msg = (
                f"Malformed coordinate at index {idx} in {context}: "
                f"expected at least 2 elements, got {len(c)}"
            )
            raise FeatureGeometryError(msg, details={"position": idx})
        try:
            values = tuple(float(v) for v in c[:3] if v is not None)
        except (TypeError, ValueError, OverflowError) as exc:
            msg = f"Malformed coordinate at index {idx} in {context}: cannot convert {c!r} to float"
            raise FeatureGeometryError(msg, details={"position": idx}) from exc
        if not all(math.isfinite(v) for v in values):
            msg = f"Non-finite coordinate at index {idx} in {context}"
            raise FeatureGeometryError(msg, details={"position": idx})
        if len(values) < 2:
            msg = f"Malformed coordinate at index {idx} in {context}: missing lng/lat"
            raise FeatureGeometryError(msg, details={"position": idx})
        positions.append(values)
    return tuple(positions)


def geometry_from_geojson(geometry: object, context: str) -> RawGeometry:
    """Build a validated ``RawGeometry`` from a GeoJSON geometry object.

    Raises:
        EmptyGeometryError: If the geometry is null or has no coordinates.
        UnsupportedGeometryError: If the type is not Polygon/MultiPolygon.
        FeatureGeometryError: If coordinates are malformed.
    """
    if geometry is None:
        msg = f"Null geometry in {context}"
        raise EmptyGeometryError(msg)
    if not isinstance(geometry, dict):
        msg = f"Geometry must be an object in {context}, got {type(geometry).__name__}"
        raise FeatureGeometryError(msg)

    geom_type = geometry.get("type")
    if geom_type not in (POLYGON, MULTIPOLYGON):
        msg = f"Unsupported geometry type {geom_type!r} in {context}"
        raise UnsupportedGeometryError(msg, details={"geometry_type": str(geom_type)})

    raw = geometry.get("coordinates")
    if not raw:
        msg = f"Empty {geom_type} coordinates in {context}"
        raise EmptyGeometryError(msg)
    if not isinstance(raw, list | tuple):
        msg = f"{geom_type} coordinates must be an array in {context}"
        raise FeatureGeometryError(msg)

    if geom_type == POLYGON:
        return RawGeometry(POLYGON, _polygon_from_geojson(raw, context))

    polygons = []
    for part_idx, part in enumerate(raw):
        if not isinstance(part, list | tuple):
            msg = f"MultiPolygon part {part_idx} must be an array in {context}"
            raise FeatureGeometryError(msg)
        polygons.append(_polygon_from_geojson(part, f"{context} (part {part_idx})"))
    return RawGeometry(MULTIPOLYGON, tuple(polygons))


def _polygon_from_geojson(rings: list | tuple, context: str) -> tuple[tuple[Position, ...], ...]:
    converted = tuple(coords_to_positions(ring, context) for ring in rings)
    return validate_polygon_rings(converted, context)


def ensure_finite(positions: tuple[Position, ...], context: str) -> tuple[Position, ...]:
    """Raise ``FeatureGeometryError`` if any value is NaN or infinite (e.g. after reprojection)."""
    for pos in positions:
        if not all(math.isfinite(v) for v in pos):
            msg = f"Coordinate {pos!r} is not finite in {context}"
            raise FeatureGeometryError(msg)
    return positions


# ---------------------------------------------------------------------------
# KML coordinate text parsing
# ---------------------------------------------------------------------------


def parse_coordinates_text(text: str) -> tuple[Position, ...]:
    """Parse KML coordinate text (``lon,lat[,alt] lon,lat[,alt] ...``) to positions.

    Tokens that do not hold at least two numbers are skipped.
    """
    positions: list[Position] = []
    for token in text.split():
        parts = token.strip().split(",")
        if len(parts) >= 2:
            try:
                positions.append(tuple(float(p) for p in parts[:3] if p))
            except ValueError:
                continue
    return tuple(p for p in positions if len(p) >= 2)


# ---------------------------------------------------------------------------
# lxml metadata extraction
# ---------------------------------------------------------------------------


def extract_extended_data_lxml(placemark_elem: _Element, ns_uri: str) -> dict[str, Scalar]:
    """Extract ExtendedData metadata from a Placemark element.

    Handles both KML metadata patterns:
    - ``ExtendedData/Data/value`` — untyped key-value pairs.
    - ``ExtendedData/SchemaData/SimpleData`` — typed fields defined by a
      ``<Schema>`` element.
    """
    metadata: dict[str, Scalar] = {}

    # Pattern 1: ExtendedData/Data/value (untyped)
    for data_elem in placemark_elem.findall(qualify("kml:ExtendedData/kml:Data", ns_uri)):
        key = data_elem.get("name", "")
        value_elem = data_elem.find(qualify("kml:value", ns_uri))
        if key and value_elem is not None and value_elem.text:
            metadata[key] = value_elem.text.strip()

    # Pattern 2: ExtendedData/SchemaData/SimpleData (typed via Schema)
    for schema_data in placemark_elem.findall(qualify("kml:ExtendedData/kml:SchemaData", ns_uri)):
        for simple_data in schema_data.findall(qualify("kml:SimpleData", ns_uri)):
            key = simple_data.get("name", "")
            if key and simple_data.text:
                metadata[key] = simple_data.text.strip()

    return metadata


def qualify(path: str, ns_uri: str) -> str:
    """Expand ``kml:`` prefixes in an ElementPath to Clark notation for *ns_uri*.

    ``qualify(".//kml:Placemark", "")`` gives ``".//Placemark"`` for
    namespace-less documents.
    """
    replacement = f"{{{ns_uri}}}" if ns_uri else ""
    return path.replace("kml:", replacement)


# ---------------------------------------------------------------------------
# Attribute values
# ---------------------------------------------------------------------------


def clean_attribute_value(value: object) -> Scalar:
    """Coerce a raw attribute value to a JSON-friendly scalar.

    Strings are trimmed (empty becomes ``None``), dates become ISO
    strings, bytes are decoded, decimals become floats and nested
    structures are serialised to JSON text.
    """
    if value is None or isinstance(value, bool | int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    if isinstance(value, bytes):
        return clean_attribute_value(value.decode("utf-8", errors="replace"))
    if isinstance(value, decimal.Decimal):
        return float(value)
    if isinstance(value, dt.date | dt.datetime):
        return value.isoformat()
    if isinstance(value, dict | list | tuple):
        return json.dumps(value, sort_keys=True, default=str)
    return str(value)


def clean_attributes(record: dict[str, object]) -> dict[str, Scalar]:
    return {str(key): clean_attribute_value(value) for key, value in record.items()}
