"""lxml-based KML / KMZ parser.

Walks the element tree for Placemarks (through nested Documents and
Folders) and extracts one feature per Placemark:

- ``<Polygon>`` becomes a Polygon.
- ``<MultiGeometry>`` holding only Polygons becomes a MultiPolygon.
- Anything else (Point, LineString, mixed MultiGeometry) is a per-feature
  ``UNSUPPORTED_GEOMETRY_TYPE`` error; a Placemark with no geometry is an
  ``EMPTY_GEOMETRY`` error.

Attributes come from ``name``, ``description`` and ExtendedData.
"""

from __future__ import annotations

import io
import logging
import zipfile
import zlib
from typing import TYPE_CHECKING

from parcel_ingest.models.feature import RawFeature
from parcel_ingest.models.geometry import MULTIPOLYGON, POLYGON, RawGeometry
from parcel_ingest.parsers._constants import (
    KML_GEOMETRY_ELEMENTS,
    KML_MULTI_GEOMETRY,
    KML_POLYGON,
    KMZ_DEFAULT_DOCUMENT,
)
from parcel_ingest.parsers._normalization import (
    extract_extended_data_lxml,
    parse_coordinates_text,
    qualify,
)
from parcel_ingest.parsers._outcome import ParseOutcome
from parcel_ingest.parsers._validation import (
    EmptyGeometryError,
    FeatureGeometryError,
    ParseError,
    UnsupportedGeometryError,
    validate_polygon_rings,
    validate_xml,
)

if TYPE_CHECKING:
    from lxml.etree import _Element

    from parcel_ingest.models.feature import Scalar
    from parcel_ingest.models.geometry import Position

logger = logging.getLogger("parcel_ingest.parsers.kml")


def parse_kml(content: bytes) -> ParseOutcome:
    """Parse KML bytes into raw polygon features.

    Raises:
        ParseError: If the content is not well-formed KML.
    """
    from lxml import etree  # type: ignore[attr-defined]

    root = validate_xml(content)
    ns_uri = etree.QName(root).namespace or ""
    outcome = ParseOutcome()

    placemarks: list[_Element] = root.findall(qualify(".//kml:Placemark", ns_uri))
    for idx, pm in enumerate(placemarks):
        attributes = _placemark_attributes(pm, ns_uri)
        outcome.note_fields(list(attributes))
        display_name = str(attributes.get("name") or f"Placemark {idx}")
        try:
            geometry = _placemark_geometry(pm, display_name)
        except FeatureGeometryError as exc:
            logger.warning("Skipping Placemark '%s': %s", display_name, exc)
            outcome.add_error(exc, idx)
            continue
        outcome.features.append(
            RawFeature(geometry=geometry, attributes=attributes, source_index=idx)
        )

    logger.info(
        "KML parsed | placemarks=%d | features=%d | errors=%d",
        len(placemarks),
        len(outcome.features),
        len(outcome.errors),
    )
    return outcome


def parse_kmz(content: bytes) -> ParseOutcome:
    """Parse a KMZ archive by extracting its KML document.

    ``doc.kml`` at any depth is preferred, otherwise the first ``.kml``
    in name order.

    Raises:
        ParseError: If the archive is unreadable or holds no KML document.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(content)) as archive:
            names = sorted(n for n in archive.namelist() if n.lower().endswith(".kml"))
            if not names:
                msg = "KMZ archive contains no .kml document"
                raise ParseError(msg, details={"members": archive.namelist()})
            preferred = [n for n in names if n.lower().rsplit("/", 1)[-1] == KMZ_DEFAULT_DOCUMENT]
            kml_bytes = archive.read((preferred or names)[0])
    except (zipfile.BadZipFile, zlib.error, OSError) as exc:
        msg = f"Not a readable KMZ archive: {exc}"
        raise ParseError(msg) from exc
    return parse_kml(kml_bytes)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _local_name(elem: _Element) -> str:
    from lxml import etree  # type: ignore[attr-defined]

    if not isinstance(elem.tag, str):
        return ""
    return etree.QName(elem).localname


def _placemark_attributes(pm: _Element, ns_uri: str) -> dict[str, Scalar]:
    attributes: dict[str, Scalar] = {}
    for key in ("name", "description"):
        elem = pm.find(qualify(f"kml:{key}", ns_uri))
        if elem is not None and elem.text and elem.text.strip():
            attributes[key] = elem.text.strip()
    attributes.update(extract_extended_data_lxml(pm, ns_uri))
    return attributes


def _placemark_geometry(pm: _Element, display_name: str) -> RawGeometry:
    """Extract the Placemark's geometry.

    Raises:
        EmptyGeometryError: If there is no geometry element or it is empty.
        UnsupportedGeometryError: If it is not polygonal.
        FeatureGeometryError: If a ring is malformed.
    """
    geometry_elem = next(
        (child for child in pm if _local_name(child) in KML_GEOMETRY_ELEMENTS), None
    )
    if geometry_elem is None:
        msg = f"Placemark '{display_name}' has no geometry"
        raise EmptyGeometryError(msg)

    kind = _local_name(geometry_elem)
    if kind == KML_POLYGON:
        return RawGeometry(POLYGON, _parse_polygon(geometry_elem, display_name))
    if kind != KML_MULTI_GEOMETRY:
        msg = f"Unsupported geometry type {kind} in Placemark '{display_name}'"
        raise UnsupportedGeometryError(msg, details={"geometry_type": kind})

    members = _flatten_multi_geometry(geometry_elem)
    if not members:
        msg = f"Empty MultiGeometry in Placemark '{display_name}'"
        raise EmptyGeometryError(msg)
    kinds = sorted({_local_name(m) for m in members})
    if kinds != [KML_POLYGON]:
        msg = (
            f"Unsupported geometry type GeometryCollection ({', '.join(kinds)}) "
            f"in Placemark '{display_name}'"
        )
        raise UnsupportedGeometryError(
            msg, details={"geometry_type": "GeometryCollection", "members": kinds}
        )
    polygons = tuple(
        _parse_polygon(poly, f"{display_name} (part {i})") for i, poly in enumerate(members)
    )
    return RawGeometry(MULTIPOLYGON, polygons)


def _flatten_multi_geometry(elem: _Element) -> list[_Element]:
    members: list[_Element] = []
    for child in elem:
        kind = _local_name(child)
        if kind == KML_MULTI_GEOMETRY:
            members.extend(_flatten_multi_geometry(child))
        elif kind in KML_GEOMETRY_ELEMENTS:
            members.append(child)
    return members


def _parse_polygon(polygon_elem: _Element, context: str) -> tuple[tuple[Position, ...], ...]:
    """Parse a KML Polygon element into validated rings (exterior first)."""
    exterior: tuple[Position, ...] = ()
    interior: list[tuple[Position, ...]] = []
    for boundary in polygon_elem:
        kind = _local_name(boundary)
        if kind not in ("outerBoundaryIs", "innerBoundaryIs"):
            continue
        for coords_elem in boundary.iter():
            if _local_name(coords_elem) != "coordinates" or not coords_elem.text:
                continue
            ring = parse_coordinates_text(coords_elem.text.strip())
            if kind == "outerBoundaryIs":
                exterior = ring
            elif ring:
                interior.append(ring)

    if not exterior:
        msg = (
            f"Polygon in '{context}' has no exterior coordinates "
            "(missing or empty outerBoundaryIs/LinearRing)"
        )
        raise EmptyGeometryError(msg)
    return validate_polygon_rings((exterior, *interior), context)
