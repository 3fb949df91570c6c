"""Validation helpers for format parsing.

Responsibilities:
- Parser exception taxonomy (file-level fatal vs per-feature)
- XML structure and KML root validation
- Ring structure validation (closure, vertex count, finite numbers)
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from parcel_ingest.core.constants import (
    EMPTY_GEOMETRY,
    FILE_CORRUPT,
    INVALID_GEOMETRY,
    SHAPEFILE_MISSING_REQUIRED,
    UNSUPPORTED_GEOMETRY_TYPE,
)
from parcel_ingest.core.exceptions import PermanentError, ValidationError
from parcel_ingest.parsers._constants import MIN_DISTINCT_POSITIONS, MIN_RING_POSITIONS

if TYPE_CHECKING:
    from lxml.etree import _Element

    from parcel_ingest.models.geometry import Position

logger = logging.getLogger("parcel_ingest.parsers")


# ---------------------------------------------------------------------------
# Exceptions (public API, re-exported from __init__)
# ---------------------------------------------------------------------------


class ParseError(PermanentError):
    """Raised when a whole file cannot be read. Aborts the parse."""

    default_stage = "parse"
    default_code = FILE_CORRUPT


class MissingArchiveMemberError(ParseError):
    """Raised when a shapefile archive lacks a required companion member."""

    default_code = SHAPEFILE_MISSING_REQUIRED


class FeatureGeometryError(ValidationError):
    """Raised when a single feature's geometry is unusable. The feature is skipped."""

    default_stage = "parse"
    default_code = INVALID_GEOMETRY


class EmptyGeometryError(FeatureGeometryError):
    """Raised when a feature has a null or empty geometry."""

    default_code = EMPTY_GEOMETRY


class UnsupportedGeometryError(FeatureGeometryError):
    """Raised when a feature's geometry is not a Polygon or MultiPolygon."""

    default_code = UNSUPPORTED_GEOMETRY_TYPE


# ---------------------------------------------------------------------------
# XML / KML validation
# ---------------------------------------------------------------------------


def validate_xml(content: bytes) -> _Element:
    """Parse *content* as XML and check that the root looks like KML.

    Returns the root element.

    Raises:
        ParseError: If the content is empty, not XML, or not KML.
    """
    from lxml import etree  # type: ignore[attr-defined]

    if not content.strip():
        msg = "KML file is empty"
        raise ParseError(msg)

    parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=False)
    try:
        root = etree.fromstring(content, parser=parser)
    except etree.XMLSyntaxError as exc:
        msg = f"Not valid XML: {exc}"
        raise ParseError(msg) from exc

    if root is None or "kml" not in etree.QName(root).localname.lower():
        tag = root.tag if root is not None else ""
        msg = f"Not a KML file: root element is <{tag}>"
        raise ParseError(msg, details={"root": str(tag)})
    return root


# ---------------------------------------------------------------------------
# Ring validation
# ---------------------------------------------------------------------------


def validate_ring(positions: tuple[Position, ...], context: str) -> tuple[Position, ...]:
    """Validate a ring has enough finite positions and is closed.

    Returns the (possibly auto-closed) ring.

    Raises:
        FeatureGeometryError: If the ring has non-finite values or fewer
            than 3 distinct positions.
    """
    for idx, pos in enumerate(positions):
        if not all(math.isfinite(v) for v in pos):
            msg = f"Non-finite coordinate at position {idx} in {context}"
            raise FeatureGeometryError(msg, details={"position": idx, "value": list(pos)})

    if len(positions) < MIN_DISTINCT_POSITIONS:
        msg = (
            f"Ring has only {len(positions)} position(s), need at least "
            f"{MIN_DISTINCT_POSITIONS} in {context}"
        )
        raise FeatureGeometryError(msg, details={"positions": len(positions)})

    if positions[0][:2] != positions[-1][:2]:
        logger.warning("Auto-closing unclosed ring in %s", context)
        positions = (*positions, positions[0])

    if len(positions) < MIN_RING_POSITIONS:
        msg = (
            f"Ring has fewer than {MIN_RING_POSITIONS} positions "
            f"(including closure) in {context}"
        )
        raise FeatureGeometryError(msg, details={"positions": len(positions)})

    distinct = {pos[:2] for pos in positions}
    if len(distinct) < MIN_DISTINCT_POSITIONS:
        msg = f"Ring has fewer than {MIN_DISTINCT_POSITIONS} distinct positions in {context}"
        raise FeatureGeometryError(msg, details={"distinct_positions": len(distinct)})

    return positions


def validate_polygon_rings(
    rings: tuple[tuple[Position, ...], ...], context: str
) -> tuple[tuple[Position, ...], ...]:
    """Validate every ring of one polygon. The first ring is the exterior.

    Raises:
        EmptyGeometryError: If the polygon has no rings.
        FeatureGeometryError: If any ring is malformed.
    """
    if not rings or not rings[0]:
        msg = f"Polygon has no exterior ring in {context}"
        raise EmptyGeometryError(msg)
    validated = [validate_ring(rings[0], f"{context} (exterior)")]
    validated.extend(
        validate_ring(ring, f"{context} (hole {i})") for i, ring in enumerate(rings[1:], start=1)
    )
    return tuple(validated)
