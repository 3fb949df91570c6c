"""Format parsers — raw upload bytes to ``RawFeature`` records.

One parser per input format, selected by ``SourceFormat``:

- **_shapefile_parser**: zipped ``.shp``/``.shx``/``.dbf`` (+ optional ``.prj``) via pyshp
- **_kml_parser**: KML element tree walk via lxml (KMZ unwraps to KML)
- **_geojson_parser**: FeatureCollection / Feature / bare geometry

Shared stages:
- **_validation**: exception taxonomy, XML check, ring structure
- **_normalization**: coordinate conversion, attribute coercion
- **_outcome**: the ``ParseOutcome`` container

A file-level failure never escapes ``parse_file``: it is returned as
``ParseOutcome.fatal_error`` with no features. Per-feature failures are
collected in ``ParseOutcome.errors`` and the run continues.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from parcel_ingest.core.constants import FEATURES_SKIPPED, NO_FEATURES
from parcel_ingest.models.import_file import SourceFormat
from parcel_ingest.parsers._geojson_parser import parse_geojson
from parcel_ingest.parsers._kml_parser import parse_kml, parse_kmz
from parcel_ingest.parsers._normalization import (
    clean_attribute_value,
    coords_to_positions,
    geometry_from_geojson,
    parse_coordinates_text,
)
from parcel_ingest.parsers._outcome import ParseOutcome
from parcel_ingest.parsers._shapefile_parser import parse_shapefile_zip
from parcel_ingest.parsers._validation import (
    EmptyGeometryError,
    FeatureGeometryError,
    MissingArchiveMemberError,
    ParseError,
    UnsupportedGeometryError,
    validate_ring,
    validate_xml,
)

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger("parcel_ingest.parsers")

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    "EmptyGeometryError",
    "FeatureGeometryError",
    "MissingArchiveMemberError",
    "ParseError",
    "ParseOutcome",
    "UnsupportedGeometryError",
    "clean_attribute_value",
    "coords_to_positions",
    "geometry_from_geojson",
    "parse_coordinates_text",
    "parse_file",
    "parse_geojson",
    "parse_kml",
    "parse_kmz",
    "parse_shapefile_zip",
    "validate_ring",
    "validate_xml",
]

_PARSER_REGISTRY: dict[SourceFormat, Callable[[bytes], ParseOutcome]] = {
    SourceFormat.SHAPEFILE_ZIP: parse_shapefile_zip,
    SourceFormat.KML: parse_kml,
    SourceFormat.KMZ: parse_kmz,
    SourceFormat.GEOJSON: parse_geojson,
}


def parse_file(content: bytes, source_format: SourceFormat, *, filename: str = "") -> ParseOutcome:
    """Parse uploaded bytes with the parser registered for *source_format*.

    Args:
        content: Raw file bytes.
        source_format: Declared/detected upload format.
        filename: Original filename, for log context only.

    Returns:
        A ``ParseOutcome``. ``fatal_error`` is set (and ``features`` empty)
        when the file as a whole could not be read.
    """
    parser = _PARSER_REGISTRY[source_format]
    logger.info("Parsing %s file: %s", source_format.value, filename or "<bytes>")

    try:
        outcome = parser(content)
    except ParseError as exc:
        logger.warning(
            "Fatal parse error | file=%s | code=%s | %s", filename, exc.code, exc.message
        )
        return ParseOutcome.from_fatal(exc)

    if outcome.errors:
        outcome.warn(
            FEATURES_SKIPPED,
            f"{len(outcome.errors)} feature(s) skipped because of geometry errors",
            count=len(outcome.errors),
            feature_indices=[e.feature_index for e in outcome.errors],
        )
    if not outcome.features:
        outcome.warn(NO_FEATURES, "The file contains no usable Polygon/MultiPolygon features")

    return outcome
