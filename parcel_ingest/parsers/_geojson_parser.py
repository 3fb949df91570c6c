"""GeoJSON parser.

Accepts a ``FeatureCollection``, a single ``Feature`` or a bare geometry
object. Only Polygon and MultiPolygon geometries become features; the
rest are per-feature errors.
"""

from __future__ import annotations

import json
import logging

from parcel_ingest.models.feature import RawFeature
from parcel_ingest.parsers._constants import GEOJSON_GEOMETRY_TYPES
from parcel_ingest.parsers._normalization import clean_attributes, geometry_from_geojson
from parcel_ingest.parsers._outcome import ParseOutcome
from parcel_ingest.parsers._validation import FeatureGeometryError, ParseError

logger = logging.getLogger("parcel_ingest.parsers.geojson")


def parse_geojson(content: bytes) -> ParseOutcome:
    """Parse GeoJSON bytes into raw polygon features.

    Raises:
        ParseError: If the content is not JSON or not a GeoJSON object.
    """
    features = _load_features(content)
    outcome = ParseOutcome()

    for idx, feature in enumerate(features):
        context = f"feature {idx}"
        try:
            if not isinstance(feature, dict) or feature.get("type") != "Feature":
                msg = f"Item {idx} of the FeatureCollection is not a Feature object"
                raise FeatureGeometryError(msg)
            properties = feature.get("properties") or {}
            if not isinstance(properties, dict):
                msg = f"Properties of {context} must be an object"
                raise FeatureGeometryError(msg)
            attributes = clean_attributes(properties)
            outcome.note_fields(list(attributes))
            geometry = geometry_from_geojson(feature.get("geometry"), context)
        except FeatureGeometryError as exc:
            logger.warning("Skipping GeoJSON %s: %s", context, exc)
            outcome.add_error(exc, idx)
            continue
        outcome.features.append(
            RawFeature(geometry=geometry, attributes=attributes, source_index=idx)
        )

    logger.info(
        "GeoJSON parsed | items=%d | features=%d | errors=%d",
        len(features),
        len(outcome.features),
        len(outcome.errors),
    )
    return outcome


def _load_features(content: bytes) -> list[object]:
    """Decode the document and return its list of Feature candidates.

    Raises:
        ParseError: If the document is not JSON or its root is unusable.
    """
    try:
        data = json.loads(content.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        msg = f"Not valid GeoJSON: {exc}"
        raise ParseError(msg) from exc

    if not isinstance(data, dict):
        msg = f"GeoJSON root must be an object, got {type(data).__name__}"
        raise ParseError(msg)

    root_type = data.get("type")
    if root_type == "FeatureCollection":
        features = data.get("features")
        if not isinstance(features, list):
            msg = "FeatureCollection has no 'features' array"
            raise ParseError(msg)
        return features
    if root_type == "Feature":
        return [data]
    if root_type in GEOJSON_GEOMETRY_TYPES:
        return [{"type": "Feature", "properties": {}, "geometry": data}]

    msg = f"Unsupported GeoJSON root type {root_type!r}"
    raise ParseError(msg, details={"type": str(root_type)})
