"""Geometry pipeline — normalize, hash, measure, filter.

- **engine**: ``GeometryEngine`` interface and its shapely implementation
- **normalize**: raw parser output to canonical MultiPolygon
- **canonical**: order- and winding-independent content hash
- **metrics**: geodesic area, point-on-surface centroid, display simplification
- **spatial_filter**: bbox parsing and true-intersection filtering
"""

from __future__ import annotations

from parcel_ingest.geometry.canonical import canonicalize_for_hash, feature_hash, file_sha256
from parcel_ingest.geometry.engine import GeometryEngine, ShapelyEngine, get_engine
from parcel_ingest.geometry.metrics import area_ha, centroid, simplify_for_zoom, zoom_tolerance
from parcel_ingest.geometry.normalize import NormalizationResult, normalize, orient_rings
from parcel_ingest.geometry.spatial_filter import (
    InvalidBBoxError,
    filter_parcels,
    intersects,
    parse_bbox,
    try_parse_bbox,
)

__all__ = [
    "GeometryEngine",
    "InvalidBBoxError",
    "NormalizationResult",
    "ShapelyEngine",
    "area_ha",
    "canonicalize_for_hash",
    "centroid",
    "feature_hash",
    "file_sha256",
    "filter_parcels",
    "get_engine",
    "intersects",
    "normalize",
    "orient_rings",
    "parse_bbox",
    "simplify_for_zoom",
    "try_parse_bbox",
    "zoom_tolerance",
]
