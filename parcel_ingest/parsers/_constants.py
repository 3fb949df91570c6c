"""Shared constants for format parsing."""

from __future__ import annotations

# Minimum positions for a valid ring (3 distinct + closing = 4)
MIN_RING_POSITIONS = 4
MIN_DISTINCT_POSITIONS = 3

# Shapefile archive members
SHAPEFILE_GEOMETRY_SUFFIX = ".shp"
SHAPEFILE_INDEX_SUFFIX = ".shx"
SHAPEFILE_ATTRIBUTES_SUFFIX = ".dbf"
SHAPEFILE_PROJECTION_SUFFIX = ".prj"
SHAPEFILE_CODEPAGE_SUFFIX = ".cpg"
REQUIRED_SHAPEFILE_SUFFIXES = (
    SHAPEFILE_GEOMETRY_SUFFIX,
    SHAPEFILE_INDEX_SUFFIX,
    SHAPEFILE_ATTRIBUTES_SUFFIX,
)

DEFAULT_DBF_ENCODING = "utf-8"

# Archive entries produced by macOS Finder, never real layers
ARCHIVE_IGNORED_PREFIXES = ("__MACOSX/",)
ARCHIVE_IGNORED_BASENAME_PREFIXES = ("._",)

# KML geometry element names (local names, namespace-agnostic)
KML_POLYGON = "Polygon"
KML_MULTI_GEOMETRY = "MultiGeometry"
KML_GEOMETRY_ELEMENTS = frozenset(
    {
        "Polygon",
        "MultiGeometry",
        "Point",
        "LineString",
        "LinearRing",
        "Model",
        "Track",
        "MultiTrack",
    }
)

KMZ_DEFAULT_DOCUMENT = "doc.kml"

# GeoJSON object types
GEOJSON_GEOMETRY_TYPES = frozenset(
    {
        "Point",
        "MultiPoint",
        "LineString",
        "MultiLineString",
        "Polygon",
        "MultiPolygon",
        "GeometryCollection",
    }
)
