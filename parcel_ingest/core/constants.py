"""Shared ingestion constants — single source of truth.

Centralises coordinate bounds, rounding precisions, upload limits,
whitelists and error codes used across parsers, geometry helpers, and
the import session.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# WGS 84 coordinate bounds
# ---------------------------------------------------------------------------

MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0
MIN_LATITUDE = -90.0
MAX_LATITUDE = 90.0

WGS84_CRS = "EPSG:4326"

# ---------------------------------------------------------------------------
# Precision (decimal places)
# ---------------------------------------------------------------------------

HASH_PRECISION: int = 8
"""Rounding applied before hashing (~1.1 mm at the equator)."""

DISPLAY_PRECISION: int = 6
"""Rounding applied to centroids returned for display."""

AREA_PRECISION: int = 4
"""Rounding applied to ``area_ha``."""

SQ_METRES_PER_HECTARE = 10_000.0

# ---------------------------------------------------------------------------
# Upload limits
# ---------------------------------------------------------------------------

MAX_FILE_SIZE_BYTES: int = 50 * 1024 * 1024
MAX_FEATURES_PER_IMPORT: int = 500
DEFAULT_PARSE_WORKERS: int = 4
DEFAULT_PARSE_TIMEOUT_S: float = 120.0
DEFAULT_PARCEL_CODE_PREFIX: str = "PARC"

# ---------------------------------------------------------------------------
# Map simplification
# ---------------------------------------------------------------------------

SIMPLIFY_MAX_ZOOM: int = 10
"""Geometries requested at or below this zoom are simplified."""

SIMPLIFY_MAX_BBOX_KM2: float = 10_000.0
"""Viewports larger than this are simplified regardless of zoom."""

ZOOM_TOLERANCES: tuple[tuple[int, float], ...] = (
    (5, 0.01),
    (8, 0.005),
    (10, 0.001),
)
"""``(max_zoom, tolerance_degrees)`` pairs, coarsest first."""

DEFAULT_SIMPLIFY_TOLERANCE: float = 0.001

# ---------------------------------------------------------------------------
# Whitelists
# ---------------------------------------------------------------------------

CERTIFICATIONS: tuple[str, ...] = (
    "rainforest_alliance",
    "utz",
    "fairtrade",
    "bio",
    "organic",
    "other",
)

LABEL_ATTRIBUTE_KEYS: tuple[str, ...] = (
    "name",
    "NAME",
    "label",
    "LABEL",
    "nom",
    "NOM",
    "description",
)

CONFORMITY_ATTRIBUTE_KEYS: tuple[str, ...] = (
    "conformity_status",
    "conformity",
    "conformite",
    "conformité",
    "compliance",
    "statut",
    "status",
)

# ---------------------------------------------------------------------------
# Error / warning codes
# ---------------------------------------------------------------------------

# File-level fatal
FILE_CORRUPT = "FILE_CORRUPT"
SHAPEFILE_MISSING_REQUIRED = "SHAPEFILE_MISSING_REQUIRED"
UNSUPPORTED_FILE_TYPE = "UNSUPPORTED_FILE_TYPE"
LIMIT_EXCEEDED = "LIMIT_EXCEEDED"

# Per-feature
INVALID_GEOMETRY = "INVALID_GEOMETRY"
EMPTY_GEOMETRY = "EMPTY_GEOMETRY"
UNSUPPORTED_GEOMETRY_TYPE = "UNSUPPORTED_GEOMETRY_TYPE"
SELF_INTERSECTION = "SELF_INTERSECTION"
COORDINATES_OUT_OF_BOUNDS = "COORDINATES_OUT_OF_BOUNDS"
DUPLICATE_IN_FILE = "DUPLICATE_IN_FILE"

# Advisory
MISSING_PRJ_ASSUMED_WGS84 = "MISSING_PRJ_ASSUMED_WGS84"
PRJ_UNREADABLE = "PRJ_UNREADABLE"
LIKELY_PROJECTED_COORDINATES = "LIKELY_PROJECTED_COORDINATES"
ATTRIBUTE_COUNT_MISMATCH = "ATTRIBUTE_COUNT_MISMATCH"
DBF_PARSE_ERROR = "DBF_PARSE_ERROR"
MULTIPLE_LAYERS = "MULTIPLE_LAYERS"
FEATURES_SKIPPED = "FEATURES_SKIPPED"
NO_FEATURES = "NO_FEATURES"

# Apply-time rejection
DUPLICATE_FILE = "DUPLICATE_FILE"
IMPORT_ALREADY_APPLIED = "IMPORT_ALREADY_APPLIED"
INVALID_IMPORT_STATUS = "INVALID_IMPORT_STATUS"
CONFIRMATION_REQUIRED = "CONFIRMATION_REQUIRED"
NOTHING_TO_APPLY = "NOTHING_TO_APPLY"
PARSE_CANCELLED = "PARSE_CANCELLED"
VALIDATION_ERROR = "VALIDATION_ERROR"
NOT_FOUND = "NOT_FOUND"

# Unexpected library failure surfaced at the session boundary
INTERNAL_ERROR = "INTERNAL_ERROR"
