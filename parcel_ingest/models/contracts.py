"""Canonical payload contracts for the ingestion boundary.

Every ``to_dict()`` output that crosses into the calling layer (API
responses, persisted parse reports) is defined here as a ``TypedDict``.
This module is the single source of truth for field names.

Design notes:
- Output contracts use ``total=True`` so missing keys are flagged.
- GeoJSON geometry is typed loosely as ``dict[str, object]``.
"""

from __future__ import annotations

from typing import TypedDict

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ErrorPayload(TypedDict):
    """Serialised ``IngestError`` (``IngestError.to_error_dict()``)."""

    category: str
    code: str
    stage: str
    message: str
    retryable: bool
    details: dict[str, object]
    requires_confirmation: bool


class ParseIssuePayload(TypedDict):
    """Serialised ``ParseIssue`` — one error or warning from a parse run."""

    code: str
    message: str
    feature_index: int | None
    details: dict[str, object]
    requires_confirmation: bool


# ---------------------------------------------------------------------------
# Parse  (output = ParseReportPayload + list[ParsedFeaturePayload])
# ---------------------------------------------------------------------------


class CentroidPayload(TypedDict):
    """Serialised ``Centroid``."""

    lat: float
    lng: float


class ValidationPayload(TypedDict):
    """Serialised ``FeatureValidation``."""

    ok: bool
    errors: list[str]
    warnings: list[str]


class ParsedFeaturePayload(TypedDict):
    """Serialised ``ParsedFeature`` — one row of the import preview."""

    temp_id: str
    label: str | None
    geometry: dict[str, object]
    area_ha: float
    centroid: CentroidPayload
    feature_hash: str
    validation: ValidationPayload
    is_duplicate: bool
    existing_parcel_id: str | None
    attributes: dict[str, object]
    source_index: int


class ParseReportPayload(TypedDict):
    """Serialised ``ParseReport`` stored on the ``ImportFile``."""

    errors: list[ParseIssuePayload]
    warnings: list[ParseIssuePayload]
    available_fields: list[str]
    has_projection_file: bool
    nb_features: int
    nb_valid: int
    nb_duplicates: int
    requires_confirmation: bool


# ---------------------------------------------------------------------------
# Apply  (input = ApplyRequest, output = ApplyResultPayload)
# ---------------------------------------------------------------------------


class ApplyResultPayload(TypedDict):
    """Serialised ``ApplyResult``."""

    import_file_id: str
    mode: str
    nb_created: int
    nb_skipped_duplicates: int
    nb_skipped_invalid: int
    nb_orphans: int
    created_parcel_ids: list[str]
    created_farmer_ids: list[str]


class AutoCreatePreviewPayload(TypedDict):
    """Serialised ``AutoCreatePreview``."""

    new_farmers: list[dict[str, object]]
    existing_farmers: list[dict[str, object]]
    nb_orphan_features: int
