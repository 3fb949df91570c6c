"""Data models for features flowing through a parse run.

- ``RawFeature``: one polygonal record read by a parser (transient).
- ``ParseIssue``: an error or warning raised while parsing a file.
- ``ParsedFeature``: a normalized, hashed, measured feature shown in the
  import preview and materialized as a parcel on apply.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from parcel_ingest.models.geometry import MultiPolygonGeometry, RawGeometry

if TYPE_CHECKING:
    from parcel_ingest.models.contracts import (
        CentroidPayload,
        ParsedFeaturePayload,
        ParseIssuePayload,
        ValidationPayload,
    )

Scalar = str | int | float | bool | None
"""Attribute value type. DBF dates and bytes are converted to ``str`` by the parsers."""


@dataclass(frozen=True, slots=True)
class RawFeature:
    """A single polygonal record extracted from an uploaded file.

    Attributes:
        geometry: The geometry as read (any winding, possibly 3D).
        attributes: Attribute record (DBF row, GeoJSON properties, KML data).
        source_index: Zero-based index of the record within the source file.
    """

    geometry: RawGeometry
    attributes: dict[str, Scalar] = field(default_factory=dict)
    source_index: int = 0

    def get_attribute(self, key: str | None) -> Scalar:
        """Return the attribute value for *key*, or ``None`` when absent or unmapped."""
        if not key:
            return None
        return self.attributes.get(key)


@dataclass(frozen=True, slots=True)
class ParseIssue:
    """An error or warning produced during a parse run.

    Attributes:
        code: Stable machine-readable code (see ``core.constants``).
        message: Human-readable description.
        feature_index: Source index of the affected feature, ``None`` for
            file-level issues.
        details: Structured context (counts, sample coordinates, ...).
        requires_confirmation: Whether the caller must explicitly confirm
            before the import may be applied.
    """

    code: str
    message: str
    feature_index: int | None = None
    details: dict[str, object] = field(default_factory=dict)
    requires_confirmation: bool = False

    def to_dict(self) -> ParseIssuePayload:
        return {
            "code": self.code,
            "message": self.message,
            "feature_index": self.feature_index,
            "details": dict(self.details),
            "requires_confirmation": self.requires_confirmation,
        }


@dataclass(frozen=True, slots=True)
class FeatureValidation:
    """Validation outcome for a single parsed feature."""

    ok: bool = True
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> ValidationPayload:
        return {"ok": self.ok, "errors": list(self.errors), "warnings": list(self.warnings)}


@dataclass(frozen=True, slots=True)
class Centroid:
    """Display centroid rounded to 6 decimal degrees."""

    lat: float
    lng: float

    def to_dict(self) -> CentroidPayload:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True, slots=True)
class ParsedFeature:
    """A normalized feature ready for preview and apply.

    Attributes:
        temp_id: Deterministic temporary identifier, stable across re-parses.
        label: Display label derived from attributes (``name``, ``nom`` ...).
        geometry: Canonical MultiPolygon.
        area_ha: Geodesic area in hectares, rounded to 4 decimals.
        centroid: Point-on-surface centroid, rounded to 6 decimals.
        feature_hash: 64-hex-char SHA-256 of the canonical geometry.
        validation: Errors and warnings attached to this feature.
        is_duplicate: Whether an active parcel (or an earlier feature of
            the same file) already has this hash.
        existing_parcel_id: The matching active parcel, when known.
        attributes: Source attribute record, used for field mapping on apply.
        source_index: Index of the record within the source file.
    """

    temp_id: str
    label: str | None
    geometry: MultiPolygonGeometry
    area_ha: float
    centroid: Centroid
    feature_hash: str
    validation: FeatureValidation = field(default_factory=FeatureValidation)
    is_duplicate: bool = False
    existing_parcel_id: str | None = None
    attributes: dict[str, Scalar] = field(default_factory=dict)
    source_index: int = 0

    @property
    def is_valid(self) -> bool:
        return self.validation.ok

    @property
    def is_accepted(self) -> bool:
        """Whether apply should materialize this feature."""
        return self.validation.ok and not self.is_duplicate

    def get_attribute(self, key: str | None) -> Scalar:
        """Return the attribute value for *key*, or ``None`` when absent or unmapped."""
        if not key:
            return None
        return self.attributes.get(key)

    def to_dict(self) -> ParsedFeaturePayload:
        return {
            "temp_id": self.temp_id,
            "label": self.label,
            "geometry": self.geometry.to_geojson(),
            "area_ha": self.area_ha,
            "centroid": self.centroid.to_dict(),
            "feature_hash": self.feature_hash,
            "validation": self.validation.to_dict(),
            "is_duplicate": self.is_duplicate,
            "existing_parcel_id": self.existing_parcel_id,
            "attributes": dict(self.attributes),
            "source_index": self.source_index,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> ParsedFeature:
        """Deserialise from a stored preview payload.

        Raises:
            TypeError: If nested values have unexpected types.
            ModelValidationError: If the geometry is not polygonal.
        """
        geometry_raw = data.get("geometry")
        if not isinstance(geometry_raw, dict):
            msg = f"geometry must be a dict, got {type(geometry_raw).__name__}"
            raise TypeError(msg)
        centroid_raw = data.get("centroid")
        if not isinstance(centroid_raw, dict):
            msg = f"centroid must be a dict, got {type(centroid_raw).__name__}"
            raise TypeError(msg)
        validation_raw = data.get("validation", {})
        if not isinstance(validation_raw, dict):
            msg = f"validation must be a dict, got {type(validation_raw).__name__}"
            raise TypeError(msg)
        attributes_raw = data.get("attributes", {})
        if not isinstance(attributes_raw, dict):
            msg = f"attributes must be a dict, got {type(attributes_raw).__name__}"
            raise TypeError(msg)

        existing = data.get("existing_parcel_id")
        label = data.get("label")
        return cls(
            temp_id=str(data.get("temp_id", "")),
            label=str(label) if label is not None else None,
            geometry=MultiPolygonGeometry.from_geojson(geometry_raw),
            area_ha=float(data.get("area_ha", 0.0)),  # type: ignore[arg-type]
            centroid=Centroid(
                lat=float(centroid_raw.get("lat", 0.0)),
                lng=float(centroid_raw.get("lng", 0.0)),
            ),
            feature_hash=str(data.get("feature_hash", "")),
            validation=FeatureValidation(
                ok=bool(validation_raw.get("ok", True)),
                errors=tuple(str(e) for e in validation_raw.get("errors", [])),
                warnings=tuple(str(w) for w in validation_raw.get("warnings", [])),
            ),
            is_duplicate=bool(data.get("is_duplicate", False)),
            existing_parcel_id=str(existing) if existing is not None else None,
            attributes=dict(attributes_raw),
            source_index=int(data.get("source_index", 0)),  # type: ignore[arg-type]
        )
