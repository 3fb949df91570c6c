"""Persisted parcel-side models and their whitelists.

- ``Parcel``: a stored land boundary, optionally owned by a farmer.
- ``Farmer``: a grower record parcels are attached to.
- ``BBox``: a clamped WGS 84 query window.
- ``FieldMapping`` / ``ImportDefaults``: apply-time attribute mapping.

Design notes:
- Certifications are a closed, case-sensitive set with no synonyms.
- Conformity status is an enum; ``missing_information`` is the default.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass, field

from parcel_ingest.core.constants import (
    CERTIFICATIONS,
    MAX_LATITUDE,
    MAX_LONGITUDE,
    MIN_LATITUDE,
    MIN_LONGITUDE,
)
from parcel_ingest.core.exceptions import ModelValidationError, ValidationError
from parcel_ingest.models.feature import Centroid
from parcel_ingest.models.geometry import MultiPolygonGeometry

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ConformityStatus(enum.Enum):
    """Regulatory conformity of a parcel.

    Values:
        COMPLIANT:           Parcel meets the requirements.
        NON_COMPLIANT:       Parcel fails the requirements.
        IN_PROGRESS:         Assessment under way.
        MISSING_INFORMATION: Not enough data to assess (default).
    """

    COMPLIANT = "compliant"
    NON_COMPLIANT = "non_compliant"
    IN_PROGRESS = "in_progress"
    MISSING_INFORMATION = "missing_information"


class ParcelSource(enum.Enum):
    """How a parcel entered the store."""

    MANUAL = "manual"
    SHAPEFILE = "shapefile"
    KML = "kml"
    GEOJSON = "geojson"


# ---------------------------------------------------------------------------
# Certifications
# ---------------------------------------------------------------------------


class CertificationError(ValidationError):
    """Raised when a certification list contains unknown or repeated values."""

    default_stage = "validation"


def validate_certifications(values: Iterable[str]) -> tuple[str, ...]:
    """Validate a certification list against the whitelist.

    Returns the values as a tuple in their original order.

    Raises:
        CertificationError: If any value is outside the whitelist or
            appears more than once.
    """
    items = tuple(values)
    unknown = [v for v in items if v not in CERTIFICATIONS]
    if unknown:
        msg = f"Unknown certification(s): {', '.join(map(repr, unknown))}"
        raise CertificationError(
            msg, details={"invalid": unknown, "allowed": list(CERTIFICATIONS)}
        )
    seen: set[str] = set()
    repeated: list[str] = []
    for value in items:
        if value in seen:
            repeated.append(value)
        seen.add(value)
    if repeated:
        msg = f"Duplicate certification(s): {', '.join(map(repr, repeated))}"
        raise CertificationError(msg, details={"duplicates": repeated})
    return items


# ---------------------------------------------------------------------------
# Bounding box
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BBox:
    """A query window in WGS 84 degrees.

    Construct with ``BBox.clamped(...)`` to clamp values into WGS 84 bounds.
    """

    min_lng: float
    min_lat: float
    max_lng: float
    max_lat: float

    def __post_init__(self) -> None:
        if self.min_lng >= self.max_lng:
            raise ModelValidationError(
                "BBox", "min_lng", self.min_lng, f"must be < max_lng ({self.max_lng})"
            )
        if self.min_lat >= self.max_lat:
            raise ModelValidationError(
                "BBox", "min_lat", self.min_lat, f"must be < max_lat ({self.max_lat})"
            )

    @classmethod
    def clamped(cls, min_lng: float, min_lat: float, max_lng: float, max_lat: float) -> BBox:
        return cls(
            min_lng=_clamp(min_lng, MIN_LONGITUDE, MAX_LONGITUDE),
            min_lat=_clamp(min_lat, MIN_LATITUDE, MAX_LATITUDE),
            max_lng=_clamp(max_lng, MIN_LONGITUDE, MAX_LONGITUDE),
            max_lat=_clamp(max_lat, MIN_LATITUDE, MAX_LATITUDE),
        )

    @classmethod
    def world(cls) -> BBox:
        return cls(MIN_LONGITUDE, MIN_LATITUDE, MAX_LONGITUDE, MAX_LATITUDE)

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.min_lng, self.min_lat, self.max_lng, self.max_lat)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ---------------------------------------------------------------------------
# Apply-time mapping
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FieldMapping:
    """Attribute field names used to populate parcel columns on apply.

    Every field is optional; ``None`` means "use defaults / leave null".
    """

    label_field: str | None = None
    code_field: str | None = None
    village_field: str | None = None
    conformity_status_field: str | None = None
    certifications_field: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "label_field": self.label_field,
            "code_field": self.code_field,
            "village_field": self.village_field,
            "conformity_status_field": self.conformity_status_field,
            "certifications_field": self.certifications_field,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> FieldMapping:
        def _opt(key: str) -> str | None:
            value = data.get(key)
            return str(value) if value else None

        return cls(
            label_field=_opt("label_field"),
            code_field=_opt("code_field"),
            village_field=_opt("village_field"),
            conformity_status_field=_opt("conformity_status_field"),
            certifications_field=_opt("certifications_field"),
        )


@dataclass(frozen=True, slots=True)
class ImportDefaults:
    """Default values applied to every parcel created by an import.

    Attributes:
        conformity_status: Status used when nothing better is known.
        certifications: Whitelisted certifications, no duplicates.
        auto_detect_conformity: Infer the status from attribute
            completeness when no conformity field is mapped. Off by default,
            so ``conformity_status`` applies.
    """

    conformity_status: ConformityStatus = ConformityStatus.MISSING_INFORMATION
    certifications: tuple[str, ...] = ()
    auto_detect_conformity: bool = False

    def __post_init__(self) -> None:
        validate_certifications(self.certifications)

    def to_dict(self) -> dict[str, object]:
        return {
            "conformity_status": self.conformity_status.value,
            "certifications": list(self.certifications),
            "auto_detect_conformity": self.auto_detect_conformity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> ImportDefaults:
        """Deserialise from a request payload.

        Raises:
            ValueError: If ``conformity_status`` is not a known value.
            CertificationError: If ``certifications`` violates the whitelist.
        """
        certs = data.get("certifications") or []
        if not isinstance(certs, list | tuple):
            msg = f"certifications must be a list, got {type(certs).__name__}"
            raise TypeError(msg)
        return cls(
            conformity_status=ConformityStatus(
                str(data.get("conformity_status", ConformityStatus.MISSING_INFORMATION.value))
            ),
            certifications=tuple(str(c) for c in certs),
            auto_detect_conformity=bool(data.get("auto_detect_conformity", False)),
        )


# ---------------------------------------------------------------------------
# Persisted records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Farmer:
    """A grower record (``planteur``).

    Attributes:
        id: Store identifier.
        name: Display name as entered.
        name_norm: Accent-stripped, lower-cased, whitespace-collapsed name.
        cooperative_id: Owning cooperative.
        supplier_id: Optional supplier (``chef planteur``) the farmer reports to.
        created_by_import: Import file that created this farmer, if any.
    """

    id: str
    name: str
    name_norm: str
    cooperative_id: str
    supplier_id: str | None = None
    created_by_import: str | None = None


@dataclass(frozen=True, slots=True)
class Parcel:
    """A stored land-boundary record.

    Attributes:
        id: Store identifier.
        planteur_id: Owning farmer, ``None`` for orphan parcels.
        geometry: Canonical MultiPolygon (never a bare Polygon).
        area_ha: Geodesic area in hectares (4 decimals).
        centroid: Point-on-surface centroid (6 decimals).
        feature_hash: Content hash of the canonical geometry.
        code: Parcel code, ``None`` for orphans.
        label: Display label.
        village: Village name.
        certifications: Whitelisted certifications, unique.
        conformity_status: Conformity status.
        risk_flags: Free-form risk indicators.
        source: How the parcel entered the store.
        import_file_id: Import that created the parcel, if any.
        is_active: Inactive parcels are ignored by duplicate detection.
    """

    id: str
    planteur_id: str | None
    geometry: MultiPolygonGeometry
    area_ha: float
    centroid: Centroid
    feature_hash: str
    code: str | None = None
    label: str | None = None
    village: str | None = None
    certifications: tuple[str, ...] = ()
    conformity_status: ConformityStatus = ConformityStatus.MISSING_INFORMATION
    risk_flags: dict[str, object] = field(default_factory=dict)
    source: ParcelSource = ParcelSource.MANUAL
    import_file_id: str | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        validate_certifications(self.certifications)
        if self.area_ha < 0:
            raise ModelValidationError("Parcel", "area_ha", self.area_ha, "must be >= 0")
        if len(self.feature_hash) != 64:
            raise ModelValidationError(
                "Parcel", "feature_hash", self.feature_hash, "must be 64 hex characters"
            )

    @property
    def is_orphan(self) -> bool:
        return self.planteur_id is None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "planteur_id": self.planteur_id,
            "code": self.code,
            "label": self.label,
            "village": self.village,
            "geometry": self.geometry.to_geojson(),
            "area_ha": self.area_ha,
            "centroid": self.centroid.to_dict(),
            "feature_hash": self.feature_hash,
            "certifications": list(self.certifications),
            "conformity_status": self.conformity_status.value,
            "risk_flags": dict(self.risk_flags),
            "source": self.source.value,
            "import_file_id": self.import_file_id,
            "is_active": self.is_active,
        }
