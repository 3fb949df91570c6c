"""Apply request / result models.

An ``ApplyRequest`` selects one of three mutually exclusive modes and
carries the mode-specific fields. ``validate()`` is called before any
processing so that a missing farmer id or name field is rejected up
front.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from parcel_ingest.core.exceptions import ValidationError
from parcel_ingest.models.parcel import FieldMapping, ImportDefaults

if TYPE_CHECKING:
    from parcel_ingest.models.contracts import ApplyResultPayload, AutoCreatePreviewPayload


class ApplyRequestError(ValidationError):
    """Raised when an apply request is missing a mode-required field."""

    default_stage = "apply"


class ApplyMode(enum.Enum):
    """How accepted features become owned parcels.

    Values:
        ASSIGN:      Every parcel goes to one existing farmer.
        ORPHAN:      Parcels have no owner, pending manual assignment.
        AUTO_CREATE: A name attribute selects (or creates) the farmer per feature.
    """

    ASSIGN = "assign"
    ORPHAN = "orphan"
    AUTO_CREATE = "auto_create"


@dataclass(frozen=True, slots=True)
class ApplyRequest:
    """Caller input for ``ImportSession.apply``.

    Attributes:
        mode: Assignment policy.
        planteur_id: Target farmer (required for ``ASSIGN``).
        farmer_name_field: Attribute holding the farmer name (required for
            ``AUTO_CREATE``).
        default_supplier_id: Supplier attached to farmers created by
            ``AUTO_CREATE``.
        field_mapping: Attribute fields for label/code/village/conformity.
        defaults: Default conformity and certifications.
        confirm_warnings: Caller acknowledges warnings that require
            confirmation (e.g. likely projected coordinates).
    """

    mode: ApplyMode
    planteur_id: str | None = None
    farmer_name_field: str | None = None
    default_supplier_id: str | None = None
    field_mapping: FieldMapping = field(default_factory=FieldMapping)
    defaults: ImportDefaults = field(default_factory=ImportDefaults)
    confirm_warnings: bool = False

    def validate(self) -> None:
        """Check mode-required fields.

        Raises:
            ApplyRequestError: If a field required by ``mode`` is missing.
        """
        if self.mode is ApplyMode.ASSIGN and not self.planteur_id:
            msg = "planteur_id is required for mode 'assign'"
            raise ApplyRequestError(msg, details={"field": "planteur_id", "mode": "assign"})
        if self.mode is ApplyMode.AUTO_CREATE and not self.farmer_name_field:
            msg = "farmer_name_field is required for mode 'auto_create'"
            raise ApplyRequestError(
                msg, details={"field": "farmer_name_field", "mode": "auto_create"}
            )

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> ApplyRequest:
        """Deserialise from a request payload.

        Raises:
            ApplyRequestError: If ``mode`` is missing or unknown.
        """
        raw_mode = data.get("mode")
        try:
            mode = ApplyMode(str(raw_mode))
        except ValueError as exc:
            allowed = [m.value for m in ApplyMode]
            msg = f"mode must be one of {allowed}, got {raw_mode!r}"
            raise ApplyRequestError(msg, details={"field": "mode", "allowed": allowed}) from exc

        mapping_raw = data.get("field_mapping") or {}
        defaults_raw = data.get("defaults") or {}
        if not isinstance(mapping_raw, dict) or not isinstance(defaults_raw, dict):
            msg = "field_mapping and defaults must be objects"
            raise ApplyRequestError(msg)

        def _opt(key: str) -> str | None:
            value = data.get(key)
            return str(value) if value else None

        return cls(
            mode=mode,
            planteur_id=_opt("planteur_id"),
            farmer_name_field=_opt("farmer_name_field"),
            default_supplier_id=_opt("default_supplier_id"),
            field_mapping=FieldMapping.from_dict(mapping_raw),
            defaults=ImportDefaults.from_dict(defaults_raw),
            confirm_warnings=bool(data.get("confirm_warnings", False)),
        )


@dataclass(frozen=True, slots=True)
class ApplyResult:
    """Outcome of a successful apply.

    ``nb_created + nb_skipped_duplicates + nb_skipped_invalid`` equals the
    number of parsed features.
    """

    import_file_id: str
    mode: ApplyMode
    nb_created: int = 0
    nb_skipped_duplicates: int = 0
    nb_skipped_invalid: int = 0
    nb_orphans: int = 0
    created_parcel_ids: tuple[str, ...] = ()
    created_farmer_ids: tuple[str, ...] = ()

    def to_dict(self) -> ApplyResultPayload:
        return {
            "import_file_id": self.import_file_id,
            "mode": self.mode.value,
            "nb_created": self.nb_created,
            "nb_skipped_duplicates": self.nb_skipped_duplicates,
            "nb_skipped_invalid": self.nb_skipped_invalid,
            "nb_orphans": self.nb_orphans,
            "created_parcel_ids": list(self.created_parcel_ids),
            "created_farmer_ids": list(self.created_farmer_ids),
        }


@dataclass(frozen=True, slots=True)
class AutoCreatePreview:
    """What ``AUTO_CREATE`` would do for a given name field.

    Attributes:
        new_farmers: ``(display_name, feature_count)`` for names not yet known.
        existing_farmers: ``(farmer_id, display_name, feature_count)`` for matches.
        nb_orphan_features: Accepted features whose name field is empty.
    """

    new_farmers: tuple[tuple[str, int], ...] = ()
    existing_farmers: tuple[tuple[str, str, int], ...] = ()
    nb_orphan_features: int = 0

    def to_dict(self) -> AutoCreatePreviewPayload:
        return {
            "new_farmers": [{"name": n, "nb_features": c} for n, c in self.new_farmers],
            "existing_farmers": [
                {"id": i, "name": n, "nb_features": c} for i, n, c in self.existing_farmers
            ],
            "nb_orphan_features": self.nb_orphan_features,
        }
