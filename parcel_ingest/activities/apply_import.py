"""Apply activity — materialize accepted preview features as parcels.

Runs inside a store transaction opened by the caller. Steps:

1. Check references (target farmer, default supplier).
2. Re-check duplicates against the store (one batch read).
3. Resolve the owner of each accepted feature per ``ApplyMode``.
4. Resolve label, code, village, conformity and certifications.
5. Insert parcels (and, for ``AUTO_CREATE``, new farmers).

Invalid and duplicate features are always skipped.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from typing import TYPE_CHECKING

from parcel_ingest.activities.detect_duplicates import detect_duplicates
from parcel_ingest.core.constants import NOTHING_TO_APPLY
from parcel_ingest.core.exceptions import NotFoundError, ValidationError
from parcel_ingest.models.apply import ApplyMode, ApplyResult, AutoCreatePreview
from parcel_ingest.models.parcel import Farmer, Parcel
from parcel_ingest.utils.attributes import (
    attribute_text,
    detect_conformity,
    map_conformity_value,
    normalize_farmer_name,
    parse_certifications_value,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from parcel_ingest.models.apply import ApplyRequest
    from parcel_ingest.models.feature import ParsedFeature
    from parcel_ingest.models.import_file import ImportFile
    from parcel_ingest.models.parcel import ConformityStatus, FieldMapping, ImportDefaults
    from parcel_ingest.store.base import ParcelStore

logger = logging.getLogger("parcel_ingest.activities.apply_import")


class ApplyRejectedError(ValidationError):
    """Raised when an apply request cannot proceed (nothing to apply, confirmation...)."""

    default_stage = "apply"


# ---------------------------------------------------------------------------
# Field resolution
# ---------------------------------------------------------------------------


def resolve_label(feature: ParsedFeature, mapping: FieldMapping) -> str | None:
    mapped = attribute_text(feature.get_attribute(mapping.label_field))
    return mapped or feature.label


def resolve_village(feature: ParsedFeature, mapping: FieldMapping) -> str | None:
    return attribute_text(feature.get_attribute(mapping.village_field)) or None


def resolve_conformity(
    feature: ParsedFeature,
    mapping: FieldMapping,
    defaults: ImportDefaults,
    *,
    farmer_name_field: str | None = None,
) -> ConformityStatus:
    """Mapped field value, then auto-detection (if enabled), then the default."""
    mapped = map_conformity_value(feature.get_attribute(mapping.conformity_status_field))
    if mapped is not None:
        return mapped
    if defaults.auto_detect_conformity:
        return detect_conformity(
            feature.attributes, farmer_name_field=farmer_name_field, area_ha=feature.area_ha
        )
    return defaults.conformity_status


def resolve_certifications(
    feature: ParsedFeature, mapping: FieldMapping, defaults: ImportDefaults
) -> tuple[str, ...]:
    """Whitelisted values of the mapped field, else the defaults."""
    mapped = parse_certifications_value(feature.get_attribute(mapping.certifications_field))
    return mapped or defaults.certifications


def generate_code(prefix: str, number: int) -> str:
    """``PARC-0001`` style code."""
    return f"{prefix}-{number:04d}"


# ---------------------------------------------------------------------------
# Auto-create
# ---------------------------------------------------------------------------


def preview_auto_create(
    features: Sequence[ParsedFeature],
    farmer_name_field: str,
    store: ParcelStore,
    cooperative_id: str,
) -> AutoCreatePreview:
    """Describe the farmers ``AUTO_CREATE`` would match or create.

    Only accepted (valid, non-duplicate) features are counted.
    """
    display: dict[str, str] = {}
    counts: Counter[str] = Counter()
    orphans = 0
    for feature in features:
        if not feature.is_accepted:
            continue
        name = attribute_text(feature.get_attribute(farmer_name_field))
        norm = normalize_farmer_name(name)
        if not norm:
            orphans += 1
            continue
        display.setdefault(norm, name)
        counts[norm] += 1

    known = store.find_farmers_by_name_norm(cooperative_id, counts)
    existing = tuple(
        sorted(
            ((known[n].id, known[n].name, counts[n]) for n in counts if n in known),
            key=lambda item: (item[1], item[0]),
        )
    )
    new = tuple(sorted((display[n], counts[n]) for n in counts if n not in known))
    return AutoCreatePreview(new_farmers=new, existing_farmers=existing, nb_orphan_features=orphans)


def _resolve_auto_create_owners(
    accepted: Sequence[ParsedFeature],
    request: ApplyRequest,
    store: ParcelStore,
    import_file: ImportFile,
    created_farmer_ids: list[str],
) -> list[str | None]:
    names = [attribute_text(f.get_attribute(request.farmer_name_field)) for f in accepted]
    norms = [normalize_farmer_name(name) for name in names]
    known = store.find_farmers_by_name_norm(import_file.cooperative_id, {n for n in norms if n})

    owners: list[str | None] = []
    for name, norm in zip(names, norms, strict=True):
        if not norm:
            owners.append(None)
            continue
        farmer = known.get(norm)
        if farmer is None:
            farmer = store.add_farmer(
                Farmer(
                    id=str(uuid.uuid4()),
                    name=name,
                    name_norm=norm,
                    cooperative_id=import_file.cooperative_id,
                    supplier_id=request.default_supplier_id,
                    created_by_import=import_file.id,
                )
            )
            known[norm] = farmer
            created_farmer_ids.append(farmer.id)
            logger.info("Farmer created | import=%s | farmer=%s", import_file.id, farmer.id)
        owners.append(farmer.id)
    return owners


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------


def check_references(request: ApplyRequest, store: ParcelStore, cooperative_id: str) -> None:
    """Reject unknown farmers and suppliers before any write.

    Raises:
        NotFoundError: If ``planteur_id`` (assign) or ``default_supplier_id``
            does not exist.
    """
    if request.mode is ApplyMode.ASSIGN:
        farmer = store.get_farmer(str(request.planteur_id))
        if farmer is None or farmer.cooperative_id != cooperative_id:
            msg = f"Farmer {request.planteur_id} not found"
            raise NotFoundError(
                msg, stage="apply", details={"planteur_id": request.planteur_id}
            )
    if request.default_supplier_id and not store.supplier_exists(request.default_supplier_id):
        msg = f"Supplier {request.default_supplier_id} not found"
        raise NotFoundError(
            msg, stage="apply", details={"default_supplier_id": request.default_supplier_id}
        )


def apply_features(
    import_file: ImportFile,
    features: Sequence[ParsedFeature],
    request: ApplyRequest,
    store: ParcelStore,
    *,
    code_prefix: str,
) -> ApplyResult:
    """Create parcels (and farmers) for the accepted *features*.

    Must run inside ``store.transaction()``; any exception leaves the
    store untouched once the transaction rolls back.

    Raises:
        NotFoundError: Unknown farmer or supplier.
        ApplyRejectedError: No accepted feature remains (``NOTHING_TO_APPLY``).
        DuplicateParcelError: A concurrent writer created the same boundary.
    """
    check_references(request, store, import_file.cooperative_id)

    checked = detect_duplicates(features, store.active_parcel_hashes())
    accepted = [f for f in checked if f.is_accepted]
    nb_invalid = sum(1 for f in checked if not f.is_valid)
    nb_duplicates = sum(1 for f in checked if f.is_valid and f.is_duplicate)
    if not accepted:
        msg = "No valid, non-duplicate feature left to apply"
        raise ApplyRejectedError(
            msg,
            code=NOTHING_TO_APPLY,
            details={"nb_skipped_invalid": nb_invalid, "nb_skipped_duplicates": nb_duplicates},
        )

    created_farmer_ids: list[str] = []
    if request.mode is ApplyMode.ASSIGN:
        owners: list[str | None] = [request.planteur_id] * len(accepted)
    elif request.mode is ApplyMode.ORPHAN:
        owners = [None] * len(accepted)
    else:
        owners = _resolve_auto_create_owners(
            accepted, request, store, import_file, created_farmer_ids
        )

    next_number: dict[str, int] = {}
    created_parcel_ids: list[str] = []
    mapping, defaults = request.field_mapping, request.defaults
    source = import_file.source_format.parcel_source

    for feature, owner in zip(accepted, owners, strict=True):
        code = None
        if owner is not None:
            code = attribute_text(feature.get_attribute(mapping.code_field)) or None
            if code is None:
                if owner not in next_number:
                    next_number[owner] = store.count_parcels_for_farmer(owner) + 1
                code = generate_code(code_prefix, next_number[owner])
                next_number[owner] += 1

        parcel = store.add_parcel(
            Parcel(
                id=str(uuid.uuid4()),
                planteur_id=owner,
                geometry=feature.geometry,
                area_ha=feature.area_ha,
                centroid=feature.centroid,
                feature_hash=feature.feature_hash,
                code=code,
                label=resolve_label(feature, mapping),
                village=resolve_village(feature, mapping),
                certifications=resolve_certifications(feature, mapping, defaults),
                conformity_status=resolve_conformity(
                    feature, mapping, defaults, farmer_name_field=request.farmer_name_field
                ),
                risk_flags=(
                    {"geometry_warnings": list(feature.validation.warnings)}
                    if feature.validation.warnings
                    else {}
                ),
                source=source,
                import_file_id=import_file.id,
            )
        )
        created_parcel_ids.append(parcel.id)

    result = ApplyResult(
        import_file_id=import_file.id,
        mode=request.mode,
        nb_created=len(created_parcel_ids),
        nb_skipped_duplicates=nb_duplicates,
        nb_skipped_invalid=nb_invalid,
        nb_orphans=sum(1 for owner in owners if owner is None),
        created_parcel_ids=tuple(created_parcel_ids),
        created_farmer_ids=tuple(created_farmer_ids),
    )
    logger.info(
        "Apply complete | import=%s | mode=%s | created=%d | duplicates=%d | invalid=%d | "
        "orphans=%d | farmers_created=%d",
        import_file.id,
        request.mode.value,
        result.nb_created,
        result.nb_skipped_duplicates,
        result.nb_skipped_invalid,
        result.nb_orphans,
        len(created_farmer_ids),
    )
    return result
