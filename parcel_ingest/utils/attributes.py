"""Attribute-record helpers shared by parsing and apply.

Source attribute records are arbitrary string-keyed maps (DBF rows,
GeoJSON properties, KML ExtendedData). These helpers give typed,
explicit lookups for the handful of fields the core cares about.
"""

from __future__ import annotations

import json
import re
import unicodedata
from collections.abc import Mapping
from typing import TYPE_CHECKING

from parcel_ingest.core.constants import CERTIFICATIONS, LABEL_ATTRIBUTE_KEYS
from parcel_ingest.models.parcel import ConformityStatus

if TYPE_CHECKING:
    from parcel_ingest.models.feature import Scalar

_WHITESPACE_RE = re.compile(r"\s+")

# Field-name guesses used by conformity auto-detection
_FARMER_NAME_KEYS = (
    "Nom_prod",
    "NOM_PROD",
    "nom_prod",
    "planteur",
    "PLANTEUR",
    "Planteur",
    "nom",
    "NOM",
    "name",
    "NAME",
)
_VILLAGE_KEYS = (
    "village",
    "VILLAGE",
    "Village",
    "localite",
    "LOCALITE",
    "Localite",
    "lieu",
    "LIEU",
)
_SUPPORTING_DATA_KEYS = (
    "date",
    "DATE",
    "certification",
    "CERTIFICATION",
    "code",
    "CODE",
    "superficie",
    "SUPERFICIE",
    "surface",
    "SURFACE",
)

_CONFORMITY_SYNONYMS: dict[str, ConformityStatus] = {
    **dict.fromkeys(
        ("compliant", "conforme", "ok", "valid", "valide", "oui", "yes", "1", "true"),
        ConformityStatus.COMPLIANT,
    ),
    **dict.fromkeys(
        (
            "non_compliant",
            "non_conforme",
            "non conforme",
            "invalid",
            "invalide",
            "non",
            "no",
            "0",
            "false",
        ),
        ConformityStatus.NON_COMPLIANT,
    ),
    **dict.fromkeys(
        ("in_progress", "en_cours", "en cours", "pending", "en attente", "verification"),
        ConformityStatus.IN_PROGRESS,
    ),
    **dict.fromkeys(
        (
            "missing_information",
            "informations_manquantes",
            "informations manquantes",
            "missing",
            "manquant",
            "incomplet",
            "incomplete",
        ),
        ConformityStatus.MISSING_INFORMATION,
    ),
}


def attribute_text(value: Scalar) -> str:
    """Return *value* as trimmed text (``""`` for ``None``)."""
    if value is None:
        return ""
    return str(value).strip()


def extract_label(attributes: Mapping[str, Scalar]) -> str | None:
    """Return the first non-empty label-like attribute, or ``None``."""
    for key in LABEL_ATTRIBUTE_KEYS:
        text = attribute_text(attributes.get(key))
        if text:
            return text
    return None


def normalize_farmer_name(name: str | None) -> str:
    """Normalize a farmer name for matching.

    Decomposes to NFD, strips combining marks, lower-cases, trims and
    collapses internal whitespace: ``"  KOUASSI  Adjoa "`` and
    ``"kouassi adjoa"`` match, as do ``"Koné"`` and ``"Kone"``.
    """
    if not name:
        return ""
    decomposed = unicodedata.normalize("NFD", name)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _WHITESPACE_RE.sub(" ", stripped.lower().strip())


# ---------------------------------------------------------------------------
# Conformity
# ---------------------------------------------------------------------------


def map_conformity_value(value: Scalar) -> ConformityStatus | None:
    """Map a free-text attribute value to a conformity status.

    Accepts the canonical values and common English/French synonyms
    (``"ok"``, ``"oui"``, ``"non conforme"``, ``"en cours"`` ...).
    Returns ``None`` when the value is not recognised.
    """
    text = attribute_text(value).lower()
    if not text:
        return None
    return _CONFORMITY_SYNONYMS.get(text)


def detect_conformity(
    attributes: Mapping[str, Scalar],
    *,
    farmer_name_field: str | None = None,
    area_ha: float | None = None,
) -> ConformityStatus:
    """Infer a conformity status from how complete an attribute record is.

    - ``COMPLIANT`` when a farmer name is present, a village or a positive
      area is known, and at least one supporting field (date, code,
      certification, surface) is filled in.
    - ``IN_PROGRESS`` when only a farmer name or a positive area is known.
    - ``MISSING_INFORMATION`` otherwise.
    """
    name_keys = (farmer_name_field,) if farmer_name_field else _FARMER_NAME_KEYS
    has_name = _any_filled(attributes, name_keys)
    has_village = _any_filled(attributes, _VILLAGE_KEYS)
    has_area = area_ha is not None and area_ha > 0
    supporting = sum(1 for key in _SUPPORTING_DATA_KEYS if attribute_text(attributes.get(key)))

    if has_name and (has_village or has_area) and supporting >= 1:
        return ConformityStatus.COMPLIANT
    if has_name or has_area:
        return ConformityStatus.IN_PROGRESS
    return ConformityStatus.MISSING_INFORMATION


def _any_filled(attributes: Mapping[str, Scalar], keys: tuple[str, ...]) -> bool:
    return any(attribute_text(attributes.get(key)) for key in keys)


# ---------------------------------------------------------------------------
# Certifications
# ---------------------------------------------------------------------------


def parse_certifications_value(value: Scalar) -> tuple[str, ...]:
    """Split a ``"bio, utz"``-style attribute into whitelisted, unique values.

    Unknown tokens are dropped; order of first appearance is kept.
    """
    text = attribute_text(value)
    if not text:
        return ()
    result: list[str] = []
    for token in re.split(r"[,;|]", text):
        cleaned = token.strip()
        if cleaned in CERTIFICATIONS and cleaned not in result:
            result.append(cleaned)
    return tuple(result)


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


def attributes_sort_key(attributes: Mapping[str, Scalar]) -> str:
    """Stable textual key for an attribute record, used to break hash ties."""
    return json.dumps(dict(attributes), sort_keys=True, default=str, ensure_ascii=True)
