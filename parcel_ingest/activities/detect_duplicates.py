"""Duplicate detection — hash equality against active parcels and within a file.

A feature is a duplicate when:

- an *active* parcel already has its ``feature_hash`` (global, across
  every farmer and cooperative), or
- an earlier feature of the same file has the same hash. "Earlier" is
  decided by ``(attributes_sort_key, source_index)`` so the answer does
  not depend on the order features are handed in.

Only hashes are compared; no spatial overlap test is performed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from parcel_ingest.core.constants import DUPLICATE_IN_FILE
from parcel_ingest.utils.attributes import attributes_sort_key

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from parcel_ingest.models.feature import ParsedFeature

logger = logging.getLogger("parcel_ingest.activities.detect_duplicates")


@dataclass(frozen=True, slots=True)
class DuplicateCheck:
    """Result of a single hash lookup."""

    is_duplicate: bool
    existing_parcel_id: str | None = None


def is_duplicate(feature_hash: str, active_parcel_hashes: Mapping[str, str]) -> DuplicateCheck:
    """Look up *feature_hash* among active parcel hashes."""
    existing = active_parcel_hashes.get(feature_hash)
    if existing is None:
        return DuplicateCheck(is_duplicate=False)
    return DuplicateCheck(is_duplicate=True, existing_parcel_id=existing)


def _first_occurrences(features: Sequence[ParsedFeature]) -> dict[str, int]:
    """Map each hash to the position of its first valid occurrence."""
    first: dict[str, int] = {}
    for pos, feature in sorted(
        enumerate(features),
        key=lambda item: (attributes_sort_key(item[1].attributes), item[1].source_index),
    ):
        if feature.validation.ok:
            first.setdefault(feature.feature_hash, pos)
    return first


def detect_duplicates(
    features: Sequence[ParsedFeature],
    active_parcel_hashes: Mapping[str, str],
) -> list[ParsedFeature]:
    """Return *features* (same order) with duplicate flags set.

    Args:
        features: Parsed features of one file.
        active_parcel_hashes: ``{feature_hash: parcel_id}`` from a single
            batch read of the store.

    Returns:
        New ``ParsedFeature`` instances. Store duplicates carry the
        matching ``existing_parcel_id``; in-file repeats carry ``None``
        and a ``DUPLICATE_IN_FILE`` validation warning.
    """
    first = _first_occurrences(features)
    result: list[ParsedFeature] = []
    nb_store = nb_in_file = 0

    for pos, feature in enumerate(features):
        warnings = tuple(w for w in feature.validation.warnings if w != DUPLICATE_IN_FILE)
        feature = replace(feature, validation=replace(feature.validation, warnings=warnings))
        check = is_duplicate(feature.feature_hash, active_parcel_hashes)
        if check.is_duplicate:
            nb_store += 1
            result.append(
                replace(feature, is_duplicate=True, existing_parcel_id=check.existing_parcel_id)
            )
            continue

        if feature.validation.ok and first.get(feature.feature_hash) != pos:
            nb_in_file += 1
            validation = replace(feature.validation, warnings=(*warnings, DUPLICATE_IN_FILE))
            result.append(
                replace(
                    feature, is_duplicate=True, existing_parcel_id=None, validation=validation
                )
            )
            continue

        result.append(replace(feature, is_duplicate=False, existing_parcel_id=None))

    logger.info(
        "Duplicate detection | features=%d | store_duplicates=%d | in_file_duplicates=%d",
        len(features),
        nb_store,
        nb_in_file,
    )
    return result
