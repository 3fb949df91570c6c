"""Tests for duplicate detection (store duplicates and in-file repeats)."""

from __future__ import annotations

from parcel_ingest.activities.detect_duplicates import detect_duplicates, is_duplicate
from parcel_ingest.core.constants import DUPLICATE_IN_FILE, SELF_INTERSECTION
from parcel_ingest.models.feature import Centroid, FeatureValidation, ParsedFeature
from parcel_ingest.models.geometry import MultiPolygonGeometry
from tests.conftest import SQUARE_CCW

HASH_A = "a" * 64
HASH_B = "b" * 64


def _feature(
    feature_hash: str,
    source_index: int,
    attributes: dict | None = None,
    *,
    ok: bool = True,
    warnings: tuple[str, ...] = (),
) -> ParsedFeature:
    return ParsedFeature(
        temp_id=f"t-{source_index}",
        label=None,
        geometry=MultiPolygonGeometry(polygons=((tuple(SQUARE_CCW),),)),
        area_ha=1.2,
        centroid=Centroid(lat=6.8805, lng=-6.4495),
        feature_hash=feature_hash,
        validation=FeatureValidation(
            ok=ok, errors=() if ok else ("INVALID_GEOMETRY",), warnings=warnings
        ),
        attributes=attributes or {},
        source_index=source_index,
    )


class TestIsDuplicate:
    def test_hit(self) -> None:
        check = is_duplicate(HASH_A, {HASH_A: "parcel-9"})
        assert check.is_duplicate
        assert check.existing_parcel_id == "parcel-9"

    def test_miss(self) -> None:
        check = is_duplicate(HASH_A, {HASH_B: "parcel-9"})
        assert not check.is_duplicate
        assert check.existing_parcel_id is None


class TestDetectDuplicates:
    def test_store_duplicate_carries_parcel_id(self) -> None:
        result = detect_duplicates([_feature(HASH_A, 0)], {HASH_A: "parcel-1"})
        assert result[0].is_duplicate
        assert result[0].existing_parcel_id == "parcel-1"
        assert DUPLICATE_IN_FILE not in result[0].validation.warnings

    def test_in_file_repeat_flags_later_feature(self) -> None:
        features = [_feature(HASH_A, 0), _feature(HASH_A, 1), _feature(HASH_B, 2)]
        result = detect_duplicates(features, {})

        assert [f.is_duplicate for f in result] == [False, True, False]
        assert result[1].existing_parcel_id is None
        assert result[1].validation.warnings == (DUPLICATE_IN_FILE,)

    def test_order_of_input_does_not_matter(self) -> None:
        first = _feature(HASH_A, 0, {"name": "a"})
        second = _feature(HASH_A, 1, {"name": "b"})
        forward = detect_duplicates([first, second], {})
        backward = detect_duplicates([second, first], {})

        def flagged(features: list[ParsedFeature]) -> set[int]:
            return {f.source_index for f in features if f.is_duplicate}

        assert flagged(forward) == flagged(backward) == {1}

    def test_invalid_feature_never_wins_first_occurrence(self) -> None:
        features = [_feature(HASH_A, 0, ok=False), _feature(HASH_A, 1)]
        result = detect_duplicates(features, {})
        assert [f.is_duplicate for f in result] == [False, False]

    def test_rerun_is_stable(self) -> None:
        features = [_feature(HASH_A, 0), _feature(HASH_A, 1, warnings=(SELF_INTERSECTION,))]
        once = detect_duplicates(features, {})
        twice = detect_duplicates(once, {})

        assert twice == once
        assert twice[1].validation.warnings == (SELF_INTERSECTION, DUPLICATE_IN_FILE)

    def test_rerun_against_store_clears_in_file_flag(self) -> None:
        once = detect_duplicates([_feature(HASH_A, 0), _feature(HASH_A, 1)], {})
        again = detect_duplicates(once, {HASH_A: "parcel-1"})

        assert all(f.is_duplicate for f in again)
        assert all(f.existing_parcel_id == "parcel-1" for f in again)
        assert all(DUPLICATE_IN_FILE not in f.validation.warnings for f in again)

    def test_previous_duplicate_cleared_when_parcel_gone(self) -> None:
        flagged = detect_duplicates([_feature(HASH_A, 0)], {HASH_A: "parcel-1"})
        cleared = detect_duplicates(flagged, {})
        assert not cleared[0].is_duplicate
        assert cleared[0].existing_parcel_id is None
