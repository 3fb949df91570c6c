"""Tests for attribute-record helpers."""

from __future__ import annotations

import pytest

from parcel_ingest.models.parcel import ConformityStatus
from parcel_ingest.utils.attributes import (
    attribute_text,
    attributes_sort_key,
    detect_conformity,
    extract_label,
    map_conformity_value,
    normalize_farmer_name,
    parse_certifications_value,
)


class TestLabelsAndText:
    def test_attribute_text(self) -> None:
        assert attribute_text(None) == ""
        assert attribute_text("  a ") == "a"
        assert attribute_text(12) == "12"

    def test_extract_label_priority(self) -> None:
        assert extract_label({"nom": "Nom", "name": "Name"}) == "Name"

    def test_extract_label_skips_blank(self) -> None:
        assert extract_label({"name": "  ", "NOM": "Parcelle 3"}) == "Parcelle 3"

    def test_extract_label_none(self) -> None:
        assert extract_label({"village": "X"}) is None


class TestFarmerNames:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("  KOUASSI  Adjoa ", "kouassi adjoa"),
            ("Koné Awa", "kone awa"),
            ("Yéo\tSéraphin", "yeo seraphin"),
            ("", ""),
            (None, ""),
        ],
    )
    def test_normalize(self, raw: str | None, expected: str) -> None:
        assert normalize_farmer_name(raw) == expected


class TestConformity:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("compliant", ConformityStatus.COMPLIANT),
            ("Conforme", ConformityStatus.COMPLIANT),
            ("non conforme", ConformityStatus.NON_COMPLIANT),
            ("EN COURS", ConformityStatus.IN_PROGRESS),
            ("missing_information", ConformityStatus.MISSING_INFORMATION),
            ("peut-être", None),
            (None, None),
        ],
    )
    def test_map_conformity_value(
        self, value: str | None, expected: ConformityStatus | None
    ) -> None:
        assert map_conformity_value(value) is expected

    def test_detect_complete_record(self) -> None:
        attributes = {"Nom_prod": "Koné Awa", "village": "Daloa", "date": "2023-11-02"}
        assert detect_conformity(attributes) is ConformityStatus.COMPLIANT

    def test_detect_with_area_instead_of_village(self) -> None:
        attributes = {"planteur": "Koné Awa", "code": "C-1"}
        assert detect_conformity(attributes, area_ha=2.5) is ConformityStatus.COMPLIANT

    def test_detect_name_only(self) -> None:
        assert detect_conformity({"Nom_prod": "Koné Awa"}) is ConformityStatus.IN_PROGRESS

    def test_detect_area_only(self) -> None:
        assert detect_conformity({}, area_ha=1.2) is ConformityStatus.IN_PROGRESS

    def test_detect_nothing(self) -> None:
        assert detect_conformity({"village": "Daloa"}) is ConformityStatus.MISSING_INFORMATION

    def test_detect_uses_mapped_name_field(self) -> None:
        attributes = {"producteur": "Koné Awa", "village": "Daloa", "date": "2023"}
        assert (
            detect_conformity(attributes, farmer_name_field="producteur")
            is ConformityStatus.COMPLIANT
        )
        # Default name keys are not consulted once a field is mapped
        assert (
            detect_conformity({"nom": "X"}, farmer_name_field="producteur")
            is ConformityStatus.MISSING_INFORMATION
        )


class TestCertificationsValue:
    def test_splits_and_filters(self) -> None:
        assert parse_certifications_value("bio, utz; gold | bio") == ("bio", "utz")

    def test_empty(self) -> None:
        assert parse_certifications_value(None) == ()


class TestSortKey:
    def test_independent_of_key_order(self) -> None:
        assert attributes_sort_key({"a": 1, "b": "x"}) == attributes_sort_key({"b": "x", "a": 1})
