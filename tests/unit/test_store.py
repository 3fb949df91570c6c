"""Tests for the in-memory parcel store."""

from __future__ import annotations

import pytest

from parcel_ingest.models.feature import Centroid
from parcel_ingest.models.geometry import MultiPolygonGeometry
from parcel_ingest.models.import_file import ImportFile, SourceFormat
from parcel_ingest.models.parcel import BBox, Farmer, Parcel
from parcel_ingest.store.base import DuplicateParcelError, ParcelStore
from parcel_ingest.store.memory import InMemoryParcelStore
from tests.conftest import SQUARE_B_CCW, SQUARE_CCW


def _parcel(
    parcel_id: str,
    feature_hash: str,
    *,
    ring: list | None = None,
    planteur_id: str | None = None,
    is_active: bool = True,
) -> Parcel:
    return Parcel(
        id=parcel_id,
        planteur_id=planteur_id,
        geometry=MultiPolygonGeometry(polygons=((tuple(ring or SQUARE_CCW),),)),
        area_ha=1.2,
        centroid=Centroid(lat=6.8805, lng=-6.4495),
        feature_hash=feature_hash,
        is_active=is_active,
    )


class TestInMemoryParcelStore:
    def test_is_a_parcel_store(self) -> None:
        assert isinstance(InMemoryParcelStore(), ParcelStore)

    def test_import_file_lookup_by_sha_is_per_cooperative(self) -> None:
        store = InMemoryParcelStore()
        store.save_import_file(
            ImportFile(
                id="imp-1",
                cooperative_id="coop-1",
                filename="a.kml",
                source_format=SourceFormat.KML,
                file_sha256="f" * 64,
            )
        )
        assert store.find_import_by_sha("coop-1", "f" * 64) is not None
        assert store.find_import_by_sha("coop-2", "f" * 64) is None
        assert store.get_import_file("missing") is None

    def test_active_hash_is_unique(self) -> None:
        store = InMemoryParcelStore()
        store.add_parcel(_parcel("p-1", "a" * 64))
        with pytest.raises(DuplicateParcelError) as exc_info:
            store.add_parcel(_parcel("p-2", "a" * 64))
        assert exc_info.value.existing_parcel_id == "p-1"

    def test_inactive_parcel_does_not_block_hash(self) -> None:
        store = InMemoryParcelStore()
        store.add_parcel(_parcel("p-1", "a" * 64, is_active=False))
        store.add_parcel(_parcel("p-2", "a" * 64))
        assert store.active_parcel_hashes() == {"a" * 64: "p-2"}

    def test_count_parcels_for_farmer(self) -> None:
        store = InMemoryParcelStore()
        store.add_parcel(_parcel("p-1", "a" * 64, planteur_id="f-1"))
        store.add_parcel(_parcel("p-2", "b" * 64, planteur_id="f-1", is_active=False))
        store.add_parcel(_parcel("p-3", "c" * 64))
        assert store.count_parcels_for_farmer("f-1") == 2

    def test_find_farmers_by_name_norm(self) -> None:
        store = InMemoryParcelStore()
        store.add_farmer(Farmer("f-1", "Koné Awa", "kone awa", "coop-1"))
        store.add_farmer(Farmer("f-2", "Kone Awa", "kone awa", "coop-2"))
        found = store.find_farmers_by_name_norm("coop-1", ["kone awa", "yao"])
        assert list(found) == ["kone awa"]
        assert found["kone awa"].id == "f-1"

    def test_list_parcels_bbox(self) -> None:
        store = InMemoryParcelStore()
        store.add_parcel(_parcel("p-2", "b" * 64, ring=SQUARE_B_CCW))
        store.add_parcel(_parcel("p-1", "a" * 64))
        assert [p.id for p in store.list_parcels()] == ["p-1", "p-2"]
        window = BBox(-6.46, 6.87, -6.44, 6.89)
        assert [p.id for p in store.list_parcels(bbox=window)] == ["p-1"]

    def test_preview_is_copied(self) -> None:
        store = InMemoryParcelStore()
        store.save_preview("imp-1", [])
        store.get_preview("imp-1").append("x")  # type: ignore[arg-type]
        assert store.get_preview("imp-1") == []


class TestTransactions:
    def test_commit(self) -> None:
        store = InMemoryParcelStore()
        with store.transaction():
            store.add_parcel(_parcel("p-1", "a" * 64))
        assert "p-1" in store.parcels

    def test_rollback_on_error(self) -> None:
        store = InMemoryParcelStore()
        store.add_parcel(_parcel("p-0", "0" * 64))
        with pytest.raises(DuplicateParcelError), store.transaction():
            store.add_farmer(Farmer("f-1", "Yao", "yao", "coop-1"))
            store.add_parcel(_parcel("p-1", "a" * 64))
            store.add_parcel(_parcel("p-2", "a" * 64))

        assert set(store.parcels) == {"p-0"}
        assert store.farmers == {}

    def test_nested_transaction_rolls_back_with_outer(self) -> None:
        store = InMemoryParcelStore()
        with pytest.raises(RuntimeError), store.transaction():
            with store.transaction():
                store.add_parcel(_parcel("p-1", "a" * 64))
            raise RuntimeError("boom")
        assert store.parcels == {}

    def test_usable_after_rollback(self) -> None:
        store = InMemoryParcelStore()
        with pytest.raises(RuntimeError), store.transaction():
            raise RuntimeError("boom")
        with store.transaction():
            store.add_parcel(_parcel("p-1", "a" * 64))
        assert list(store.parcels) == ["p-1"]
