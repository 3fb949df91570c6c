"""In-memory ``ParcelStore``.

Backs the test suite and single-process use. Records are frozen
dataclasses, so a transaction snapshot is a shallow copy of each table;
rollback swaps the copies back in.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING

from parcel_ingest.geometry.spatial_filter import filter_parcels
from parcel_ingest.store.base import DuplicateParcelError, ParcelStore

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from parcel_ingest.models.feature import ParsedFeature
    from parcel_ingest.models.import_file import ImportFile
    from parcel_ingest.models.parcel import BBox, Farmer, Parcel

logger = logging.getLogger("parcel_ingest.store.memory")


class InMemoryParcelStore(ParcelStore):
    """Dictionary-backed store with snapshot transactions."""

    def __init__(self, suppliers: Iterable[str] = ()) -> None:
        self._lock = threading.RLock()
        self._depth = 0
        self.import_files: dict[str, ImportFile] = {}
        self.previews: dict[str, list[ParsedFeature]] = {}
        self.farmers: dict[str, Farmer] = {}
        self.parcels: dict[str, Parcel] = {}
        self.suppliers: set[str] = set(suppliers)

    # -- import files ---------------------------------------------------

    def save_import_file(self, import_file: ImportFile) -> None:
        with self._lock:
            self.import_files[import_file.id] = import_file

    def get_import_file(self, import_id: str) -> ImportFile | None:
        return self.import_files.get(import_id)

    def find_import_by_sha(self, cooperative_id: str, file_sha256: str) -> ImportFile | None:
        for import_file in self.import_files.values():
            if (
                import_file.cooperative_id == cooperative_id
                and import_file.file_sha256 == file_sha256
            ):
                return import_file
        return None

    def save_preview(self, import_id: str, features: list[ParsedFeature]) -> None:
        with self._lock:
            self.previews[import_id] = list(features)

    def get_preview(self, import_id: str) -> list[ParsedFeature]:
        return list(self.previews.get(import_id, []))

    # -- farmers --------------------------------------------------------

    def get_farmer(self, farmer_id: str) -> Farmer | None:
        return self.farmers.get(farmer_id)

    def find_farmers_by_name_norm(
        self, cooperative_id: str, names: Iterable[str]
    ) -> dict[str, Farmer]:
        wanted = set(names)
        found: dict[str, Farmer] = {}
        for farmer in sorted(self.farmers.values(), key=lambda f: f.id):
            if farmer.cooperative_id != cooperative_id or farmer.name_norm not in wanted:
                continue
            found.setdefault(farmer.name_norm, farmer)
        return found

    def add_farmer(self, farmer: Farmer) -> Farmer:
        with self._lock:
            self.farmers[farmer.id] = farmer
        return farmer

    def supplier_exists(self, supplier_id: str) -> bool:
        return supplier_id in self.suppliers

    # -- parcels --------------------------------------------------------

    def active_parcel_hashes(self) -> dict[str, str]:
        return {p.feature_hash: p.id for p in self.parcels.values() if p.is_active}

    def count_parcels_for_farmer(self, farmer_id: str) -> int:
        return sum(1 for p in self.parcels.values() if p.planteur_id == farmer_id)

    def add_parcel(self, parcel: Parcel) -> Parcel:
        with self._lock:
            if parcel.is_active:
                for existing in self.parcels.values():
                    if existing.is_active and existing.feature_hash == parcel.feature_hash:
                        raise DuplicateParcelError(parcel.feature_hash, existing.id)
            self.parcels[parcel.id] = parcel
        return parcel

    def list_parcels(self, *, bbox: BBox | None = None, active_only: bool = True) -> list[Parcel]:
        return filter_parcels(self.parcels.values(), bbox, active_only=active_only)

    # -- unit of work ---------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[InMemoryParcelStore]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            snapshot = (
                dict(self.import_files),
                {k: list(v) for k, v in self.previews.items()},
                dict(self.farmers),
                dict(self.parcels),
            )
            self._depth = 1
            try:
                yield self
            except BaseException:
                (self.import_files, self.previews, self.farmers, self.parcels) = snapshot
                logger.warning("Transaction rolled back")
                raise
            finally:
                self._depth = 0
