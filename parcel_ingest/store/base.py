"""ParcelStore abstract base class.

Defines the persistence contract the import session relies on. The
session never knows which concrete store is behind it.

Responsibilities:
    1. Import files — save, fetch, look up by content hash.
    2. Previews    — parsed features kept between parse and apply.
    3. Farmers     — fetch, match by normalized name, create.
    4. Parcels     — active-hash lookup, per-farmer count, create, list.
    5. ``transaction()`` — all-or-nothing unit of work for apply.

Concrete stores must enforce at most one *active* parcel per
``feature_hash``.
"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING

from parcel_ingest.core.exceptions import StoreError

if TYPE_CHECKING:
    from collections.abc import Iterable
    from contextlib import AbstractContextManager

    from parcel_ingest.models.feature import ParsedFeature
    from parcel_ingest.models.import_file import ImportFile
    from parcel_ingest.models.parcel import BBox, Farmer, Parcel


class DuplicateParcelError(StoreError):
    """An active parcel with the same ``feature_hash`` already exists."""

    default_code = "DUPLICATE_PARCEL"

    def __init__(self, feature_hash: str, existing_parcel_id: str) -> None:
        self.feature_hash = feature_hash
        self.existing_parcel_id = existing_parcel_id
        super().__init__(
            f"An active parcel ({existing_parcel_id}) already has hash {feature_hash}",
            retryable=False,
            details={"feature_hash": feature_hash, "existing_parcel_id": existing_parcel_id},
        )


class ParcelStore(abc.ABC):
    """Abstract persistence layer for import files, farmers and parcels."""

    # ------------------------------------------------------------------
    # Import files
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def save_import_file(self, import_file: ImportFile) -> None:
        """Insert or replace an import file record."""

    @abc.abstractmethod
    def get_import_file(self, import_id: str) -> ImportFile | None:
        """Return the import file, or ``None`` if unknown."""

    @abc.abstractmethod
    def find_import_by_sha(self, cooperative_id: str, file_sha256: str) -> ImportFile | None:
        """Return an import of *cooperative_id* with the same content hash, if any."""

    @abc.abstractmethod
    def save_preview(self, import_id: str, features: list[ParsedFeature]) -> None:
        """Replace the parsed features kept for *import_id*."""

    @abc.abstractmethod
    def get_preview(self, import_id: str) -> list[ParsedFeature]:
        """Return the parsed features kept for *import_id* (empty if none)."""

    # ------------------------------------------------------------------
    # Farmers
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def get_farmer(self, farmer_id: str) -> Farmer | None:
        """Return the farmer, or ``None`` if unknown."""

    @abc.abstractmethod
    def find_farmers_by_name_norm(
        self, cooperative_id: str, names: Iterable[str]
    ) -> dict[str, Farmer]:
        """Return ``{name_norm: farmer}`` for the names known in *cooperative_id*."""

    @abc.abstractmethod
    def add_farmer(self, farmer: Farmer) -> Farmer:
        """Persist a new farmer."""

    @abc.abstractmethod
    def supplier_exists(self, supplier_id: str) -> bool:
        """Whether *supplier_id* references a known supplier."""

    # ------------------------------------------------------------------
    # Parcels
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def active_parcel_hashes(self) -> dict[str, str]:
        """Return ``{feature_hash: parcel_id}`` for every active parcel."""

    @abc.abstractmethod
    def count_parcels_for_farmer(self, farmer_id: str) -> int:
        """Number of parcels (active or not) owned by *farmer_id*."""

    @abc.abstractmethod
    def add_parcel(self, parcel: Parcel) -> Parcel:
        """Persist a new parcel.

        Raises:
            DuplicateParcelError: If an active parcel already has the hash.
        """

    @abc.abstractmethod
    def list_parcels(self, *, bbox: BBox | None = None, active_only: bool = True) -> list[Parcel]:
        """Return parcels intersecting *bbox*, sorted by id."""

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def transaction(self) -> AbstractContextManager[ParcelStore]:
        """Context manager: every write inside commits together or not at all.

        An exception raised inside the block rolls back and propagates.
        """
