"""Persistence layer — ``ParcelStore`` contract and in-memory implementation."""

from parcel_ingest.store.base import DuplicateParcelError, ParcelStore
from parcel_ingest.store.memory import InMemoryParcelStore

__all__ = ["DuplicateParcelError", "InMemoryParcelStore", "ParcelStore"]
