"""Data models and schemas.

Defines the data structures used throughout the ingestion core:
- RawGeometry / MultiPolygonGeometry: owned geometry structures
- RawFeature / ParsedFeature / ParseIssue: parse-run records
- ImportFile / ImportStatus: upload lifecycle
- Parcel / Farmer / BBox / FieldMapping / ImportDefaults: store-side records
- ApplyRequest / ApplyResult: apply boundary
"""

from parcel_ingest.models.apply import ApplyMode, ApplyRequest, ApplyResult
from parcel_ingest.models.feature import (
    Centroid,
    FeatureValidation,
    ParsedFeature,
    ParseIssue,
    RawFeature,
)
from parcel_ingest.models.geometry import MultiPolygonGeometry, RawGeometry
from parcel_ingest.models.import_file import ImportFile, ImportStatus, SourceFormat
from parcel_ingest.models.parcel import (
    BBox,
    ConformityStatus,
    Farmer,
    FieldMapping,
    ImportDefaults,
    Parcel,
    ParcelSource,
)
from parcel_ingest.models.result import OperationResult

__all__ = [
    "ApplyMode",
    "ApplyRequest",
    "ApplyResult",
    "BBox",
    "Centroid",
    "ConformityStatus",
    "Farmer",
    "FeatureValidation",
    "FieldMapping",
    "ImportDefaults",
    "ImportFile",
    "ImportStatus",
    "MultiPolygonGeometry",
    "OperationResult",
    "Parcel",
    "ParcelSource",
    "ParseIssue",
    "ParsedFeature",
    "RawFeature",
    "RawGeometry",
    "SourceFormat",
]
