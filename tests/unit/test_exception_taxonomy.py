"""Tests for the ingestion exception taxonomy.

Validates:
- IngestError hierarchy and structured attributes
- Category classification (validation, transient, permanent, contract)
- ``to_error_dict()`` produces stable payload keys
- Domain exceptions carry the expected codes and categories
"""

from __future__ import annotations

from typing import ClassVar

import pytest

from parcel_ingest.activities.apply_import import ApplyRejectedError
from parcel_ingest.activities.parse_import import ParseCancelledError
from parcel_ingest.core.config import ConfigValidationError
from parcel_ingest.core.exceptions import (
    ContractError,
    IngestError,
    LimitExceededError,
    ModelValidationError,
    NotFoundError,
    PermanentError,
    StoreError,
    TransientError,
    ValidationError,
)
from parcel_ingest.geometry.spatial_filter import InvalidBBoxError
from parcel_ingest.models.import_file import InvalidTransitionError
from parcel_ingest.models.parcel import CertificationError
from parcel_ingest.parsers import (
    EmptyGeometryError,
    FeatureGeometryError,
    MissingArchiveMemberError,
    ParseError,
    UnsupportedGeometryError,
)
from parcel_ingest.store.base import DuplicateParcelError


class TestIngestErrorBase:
    """IngestError base class behavior."""

    def test_default_attributes(self) -> None:
        err = IngestError("boom")
        assert err.message == "boom"
        assert err.stage == ""
        assert err.code == "INTERNAL_ERROR"
        assert err.retryable is False
        assert err.details == {}
        assert err.requires_confirmation is False

    def test_custom_attributes(self) -> None:
        err = IngestError(
            "fail",
            stage="apply",
            code="X",
            retryable=True,
            details={"a": 1},
            requires_confirmation=True,
        )
        assert err.stage == "apply"
        assert err.code == "X"
        assert err.retryable is True
        assert err.details == {"a": 1}
        assert err.requires_confirmation is True

    def test_str_is_message(self) -> None:
        assert str(IngestError("human-readable error")) == "human-readable error"

    def test_to_error_dict_keys(self) -> None:
        payload = IngestError("x", stage="s", code="C").to_error_dict()
        assert set(payload) == {
            "category",
            "code",
            "stage",
            "message",
            "retryable",
            "details",
            "requires_confirmation",
        }

    def test_details_are_copied(self) -> None:
        details = {"k": "v"}
        err = IngestError("x", details=details)
        details["k"] = "changed"
        assert err.to_error_dict()["details"] == {"k": "v"}

    def test_category_falls_back_on_retryable(self) -> None:
        assert IngestError("x", retryable=True).category == "transient"
        assert IngestError("x").category == "permanent"


class TestCategories:
    """Category base classes set category and retry semantics."""

    def test_validation(self) -> None:
        err = ValidationError("bad")
        assert err.category == "validation"
        assert err.retryable is False
        assert err.code == "VALIDATION_ERROR"

    def test_transient(self) -> None:
        err = TransientError("later")
        assert err.category == "transient"
        assert err.retryable is True

    def test_permanent(self) -> None:
        err = PermanentError("never")
        assert err.category == "permanent"
        assert err.retryable is False

    def test_contract(self) -> None:
        err = ContractError("drift")
        assert err.category == "contract"
        assert err.code == "CONTRACT_VIOLATION"


class TestDomainErrors:
    """Every domain exception is an IngestError with a stable code."""

    EXPECTED: ClassVar[list[tuple[type[IngestError], str, str]]] = [
        (ParseError, "FILE_CORRUPT", "permanent"),
        (MissingArchiveMemberError, "SHAPEFILE_MISSING_REQUIRED", "permanent"),
        (FeatureGeometryError, "INVALID_GEOMETRY", "validation"),
        (EmptyGeometryError, "EMPTY_GEOMETRY", "validation"),
        (UnsupportedGeometryError, "UNSUPPORTED_GEOMETRY_TYPE", "validation"),
        (LimitExceededError, "LIMIT_EXCEEDED", "validation"),
        (NotFoundError, "NOT_FOUND", "validation"),
        (InvalidBBoxError, "VALIDATION_ERROR", "validation"),
        (InvalidTransitionError, "INVALID_IMPORT_STATUS", "validation"),
        (ApplyRejectedError, "VALIDATION_ERROR", "validation"),
        (CertificationError, "VALIDATION_ERROR", "validation"),
        (ParseCancelledError, "PARSE_CANCELLED", "transient"),
        (StoreError, "STORE_ERROR", "transient"),
    ]

    @pytest.mark.parametrize(("cls", "code", "category"), EXPECTED)
    def test_code_and_category(self, cls: type[IngestError], code: str, category: str) -> None:
        err = cls("message")
        assert isinstance(err, IngestError)
        assert err.code == code
        assert err.category == category

    def test_parse_cancelled_is_retryable(self) -> None:
        assert ParseCancelledError("stop").retryable is True

    def test_duplicate_parcel_not_retryable(self) -> None:
        err = DuplicateParcelError("a" * 64, "p-1")
        assert err.retryable is False
        assert err.details["existing_parcel_id"] == "p-1"

    def test_model_validation_error_is_value_error(self) -> None:
        err = ModelValidationError("Parcel", "area_ha", -1, "must be >= 0")
        assert isinstance(err, ValueError)
        assert err.category == "validation"
        assert "Parcel.area_ha=-1" in err.message
        assert err.details == {"model": "Parcel", "field": "area_ha"}

    def test_config_validation_error(self) -> None:
        err = ConfigValidationError("PARCEL_PARSE_WORKERS", 0, "must be between 1 and 64")
        assert err.stage == "config"
        assert err.code == "CONFIG_VALIDATION_FAILED"
        assert "PARCEL_PARSE_WORKERS" in err.message
