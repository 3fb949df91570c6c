"""Tests for the domain models.

Covers:
- Certification whitelist and conformity enum
- BBox invariants and clamping
- ImportFile lifecycle transitions
- ApplyRequest validation and deserialisation
- MultiPolygonGeometry / ParsedFeature serialisation
- OperationResult wrapping
"""

from __future__ import annotations

import pytest

from parcel_ingest.core.exceptions import ModelValidationError, NotFoundError
from parcel_ingest.models.apply import ApplyMode, ApplyRequest, ApplyRequestError
from parcel_ingest.models.feature import Centroid, FeatureValidation, ParsedFeature
from parcel_ingest.models.geometry import MultiPolygonGeometry, RawGeometry
from parcel_ingest.models.import_file import (
    ImportFile,
    ImportStatus,
    InvalidTransitionError,
    SourceFormat,
    detect_source_format,
)
from parcel_ingest.models.parcel import (
    BBox,
    CertificationError,
    ConformityStatus,
    ImportDefaults,
    Parcel,
    ParcelSource,
    validate_certifications,
)
from parcel_ingest.models.result import OperationResult

SQUARE = ((0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0), (0.0, 0.0))


def _import_file(status: ImportStatus = ImportStatus.UPLOADED) -> ImportFile:
    return ImportFile(
        id="imp-1",
        cooperative_id="coop-1",
        filename="parcelles.zip",
        source_format=SourceFormat.SHAPEFILE_ZIP,
        file_sha256="0" * 64,
        status=status,
    )


class TestCertifications:
    """Closed, case-sensitive whitelist."""

    def test_empty_is_valid(self) -> None:
        assert validate_certifications([]) == ()

    def test_known_values_kept_in_order(self) -> None:
        assert validate_certifications(["utz", "bio"]) == ("utz", "bio")

    def test_unknown_value_rejected(self) -> None:
        with pytest.raises(CertificationError) as exc_info:
            validate_certifications(["utz", "gold"])
        assert exc_info.value.details["invalid"] == ["gold"]

    def test_case_sensitive(self) -> None:
        with pytest.raises(CertificationError):
            validate_certifications(["UTZ"])

    def test_duplicate_rejected(self) -> None:
        with pytest.raises(CertificationError, match="Duplicate"):
            validate_certifications(["bio", "bio"])

    def test_import_defaults_validate(self) -> None:
        with pytest.raises(CertificationError):
            ImportDefaults(certifications=("fairtrade", "fairtrade"))

    def test_default_conformity_is_missing_information(self) -> None:
        assert ImportDefaults().conformity_status is ConformityStatus.MISSING_INFORMATION

    def test_conformity_detection_is_off_by_default(self) -> None:
        assert ImportDefaults().auto_detect_conformity is False
        assert ImportDefaults.from_dict({}).auto_detect_conformity is False


class TestBBox:
    def test_min_must_be_below_max(self) -> None:
        with pytest.raises(ModelValidationError):
            BBox(1.0, 0.0, 1.0, 1.0)

    def test_clamped(self) -> None:
        bbox = BBox.clamped(-200.0, -95.0, 10.0, 10.0)
        assert bbox.as_tuple() == (-180.0, -90.0, 10.0, 10.0)

    def test_world(self) -> None:
        assert BBox.world().as_tuple() == (-180.0, -90.0, 180.0, 90.0)


class TestImportFileLifecycle:
    """uploaded → parsed → applied; failed and applied are terminal."""

    def test_parse_then_apply(self) -> None:
        parsed = _import_file().transition_to(ImportStatus.PARSED, nb_features=3)
        applied = parsed.transition_to(ImportStatus.APPLIED, nb_applied=2)
        assert parsed.status is ImportStatus.PARSED
        assert parsed.nb_features == 3
        assert applied.status is ImportStatus.APPLIED
        assert applied.nb_applied == 2

    def test_original_unchanged(self) -> None:
        original = _import_file()
        original.transition_to(ImportStatus.PARSED)
        assert original.status is ImportStatus.UPLOADED

    def test_reparse_allowed(self) -> None:
        parsed = _import_file(ImportStatus.PARSED)
        assert parsed.transition_to(ImportStatus.PARSED).status is ImportStatus.PARSED

    def test_apply_twice_rejected(self) -> None:
        applied = _import_file(ImportStatus.APPLIED)
        with pytest.raises(InvalidTransitionError) as exc_info:
            applied.transition_to(ImportStatus.APPLIED)
        assert exc_info.value.code == "IMPORT_ALREADY_APPLIED"

    @pytest.mark.parametrize("status", [ImportStatus.UPLOADED, ImportStatus.FAILED])
    def test_apply_from_wrong_status(self, status: ImportStatus) -> None:
        with pytest.raises(InvalidTransitionError) as exc_info:
            _import_file(status).transition_to(ImportStatus.APPLIED)
        assert exc_info.value.code == "INVALID_IMPORT_STATUS"

    def test_terminal_states(self) -> None:
        assert ImportStatus.FAILED.is_terminal
        assert ImportStatus.APPLIED.is_terminal
        assert not ImportStatus.PARSED.is_terminal

    def test_to_dict_omits_content(self) -> None:
        payload = _import_file().to_dict()
        assert "content" not in payload
        assert payload["status"] == "uploaded"
        assert payload["source_format"] == "shapefile_zip"


class TestSourceFormat:
    @pytest.mark.parametrize(
        ("filename", "expected"),
        [
            ("Parcelles.ZIP", SourceFormat.SHAPEFILE_ZIP),
            ("farm.kml", SourceFormat.KML),
            ("farm.kmz", SourceFormat.KMZ),
            ("farm.geojson", SourceFormat.GEOJSON),
            ("farm.json", SourceFormat.GEOJSON),
        ],
    )
    def test_detect(self, filename: str, expected: SourceFormat) -> None:
        assert detect_source_format(filename) is expected

    def test_unknown(self) -> None:
        assert detect_source_format("farm.csv") is None

    def test_parcel_source(self) -> None:
        assert SourceFormat.KMZ.parcel_source is ParcelSource.KML
        assert SourceFormat.SHAPEFILE_ZIP.parcel_source is ParcelSource.SHAPEFILE


class TestApplyRequest:
    def test_assign_requires_planteur(self) -> None:
        with pytest.raises(ApplyRequestError) as exc_info:
            ApplyRequest(mode=ApplyMode.ASSIGN).validate()
        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.details["field"] == "planteur_id"

    def test_auto_create_requires_name_field(self) -> None:
        with pytest.raises(ApplyRequestError):
            ApplyRequest(mode=ApplyMode.AUTO_CREATE).validate()

    def test_orphan_needs_nothing(self) -> None:
        ApplyRequest(mode=ApplyMode.ORPHAN).validate()

    def test_from_dict(self) -> None:
        request = ApplyRequest.from_dict(
            {
                "mode": "auto_create",
                "farmer_name_field": "Nom_prod",
                "default_supplier_id": "sup-1",
                "field_mapping": {"village_field": "village"},
                "defaults": {"conformity_status": "in_progress", "certifications": ["bio"]},
                "confirm_warnings": True,
            }
        )
        assert request.mode is ApplyMode.AUTO_CREATE
        assert request.field_mapping.village_field == "village"
        assert request.field_mapping.code_field is None
        assert request.defaults.conformity_status is ConformityStatus.IN_PROGRESS
        assert request.defaults.certifications == ("bio",)
        assert request.confirm_warnings is True

    def test_from_dict_unknown_mode(self) -> None:
        with pytest.raises(ApplyRequestError, match="mode"):
            ApplyRequest.from_dict({"mode": "merge"})


class TestGeometryModels:
    def test_raw_geometry_rejects_other_types(self) -> None:
        with pytest.raises(ModelValidationError):
            RawGeometry("LineString", ())

    def test_raw_polygon_polygons(self) -> None:
        raw = RawGeometry("Polygon", (SQUARE,))
        assert raw.polygons() == ((SQUARE,),)
        assert not raw.has_z

    def test_from_geojson_wraps_polygon_and_drops_z(self) -> None:
        geom = MultiPolygonGeometry.from_geojson(
            {"type": "Polygon", "coordinates": [[[0, 0, 5], [1, 0, 5], [1, 1, 5], [0, 0, 5]]]}
        )
        assert geom.polygon_count == 1
        assert geom.polygons[0][0][0] == (0.0, 0.0)

    def test_from_geojson_rejects_nan(self) -> None:
        with pytest.raises(ModelValidationError):
            MultiPolygonGeometry.from_geojson(
                {"type": "Polygon", "coordinates": [[["nan", 0], [1, 0], [1, 1], [0, 0]]]}
            )

    def test_bounds(self) -> None:
        geom = MultiPolygonGeometry(polygons=((SQUARE,),))
        assert geom.bounds == (0.0, 0.0, 1.0, 1.0)
        assert geom.vertex_count == 5

    def test_empty_bounds_raise(self) -> None:
        with pytest.raises(ValueError):
            _ = MultiPolygonGeometry().bounds


class TestParsedFeature:
    def _feature(self) -> ParsedFeature:
        return ParsedFeature(
            temp_id="t-1",
            label="A",
            geometry=MultiPolygonGeometry(polygons=((SQUARE,),)),
            area_ha=1.5,
            centroid=Centroid(lat=0.5, lng=0.5),
            feature_hash="a" * 64,
            validation=FeatureValidation(ok=True, warnings=("SELF_INTERSECTION",)),
            attributes={"name": "A"},
            source_index=2,
        )

    def test_to_dict_geometry_is_multipolygon(self) -> None:
        payload = self._feature().to_dict()
        assert payload["geometry"]["type"] == "MultiPolygon"
        assert payload["validation"]["warnings"] == ["SELF_INTERSECTION"]

    def test_from_dict_restores_feature(self) -> None:
        feature = self._feature()
        assert ParsedFeature.from_dict(dict(feature.to_dict())) == feature

    def test_is_accepted(self) -> None:
        feature = self._feature()
        assert feature.is_accepted
        duplicate = ParsedFeature.from_dict({**feature.to_dict(), "is_duplicate": True})
        assert not duplicate.is_accepted


class TestParcel:
    def test_rejects_bad_hash(self) -> None:
        with pytest.raises(ModelValidationError):
            Parcel(
                id="p",
                planteur_id=None,
                geometry=MultiPolygonGeometry(polygons=((SQUARE,),)),
                area_ha=1.0,
                centroid=Centroid(0.5, 0.5),
                feature_hash="short",
            )

    def test_orphan(self) -> None:
        parcel = Parcel(
            id="p",
            planteur_id=None,
            geometry=MultiPolygonGeometry(polygons=((SQUARE,),)),
            area_ha=1.0,
            centroid=Centroid(0.5, 0.5),
            feature_hash="b" * 64,
        )
        assert parcel.is_orphan
        assert parcel.to_dict()["conformity_status"] == "missing_information"


class TestOperationResult:
    def test_success(self) -> None:
        result = OperationResult.success(42)
        assert result.ok
        assert result.value == 42
        assert result.error_code is None

    def test_failure(self) -> None:
        result: OperationResult[int] = OperationResult.failure(NotFoundError("gone"))
        assert not result.ok
        assert result.value is None
        assert result.error_code == "NOT_FOUND"
        assert result.error is not None
        assert result.error["category"] == "validation"
