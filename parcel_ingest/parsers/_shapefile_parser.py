"""Shapefile (ZIP archive) parser built on pyshp.

The archive must hold ``.shp`` (geometry), ``.shx`` (index) and ``.dbf``
(attributes). A ``.prj`` is optional: when it declares a CRS other than
WGS 84 the coordinates are reprojected with pyproj, when it is absent
WGS 84 is assumed and a warning is raised.

Geometry and attributes are read with separate readers so that a
corrupt ``.dbf`` degrades to empty attribute records instead of losing
the geometry.
"""

from __future__ import annotations

import codecs
import io
import logging
import struct
import zipfile
import zlib
from typing import TYPE_CHECKING

from parcel_ingest.core.constants import (
    ATTRIBUTE_COUNT_MISMATCH,
    DBF_PARSE_ERROR,
    MISSING_PRJ_ASSUMED_WGS84,
    MULTIPLE_LAYERS,
    PRJ_UNREADABLE,
    WGS84_CRS,
)
from parcel_ingest.models.feature import RawFeature
from parcel_ingest.models.geometry import MULTIPOLYGON, POLYGON, RawGeometry
from parcel_ingest.parsers._constants import (
    ARCHIVE_IGNORED_BASENAME_PREFIXES,
    ARCHIVE_IGNORED_PREFIXES,
    DEFAULT_DBF_ENCODING,
    REQUIRED_SHAPEFILE_SUFFIXES,
    SHAPEFILE_ATTRIBUTES_SUFFIX,
    SHAPEFILE_CODEPAGE_SUFFIX,
    SHAPEFILE_GEOMETRY_SUFFIX,
    SHAPEFILE_INDEX_SUFFIX,
    SHAPEFILE_PROJECTION_SUFFIX,
)
from parcel_ingest.parsers._normalization import (
    clean_attributes,
    ensure_finite,
    geometry_from_geojson,
)
from parcel_ingest.parsers._outcome import ParseOutcome
from parcel_ingest.parsers._validation import (
    EmptyGeometryError,
    FeatureGeometryError,
    MissingArchiveMemberError,
    ParseError,
    UnsupportedGeometryError,
)

if TYPE_CHECKING:
    from pyproj import Transformer

    from parcel_ingest.models.feature import Scalar

logger = logging.getLogger("parcel_ingest.parsers.shapefile")

# Shape type names for diagnostics (pyshp constants)
_SHAPE_TYPE_NAMES = {
    0: "Null",
    1: "Point",
    3: "PolyLine",
    5: "Polygon",
    8: "MultiPoint",
    11: "PointZ",
    13: "PolyLineZ",
    15: "PolygonZ",
    18: "MultiPointZ",
    21: "PointM",
    23: "PolyLineM",
    25: "PolygonM",
    28: "MultiPointM",
    31: "MultiPatch",
}


def parse_shapefile_zip(content: bytes) -> ParseOutcome:
    """Parse a zipped shapefile into raw polygon features.

    Raises:
        MissingArchiveMemberError: If ``.shp``, ``.shx`` or ``.dbf`` is missing.
        ParseError: If the archive or the geometry binary is unreadable.
    """
    import shapefile  # pyshp

    outcome = ParseOutcome()
    members = _read_archive(content, outcome)

    prj_bytes = members.get(SHAPEFILE_PROJECTION_SUFFIX)
    outcome.has_projection_file = prj_bytes is not None
    transformer: Transformer | None = None
    if prj_bytes is None:
        outcome.warn(
            MISSING_PRJ_ASSUMED_WGS84,
            "No .prj file in archive; coordinates are assumed to be WGS 84 (EPSG:4326)",
        )
    else:
        transformer = _transformer_from_prj(prj_bytes, outcome)

    try:
        geom_reader = shapefile.Reader(
            shp=io.BytesIO(members[SHAPEFILE_GEOMETRY_SUFFIX]),
            shx=io.BytesIO(members[SHAPEFILE_INDEX_SUFFIX]),
        )
        shapes = list(geom_reader.shapes())
    except (shapefile.ShapefileException, struct.error, ValueError, OSError) as exc:
        msg = f"Unreadable shapefile geometry: {exc}"
        raise ParseError(msg) from exc

    field_names, records = _read_records(members, outcome)
    outcome.note_fields(field_names)

    if len(records) != len(shapes):
        outcome.warn(
            ATTRIBUTE_COUNT_MISMATCH,
            f"Geometry count ({len(shapes)}) differs from attribute count ({len(records)}); "
            "missing attribute rows are left empty",
            geometry_count=len(shapes),
            attribute_count=len(records),
        )
        logger.warning(
            "Shapefile count mismatch | shapes=%d | records=%d", len(shapes), len(records)
        )

    for idx, shape in enumerate(shapes):
        attributes = records[idx] if idx < len(records) else {}
        try:
            geometry = _shape_to_geometry(shape, idx, transformer)
        except FeatureGeometryError as exc:
            logger.warning("Skipping shapefile record %d: %s", idx, exc)
            outcome.add_error(exc, idx)
            continue
        outcome.features.append(
            RawFeature(geometry=geometry, attributes=attributes, source_index=idx)
        )

    logger.info(
        "Shapefile parsed | shapes=%d | features=%d | errors=%d | prj=%s",
        len(shapes),
        len(outcome.features),
        len(outcome.errors),
        outcome.has_projection_file,
    )
    return outcome


# ---------------------------------------------------------------------------
# Archive handling
# ---------------------------------------------------------------------------


def _read_archive(content: bytes, outcome: ParseOutcome) -> dict[str, bytes]:
    """Return the shapefile members of the archive keyed by suffix.

    When several layers are present, the first ``.shp`` in name order is
    used and its same-stem companions are preferred.

    Raises:
        ParseError: If the content is not a readable ZIP archive.
        MissingArchiveMemberError: If a required member is absent.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(content))
    except (zipfile.BadZipFile, OSError) as exc:
        msg = f"Not a readable ZIP archive: {exc}"
        raise ParseError(msg) from exc

    with archive:
        names = sorted(
            info.filename
            for info in archive.infolist()
            if not info.is_dir() and not _is_ignored_member(info.filename)
        )
        shp_names = [n for n in names if n.lower().endswith(SHAPEFILE_GEOMETRY_SUFFIX)]
        stem = shp_names[0][: -len(SHAPEFILE_GEOMETRY_SUFFIX)].lower() if shp_names else None
        if len(shp_names) > 1:
            outcome.warn(
                MULTIPLE_LAYERS,
                f"Archive holds {len(shp_names)} layers; only '{shp_names[0]}' is imported",
                layers=shp_names,
            )

        chosen: dict[str, str] = {}
        optional = (SHAPEFILE_PROJECTION_SUFFIX, SHAPEFILE_CODEPAGE_SUFFIX)
        for suffix in (*REQUIRED_SHAPEFILE_SUFFIXES, *optional):
            candidates = [n for n in names if n.lower().endswith(suffix)]
            same_stem = [n for n in candidates if stem and n.lower() == stem + suffix]
            if same_stem or candidates:
                chosen[suffix] = (same_stem or candidates)[0]

        missing = [s for s in REQUIRED_SHAPEFILE_SUFFIXES if s not in chosen]
        if missing:
            msg = (
                f"Shapefile archive is missing required member(s): {', '.join(missing)}. "
                "A shapefile needs .shp, .shx and .dbf files"
            )
            raise MissingArchiveMemberError(msg, details={"missing": missing, "found": names})

        try:
            return {suffix: archive.read(name) for suffix, name in chosen.items()}
        except (zipfile.BadZipFile, zlib.error, OSError, RuntimeError) as exc:
            msg = f"Cannot extract archive member: {exc}"
            raise ParseError(msg) from exc


def _is_ignored_member(name: str) -> bool:
    basename = name.rsplit("/", 1)[-1]
    return name.startswith(ARCHIVE_IGNORED_PREFIXES) or basename.startswith(
        ARCHIVE_IGNORED_BASENAME_PREFIXES
    )


# ---------------------------------------------------------------------------
# Attributes
# ---------------------------------------------------------------------------


def _read_records(
    members: dict[str, bytes], outcome: ParseOutcome
) -> tuple[list[str], list[dict[str, Scalar]]]:
    """Read DBF field names and rows; a corrupt DBF yields no rows and a warning."""
    import shapefile  # pyshp

    encoding = _dbf_encoding(members.get(SHAPEFILE_CODEPAGE_SUFFIX))
    try:
        dbf_reader = shapefile.Reader(
            dbf=io.BytesIO(members[SHAPEFILE_ATTRIBUTES_SUFFIX]),
            encoding=encoding,
            encodingErrors="replace",
        )
        field_names = [f[0] for f in dbf_reader.fields[1:]]  # skip DeletionFlag
        records = [clean_attributes(rec.as_dict()) for rec in dbf_reader.records()]
    except (shapefile.ShapefileException, struct.error, ValueError, LookupError, OSError) as exc:
        outcome.warn(
            DBF_PARSE_ERROR,
            f"Attribute table (.dbf) could not be read; features are imported without "
            f"attributes: {exc}",
        )
        logger.warning("DBF parse failed: %s", exc)
        return [], []
    return field_names, records


def _dbf_encoding(cpg: bytes | None) -> str:
    """Resolve the DBF text encoding from an optional ``.cpg`` member."""
    if not cpg:
        return DEFAULT_DBF_ENCODING
    declared = cpg.decode("ascii", errors="ignore").strip()
    if declared.isdigit():
        declared = f"cp{declared}"
    try:
        return codecs.lookup(declared).name
    except LookupError:
        logger.warning(
            "Unknown .cpg encoding %r, falling back to %s", declared, DEFAULT_DBF_ENCODING
        )
        return DEFAULT_DBF_ENCODING


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------


def _transformer_from_prj(prj: bytes, outcome: ParseOutcome) -> Transformer | None:
    """Build a transformer to WGS 84 from ``.prj`` WKT, or ``None`` if already WGS 84."""
    from pyproj import CRS, Transformer
    from pyproj.exceptions import CRSError

    wkt = prj.decode("utf-8", errors="replace").strip()
    try:
        crs = CRS.from_user_input(wkt)
    except CRSError as exc:
        outcome.warn(
            PRJ_UNREADABLE,
            f"The .prj file could not be interpreted; coordinates are assumed to be WGS 84: {exc}",
        )
        logger.warning("Unreadable .prj: %s", exc)
        return None

    wgs84 = CRS.from_user_input(WGS84_CRS)
    if crs.equals(wgs84, ignore_axis_order=True) or crs.to_epsg(min_confidence=25) == 4326:
        return None

    logger.info("Reprojecting shapefile from %s to %s", crs.name, WGS84_CRS)
    return Transformer.from_crs(crs, wgs84, always_xy=True)


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


def _shape_to_geometry(shape: object, idx: int, transformer: Transformer | None) -> RawGeometry:
    """Convert one pyshp shape into a validated ``RawGeometry``.

    Raises:
        EmptyGeometryError: For null shapes or shapes without points.
        UnsupportedGeometryError: For non-polygon shape types.
        FeatureGeometryError: For malformed rings.
    """
    import shapefile  # pyshp

    context = f"record {idx}"
    shape_type = getattr(shape, "shapeType", shapefile.NULL)
    if shape_type == shapefile.NULL or not getattr(shape, "points", None):
        msg = f"Null or empty geometry in {context}"
        raise EmptyGeometryError(msg)
    if shape_type not in (shapefile.POLYGON, shapefile.POLYGONZ, shapefile.POLYGONM):
        type_name = _SHAPE_TYPE_NAMES.get(shape_type, str(shape_type))
        msg = f"Unsupported geometry type {type_name} in {context}"
        raise UnsupportedGeometryError(msg, details={"geometry_type": type_name})

    try:
        geo = shape.__geo_interface__  # type: ignore[attr-defined]
    except (shapefile.ShapefileException, ValueError, IndexError) as exc:
        msg = f"Cannot read polygon rings in {context}: {exc}"
        raise FeatureGeometryError(msg) from exc

    geometry = geometry_from_geojson(geo, context)
    if transformer is None:
        return geometry
    return _reproject(geometry, transformer, context)


def _reproject(geometry: RawGeometry, transformer: Transformer, context: str) -> RawGeometry:
    polygons = tuple(
        tuple(
            ensure_finite(
                tuple(tuple(pt) for pt in transformer.itransform([p[:2] for p in ring])),
                context,
            )
            for ring in polygon
        )
        for polygon in geometry.polygons()
    )
    if geometry.geom_type == POLYGON:
        return RawGeometry(POLYGON, polygons[0])
    return RawGeometry(MULTIPOLYGON, polygons)
