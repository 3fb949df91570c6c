"""Shared pytest fixtures for the parcel ingestion test suite."""

from __future__ import annotations

import io
import json
import zipfile
from collections.abc import Callable, Sequence

import pytest

from parcel_ingest.core.config import IngestConfig
from parcel_ingest.models.parcel import Farmer
from parcel_ingest.orchestrators.import_session import ImportSession
from parcel_ingest.store.memory import InMemoryParcelStore

# ---------------------------------------------------------------------------
# Geometry fixtures (lng, lat)
# ---------------------------------------------------------------------------

# ~1.2 ha square near Daloa, Côte d'Ivoire; counter-clockwise
SQUARE_CCW = [(-6.45, 6.88), (-6.449, 6.88), (-6.449, 6.881), (-6.45, 6.881), (-6.45, 6.88)]
# A second, disjoint square
SQUARE_B_CCW = [(-6.40, 6.80), (-6.399, 6.80), (-6.399, 6.801), (-6.40, 6.801), (-6.40, 6.80)]
# Bow-tie: edges (0,0)-(1,1) and (1,0)-(0,1) cross
BOWTIE = [(-6.0, 7.0), (-5.99, 7.01), (-5.99, 7.0), (-6.0, 7.01), (-6.0, 7.0)]

WGS84_PRJ = (
    'GEOGCS["GCS_WGS_1984",DATUM["D_WGS_1984",SPHEROID["WGS_1984",6378137.0,298.257223563]],'
    'PRIMEM["Greenwich",0.0],UNIT["Degree",0.0174532925199433]]'
)


def clockwise(ring: Sequence[tuple[float, float]]) -> list[tuple[float, float]]:
    """Reverse a CCW ring (shapefile exteriors are clockwise)."""
    return list(reversed(ring))


# ---------------------------------------------------------------------------
# File builders
# ---------------------------------------------------------------------------


def build_shapefile_zip(
    polygons: Sequence[Sequence[Sequence[tuple[float, float]]]],
    records: Sequence[dict[str, object]] | None = None,
    *,
    prj: str | None = None,
    include: Sequence[str] = (".shp", ".shx", ".dbf"),
    stem: str = "parcelles",
    extra_records: int = 0,
) -> bytes:
    """Write polygons (each a list of rings) and records to a zipped shapefile."""
    import shapefile  # pyshp

    records = list(records or [{} for _ in polygons])
    field_names = sorted({key for rec in records for key in rec}) or ["id"]

    # Separate writers so the attribute table may hold more rows than shapes.
    shp_io, shx_io, dbf_io = io.BytesIO(), io.BytesIO(), io.BytesIO()
    geom_writer = shapefile.Writer(shp=shp_io, shx=shx_io, shapeType=shapefile.POLYGON)
    for rings in polygons:
        geom_writer.poly([list(r) for r in rings])
    geom_writer.close()

    dbf_writer = shapefile.Writer(dbf=dbf_io)
    for name in field_names:
        dbf_writer.field(name, "C", size=80)
    for rec in records:
        dbf_writer.record(*[str(rec.get(name, "")) for name in field_names])
    for _ in range(extra_records):
        dbf_writer.record(*["" for _ in field_names])
    dbf_writer.close()

    members = {".shp": shp_io.getvalue(), ".shx": shx_io.getvalue(), ".dbf": dbf_io.getvalue()}
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for suffix in include:
            archive.writestr(f"{stem}{suffix}", members[suffix])
        if prj is not None:
            archive.writestr(f"{stem}.prj", prj)
    return buffer.getvalue()


def build_kml(placemarks: Sequence[str]) -> bytes:
    body = "\n".join(placemarks)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<kml xmlns="http://www.opengis.net/kml/2.2"><Document>\n'
        f"{body}\n"
        "</Document></kml>"
    ).encode()


def kml_polygon_placemark(
    name: str,
    ring: Sequence[tuple[float, float]],
    holes: Sequence[Sequence[tuple[float, float]]] = (),
    extended: dict[str, str] | None = None,
) -> str:
    def coords(r: Sequence[tuple[float, float]]) -> str:
        return " ".join(f"{x},{y},0" for x, y in r)

    inner = "".join(
        f"<innerBoundaryIs><LinearRing><coordinates>{coords(h)}</coordinates></LinearRing>"
        "</innerBoundaryIs>"
        for h in holes
    )
    data = ""
    if extended:
        data = "<ExtendedData>" + "".join(
            f'<Data name="{k}"><value>{v}</value></Data>' for k, v in extended.items()
        ) + "</ExtendedData>"
    return (
        f"<Placemark><name>{name}</name>{data}<Polygon><outerBoundaryIs><LinearRing>"
        f"<coordinates>{coords(ring)}</coordinates></LinearRing></outerBoundaryIs>{inner}"
        "</Polygon></Placemark>"
    )


def build_geojson(features: Sequence[tuple[list, dict[str, object]]]) -> bytes:
    """``features`` is a list of ``(polygon_rings, properties)``."""
    return json.dumps(
        {
            "type": "FeatureCollection",
            "features": [
                {
                    "type": "Feature",
                    "properties": props,
                    "geometry": {
                        "type": "Polygon",
                        "coordinates": [[list(p) for p in ring] for ring in rings],
                    },
                }
                for rings, props in features
            ],
        }
    ).encode()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def shapefile_zip() -> Callable[..., bytes]:
    """Factory building an in-memory zipped shapefile."""
    return build_shapefile_zip


@pytest.fixture()
def store() -> InMemoryParcelStore:
    """Empty in-memory store with one known supplier and one farmer."""
    memory = InMemoryParcelStore(suppliers=["sup-1"])
    memory.add_farmer(
        Farmer(id="farmer-1", name="Koné Awa", name_norm="kone awa", cooperative_id="coop-1")
    )
    return memory


@pytest.fixture()
def config() -> IngestConfig:
    return IngestConfig(parse_workers=2, parse_timeout_s=30.0)


@pytest.fixture()
def session(store: InMemoryParcelStore, config: IngestConfig) -> ImportSession:
    return ImportSession(store, config)
