"""Tests for geodesic area, point-on-surface centroid and display simplification."""

from __future__ import annotations

import math
import random

import pytest

from parcel_ingest.geometry.metrics import (
    area_ha,
    bbox_area_km2,
    centroid,
    simplify_for_zoom,
    zoom_tolerance,
)
from parcel_ingest.geometry.normalize import is_clockwise
from parcel_ingest.models.geometry import MultiPolygonGeometry
from parcel_ingest.models.parcel import BBox
from tests.conftest import SQUARE_CCW


def _geom(*polygons: tuple) -> MultiPolygonGeometry:
    return MultiPolygonGeometry(polygons=tuple(polygons))


def _circle(cx: float, cy: float, radius: float, n: int = 200) -> tuple:
    ring = [
        (cx + radius * math.cos(2 * math.pi * i / n), cy + radius * math.sin(2 * math.pi * i / n))
        for i in range(n)
    ]
    return (*ring, ring[0])


def _star(rng: random.Random) -> tuple:
    """A random star-shaped (possibly very concave) CCW ring."""
    cx, cy = rng.uniform(-170, 170), rng.uniform(-60, 60)
    n = rng.randint(5, 24)
    ring = []
    for i in range(n):
        angle = 2 * math.pi * i / n
        radius = rng.uniform(0.001, 0.05) if i % 2 else rng.uniform(0.05, 0.2)
        ring.append((cx + radius * math.cos(angle), cy + radius * math.sin(angle)))
    return (*ring, ring[0])


class TestArea:
    def test_matches_pyproj_geodesic_area(self) -> None:
        from pyproj import Geod
        from shapely.geometry import Polygon

        area, _ = Geod(ellps="WGS84").geometry_area_perimeter(Polygon(SQUARE_CCW))
        assert area_ha(_geom((tuple(SQUARE_CCW),))) == pytest.approx(abs(area) / 10_000, abs=1e-4)

    def test_roughly_one_hectare(self) -> None:
        assert 1.0 < area_ha(_geom((tuple(SQUARE_CCW),))) < 1.5

    def test_hole_is_subtracted(self) -> None:
        shell = ((0.0, 0.0), (0.01, 0.0), (0.01, 0.01), (0.0, 0.01), (0.0, 0.0))
        hole = ((0.002, 0.002), (0.002, 0.008), (0.008, 0.008), (0.008, 0.002), (0.002, 0.002))
        full = area_ha(_geom((shell,)))
        holed = area_ha(_geom((shell, hole)))
        assert holed == pytest.approx(full * 0.64, rel=1e-3)

    def test_multipolygon_sums_parts(self) -> None:
        a = tuple(SQUARE_CCW)
        b = tuple((x + 0.01, y) for x, y in SQUARE_CCW)
        assert area_ha(_geom((a,), (b,))) == pytest.approx(2 * area_ha(_geom((a,))), abs=2e-4)

    def test_empty_is_zero(self) -> None:
        assert area_ha(MultiPolygonGeometry()) == 0.0

    def test_rounded_to_four_decimals(self) -> None:
        value = area_ha(_geom((tuple(SQUARE_CCW),)))
        assert value == round(value, 4)


class TestCentroid:
    def test_rounded_to_six_decimals(self) -> None:
        point = centroid(_geom((tuple(SQUARE_CCW),)))
        assert point.lat == round(point.lat, 6)
        assert point.lng == round(point.lng, 6)
        assert -6.45 < point.lng < -6.449
        assert 6.88 < point.lat < 6.881

    def test_always_inside_concave_shapes(self) -> None:
        from shapely.geometry import Point, Polygon

        rng = random.Random(20240601)
        for _ in range(120):
            ring = _star(rng)
            point = centroid(_geom((ring,)))
            # Tolerance covers the 6-decimal display rounding
            assert Polygon(ring).buffer(1e-5).covers(Point(point.lng, point.lat))

    def test_inside_u_shape(self) -> None:
        from shapely.geometry import Point, Polygon

        u_shape = (
            (0.0, 0.0), (0.03, 0.0), (0.03, 0.03), (0.02, 0.03),
            (0.02, 0.01), (0.01, 0.01), (0.01, 0.03), (0.0, 0.03), (0.0, 0.0),
        )  # fmt: skip
        point = centroid(_geom((u_shape,)))
        assert Polygon(u_shape).buffer(1e-5).covers(Point(point.lng, point.lat))

    def test_empty_raises(self) -> None:
        with pytest.raises(ValueError):
            centroid(MultiPolygonGeometry())


class TestSimplification:
    @pytest.mark.parametrize(
        ("zoom", "expected"),
        [
            (None, None),
            (0, 0.01),
            (5, 0.01),
            (6, 0.005),
            (8, 0.005),
            (9, 0.001),
            (10, 0.001),
            (11, None),
            (18, None),
        ],
    )
    def test_zoom_tolerance(self, zoom: int | None, expected: float | None) -> None:
        assert zoom_tolerance(zoom) == expected

    def test_high_zoom_returns_geometry_unchanged(self) -> None:
        geom = _geom((_circle(0.0, 0.0, 0.05),))
        assert simplify_for_zoom(geom, 15) is geom

    def test_low_zoom_reduces_vertices(self) -> None:
        geom = _geom((_circle(0.0, 0.0, 0.05),))
        simplified = simplify_for_zoom(geom, 3)
        assert 4 <= simplified.vertex_count < geom.vertex_count
        assert not is_clockwise(simplified.polygons[0][0])

    def test_large_viewport_forces_simplification(self) -> None:
        geom = _geom((_circle(0.0, 0.0, 0.05),))
        huge = BBox(-5.0, -5.0, 5.0, 5.0)
        assert simplify_for_zoom(geom, 15, bbox=huge).vertex_count < geom.vertex_count

    def test_small_viewport_keeps_detail(self) -> None:
        geom = _geom((_circle(0.0, 0.0, 0.05),))
        small = BBox(-0.1, -0.1, 0.1, 0.1)
        assert simplify_for_zoom(geom, 15, bbox=small) is geom

    def test_bbox_area(self) -> None:
        # One degree square at the equator is about 12,300 km²
        assert 12_000 < bbox_area_km2(BBox(0.0, 0.0, 1.0, 1.0)) < 12_500
