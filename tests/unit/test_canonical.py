"""Tests for canonical hashing of parcel geometries."""

from __future__ import annotations

import re

from parcel_ingest.geometry.canonical import (
    canonicalize_for_hash,
    feature_hash,
    file_sha256,
    serialize_canonical,
)
from parcel_ingest.models.geometry import MultiPolygonGeometry
from tests.conftest import SQUARE_B_CCW, SQUARE_CCW, clockwise

SHELL = ((0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0), (0.0, 0.0))
HOLE_A = ((1.0, 1.0), (1.0, 2.0), (2.0, 2.0), (2.0, 1.0), (1.0, 1.0))
HOLE_B = ((5.0, 5.0), (5.0, 6.0), (6.0, 6.0), (6.0, 5.0), (5.0, 5.0))


def _geom(*polygons: tuple) -> MultiPolygonGeometry:
    return MultiPolygonGeometry(polygons=tuple(polygons))


class TestFeatureHash:
    def test_is_lowercase_hex_sha256(self) -> None:
        digest = feature_hash(_geom((tuple(SQUARE_CCW),)))
        assert re.fullmatch(r"[0-9a-f]{64}", digest)

    def test_independent_of_winding(self) -> None:
        ccw = _geom((tuple(SQUARE_CCW),))
        cw = _geom((tuple(clockwise(SQUARE_CCW)),))
        assert feature_hash(ccw) == feature_hash(cw)

    def test_independent_of_polygon_order(self) -> None:
        a, b = (tuple(SQUARE_CCW),), (tuple(SQUARE_B_CCW),)
        assert feature_hash(_geom(a, b)) == feature_hash(_geom(b, a))

    def test_independent_of_hole_order(self) -> None:
        first = _geom((SHELL, HOLE_A, HOLE_B))
        second = _geom((SHELL, HOLE_B, HOLE_A))
        assert feature_hash(first) == feature_hash(second)

    def test_sub_precision_noise_ignored(self) -> None:
        noisy = tuple((x + 1e-11, y - 1e-11) for x, y in SQUARE_CCW)
        assert feature_hash(_geom((noisy,))) == feature_hash(_geom((tuple(SQUARE_CCW),)))

    def test_negative_zero_equals_zero(self) -> None:
        neg = tuple((-0.0 if x == 0 else x, y) for x, y in SHELL)
        assert feature_hash(_geom((neg,))) == feature_hash(_geom((SHELL,)))

    def test_different_geometry_different_hash(self) -> None:
        assert feature_hash(_geom((tuple(SQUARE_CCW),))) != feature_hash(
            _geom((tuple(SQUARE_B_CCW),))
        )


class TestCanonicalForm:
    def test_canonicalize_orients_and_sorts(self) -> None:
        canonical = canonicalize_for_hash(_geom((SHELL, HOLE_B, HOLE_A)))
        shell, first_hole, second_hole = canonical.polygons[0]
        assert shell == SHELL
        assert first_hole[0] == (1.0, 1.0)
        assert second_hole[0] == (5.0, 5.0)

    def test_serialization_is_compact(self) -> None:
        text = serialize_canonical(_geom((((0.0, 0.0), (1.0, 0.0), (0.0, 1.0), (0.0, 0.0)),)))
        assert text == (
            '{"coordinates":[[[[0.0,0.0],[1.0,0.0],[0.0,1.0],[0.0,0.0]]]],'
            '"type":"MultiPolygon"}'
        )


class TestFileSha256:
    def test_empty_content(self) -> None:
        assert file_sha256(b"") == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_content_sensitive(self) -> None:
        assert file_sha256(b"a") != file_sha256(b"b")
