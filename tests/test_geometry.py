"""
Tests for the geometry utilities.
"""

import numpy as np
import pytest

from roadgraph.utils.geometry import (
    convex_hull,
    crosses_polygon,
    dedupe_polyline,
    direction_at,
    first_hit,
    gps_dist_meters,
    normalize_angle,
    point_along,
    polygon_area,
    polygon_covers,
    polyline_angle,
    polyline_length,
    polyline_slice,
    shift_polyline,
)


class TestAngles:
    """Tests for angle helpers."""

    def test_normalize_angle(self):
        assert normalize_angle(0) == 0.0
        assert normalize_angle(360) == 0.0
        assert normalize_angle(-90) == 270.0
        assert normalize_angle(450) == 90.0

    def test_polyline_angle(self):
        assert polyline_angle(np.array([[0, 0], [10, 0]], dtype=float)) == pytest.approx(0.0)
        assert polyline_angle(np.array([[0, 0], [0, 10]], dtype=float)) == pytest.approx(90.0)
        assert polyline_angle(np.array([[0, 0], [-10, 0]], dtype=float)) == pytest.approx(180.0)
        assert polyline_angle(np.array([[0, 0], [0, -10]], dtype=float)) == pytest.approx(270.0)

    def test_polyline_angle_skips_repeated_start(self):
        line = np.array([[0, 0], [0, 0], [0, 5]], dtype=float)
        assert polyline_angle(line) == pytest.approx(90.0)


class TestDistances:
    """Tests for great-circle and planar lengths."""

    def test_one_degree_of_latitude(self):
        d = gps_dist_meters((0.0, 0.0), (0.0, 1.0))
        assert d == pytest.approx(111_195, rel=1e-3)

    def test_zero_distance(self):
        assert gps_dist_meters((-122.3, 47.6), (-122.3, 47.6)) == 0.0

    def test_polyline_length(self):
        line = np.array([[0, 0], [3, 4], [3, 10]], dtype=float)
        assert polyline_length(line) == pytest.approx(11.0)
        assert polyline_length(np.array([[1, 1]], dtype=float)) == 0.0


class TestPolylineOps:
    """Tests for slicing, shifting and sampling polylines."""

    def test_dedupe_drops_repeats(self):
        line = np.array([[0, 0], [0, 0], [1, 0], [1, 0.001], [2, 0]], dtype=float)
        result = dedupe_polyline(line)
        assert len(result) == 3
        np.testing.assert_allclose(result[-1], [2, 0])

    def test_dedupe_keeps_endpoint(self):
        line = np.array([[0, 0], [1, 0], [1.001, 0]], dtype=float)
        result = dedupe_polyline(line)
        np.testing.assert_allclose(result[0], [0, 0])
        np.testing.assert_allclose(result[-1], [1.001, 0])

    def test_shift_straight_line(self):
        line = np.array([[0, 0], [10, 0]], dtype=float)
        np.testing.assert_allclose(shift_polyline(line, 2.0), [[0, 2], [10, 2]])
        np.testing.assert_allclose(shift_polyline(line, -2.0), [[0, -2], [10, -2]])

    def test_shift_corner_uses_miter(self):
        line = np.array([[0, 0], [10, 0], [10, 10]], dtype=float)
        shifted = shift_polyline(line, 1.0)
        np.testing.assert_allclose(shifted, [[0, 1], [9, 1], [9, 10]])

    def test_slice(self):
        line = np.array([[0, 0], [10, 0]], dtype=float)
        sub = polyline_slice(line, 2.0, 7.0)
        np.testing.assert_allclose(sub, [[2, 0], [7, 0]])

    def test_slice_full_returns_copy(self):
        line = np.array([[0, 0], [10, 0]], dtype=float)
        sub = polyline_slice(line, 0.0, 10.0)
        np.testing.assert_allclose(sub, line)
        assert sub is not line

    def test_slice_degenerate_raises(self):
        line = np.array([[0, 0], [10, 0]], dtype=float)
        with pytest.raises(ValueError):
            polyline_slice(line, 6.0, 4.0)

    def test_point_along_and_direction(self):
        line = np.array([[0, 0], [10, 0], [10, 10]], dtype=float)
        np.testing.assert_allclose(point_along(line, 15.0), [10, 5])
        np.testing.assert_allclose(direction_at(line, 15.0), [0, 1], atol=1e-9)
        np.testing.assert_allclose(direction_at(line, 3.0), [1, 0], atol=1e-9)


class TestFirstHit:
    """Tests for polyline intersection."""

    def test_crossing_lines(self):
        a = np.array([[0, 0], [10, 0]], dtype=float)
        b = np.array([[5, -5], [5, 5]], dtype=float)
        np.testing.assert_allclose(first_hit(a, b), [5, 0])

    def test_nearest_to_start_of_first_line(self):
        a = np.array([[0, 0], [10, 0]], dtype=float)
        b = np.array([[8, -5], [8, 5], [2, 5], [2, -5]], dtype=float)
        np.testing.assert_allclose(first_hit(a, b), [2, 0])

    def test_no_hit(self):
        a = np.array([[0, 0], [10, 0]], dtype=float)
        b = np.array([[0, 1], [10, 1]], dtype=float)
        assert first_hit(a, b) is None


class TestPolygons:
    """Tests for polygon helpers."""

    def _make_square(self, size=10.0):
        return np.array([[0, 0], [size, 0], [size, size], [0, size]], dtype=float)

    def test_area(self):
        assert polygon_area(self._make_square()) == pytest.approx(100.0)
        assert polygon_area([[0, 0], [1, 1]]) == 0.0

    def test_convex_hull(self):
        pts = np.vstack([self._make_square(), [[5, 5]]])
        hull = convex_hull(pts)
        assert len(hull) == 4
        assert polygon_area(hull) == pytest.approx(100.0)

    def test_convex_hull_collinear_returns_input(self):
        pts = np.array([[0, 0], [1, 0], [2, 0]], dtype=float)
        np.testing.assert_allclose(convex_hull(pts), pts)

    def test_crosses(self):
        square = self._make_square()
        through = np.array([[-5, 5], [15, 5]], dtype=float)
        inside = np.array([[2, 2], [8, 8]], dtype=float)
        outside = np.array([[20, 0], [30, 0]], dtype=float)
        assert crosses_polygon(through, square)
        assert not crosses_polygon(inside, square)
        assert not crosses_polygon(outside, square)

    def test_crosses_empty_polygon(self):
        line = np.array([[0, 0], [1, 0]], dtype=float)
        assert not crosses_polygon(line, np.zeros((0, 2)))

    def test_covers(self):
        square = self._make_square()
        assert polygon_covers(square, (5, 5))
        assert polygon_covers(square, (10, 5))
        assert polygon_covers(square, (10.005, 5))
        assert not polygon_covers(square, (11, 5))
        assert not polygon_covers(np.zeros((0, 2)), (0, 0))
