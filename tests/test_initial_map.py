"""
Tests for the road graph: construction, polygons, anomalies and merging.
"""

import numpy as np
import pytest

from roadgraph.config import BuildConfig
from roadgraph.core.anomaly import SuspiciousCrossing, find_suspicious_crossings
from roadgraph.core.bounds import GPSBounds
from roadgraph.core.ids import IDAllocator, StableIntersectionID, StableRoadID
from roadgraph.core.initial_map import (
    GraphInvariantError,
    InitialMap,
    Intersection,
    Road,
)
from roadgraph.core.intersection_polygon import _valid_ring
from roadgraph.core.lane_specs import LaneSpec, LaneType
from roadgraph.core.merge import UnmergeableRoad, merge_road, merge_short_roads
from roadgraph.core.raw_map import RawIntersection, RawMap
from roadgraph.osm.extract import RawRoad
from roadgraph.utils.geometry import polygon_area, polygon_covers, polyline_length

QUIET = BuildConfig(verbose=False)


def _make_map(points, edges, width=2.5):
    """Planar map from {intersection: (x, y)} and [(src, dst, via points)]."""
    m = InitialMap("test")
    for idx, (x, y) in points.items():
        i = StableIntersectionID(idx)
        m.intersections[i] = Intersection(id=i, point=np.array([x, y], dtype=float))
    for idx, edge in enumerate(edges):
        src, dst = StableIntersectionID(edge[0]), StableIntersectionID(edge[1])
        via = list(edge[2]) if len(edge) > 2 else []
        pts = np.array([points[edge[0]]] + via + [points[edge[1]]], dtype=float)
        r = StableRoadID(idx)
        m.roads[r] = Road(
            id=r,
            src_i=src,
            dst_i=dst,
            original_center_pts=pts,
            trimmed_center_pts=pts.copy(),
            fwd_width=width,
            back_width=width,
            lane_specs=[LaneSpec(LaneType.DRIVING, False), LaneSpec(LaneType.DRIVING, True)],
        )
        m.intersections[src].roads.add(r)
        m.intersections[dst].roads.add(r)
    m.allocator = IDAllocator(next_intersection=len(points), next_road=len(edges))
    return m


class TestBuildGraph:
    """Tests for building the graph from a raw map."""

    P0 = (-122.3010, 47.6000)
    P1 = (-122.3000, 47.6000)
    P2 = (-122.3000, 47.6010)
    FAR = (-122.2000, 47.6010)

    def _make_raw(self):
        raw = RawMap(name="raw")
        for idx, pt in enumerate([self.P0, self.P1, self.P2]):
            i = raw.allocator.intersection()
            raw.intersections[i] = RawIntersection(id=i, point=pt)
        i0, i1, i2 = sorted(raw.intersections)
        tags = {"highway": "residential"}
        raw.roads[raw.allocator.road()] = RawRoad(1, [self.P0, self.P1], dict(tags), i0, i1)
        raw.roads[raw.allocator.road()] = RawRoad(2, [self.P1, self.P2], dict(tags), i1, i2)
        return raw

    def test_builds_roads(self):
        m = InitialMap.build_graph(self._make_raw(), config=QUIET)
        assert len(m.intersections) == 3
        assert len(m.roads) == 2
        m.check_invariants()

    def test_widths_from_lanes(self):
        m = InitialMap.build_graph(self._make_raw(), config=QUIET)
        road = m.roads[StableRoadID(0)]
        # driving + sidewalk on each side
        assert road.fwd_width == pytest.approx(5.0)
        assert road.back_width == pytest.approx(5.0)
        assert road.osm_way_id == 1

    def test_planar_geometry(self):
        m = InitialMap.build_graph(self._make_raw(), config=QUIET)
        road = m.roads[StableRoadID(0)]
        assert polyline_length(road.original_center_pts) == pytest.approx(75.0, abs=1.0)
        np.testing.assert_allclose(
            road.original_center_pts[-1], m.intersections[road.dst_i].point
        )

    def test_self_loop_dropped(self, caplog):
        raw = self._make_raw()
        i0 = StableIntersectionID(0)
        loop = raw.allocator.road()
        raw.roads[loop] = RawRoad(3, [self.P0, self.P2, self.P0], {"highway": "residential"}, i0, i0)
        with caplog.at_level("ERROR"):
            m = InitialMap.build_graph(raw, config=QUIET)
        assert loop not in m.roads
        assert loop not in m.intersections[i0].roads
        assert "loop" in caplog.text
        m.check_invariants()

    def test_out_of_bounds_dropped(self):
        raw = self._make_raw()
        i_far = raw.allocator.intersection()
        raw.intersections[i_far] = RawIntersection(id=i_far, point=self.FAR)
        r_far = raw.allocator.road()
        raw.roads[r_far] = RawRoad(
            4, [self.P2, self.FAR], {"highway": "residential"}, StableIntersectionID(2), i_far
        )
        bounds = GPSBounds.from_points([self.P0, self.P1, self.P2])
        m = InitialMap.build_graph(raw, gps_bounds=bounds, config=QUIET)
        assert r_far not in m.roads
        assert i_far not in m.intersections
        m.check_invariants()

    def test_unknown_endpoint(self):
        raw = self._make_raw()
        raw.roads[raw.allocator.road()] = RawRoad(
            5,
            [self.P0, self.P2],
            {"highway": "residential"},
            StableIntersectionID(0),
            StableIntersectionID(42),
        )
        with pytest.raises(GraphInvariantError):
            InitialMap.build_graph(raw, config=QUIET)

    def test_lane_layout_collaborator(self):
        def two_bus_lanes(road, road_id, edits):
            return [LaneSpec(LaneType.BUS, False), LaneSpec(LaneType.BUS, True)]

        m = InitialMap.build_graph(self._make_raw(), config=QUIET, lane_layout=two_bus_lanes)
        road = m.roads[StableRoadID(1)]
        assert [s.lane_type for s in road.lane_specs] == [LaneType.BUS, LaneType.BUS]
        assert road.fwd_width == pytest.approx(2.5)

    def test_full_construction(self):
        m = InitialMap.from_raw_map(self._make_raw(), config=QUIET)
        m.check_invariants(geometry=True)
        for i in m.intersections.values():
            assert polygon_area(i.polygon) > 0


class TestInvariants:
    """Tests for consistency checking."""

    def _make_line(self):
        return _make_map({0: (0, 0), 1: (100, 0), 2: (200, 0)}, [(0, 1), (1, 2)])

    def test_consistent(self):
        self._make_line().check_invariants()

    def test_missing_back_reference(self):
        m = self._make_line()
        m.intersections[StableIntersectionID(1)].roads.discard(StableRoadID(0))
        with pytest.raises(GraphInvariantError):
            m.check_invariants()

    def test_stale_reference(self):
        m = self._make_line()
        del m.roads[StableRoadID(1)]
        with pytest.raises(GraphInvariantError):
            m.check_invariants()

    def test_retired_id_still_live(self):
        m = self._make_line()
        m.allocator.retire_road(StableRoadID(0))
        with pytest.raises(GraphInvariantError):
            m.check_invariants()

    def test_geometry_requires_polygons(self):
        m = self._make_line()
        with pytest.raises(GraphInvariantError):
            m.check_invariants(geometry=True)
        m.synthesize_polygons(config=QUIET)
        m.check_invariants(geometry=True)


class TestIntersectionPolygon:
    """Tests for polygon synthesis and trimming."""

    def _make_cross(self):
        points = {0: (0, 0), 1: (100, 0), 2: (0, 100), 3: (-100, 0), 4: (0, -100)}
        return _make_map(points, [(0, 1), (0, 2), (0, 3), (0, 4)], width=5.0)

    def test_dead_end_has_area(self):
        m = _make_map({0: (0, 0), 1: (100, 0)}, [(0, 1)], width=5.0)
        m.synthesize_polygons(config=QUIET)
        for i in m.intersections.values():
            assert polygon_area(i.polygon) == pytest.approx(50.0)
        m.check_invariants(geometry=True)

    def test_dead_end_trim(self):
        m = _make_map({0: (0, 0), 1: (100, 0)}, [(0, 1)])
        m.synthesize_polygons(config=QUIET)
        road = m.roads[StableRoadID(0)]
        np.testing.assert_allclose(road.trimmed_center_pts[0], [2.5, 0])
        np.testing.assert_allclose(road.trimmed_center_pts[-1], [97.5, 0])
        np.testing.assert_allclose(road.original_center_pts, [[0, 0], [100, 0]])

    def test_four_way(self):
        m = self._make_cross()
        m.synthesize_polygons(config=QUIET)
        center = m.intersections[StableIntersectionID(0)]
        assert polygon_area(center.polygon) == pytest.approx(100.0)
        assert polygon_covers(center.polygon, (0, 0))
        for r in center.roads:
            assert m.roads[r].src_trim == pytest.approx(5.0)
            assert m.roads[r].length == pytest.approx(92.5)
        m.check_invariants(geometry=True)

    def test_order_independent(self):
        a = self._make_cross()
        b = self._make_cross()
        a.synthesize_polygons(config=QUIET)
        ids = sorted(b.intersections, reverse=True)
        for i in ids:
            b.synthesize_polygons([i], config=QUIET)
        for r in a.roads:
            np.testing.assert_allclose(a.roads[r].trimmed_center_pts, b.roads[r].trimmed_center_pts)
        for i in a.intersections:
            np.testing.assert_allclose(a.intersections[i].polygon, b.intersections[i].polygon)

    def test_resynthesis_is_stable(self):
        m = self._make_cross()
        m.synthesize_polygons(config=QUIET)
        first = {r: road.trimmed_center_pts.copy() for r, road in m.roads.items()}
        m.synthesize_polygons(config=QUIET)
        for r, road in m.roads.items():
            np.testing.assert_allclose(road.trimmed_center_pts, first[r])

    def test_short_road_keeps_length(self):
        m = _make_map({0: (0, 0), 1: (3, 0)}, [(0, 1)])
        m.synthesize_polygons(config=QUIET)
        road = m.roads[StableRoadID(0)]
        assert road.length > 0
        m.check_invariants(geometry=True)

    def test_isolated_intersection(self):
        m = _make_map({0: (0, 0), 1: (100, 0), 2: (50, 50)}, [(0, 1)])
        m.synthesize_polygons(config=QUIET)
        assert len(m.intersections[StableIntersectionID(2)].polygon) == 0
        m.check_invariants(geometry=True)

    def test_simple_ring_kept(self):
        square = np.array([[0, 0], [10, 0], [10, 10], [0, 10]], dtype=float)
        np.testing.assert_allclose(_valid_ring(square), square)

    def test_bowtie_becomes_hull(self):
        bowtie = np.array([[0, 0], [10, 10], [10, 0], [0, 10]], dtype=float)
        assert polygon_area(_valid_ring(bowtie)) == pytest.approx(100.0)

    def test_collinear_ring_gets_area(self):
        line = np.array([[0, 0], [1, 0], [2, 0]], dtype=float)
        fat = _valid_ring(line)
        assert polygon_area(fat) > 0
        for pt in line:
            assert polygon_covers(fat, pt)

    def test_single_point_ring_gets_area(self):
        dot = np.array([[5, 5], [5, 5], [5, 5]], dtype=float)
        fat = _valid_ring(dot)
        assert polygon_area(fat) > 0
        assert polygon_covers(fat, dot[0])


class TestFloodfill:
    """Tests for graph traversal."""

    def _make_chain(self, n=6):
        points = {k: (100.0 * k, 0.0) for k in range(n + 1)}
        return _make_map(points, [(k, k + 1) for k in range(n)])

    def test_hops(self):
        m = self._make_chain()
        i0 = StableIntersectionID(0)
        assert m.floodfill(i0, 1) == {StableRoadID(0)}
        assert m.floodfill(i0, 3) == {StableRoadID(0), StableRoadID(1), StableRoadID(2)}
        assert m.floodfill(i0, 0) == set()

    def test_from_middle(self):
        m = self._make_chain()
        assert m.floodfill(StableIntersectionID(3), 1) == {StableRoadID(2), StableRoadID(3)}

    def test_networkx_graph(self):
        m = self._make_chain(3)
        G = m.to_networkx()
        assert G.number_of_nodes() == 4 + 3
        assert G.number_of_edges() == 6
        assert G.nodes[StableRoadID(1)]["kind"] == "road"


class TestAnomalies:
    """Tests for suspicious crossing detection."""

    def _make_map(self):
        # r0 runs straight through the dead end at i2; i2 connects back to
        # i1 through i3.
        points = {0: (0, 0), 1: (100, 0), 2: (50, 0.5), 3: (50, 100)}
        return _make_map(points, [(0, 1), (2, 3), (3, 1)])

    def test_nearby_crossing_reported(self):
        m = self._make_map()
        m.synthesize_polygons(config=QUIET)
        findings = find_suspicious_crossings(m, depth=5)
        assert SuspiciousCrossing(StableRoadID(0), StableIntersectionID(2)) in findings

    def test_depth_bound(self):
        m = self._make_map()
        m.synthesize_polygons(config=QUIET)
        findings = find_suspicious_crossings(m, depth=1)
        assert findings == []

    def _make_chain_map(self, hops):
        # r0 runs through the dead end at i2, which leads back to i1 through
        # a chain of ``hops`` roads.
        points = {0: (0, 0), 1: (100, 0), 2: (50, 0.5)}
        chain = [2]
        for k in range(hops - 1):
            points[3 + k] = (50 + 40 * k, 100)
            chain.append(3 + k)
        chain.append(1)
        m = _make_map(points, [(0, 1)] + list(zip(chain, chain[1:])))
        m.synthesize_polygons(config=QUIET)
        return m

    def test_default_depth_reaches_fifth_road(self):
        m = self._make_chain_map(hops=4)
        assert StableRoadID(0) in m.floodfill(StableIntersectionID(2), 5)
        findings = find_suspicious_crossings(m)
        assert SuspiciousCrossing(StableRoadID(0), StableIntersectionID(2)) in findings

    def test_default_depth_stops_before_sixth_road(self):
        m = self._make_chain_map(hops=5)
        assert StableRoadID(0) not in m.floodfill(StableIntersectionID(2), 5)
        findings = find_suspicious_crossings(m)
        assert SuspiciousCrossing(StableRoadID(0), StableIntersectionID(2)) not in findings

    def test_unreachable_crossing_ignored(self):
        points = {0: (0, 0), 1: (100, 0), 2: (50, 0.5), 3: (50, 100)}
        m = _make_map(points, [(0, 1), (2, 3)])
        m.synthesize_polygons(config=QUIET)
        assert find_suspicious_crossings(m, depth=5) == []

    def test_logged(self, caplog):
        m = self._make_map()
        m.synthesize_polygons(config=QUIET)
        with caplog.at_level("WARNING"):
            find_suspicious_crossings(m, depth=5)
        assert "r0 is suspicious -- it hits i2" in caplog.text

    def test_no_changes(self):
        m = self._make_map()
        m.synthesize_polygons(config=QUIET)
        before = m.to_dict()
        find_suspicious_crossings(m, depth=5)
        assert m.to_dict() == before


class TestMerge:
    """Tests for short road merging."""

    def _make_map(self):
        # r1 is a 3 m stub between i1 and i2.
        points = {0: (0, 0), 1: (100, 0), 2: (103, 0), 3: (200, 0), 4: (100, 100)}
        m = _make_map(points, [(0, 1), (1, 2), (2, 3), (1, 4)])
        m.synthesize_polygons(config=QUIET)
        return m

    def test_merges_short_road(self):
        m = self._make_map()
        merged = merge_short_roads(m, threshold=5.0, config=QUIET)
        assert merged == [StableRoadID(1)]
        assert StableRoadID(1) not in m.roads
        assert StableIntersectionID(1) not in m.intersections
        m.check_invariants(geometry=True)

    def test_rewires_roads(self):
        m = self._make_map()
        merge_short_roads(m, threshold=5.0, config=QUIET)
        keep = StableIntersectionID(2)
        assert m.intersections[keep].roads == {StableRoadID(0), StableRoadID(2), StableRoadID(3)}
        assert m.roads[StableRoadID(0)].dst_i == keep
        assert m.roads[StableRoadID(3)].src_i == keep

    def test_retires_ids(self):
        m = self._make_map()
        merge_short_roads(m, threshold=5.0, config=QUIET)
        assert StableRoadID(1) in m.allocator.retired_roads
        assert StableIntersectionID(1) in m.allocator.retired_intersections

    def test_no_self_loops_and_fewer_intersections(self):
        m = self._make_map()
        before = len(m.intersections)
        merge_short_roads(m, threshold=5.0, config=QUIET)
        assert len(m.intersections) <= before
        for road in m.roads.values():
            assert road.src_i != road.dst_i

    def test_long_roads_untouched(self):
        m = self._make_map()
        originals = {r: road.original_center_pts.copy() for r, road in m.roads.items()}
        merge_short_roads(m, threshold=5.0, config=QUIET)
        for r in (StableRoadID(0), StableRoadID(2), StableRoadID(3)):
            assert r in m.roads
            np.testing.assert_allclose(m.roads[r].original_center_pts, originals[r])

    def test_threshold_zero_merges_nothing(self):
        m = self._make_map()
        assert merge_short_roads(m, threshold=0.0, config=QUIET) == []
        assert len(m.roads) == 4

    def test_parallel_roads_are_unmergeable(self):
        points = {0: (0, 0), 1: (100, 0), 2: (103, 0), 3: (200, 0)}
        m = _make_map(points, [(0, 1), (1, 2), (1, 2, [(101.5, 1.0)]), (2, 3)])
        m.synthesize_polygons(config=QUIET)
        assert merge_short_roads(m, threshold=5.0, config=QUIET) == []
        assert len(m.roads) == 4
        assert len(m.intersections) == 4
        m.check_invariants()

    def test_merge_road_refuses_parallel(self):
        points = {0: (0, 0), 1: (3, 0)}
        m = _make_map(points, [(0, 1), (0, 1, [(1.5, 1.0)])])
        with pytest.raises(UnmergeableRoad):
            merge_road(m, StableRoadID(0), QUIET)

    def test_resynthesis_errors_propagate(self, monkeypatch):
        m = self._make_map()

        def broken(ids=None, config=None):
            raise ValueError("bad slice")

        monkeypatch.setattr(m, "synthesize_polygons", broken)
        with pytest.raises(ValueError, match="bad slice"):
            merge_short_roads(m, threshold=5.0, config=QUIET)


class TestSerialization:
    """Tests for snapshots."""

    def _make_map(self):
        m = _make_map({0: (0, 0), 1: (100, 0), 2: (100, 100)}, [(0, 1), (1, 2)])
        m.synthesize_polygons(config=QUIET)
        return m

    def test_dict_round_trip(self):
        m = self._make_map()
        restored = InitialMap.from_dict(m.to_dict())
        assert restored.to_dict() == m.to_dict()
        restored.check_invariants(geometry=True)

    def test_save_versions(self, tmp_path):
        m = self._make_map()
        first = m.save(tmp_path, focus_on=StableIntersectionID(1))
        second = m.save(tmp_path)
        assert first == tmp_path / "test" / "000.json"
        assert second == tmp_path / "test" / "001.json"
        assert m.versions_saved == 2

    def test_load(self, tmp_path):
        m = self._make_map()
        path = m.save(tmp_path, focus_on=StableIntersectionID(1))
        loaded = InitialMap.load(path)
        assert loaded.focus_on == StableIntersectionID(1)
        assert set(loaded.roads) == set(m.roads)
        assert set(loaded.intersections) == set(m.intersections)
        np.testing.assert_allclose(
            loaded.roads[StableRoadID(1)].trimmed_center_pts,
            m.roads[StableRoadID(1)].trimmed_center_pts,
        )

    def test_focus_is_an_intersection(self):
        m = self._make_map()
        assert m.to_dict()["focus_on"] is None
        m.focus_on = StableIntersectionID(2)
        data = m.to_dict()
        assert data["focus_on"] == 2
        assert InitialMap.from_dict(data).focus_on == StableIntersectionID(2)

    def test_load_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            InitialMap.load(tmp_path / "nothing.json")
