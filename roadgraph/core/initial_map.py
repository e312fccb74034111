"""
Initial Map Graph
===================

The planar road graph: intersections joined by roads, with lane layouts,
widths, trimmed centerlines and intersection polygons.

Construction runs in stages, each leaving the graph consistent:
    1. Build the graph from a :class:`~roadgraph.core.raw_map.RawMap`,
       projecting to planar meters and deriving lanes and widths
    2. Synthesize every intersection polygon, trimming incident roads
    3. Report roads that cut through intersections they don't connect to
    4. Merge away very short roads

Example::

    from roadgraph.core.initial_map import InitialMap

    m = InitialMap.from_raw_map(raw)
    print(f"{len(m.intersections)} intersections, {len(m.roads)} roads")
    m.save("initial_maps")
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set, Union

import networkx as nx
import numpy as np
from tqdm import tqdm

from roadgraph.config import BuildConfig
from roadgraph.core.anomaly import find_suspicious_crossings
from roadgraph.core.bounds import Bounds, GPSBounds, OutOfBoundsError
from roadgraph.core.ids import IDAllocator, StableIntersectionID, StableRoadID
from roadgraph.core.intersection_polygon import intersection_polygon
from roadgraph.core.lane_specs import LaneLayout, LaneSpec, MapEdits, get_lane_specs
from roadgraph.core.merge import merge_short_roads
from roadgraph.core.raw_map import RawMap
from roadgraph.utils.geometry import (
    EPSILON_DIST,
    dedupe_polyline,
    polygon_covers,
    polyline_length,
    polyline_slice,
    ring_to_list,
)

logger = logging.getLogger(__name__)

# Slack (meters) when checking that a trimmed road end lies in its polygon
COVER_TOLERANCE = 0.05


class GraphInvariantError(RuntimeError):
    """The graph's cross references or geometry became inconsistent."""


def max_trim(length: float) -> float:
    """Largest trim one end of a road of ``length`` may take."""
    return max(0.0, length / 2.0 - EPSILON_DIST)


@dataclass
class Intersection:
    """A node of the road graph.

    Attributes:
        id: Stable intersection ID.
        point: (2,) planar location of the shared OSM node.
        polygon: (N, 2) footprint ring; empty until synthesized and for
            intersections without roads.
        roads: IDs of the roads ending here.
    """

    id: StableIntersectionID
    point: np.ndarray
    polygon: np.ndarray = field(default_factory=lambda: np.zeros((0, 2)))
    roads: Set[StableRoadID] = field(default_factory=set)

    def to_dict(self) -> dict:
        return {
            "id": self.id.value,
            "point": [float(self.point[0]), float(self.point[1])],
            "polygon": ring_to_list(self.polygon),
            "roads": sorted(r.value for r in self.roads),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Intersection":
        polygon = np.array(data.get("polygon", []), dtype=np.float64).reshape(-1, 2)
        return cls(
            id=StableIntersectionID(int(data["id"])),
            point=np.array(data["point"], dtype=np.float64),
            polygon=polygon,
            roads={StableRoadID(int(v)) for v in data.get("roads", [])},
        )


@dataclass
class Road:
    """An edge of the road graph.

    The original centerline is never modified after construction; the
    trimmed centerline is always a sub-polyline of it, cut back by
    ``src_trim`` and ``dst_trim`` meters at either end.

    Attributes:
        id: Stable road ID.
        src_i: Intersection at the first point.
        dst_i: Intersection at the last point.
        original_center_pts: (N, 2) planar centerline.
        trimmed_center_pts: (M, 2) centerline between the two polygons.
        fwd_width: Total width of the forward lanes.
        back_width: Total width of the backward lanes.
        lane_specs: Ordered lanes.
        osm_way_id: The OSM way this segment came from.
        osm_tags: Tags of that way.
        src_trim: Meters cut off at the ``src_i`` end.
        dst_trim: Meters cut off at the ``dst_i`` end.
    """

    id: StableRoadID
    src_i: StableIntersectionID
    dst_i: StableIntersectionID
    original_center_pts: np.ndarray
    trimmed_center_pts: np.ndarray
    fwd_width: float
    back_width: float
    lane_specs: List[LaneSpec]
    osm_way_id: int = 0
    osm_tags: Dict[str, str] = field(default_factory=dict)
    src_trim: float = 0.0
    dst_trim: float = 0.0

    @property
    def length(self) -> float:
        """Length of the trimmed centerline."""
        return polyline_length(self.trimmed_center_pts)

    @property
    def original_length(self) -> float:
        return polyline_length(self.original_center_pts)

    def other_end(self, i: StableIntersectionID) -> StableIntersectionID:
        if i == self.src_i:
            return self.dst_i
        if i == self.dst_i:
            return self.src_i
        raise GraphInvariantError(f"{self.id} doesn't touch {i}")

    def set_trim(self, i: StableIntersectionID, dist: float) -> float:
        """Trim the end at intersection ``i`` back to ``dist`` meters.

        The trim replaces any earlier trim at that end, and is capped so the
        road keeps a positive length whatever the other end does.

        Returns:
            The trim actually applied.
        """
        dist = min(max(0.0, dist), max_trim(self.original_length))
        if i == self.src_i:
            self.src_trim = dist
        elif i == self.dst_i:
            self.dst_trim = dist
        else:
            raise GraphInvariantError(f"{self.id} doesn't touch {i}")
        self._retrim()
        return dist

    def reset_trim(self) -> None:
        self.src_trim = 0.0
        self.dst_trim = 0.0
        self._retrim()

    def _retrim(self) -> None:
        length = self.original_length
        self.trimmed_center_pts = polyline_slice(
            self.original_center_pts, self.src_trim, length - self.dst_trim
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id.value,
            "src_i": self.src_i.value,
            "dst_i": self.dst_i.value,
            "original_center_pts": ring_to_list(self.original_center_pts),
            "trimmed_center_pts": ring_to_list(self.trimmed_center_pts),
            "fwd_width": float(self.fwd_width),
            "back_width": float(self.back_width),
            "lane_specs": [spec.to_dict() for spec in self.lane_specs],
            "osm_way_id": int(self.osm_way_id),
            "osm_tags": dict(self.osm_tags),
            "src_trim": float(self.src_trim),
            "dst_trim": float(self.dst_trim),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Road":
        return cls(
            id=StableRoadID(int(data["id"])),
            src_i=StableIntersectionID(int(data["src_i"])),
            dst_i=StableIntersectionID(int(data["dst_i"])),
            original_center_pts=np.array(data["original_center_pts"], dtype=np.float64),
            trimmed_center_pts=np.array(data["trimmed_center_pts"], dtype=np.float64),
            fwd_width=float(data["fwd_width"]),
            back_width=float(data["back_width"]),
            lane_specs=[LaneSpec.from_dict(s) for s in data["lane_specs"]],
            osm_way_id=int(data.get("osm_way_id", 0)),
            osm_tags=dict(data.get("osm_tags", {})),
            src_trim=float(data.get("src_trim", 0.0)),
            dst_trim=float(data.get("dst_trim", 0.0)),
        )


class InitialMap:
    """Road graph with intersection polygons, before lane-level geometry.

    Args:
        name: Map name, also the directory snapshots are saved under.
        bounds: Planar extent of the map.
        allocator: Source of stable IDs; shared with the raw map so merges
            can retire IDs.
    """

    def __init__(
        self,
        name: str,
        bounds: Optional[Bounds] = None,
        allocator: Optional[IDAllocator] = None,
    ):
        self.name = name
        self.bounds = bounds if bounds is not None else Bounds()
        self.allocator = allocator if allocator is not None else IDAllocator()
        self.roads: Dict[StableRoadID, Road] = {}
        self.intersections: Dict[StableIntersectionID, Intersection] = {}
        self.focus_on: Optional[StableIntersectionID] = None
        self.versions_saved = 0

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build_graph(
        cls,
        raw: RawMap,
        gps_bounds: Optional[GPSBounds] = None,
        edits: Optional[MapEdits] = None,
        config: Optional[BuildConfig] = None,
        lane_layout: LaneLayout = get_lane_specs,
    ) -> "InitialMap":
        """Turn a raw map into a planar graph, without polygons yet.

        Self-loops and roads with points outside ``gps_bounds`` are logged
        and dropped. Roads are processed in ID order.

        Raises:
            GraphInvariantError: If a road refers to an unknown intersection.
        """
        config = config if config is not None else BuildConfig()
        edits = edits if edits is not None else MapEdits()
        gps_bounds = gps_bounds if gps_bounds is not None else raw.gps_bounds()

        m = cls(raw.name, bounds=gps_bounds.to_bounds(), allocator=raw.allocator)

        for i_id in sorted(raw.intersections):
            raw_i = raw.intersections[i_id]
            try:
                point = gps_bounds.to_planar(*raw_i.point)
            except OutOfBoundsError:
                logger.warning("Skipping %s: %s is out of bounds", i_id, raw_i.point)
                continue
            m.intersections[i_id] = Intersection(id=i_id, point=point)

        for r_id in tqdm(sorted(raw.roads), desc="Building roads", disable=not config.verbose):
            raw_road = raw.roads[r_id]
            if raw_road.i1 == raw_road.i2:
                logger.error("Skipping %s, a loop between %s and %s", r_id, raw_road.i1, raw_road.i2)
                continue
            try:
                planar = gps_bounds.to_planar_many(raw_road.points)
            except OutOfBoundsError as e:
                logger.warning("Skipping %s: %s", r_id, e)
                continue
            for i_id in (raw_road.i1, raw_road.i2):
                if i_id not in m.intersections:
                    raise GraphInvariantError(f"{r_id} refers to unknown intersection {i_id}")

            pts = dedupe_polyline(planar)
            if len(pts) < 2 or polyline_length(pts) <= EPSILON_DIST:
                logger.warning("Skipping %s: its points collapse to nothing", r_id)
                continue

            lane_specs = lane_layout(raw_road, r_id, edits)
            fwd_width = sum(config.lane_width for s in lane_specs if not s.reverse_pts)
            back_width = sum(config.lane_width for s in lane_specs if s.reverse_pts)

            m.roads[r_id] = Road(
                id=r_id,
                src_i=raw_road.i1,
                dst_i=raw_road.i2,
                original_center_pts=pts,
                trimmed_center_pts=pts.copy(),
                fwd_width=fwd_width,
                back_width=back_width,
                lane_specs=lane_specs,
                osm_way_id=raw_road.osm_way_id,
                osm_tags=dict(raw_road.osm_tags),
            )
            m.intersections[raw_road.i1].roads.add(r_id)
            m.intersections[raw_road.i2].roads.add(r_id)

        logger.info(
            "Built graph with %d intersections and %d roads",
            len(m.intersections),
            len(m.roads),
        )
        return m

    @classmethod
    def from_raw_map(
        cls,
        raw: RawMap,
        gps_bounds: Optional[GPSBounds] = None,
        edits: Optional[MapEdits] = None,
        config: Optional[BuildConfig] = None,
        lane_layout: LaneLayout = get_lane_specs,
    ) -> "InitialMap":
        """Run every construction stage on a raw map.

        Args:
            raw: Roads split at intersections.
            gps_bounds: Projection bounds. Defaults to the raw map's extent.
            edits: Lane overrides.
            config: Build settings.
            lane_layout: Lane policy, :func:`get_lane_specs` by default.

        Returns:
            InitialMap with polygons synthesized and short roads merged.

        Raises:
            GraphInvariantError: If a stage leaves the graph inconsistent.
        """

        config = config if config is not None else BuildConfig()
        m = cls.build_graph(raw, gps_bounds, edits, config, lane_layout)
        m.check_invariants()

        m.synthesize_polygons(config=config)
        m.check_invariants(geometry=True)

        if config.detect_anomalies:
            find_suspicious_crossings(m, depth=config.anomaly_depth)

        if config.merge_short_roads:
            merge_short_roads(m, threshold=config.short_road_threshold, config=config)
            m.check_invariants(geometry=True)

        return m

    def synthesize_polygons(
        self,
        ids: Optional[List[StableIntersectionID]] = None,
        config: Optional[BuildConfig] = None,
    ) -> None:
        """(Re)compute polygons for some or all intersections."""
        config = config if config is not None else BuildConfig()
        targets = sorted(self.intersections) if ids is None else sorted(set(ids))
        for i_id in tqdm(
            targets,
            desc="Intersection polygons",
            disable=not config.verbose or ids is not None,
        ):
            i = self.intersections[i_id]
            i.polygon = intersection_polygon(i, self.roads, config.degenerate_half_length)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def to_networkx(self) -> nx.Graph:
        """Bipartite graph of intersection and road nodes.

        Nodes are the ID objects themselves, with a ``kind`` attribute of
        ``"intersection"`` or ``"road"``. Each road node links to its two
        endpoint intersections.
        """
        G = nx.Graph()
        for i_id in self.intersections:
            G.add_node(i_id, kind="intersection")
        for r_id, road in self.roads.items():
            G.add_node(r_id, kind="road", length=road.length)
            G.add_edge(r_id, road.src_i)
            G.add_edge(r_id, road.dst_i)
        return G

    def floodfill(
        self,
        start: StableIntersectionID,
        steps: int,
        graph: Optional[nx.Graph] = None,
    ) -> Set[StableRoadID]:
        """Roads reachable from an intersection within ``steps`` road hops.

        The roads at ``start`` are one hop away.

        Args:
            start: Intersection to search from.
            steps: Maximum number of roads on a path.
            graph: Precomputed :meth:`to_networkx` graph, to avoid rebuilding
                it for repeated queries.

        Returns:
            Set of road IDs.
        """
        if steps < 1 or start not in self.intersections:
            return set()
        G = graph if graph is not None else self.to_networkx()
        ego = nx.ego_graph(G, start, radius=2 * steps - 1)
        return {n for n in ego.nodes if isinstance(n, StableRoadID)}

    def roads_between(
        self, i1: StableIntersectionID, i2: StableIntersectionID
    ) -> List[StableRoadID]:
        """Roads joining two intersections, in either direction."""
        return sorted(
            r_id
            for r_id in self.intersections[i1].roads
            if self.roads[r_id].other_end(i1) == i2
        )

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    def check_invariants(self, geometry: bool = False) -> None:
        """Verify cross references, and optionally polygon coverage.

        Args:
            geometry: Also check every road's trimmed ends lie within its
                endpoint polygons.

        Raises:
            GraphInvariantError: On the first violation found.
        """
        for r_id, road in self.roads.items():
            if road.id != r_id:
                raise GraphInvariantError(f"{r_id} is stored as {road.id}")
            if road.src_i == road.dst_i:
                raise GraphInvariantError(f"{r_id} is a loop on {road.src_i}")
            if r_id in self.allocator.retired_roads:
                raise GraphInvariantError(f"{r_id} was retired but is still live")
            for i_id in (road.src_i, road.dst_i):
                i = self.intersections.get(i_id)
                if i is None:
                    raise GraphInvariantError(f"{r_id} refers to missing {i_id}")
                if r_id not in i.roads:
                    raise GraphInvariantError(f"{i_id} doesn't list its road {r_id}")

        for i_id, i in self.intersections.items():
            if i.id != i_id:
                raise GraphInvariantError(f"{i_id} is stored as {i.id}")
            if i_id in self.allocator.retired_intersections:
                raise GraphInvariantError(f"{i_id} was retired but is still live")
            for r_id in i.roads:
                road = self.roads.get(r_id)
                if road is None:
                    raise GraphInvariantError(f"{i_id} lists missing {r_id}")
                if i_id not in (road.src_i, road.dst_i):
                    raise GraphInvariantError(f"{i_id} lists {r_id}, which doesn't touch it")

        if not geometry:
            return
        for r_id in sorted(self.roads):
            road = self.roads[r_id]
            ends = (
                (road.src_i, road.trimmed_center_pts[0]),
                (road.dst_i, road.trimmed_center_pts[-1]),
            )
            for i_id, pt in ends:
                if not polygon_covers(self.intersections[i_id].polygon, pt, COVER_TOLERANCE):
                    raise GraphInvariantError(
                        f"Trimmed end of {r_id} at {pt} is outside the polygon of {i_id}"
                    )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "name": self.name,
            "bounds": self.bounds.to_dict(),
            "focus_on": self.focus_on.value if self.focus_on is not None else None,
            "versions_saved": self.versions_saved,
            "allocator": self.allocator.to_dict(),
            "intersections": [self.intersections[i].to_dict() for i in sorted(self.intersections)],
            "roads": [self.roads[r].to_dict() for r in sorted(self.roads)],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InitialMap":
        m = cls(
            data["name"],
            bounds=Bounds.from_dict(data["bounds"]),
            allocator=IDAllocator.from_dict(data["allocator"]),
        )
        focus_on = data.get("focus_on")
        if focus_on is not None:
            m.focus_on = StableIntersectionID(int(focus_on))
        m.versions_saved = int(data.get("versions_saved", 0))
        for item in data["intersections"]:
            i = Intersection.from_dict(item)
            m.intersections[i.id] = i
        for item in data["roads"]:
            road = Road.from_dict(item)
            m.roads[road.id] = road
        return m

    def save(
        self, directory: Union[str, Path], focus_on: Optional[StableIntersectionID] = None
    ) -> Path:
        """Write a numbered JSON snapshot of the map.

        Snapshots go to ``<directory>/<name>/<version>.json`` with the
        version zero-padded to three digits; each call bumps the version.

        Args:
            directory: Root directory for snapshots.
            focus_on: Optional intersection this snapshot is about.

        Returns:
            Path of the written file.
        """
        self.focus_on = focus_on
        out_dir = Path(directory) / self.name
        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / f"{self.versions_saved:03d}.json"
        self.versions_saved += 1
        with path.open("w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info("Saved %s", path)
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "InitialMap":
        """Load a snapshot written by :meth:`save`.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Map snapshot not found: {path}")
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        m = cls.from_dict(data)
        m.check_invariants()
        return m

    def __repr__(self) -> str:
        return (
            f"InitialMap(name={self.name!r}, intersections={len(self.intersections)}, "
            f"roads={len(self.roads)})"
        )
