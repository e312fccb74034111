"""
Raw Map and Way Splitting
===========================

OSM ways don't stop at intersections: one way often runs through several
junctions, and a junction is just a node shared between ways. This module
cuts extracted road ways into intersection-to-intersection segments and
assigns stable IDs, producing the :class:`RawMap` that the graph builder
consumes.

A point becomes an intersection if it is the endpoint of some road way, or
if it is used more than once across all road ways.

Example::

    from roadgraph.core.raw_map import split_ways

    raw = split_ways("montlake", features, boundary)
    print(f"{len(raw.intersections)} intersections, {len(raw.roads)} roads")
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from roadgraph.core.bounds import GPSBounds
from roadgraph.core.ids import IDAllocator, StableIntersectionID, StableRoadID
from roadgraph.osm.extract import ExtractedFeatures, RawArea, RawBuilding, RawRoad
from roadgraph.utils.geometry import LonLat

logger = logging.getLogger(__name__)


@dataclass
class RawIntersection:
    """An intersection location before any geometry is built.

    Attributes:
        id: Stable intersection ID.
        point: (lon, lat) of the shared node.
    """

    id: StableIntersectionID
    point: LonLat


@dataclass
class RawMap:
    """Roads split at intersections, keyed by stable IDs.

    Attributes:
        name: Map name.
        boundary: Region boundary polygon (may be empty).
        intersections: Stable ID -> RawIntersection.
        roads: Stable ID -> RawRoad, each with ``i1``/``i2`` set.
        buildings: Passed through from extraction.
        areas: Passed through from extraction.
        allocator: The allocator the IDs came from.
    """

    name: str
    boundary: List[LonLat] = field(default_factory=list)
    intersections: Dict[StableIntersectionID, RawIntersection] = field(default_factory=dict)
    roads: Dict[StableRoadID, RawRoad] = field(default_factory=dict)
    buildings: List[RawBuilding] = field(default_factory=list)
    areas: List[RawArea] = field(default_factory=list)
    allocator: IDAllocator = field(default_factory=IDAllocator)

    def gps_bounds(self) -> GPSBounds:
        """Bounds covering every road point, intersection and the boundary."""
        bounds = GPSBounds()
        for pt in self.boundary:
            bounds.update(*pt)
        for i in self.intersections.values():
            bounds.update(*i.point)
        for r in self.roads.values():
            for pt in r.points:
                bounds.update(*pt)
        return bounds


def _dedupe(points: Sequence[LonLat]) -> List[LonLat]:
    result: List[LonLat] = []
    for pt in points:
        if not result or result[-1] != pt:
            result.append(pt)
    return result


def split_ways(
    name: str,
    features: ExtractedFeatures,
    boundary: Sequence[LonLat] = (),
    allocator: Optional[IDAllocator] = None,
) -> RawMap:
    """Split road ways at intersections and allocate stable IDs.

    Args:
        name: Map name.
        features: Output of the extractor.
        boundary: Region boundary polygon.
        allocator: ID allocator to draw from. A fresh one by default.

    Returns:
        RawMap with one RawIntersection per distinct intersection point and
        one RawRoad per segment between consecutive intersections.
    """
    allocator = allocator if allocator is not None else IDAllocator()
    raw = RawMap(
        name=name,
        boundary=list(boundary),
        buildings=list(features.buildings),
        areas=list(features.areas),
        allocator=allocator,
    )

    ways = [
        (road, _dedupe(road.points))
        for road in sorted(features.roads, key=lambda r: r.osm_way_id)
    ]
    ways = [(road, pts) for road, pts in ways if len(pts) >= 2]

    counts: Counter = Counter()
    for _, pts in ways:
        counts.update(pts)

    pt_to_i: Dict[LonLat, StableIntersectionID] = {}

    def is_intersection(pt: LonLat, idx: int, n: int) -> bool:
        return idx == 0 or idx == n - 1 or counts[pt] > 1 or pt in pt_to_i

    for _, pts in ways:
        for idx, pt in enumerate(pts):
            if pt not in pt_to_i and is_intersection(pt, idx, len(pts)):
                i = allocator.intersection()
                pt_to_i[pt] = i
                raw.intersections[i] = RawIntersection(id=i, point=pt)

    for road, pts in ways:
        current = [pts[0]]
        i1 = pt_to_i[pts[0]]
        for pt in pts[1:]:
            current.append(pt)
            i2 = pt_to_i.get(pt)
            if i2 is None:
                continue
            raw.roads[allocator.road()] = road.segment(current, i1, i2)
            i1 = i2
            current = [pt]

    logger.info(
        "Split %d road ways into %d roads between %d intersections",
        len(ways),
        len(raw.roads),
        len(raw.intersections),
    )
    return raw
