"""
Suspicious Crossing Detection
===============================

Flag roads whose trimmed centerline cuts through the polygon of an
intersection the road doesn't connect to. That usually means a missing OSM
node where two ways cross, or a polygon that grew too large.

Only nearby crossings are reported: the road has to be among the roads
reachable from the offending intersection within a few road hops.
Far-away hits are almost always two unrelated layers (a bridge over a
road) and are ignored. Nothing is modified; findings are logged and
returned for the caller to inspect.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Set

from shapely.geometry import LineString, Polygon
from shapely.strtree import STRtree

from roadgraph.core.ids import StableIntersectionID, StableRoadID
from roadgraph.utils.geometry import crosses_polygon

if TYPE_CHECKING:
    from roadgraph.core.initial_map import InitialMap

logger = logging.getLogger(__name__)

DEFAULT_DEPTH = 5


@dataclass(frozen=True)
class SuspiciousCrossing:
    """A road passing through an intersection it doesn't end at."""

    road: StableRoadID
    intersection: StableIntersectionID

    def __str__(self) -> str:
        return f"{self.road} is suspicious -- it hits {self.intersection}"


def find_suspicious_crossings(
    m: "InitialMap", depth: int = DEFAULT_DEPTH
) -> List[SuspiciousCrossing]:
    """Find roads crossing nearby intersections they don't connect to.

    Args:
        m: Map with synthesized polygons.
        depth: Maximum number of road hops from the offending intersection
            to the road, counting the road itself.

    Returns:
        Findings, ordered by road then intersection ID.
    """
    candidates = [
        i for i in sorted(m.intersections) if len(m.intersections[i].polygon) >= 3
    ]
    if not candidates or not m.roads:
        return []

    polygons = [Polygon(m.intersections[i].polygon) for i in candidates]
    tree = STRtree(polygons)
    graph = m.to_networkx()
    reach_cache: Dict[StableIntersectionID, Set[StableRoadID]] = {}

    def reachable(i: StableIntersectionID) -> Set[StableRoadID]:
        if i not in reach_cache:
            reach_cache[i] = m.floodfill(i, depth, graph=graph)
        return reach_cache[i]

    findings: List[SuspiciousCrossing] = []
    for r_id in sorted(m.roads):
        road = m.roads[r_id]
        line = LineString(road.trimmed_center_pts)
        hit_idx = sorted(int(k) for k in tree.query(line))
        for k in hit_idx:
            i_id = candidates[k]
            if i_id in (road.src_i, road.dst_i):
                continue
            if not crosses_polygon(road.trimmed_center_pts, m.intersections[i_id].polygon):
                continue
            if r_id not in reachable(i_id):
                continue
            finding = SuspiciousCrossing(road=r_id, intersection=i_id)
            logger.warning("%s", finding)
            findings.append(finding)

    logger.info("Found %d suspicious crossings", len(findings))
    return findings
