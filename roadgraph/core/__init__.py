"""
Core modules for splitting roads, building the planar road graph,
synthesizing intersection polygons, and cleaning up the result.
"""

from roadgraph.core.ids import IDAllocator, StableIntersectionID, StableRoadID
from roadgraph.core.bounds import Bounds, GPSBounds, OutOfBoundsError
from roadgraph.core.raw_map import RawIntersection, RawMap, split_ways
from roadgraph.core.lane_specs import LaneSpec, LaneType, MapEdits, get_lane_specs
from roadgraph.core.initial_map import GraphInvariantError, InitialMap, Intersection, Road
from roadgraph.core.anomaly import SuspiciousCrossing, find_suspicious_crossings
from roadgraph.core.merge import UnmergeableRoad, merge_short_roads

__all__ = [
    "IDAllocator",
    "StableIntersectionID",
    "StableRoadID",
    "Bounds",
    "GPSBounds",
    "OutOfBoundsError",
    "RawIntersection",
    "RawMap",
    "split_ways",
    "LaneSpec",
    "LaneType",
    "MapEdits",
    "get_lane_specs",
    "GraphInvariantError",
    "InitialMap",
    "Intersection",
    "Road",
    "SuspiciousCrossing",
    "find_suspicious_crossings",
    "UnmergeableRoad",
    "merge_short_roads",
]
