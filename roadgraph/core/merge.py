"""
Short Road Merging
====================

Collapse roads that end up very short once trimmed, typically the stubs
between the two halves of a dual carriageway crossing. The short road is
removed and its two endpoint intersections become one.

Each merge:
    1. Removes the road from the graph
    2. Moves every other road at the road's source intersection over to its
       destination intersection
    3. Deletes the now empty source intersection and retires both IDs
    4. Re-synthesizes the polygons touched by the change

Original centerlines are left alone, so a moved road still starts where its
OSM way did; only its connectivity and trimming change.
"""

import logging
from typing import TYPE_CHECKING, List, Optional, Set

from roadgraph.config import BuildConfig
from roadgraph.core.ids import StableIntersectionID, StableRoadID

if TYPE_CHECKING:
    from roadgraph.core.initial_map import InitialMap

logger = logging.getLogger(__name__)


class UnmergeableRoad(ValueError):
    """Merging the road would turn a parallel road into a loop."""


def _next_short_road(
    m: "InitialMap", threshold: float, unmergeable: Set[StableRoadID]
) -> Optional[StableRoadID]:
    for r_id in sorted(m.roads):
        if r_id in unmergeable:
            continue
        if m.roads[r_id].length < threshold:
            return r_id
    return None


def merge_road(
    m: "InitialMap", r_id: StableRoadID, config: Optional[BuildConfig] = None
) -> StableIntersectionID:
    """Merge one road away, fusing its endpoints.

    Args:
        m: The map, modified in place.
        r_id: Road to remove.
        config: Settings for polygon re-synthesis.

    Returns:
        The surviving intersection.

    Raises:
        UnmergeableRoad: If another road joins the same two intersections;
            fusing them would turn that road into a loop.
    """
    road = m.roads[r_id]
    delete_i, keep_i = road.src_i, road.dst_i
    parallel = [r for r in m.roads_between(delete_i, keep_i) if r != r_id]
    if parallel:
        raise UnmergeableRoad(f"Can't merge {r_id}: {parallel[0]} also joins {delete_i} and {keep_i}")

    del m.roads[r_id]
    m.intersections[delete_i].roads.discard(r_id)
    m.intersections[keep_i].roads.discard(r_id)
    m.allocator.retire_road(r_id)

    moved: List[StableRoadID] = sorted(m.intersections[delete_i].roads)
    for other_id in moved:
        other = m.roads[other_id]
        if other.src_i == delete_i:
            other.src_i = keep_i
        if other.dst_i == delete_i:
            other.dst_i = keep_i
        m.intersections[keep_i].roads.add(other_id)

    del m.intersections[delete_i]
    m.allocator.retire_intersection(delete_i)

    # Trims at the moved ends were measured for the old intersection.
    affected = set(moved) | m.intersections[keep_i].roads
    resynth: Set[StableIntersectionID] = {keep_i}
    for other_id in affected:
        other = m.roads[other_id]
        other.reset_trim()
        resynth.add(other.src_i)
        resynth.add(other.dst_i)
    m.synthesize_polygons(sorted(resynth), config=config)

    logger.debug("Merged %s, folding %s into %s", r_id, delete_i, keep_i)
    return keep_i


def merge_short_roads(
    m: "InitialMap",
    threshold: Optional[float] = None,
    config: Optional[BuildConfig] = None,
) -> List[StableRoadID]:
    """Repeatedly merge away the lowest-ID road shorter than ``threshold``.

    Roads that can't be merged (another road joins the same pair of
    intersections) are skipped. Long roads are never touched.

    Args:
        m: Map with synthesized polygons, modified in place.
        threshold: Trimmed length (meters) below which a road is merged.
            Defaults to ``config.short_road_threshold``.
        config: Build settings.

    Returns:
        IDs of the merged roads, in merge order.
    """
    config = config if config is not None else BuildConfig()
    threshold = config.short_road_threshold if threshold is None else threshold

    merged: List[StableRoadID] = []
    unmergeable: Set[StableRoadID] = set()
    while True:
        r_id = _next_short_road(m, threshold, unmergeable)
        if r_id is None:
            break
        try:
            merge_road(m, r_id, config)
        except UnmergeableRoad as e:
            logger.info("%s", e)
            unmergeable.add(r_id)
            continue
        merged.append(r_id)

    logger.info("Merged %d short roads", len(merged))
    return merged
