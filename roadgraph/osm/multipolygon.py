"""
Multipolygon Assembly
=======================

Glue the "outer" way fragments of a multipolygon relation back into closed
rings. Large areas (lakes, parks) are usually split into many ways, some of
which may have been clipped out of the extract entirely.

The gluing pipeline:
    1. Closed fragments are rings already and pass through unchanged
    2. Open fragments are spliced end-to-end onto an accumulator
    3. If nothing attaches, the accumulator is reversed once and matching
       retried; a second dead end abandons the whole relation
    4. The finished accumulator is closed, either with a straight segment
       or by walking along the region boundary

Example::

    from roadgraph.osm.multipolygon import glue_multipolygon

    rings = glue_multipolygon([[a, b, c], [c, d, a]])
    # [[a, b, c, d, a]]
"""

import logging
from enum import Enum
from typing import List, Optional, Sequence

from roadgraph.utils.geometry import LonLat, gps_dist_meters, gps_path_length

logger = logging.getLogger(__name__)


class ClosureStrategy(Enum):
    """How to close a ring whose ends don't meet (it was clipped).

    STRAIGHT connects the last point directly to the first. BOUNDARY walks
    along the region boundary polygon in whichever direction is shorter.
    """

    STRAIGHT = "straight"
    BOUNDARY = "boundary"


def glue_multipolygon(
    fragments: Sequence[Sequence[LonLat]],
    boundary: Sequence[LonLat] = (),
    strategy: ClosureStrategy = ClosureStrategy.STRAIGHT,
) -> List[List[LonLat]]:
    """Glue way fragments into closed rings.

    Args:
        fragments: Point sequences of the relation's "outer" ways.
        boundary: Region boundary polygon, only used by
            ``ClosureStrategy.BOUNDARY``.
        strategy: How to close a ring that was clipped by the boundary.

    Returns:
        Zero or more closed rings (first point == last point). The result
        could be more than one disjoint polygon. An empty list means the
        fragments couldn't be reconciled.
    """
    polygons: List[List[LonLat]] = []
    pool: List[List[LonLat]] = []
    for pts in fragments:
        if len(pts) < 2:
            continue
        if pts[0] == pts[-1]:
            polygons.append(list(pts))
        else:
            pool.append(list(pts))
    if not pool:
        return polygons

    result = pool.pop()
    reversed_once = False
    while pool:
        glue_pt = result[-1]
        idx = _find_attachable(pool, glue_pt)
        if idx is None:
            if reversed_once:
                # Something clearly broke; a partial glue is worse than nothing.
                return []
            reversed_once = True
            result.reverse()
            continue

        append = pool.pop(idx)
        if append[0] != glue_pt:
            append.reverse()
        result.extend(append[1:])

    close_ring(result, boundary, strategy)
    polygons.append(result)
    return polygons


def _find_attachable(pool: List[List[LonLat]], glue_pt: LonLat) -> Optional[int]:
    for idx, pts in enumerate(pool):
        if pts[0] == glue_pt or pts[-1] == glue_pt:
            return idx
    return None


def close_ring(
    ring: List[LonLat],
    boundary: Sequence[LonLat] = (),
    strategy: ClosureStrategy = ClosureStrategy.STRAIGHT,
) -> None:
    """Close a ring in place if its ends don't already meet.

    Args:
        ring: Points to close (modified in place).
        boundary: Region boundary polygon.
        strategy: Closure strategy. BOUNDARY without a usable boundary
            behaves like STRAIGHT.
    """
    first_pt = ring[0]
    last_pt = ring[-1]
    if first_pt == last_pt:
        return

    if strategy == ClosureStrategy.BOUNDARY and len(boundary) >= 3:
        ring.extend(boundary_walk(boundary, last_pt, first_pt))
    ring.append(first_pt)


def boundary_walk(
    boundary: Sequence[LonLat], from_pt: LonLat, to_pt: LonLat
) -> List[LonLat]:
    """Shortest walk along a boundary ring between the vertices nearest two points.

    Args:
        boundary: Boundary ring, closed or open.
        from_pt: Where the walk starts (snapped to the nearest vertex).
        to_pt: Where the walk ends (snapped to the nearest vertex).

    Returns:
        Boundary vertices from the one nearest ``from_pt`` to the one
        nearest ``to_pt``, inclusive, going whichever way round is shorter.
    """
    ring = list(boundary)
    if len(ring) > 1 and ring[0] == ring[-1]:
        ring.pop()
    n = len(ring)

    start = min(range(n), key=lambda i: gps_dist_meters(ring[i], from_pt))
    end = min(range(n), key=lambda i: gps_dist_meters(ring[i], to_pt))

    forwards = find_slice(ring, start, end)
    backwards = find_slice(ring[::-1], n - 1 - start, n - 1 - end)
    if gps_path_length(forwards) <= gps_path_length(backwards):
        logger.debug("Boundary walk goes forwards over %d points", len(forwards))
        return forwards
    logger.debug("Boundary walk goes backwards over %d points", len(backwards))
    return backwards


def find_slice(ring: Sequence[LonLat], start: int, end: int) -> List[LonLat]:
    """Vertices of ``ring`` from index ``start`` to ``end``, wrapping around."""
    if end >= start:
        return list(ring[start : end + 1])
    return list(ring[start:]) + list(ring[: end + 1])
