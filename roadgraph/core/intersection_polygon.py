"""
Intersection Polygon Synthesis
================================

Compute the footprint of an intersection from the roads meeting there, and
trim those roads back so they stop at its edge.

The synthesis pipeline:
    1. Orient every incident road's original centerline away from the
       intersection and shift it sideways by its widths, giving the left
       and right sidelines of each "arm"
    2. Sort arms counter-clockwise by their outgoing direction
    3. Intersect each arm's left sideline with the next arm's right
       sideline; how far along each arm the hit lands is how far that arm
       gets trimmed
    4. Walk the arms in order, emitting each arm's right and left corner at
       its trim distance and the corner hit towards the next arm

Dead ends get a small capped rectangle. Only the immutable original
centerlines and the road widths are read, so intersections can be
synthesized in any order.

Example::

    from roadgraph.core.intersection_polygon import intersection_polygon

    for i in m.intersections.values():
        i.polygon = intersection_polygon(i, m.roads)
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional

import numpy as np
from shapely.geometry import LineString, Point, Polygon

from roadgraph.core.ids import StableIntersectionID, StableRoadID
from roadgraph.utils.geometry import (
    EPSILON_DIST,
    convex_hull,
    direction_at,
    first_hit,
    point_along,
    polygon_area,
    polyline_angle,
    shift_polyline,
)

if TYPE_CHECKING:
    from roadgraph.core.initial_map import Intersection, Road

# Default trim for arms whose sidelines never meet a neighbor's, and half
# the length of a dead end's cap.
DEGENERATE_HALF_LENGTH = 2.5

# Smallest polygon area (m^2) accepted before falling back to a hull
MIN_POLYGON_AREA = 1e-3


@dataclass
class _Arm:
    """One incident road, seen from the intersection."""

    road: "Road"
    out: np.ndarray
    left_width: float
    right_width: float
    left: np.ndarray
    right: np.ndarray
    angle: float

    @classmethod
    def from_road(cls, road: "Road", i: StableIntersectionID) -> "_Arm":
        # Forward lanes sit right of the src->dst direction.
        if road.src_i == i:
            out = road.original_center_pts
            right_width, left_width = road.fwd_width, road.back_width
        else:
            out = road.original_center_pts[::-1].copy()
            right_width, left_width = road.back_width, road.fwd_width
        return cls(
            road=road,
            out=out,
            left_width=left_width,
            right_width=right_width,
            left=shift_polyline(out, left_width),
            right=shift_polyline(out, -right_width),
            angle=polyline_angle(out),
        )

    def corners_at(self, dist: float):
        """(right corner, left corner) across the arm, ``dist`` from the intersection."""
        center = point_along(self.out, dist)
        d = direction_at(self.out, dist)
        normal = np.array([-d[1], d[0]])
        return center - normal * self.right_width, center + normal * self.left_width

    def dist_along(self, pt: np.ndarray) -> float:
        return float(LineString(self.out).project(Point(pt[0], pt[1])))


def intersection_polygon(
    intersection: "Intersection",
    roads: Dict[StableRoadID, "Road"],
    degenerate_half_length: float = DEGENERATE_HALF_LENGTH,
) -> np.ndarray:
    """Synthesize an intersection's polygon, trimming its incident roads.

    Args:
        intersection: The intersection. Only its ID and road set are read.
        roads: All roads of the map; incident ones get their trimmed
            centerline shortened at this intersection's end.
        degenerate_half_length: Trim used where sidelines don't meet.

    Returns:
        (N, 2) polygon ring (not repeated closing point). Empty (0, 2) for
        an intersection with no roads.
    """
    incident = [roads[r] for r in sorted(intersection.roads)]
    if not incident:
        return np.zeros((0, 2))

    arms = [_Arm.from_road(road, intersection.id) for road in incident]
    if len(arms) == 1:
        return _dead_end(arms[0], intersection.id, degenerate_half_length)

    arms.sort(key=lambda arm: (arm.angle, arm.road.id))
    n = len(arms)

    hits: List[Optional[float]] = [None] * n
    corners: List[Optional[np.ndarray]] = [None] * n
    for k in range(n):
        a = arms[k]
        b = arms[(k + 1) % n]
        hit = first_hit(a.left, b.right)
        if hit is None:
            continue
        corners[k] = hit
        for idx, arm in ((k, a), ((k + 1) % n, b)):
            dist = arm.dist_along(hit)
            hits[idx] = dist if hits[idx] is None else max(hits[idx], dist)

    ring: List[np.ndarray] = []
    for k, arm in enumerate(arms):
        wanted = hits[k]
        if wanted is None or wanted <= EPSILON_DIST:
            wanted = degenerate_half_length
        trim = arm.road.set_trim(intersection.id, wanted)
        right_pt, left_pt = arm.corners_at(trim)
        ring.append(right_pt)
        ring.append(left_pt)
        corner = corners[k]
        if corner is not None and np.hypot(*(corner - left_pt)) > EPSILON_DIST:
            ring.append(corner)

    return _valid_ring(np.array(ring))


def _dead_end(
    arm: _Arm, i: StableIntersectionID, half_length: float
) -> np.ndarray:
    """Capped rectangle from the trimmed end back towards the tip."""
    trim = arm.road.set_trim(i, half_length)
    center = point_along(arm.out, trim)
    d = direction_at(arm.out, trim)
    normal = np.array([-d[1], d[0]])

    left_width, right_width = arm.left_width, arm.right_width
    if left_width + right_width <= EPSILON_DIST:
        left_width = right_width = half_length / 2.0
    cap = d * (2.0 * half_length)

    right_pt = center - normal * right_width
    left_pt = center + normal * left_width
    return np.array([right_pt, left_pt, left_pt - cap, right_pt - cap])


def _valid_ring(ring: np.ndarray) -> np.ndarray:
    """The ring itself if it's a simple polygon, else its convex hull."""
    if len(ring) >= 3:
        poly = Polygon(ring)
        if poly.is_valid and poly.area > MIN_POLYGON_AREA:
            return ring
    hull = convex_hull(ring)
    if polygon_area(hull) > MIN_POLYGON_AREA:
        return hull
    # Everything collinear; fatten it so it still has an area.
    if np.ptp(ring, axis=0).max() > EPSILON_DIST:
        fat = LineString(ring).buffer(EPSILON_DIST * 10, join_style=2)
    else:
        fat = Point(ring[0]).buffer(EPSILON_DIST * 10)
    return np.asarray(fat.exterior.coords, dtype=np.float64)[:-1]
