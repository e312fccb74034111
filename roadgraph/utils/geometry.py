"""
Geometric Utility Functions
=============================

Common geometric operations used throughout roadgraph: great-circle
distances for raw (lon, lat) data, and planar polyline/polygon operations
for the road graph (lengths, angles, slicing, shifting, intersections and
containment).

Planar polylines are ``(N, 2)`` numpy arrays in metres. Geographic points
are ``(lon, lat)`` tuples in degrees.
"""

import math
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import ConvexHull, QhullError
from shapely.geometry import LineString, Point, Polygon
from shapely.ops import substring

LonLat = Tuple[float, float]

EARTH_RADIUS_M = 6_371_000.0

# Below this, two planar points are considered the same.
EPSILON_DIST = 0.01


def normalize_angle(angle_deg: float) -> float:
    """Normalize angle to [0, 360) degrees.

    Args:
        angle_deg: Angle in degrees (any range).

    Returns:
        Equivalent angle in [0, 360).
    """
    angle = angle_deg % 360.0
    if angle < 0.0:
        angle += 360.0
    return angle


def gps_dist_meters(a: LonLat, b: LonLat) -> float:
    """Great-circle (haversine) distance between two (lon, lat) points.

    Args:
        a: First point as (lon, lat) in degrees.
        b: Second point as (lon, lat) in degrees.

    Returns:
        Distance in meters.
    """
    lon1, lat1 = math.radians(a[0]), math.radians(a[1])
    lon2, lat2 = math.radians(b[0]), math.radians(b[1])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = (
        math.sin(dlat / 2.0) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2.0) ** 2
    )
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def gps_path_length(points: Sequence[LonLat]) -> float:
    """Total great-circle length of a sequence of (lon, lat) points."""
    return sum(gps_dist_meters(a, b) for a, b in zip(points, points[1:]))


def polyline_length(polyline: np.ndarray) -> float:
    """Compute total arc length of a 2D polyline.

    Args:
        polyline: (N, 2) array of points.

    Returns:
        Total length. Returns 0.0 if fewer than 2 points.
    """
    if len(polyline) < 2:
        return 0.0
    diffs = np.diff(polyline, axis=0)
    return float(np.sum(np.sqrt(np.sum(diffs**2, axis=1))))


def polyline_angle(polyline: np.ndarray) -> float:
    """Direction of the first non-degenerate segment, in degrees [0, 360)."""
    start = polyline[0]
    for pt in polyline[1:]:
        vec = pt - start
        if np.hypot(vec[0], vec[1]) > EPSILON_DIST:
            return normalize_angle(float(np.degrees(np.arctan2(vec[1], vec[0]))))
    return 0.0


def dedupe_polyline(polyline: np.ndarray, eps: float = EPSILON_DIST) -> np.ndarray:
    """Drop consecutive points closer than ``eps`` to their predecessor.

    The last point is always kept, replacing its predecessor if needed, so
    the polyline still ends where it used to.
    """
    pts = np.asarray(polyline, dtype=np.float64)
    if len(pts) < 2:
        return pts.copy()
    kept = [pts[0]]
    for pt in pts[1:]:
        if np.hypot(*(pt - kept[-1])) > eps:
            kept.append(pt)
    if np.hypot(*(pts[-1] - kept[-1])) > 0.0:
        if len(kept) > 1:
            kept[-1] = pts[-1]
        else:
            kept.append(pts[-1])
    return np.array(kept)


def _line_line_intersection(
    p1: np.ndarray, p2: np.ndarray, p3: np.ndarray, p4: np.ndarray
) -> Optional[np.ndarray]:
    """Intersection of the infinite lines through (p1, p2) and (p3, p4)."""
    d1 = p2 - p1
    d2 = p4 - p3
    denom = d1[0] * d2[1] - d1[1] * d2[0]
    if abs(denom) < 1e-9:
        return None
    t = ((p3[0] - p1[0]) * d2[1] - (p3[1] - p1[1]) * d2[0]) / denom
    return p1 + t * d1


def shift_polyline(polyline: np.ndarray, distance: float) -> np.ndarray:
    """Offset a polyline sideways.

    Each segment is moved along its normal and consecutive shifted segments
    are joined at their (mitred) intersection. Very sharp corners, where the
    mitre would shoot far away, are joined at the midpoint instead.

    Args:
        polyline: (N, 2) array of points, N >= 2.
        distance: Offset in meters. Positive shifts to the left of the
            direction of travel, negative to the right.

    Returns:
        (N, 2) array of shifted points.
    """
    pts = np.asarray(polyline, dtype=np.float64)
    if len(pts) < 2 or distance == 0.0:
        return pts.copy()

    seg = np.diff(pts, axis=0)
    lengths = np.maximum(np.hypot(seg[:, 0], seg[:, 1]), 1e-12)
    normals = np.column_stack([-seg[:, 1], seg[:, 0]]) / lengths[:, None]
    starts = pts[:-1] + normals * distance
    ends = pts[1:] + normals * distance

    result = [starts[0]]
    max_miter = 3.0 * abs(distance)
    for i in range(1, len(seg)):
        hit = _line_line_intersection(starts[i - 1], ends[i - 1], starts[i], ends[i])
        if hit is None or np.hypot(*(hit - pts[i])) > max_miter:
            hit = (ends[i - 1] + starts[i]) / 2.0
        result.append(hit)
    result.append(ends[-1])
    return np.array(result)


def polyline_slice(polyline: np.ndarray, start: float, end: float) -> np.ndarray:
    """Sub-polyline between two distances measured along the polyline.

    Args:
        polyline: (N, 2) array of points.
        start: Start distance from the first point (meters).
        end: End distance from the first point (meters).

    Returns:
        (M, 2) array. Raises ValueError if the slice would be degenerate.
    """
    length = polyline_length(polyline)
    start = max(0.0, start)
    end = min(length, end)
    if end - start <= 0.0:
        raise ValueError(
            f"Can't slice [{start:.3f}, {end:.3f}] of a polyline of length {length:.3f}"
        )
    if start == 0.0 and end == length:
        return np.asarray(polyline, dtype=np.float64).copy()
    sub = substring(LineString(polyline), start, end)
    return np.asarray(sub.coords, dtype=np.float64)


def point_along(polyline: np.ndarray, dist: float) -> np.ndarray:
    """Point at ``dist`` meters along a polyline (clamped to its ends)."""
    pt = LineString(polyline).interpolate(dist)
    return np.array([pt.x, pt.y])


def direction_at(polyline: np.ndarray, dist: float) -> np.ndarray:
    """Unit tangent of a polyline at ``dist`` meters along it."""
    line = LineString(polyline)
    length = line.length
    step = min(0.5, max(length / 10.0, 1e-6))
    a = line.interpolate(max(0.0, dist - step))
    b = line.interpolate(min(length, dist + step))
    vec = np.array([b.x - a.x, b.y - a.y])
    norm = np.hypot(vec[0], vec[1])
    if norm < 1e-12:
        seg = polyline[-1] - polyline[0]
        norm = max(np.hypot(seg[0], seg[1]), 1e-12)
        return seg / norm
    return vec / norm


def first_hit(line_a: np.ndarray, line_b: np.ndarray) -> Optional[np.ndarray]:
    """Intersection of two polylines nearest to the start of ``line_a``.

    Args:
        line_a: (N, 2) polyline whose start is the reference.
        line_b: (M, 2) polyline.

    Returns:
        (2,) hit point, or None if the polylines don't intersect.
    """
    a = LineString(line_a)
    hits = a.intersection(LineString(line_b))
    if hits.is_empty:
        return None
    if hasattr(hits, "geoms"):
        candidates = []
        for geom in hits.geoms:
            candidates.extend(geom.coords)
    else:
        candidates = list(hits.coords)
    if not candidates:
        return None
    best = min(candidates, key=lambda c: a.project(Point(c)))
    return np.array(best, dtype=np.float64)


def polygon_area(points: Sequence) -> float:
    """Unsigned area of a polygon ring (shoelace formula).

    Args:
        points: (N, 2) ring, closed or open.

    Returns:
        Area in square units. 0.0 for fewer than 3 points.
    """
    pts = np.asarray(points, dtype=np.float64)
    if len(pts) < 3:
        return 0.0
    x = pts[:, 0]
    y = pts[:, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))) / 2.0)


def convex_hull(points: Sequence) -> np.ndarray:
    """Counter-clockwise convex hull of a point set.

    Args:
        points: (N, 2) points.

    Returns:
        (M, 2) hull vertices. Degenerate (collinear or tiny) inputs return
        the input points unchanged.
    """
    pts = np.asarray(points, dtype=np.float64)
    if len(pts) < 3:
        return pts.copy()
    try:
        hull = ConvexHull(pts)
    except QhullError:
        return pts.copy()
    return pts[hull.vertices]


def crosses_polygon(polyline: np.ndarray, polygon: Sequence) -> bool:
    """Whether a polyline passes through a polygon's boundary into its interior.

    A polyline lying entirely inside the polygon, or only touching its
    boundary, does not cross it.
    """
    if len(polygon) < 3 or len(polyline) < 2:
        return False
    poly = Polygon(polygon)
    if not poly.is_valid:
        poly = poly.buffer(0)
    return LineString(polyline).crosses(poly)


def polygon_covers(polygon: Sequence, point: Sequence[float], tolerance: float = EPSILON_DIST) -> bool:
    """Whether a point is inside or on the boundary of a polygon ring."""
    if len(polygon) < 3:
        return False
    poly = Polygon(polygon)
    if not poly.is_valid:
        poly = poly.buffer(0)
    return poly.buffer(tolerance).covers(Point(point[0], point[1]))


def ring_to_list(points: Sequence) -> List[Tuple[float, float]]:
    """Convert a (N, 2) array into a JSON-friendly list of (x, y) tuples."""
    return [(float(p[0]), float(p[1])) for p in points]
