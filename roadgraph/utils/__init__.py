"""
Utility functions for roadgraph.
"""

from roadgraph.utils.geometry import (
    convex_hull,
    crosses_polygon,
    dedupe_polyline,
    first_hit,
    gps_dist_meters,
    gps_path_length,
    normalize_angle,
    point_along,
    polygon_area,
    polygon_covers,
    polyline_angle,
    polyline_length,
    polyline_slice,
    shift_polyline,
)

__all__ = [
    "convex_hull",
    "crosses_polygon",
    "dedupe_polyline",
    "first_hit",
    "gps_dist_meters",
    "gps_path_length",
    "normalize_angle",
    "point_along",
    "polygon_area",
    "polygon_covers",
    "polyline_angle",
    "polyline_length",
    "polyline_slice",
    "shift_polyline",
]
