"""
Geographic Bounds and Planar Projection
=========================================

Convert (lon, lat) coordinates into a local planar frame in meters. The
frame is a UTM zone picked from the center of the bounds, translated so the
south-west corner of the bounds sits at the origin.

Points outside the bounds can't be represented; projecting one raises
:class:`OutOfBoundsError`, and the caller drops the feature.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from pyproj import Transformer

from roadgraph.utils.geometry import LonLat

# Slack (degrees) when checking whether a point is inside the bounds
BOUNDS_TOLERANCE_DEG = 1e-7


class OutOfBoundsError(ValueError):
    """A geographic point falls outside the map's GPS bounds."""


def utm_crs_for_lonlat(lon: float, lat: float) -> str:
    """Pick the local UTM EPSG code for a (lon, lat) in WGS84."""
    zone = int(math.floor((lon + 180.0) / 6.0) + 1)
    zone = min(max(zone, 1), 60)
    if lat >= 0:
        return f"EPSG:{32600 + zone}"
    return f"EPSG:{32700 + zone}"


@dataclass
class Bounds:
    """Planar bounding box in meters."""

    min_x: float = 0.0
    min_y: float = 0.0
    max_x: float = 0.0
    max_y: float = 0.0

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "min_x": float(self.min_x),
            "min_y": float(self.min_y),
            "max_x": float(self.max_x),
            "max_y": float(self.max_y),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Bounds":
        return cls(**{k: float(data[k]) for k in ("min_x", "min_y", "max_x", "max_y")})


class GPSBounds:
    """Geographic bounding box and projection into local planar meters.

    Args:
        min_lon: Western edge in degrees.
        min_lat: Southern edge in degrees.
        max_lon: Eastern edge in degrees.
        max_lat: Northern edge in degrees.

    Example::

        bounds = GPSBounds.from_points([(-122.30, 47.64), (-122.29, 47.65)])
        xy = bounds.to_planar(-122.295, 47.645)
    """

    def __init__(
        self,
        min_lon: float = math.inf,
        min_lat: float = math.inf,
        max_lon: float = -math.inf,
        max_lat: float = -math.inf,
    ):
        self.min_lon = min_lon
        self.min_lat = min_lat
        self.max_lon = max_lon
        self.max_lat = max_lat
        self._transformer: Optional[Transformer] = None
        self._origin: Optional[Tuple[float, float]] = None

    @classmethod
    def from_points(cls, points: Sequence[LonLat]) -> "GPSBounds":
        bounds = cls()
        for lon, lat in points:
            bounds.update(lon, lat)
        return bounds

    def update(self, lon: float, lat: float) -> None:
        """Grow the bounds to include a point."""
        self.min_lon = min(self.min_lon, lon)
        self.min_lat = min(self.min_lat, lat)
        self.max_lon = max(self.max_lon, lon)
        self.max_lat = max(self.max_lat, lat)
        # The projection depends on the extent.
        self._transformer = None
        self._origin = None

    @property
    def is_empty(self) -> bool:
        return self.min_lon > self.max_lon or self.min_lat > self.max_lat

    @property
    def center(self) -> LonLat:
        return ((self.min_lon + self.max_lon) / 2.0, (self.min_lat + self.max_lat) / 2.0)

    def contains(self, lon: float, lat: float) -> bool:
        return (
            self.min_lon - BOUNDS_TOLERANCE_DEG <= lon <= self.max_lon + BOUNDS_TOLERANCE_DEG
            and self.min_lat - BOUNDS_TOLERANCE_DEG <= lat <= self.max_lat + BOUNDS_TOLERANCE_DEG
        )

    def _ensure_projection(self) -> Transformer:
        if self.is_empty:
            raise ValueError("Can't project with empty GPS bounds")
        if self._transformer is None:
            crs = utm_crs_for_lonlat(*self.center)
            self._transformer = Transformer.from_crs("EPSG:4326", crs, always_xy=True)
            self._origin = self._transformer.transform(self.min_lon, self.min_lat)
        return self._transformer

    def to_planar(self, lon: float, lat: float) -> np.ndarray:
        """Project one point.

        Args:
            lon: Longitude in degrees.
            lat: Latitude in degrees.

        Returns:
            (2,) array of planar (x, y) meters.

        Raises:
            OutOfBoundsError: If the point is outside the bounds.
        """
        return self.to_planar_many([(lon, lat)])[0]

    def to_planar_many(self, points: Sequence[LonLat]) -> np.ndarray:
        """Project a sequence of points.

        Args:
            points: (lon, lat) points.

        Returns:
            (N, 2) array of planar meters.

        Raises:
            OutOfBoundsError: If any point is outside the bounds.
        """
        for lon, lat in points:
            if not self.contains(lon, lat):
                raise OutOfBoundsError(f"({lon}, {lat}) is outside {self}")
        transformer = self._ensure_projection()
        lons = np.array([p[0] for p in points], dtype=np.float64)
        lats = np.array([p[1] for p in points], dtype=np.float64)
        xs, ys = transformer.transform(lons, lats)
        return np.column_stack([xs - self._origin[0], ys - self._origin[1]])

    def to_bounds(self) -> Bounds:
        """Planar extent of the four corners."""
        corners = self.to_planar_many(
            [
                (self.min_lon, self.min_lat),
                (self.min_lon, self.max_lat),
                (self.max_lon, self.min_lat),
                (self.max_lon, self.max_lat),
            ]
        )
        return Bounds(
            min_x=float(corners[:, 0].min()),
            min_y=float(corners[:, 1].min()),
            max_x=float(corners[:, 0].max()),
            max_y=float(corners[:, 1].max()),
        )

    def __repr__(self) -> str:
        return (
            f"GPSBounds(lon=[{self.min_lon}, {self.max_lon}], "
            f"lat=[{self.min_lat}, {self.max_lat}])"
        )
