"""
Build Configuration
=====================

Tunable knobs for map construction, with defaults matching the behavior
the rest of the package is tuned for. A config can be loaded from YAML::

    # roadgraph.yaml
    lane_width: 3.0
    excluded_highways: [footway, path, steps, cycleway]
    closure_strategy: boundary
    short_road_threshold: 8.0

    config = BuildConfig.from_yaml("roadgraph.yaml")
"""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, FrozenSet, Union

import yaml

from roadgraph.osm.classify import DEFAULT_EXCLUDED_HIGHWAYS
from roadgraph.osm.multipolygon import ClosureStrategy


@dataclass
class BuildConfig:
    """Map construction settings.

    Attributes:
        lane_width: Width of every lane in meters.
        excluded_highways: ``highway`` values that don't make a road.
        closure_strategy: How clipped multipolygon rings are closed.
        degenerate_half_length: How far (meters) roads are trimmed back at
            intersections where the sidelines don't meet, and half the
            length of a dead end's cap.
        anomaly_depth: Hop limit for reporting roads that cross a
            non-endpoint intersection.
        detect_anomalies: Whether to run the anomaly detector.
        merge_short_roads: Whether to run the short-road merger.
        short_road_threshold: Roads whose trimmed length is below this
            (meters) are merged away.
        verbose: Whether to show progress bars.
    """

    lane_width: float = 2.5
    excluded_highways: FrozenSet[str] = field(default=DEFAULT_EXCLUDED_HIGHWAYS)
    closure_strategy: ClosureStrategy = ClosureStrategy.STRAIGHT
    degenerate_half_length: float = 2.5
    anomaly_depth: int = 5
    detect_anomalies: bool = True
    merge_short_roads: bool = True
    short_road_threshold: float = 5.0
    verbose: bool = True

    def __post_init__(self):
        if self.lane_width <= 0:
            raise ValueError(f"lane_width must be positive, got {self.lane_width}")
        if self.degenerate_half_length <= 0:
            raise ValueError(
                f"degenerate_half_length must be positive, got {self.degenerate_half_length}"
            )
        if self.anomaly_depth < 1:
            raise ValueError(f"anomaly_depth must be at least 1, got {self.anomaly_depth}")
        if self.short_road_threshold < 0:
            raise ValueError(
                f"short_road_threshold can't be negative, got {self.short_road_threshold}"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildConfig":
        """Build a config from a plain dictionary.

        Args:
            data: Mapping of field name to value. Missing fields keep their
                defaults.

        Returns:
            BuildConfig.

        Raises:
            ValueError: On unknown keys or values of the wrong shape.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")

        kwargs = dict(data)
        if "excluded_highways" in kwargs:
            kwargs["excluded_highways"] = frozenset(str(v) for v in kwargs["excluded_highways"])
        if "closure_strategy" in kwargs:
            kwargs["closure_strategy"] = ClosureStrategy(kwargs["closure_strategy"])
        for key in ("lane_width", "degenerate_half_length", "short_road_threshold"):
            if key in kwargs:
                kwargs[key] = float(kwargs[key])
        if "anomaly_depth" in kwargs:
            kwargs["anomaly_depth"] = int(kwargs["anomaly_depth"])
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "BuildConfig":
        """Load a config from a YAML file.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the file isn't a mapping or has bad values.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a mapping, got {type(data).__name__}")
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a YAML/JSON-compatible dictionary."""
        data = asdict(self)
        data["excluded_highways"] = sorted(self.excluded_highways)
        data["closure_strategy"] = self.closure_strategy.value
        return data
