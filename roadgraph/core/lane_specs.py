"""
Lane Layout
=============

Turn a road's OSM tags into an ordered list of lanes. This is the default
lane-layout policy; the graph builder accepts any callable with the same
signature.

Lanes are listed forward side first (center outwards: driving, bus, bike,
parking, sidewalk), then the backward side in the same order with
``reverse_pts`` set. Forward means the direction the way was digitized in.

The policy is total: unrecognized or missing tags give one driving lane in
each direction (one for one-ways) plus sidewalks.

Example::

    specs = get_lane_specs(raw_road, StableRoadID(3), MapEdits())
    fwd = [s for s in specs if not s.reverse_pts]
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Tuple

from roadgraph.core.ids import StableRoadID
from roadgraph.osm.extract import RawRoad

ONEWAY_VALUES = frozenset({"yes", "true", "1"})
NO_SIDEWALK_HIGHWAYS = frozenset({"motorway", "motorway_link", "trunk_link"})
BIKE_LANE_VALUES = frozenset({"lane", "track", "shared_lane"})


class LaneType(Enum):
    DRIVING = "driving"
    PARKING = "parking"
    SIDEWALK = "sidewalk"
    BIKING = "biking"
    BUS = "bus"


@dataclass(frozen=True)
class LaneSpec:
    """One lane of a road.

    Attributes:
        lane_type: What the lane is for.
        reverse_pts: True for lanes running against the digitization
            direction (the backward side).
    """

    lane_type: LaneType
    reverse_pts: bool

    def to_dict(self) -> dict:
        return {"lane_type": self.lane_type.value, "reverse_pts": bool(self.reverse_pts)}

    @classmethod
    def from_dict(cls, data: dict) -> "LaneSpec":
        return cls(lane_type=LaneType(data["lane_type"]), reverse_pts=bool(data["reverse_pts"]))


@dataclass
class MapEdits:
    """User overrides applied on top of the tag-derived lane layout.

    Attributes:
        lane_overrides: Road ID -> {lane index: replacement lane type}.
    """

    lane_overrides: Dict[StableRoadID, Dict[int, LaneType]] = field(default_factory=dict)


LaneLayout = Callable[[RawRoad, StableRoadID, MapEdits], List[LaneSpec]]


def _parse_count(value: str, default: int) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return default


def is_oneway(tags: Mapping[str, str]) -> Tuple[bool, bool]:
    """(one-way, one-way against the digitization direction)."""
    value = tags.get("oneway", "")
    if value == "-1":
        return True, True
    if value == "no":
        return False, False
    oneway = (
        value in ONEWAY_VALUES
        or tags.get("junction") == "roundabout"
        or tags.get("highway") == "motorway"
    )
    return oneway, False


def driving_lane_counts(tags: Mapping[str, str], oneway: bool) -> Tuple[int, int]:
    """Number of (forward, backward) driving lanes, at least one forward."""
    if oneway:
        total = _parse_count(tags.get("lanes"), 1)
        return max(1, total), 0

    if "lanes:forward" in tags or "lanes:backward" in tags:
        fwd = _parse_count(tags.get("lanes:forward"), 1)
        back = _parse_count(tags.get("lanes:backward"), 1)
        return max(1, fwd), back

    total = _parse_count(tags.get("lanes"), 2)
    if total <= 1:
        return 1, 1
    fwd = int(math.ceil(total / 2.0))
    return fwd, max(1, total - fwd)


def _side_has(tags: Mapping[str, str], key: str, values, side: str) -> bool:
    return tags.get(key) in values or tags.get(f"{key}:both") in values or tags.get(
        f"{key}:{side}"
    ) in values


def get_lane_specs(
    road: RawRoad, road_id: StableRoadID, edits: MapEdits
) -> List[LaneSpec]:
    """Derive the ordered lane list of a road from its tags.

    Args:
        road: The road segment.
        road_id: Its stable ID, used to look up edits.
        edits: Lane type overrides.

    Returns:
        Forward lanes then backward lanes. Never empty.
    """
    tags = road.osm_tags
    highway = tags.get("highway", "")
    oneway, backwards = is_oneway(tags)
    num_fwd, num_back = driving_lane_counts(tags, oneway)
    if backwards:
        # oneway=-1: traffic runs against the digitization direction.
        num_fwd, num_back = num_back, num_fwd

    # "right" and "left" are relative to the digitization direction.
    fwd_side: List[LaneType] = [LaneType.DRIVING] * num_fwd
    back_side: List[LaneType] = [LaneType.DRIVING] * num_back

    if num_fwd and _side_has(tags, "busway", {"lane"}, "right"):
        fwd_side.append(LaneType.BUS)
    if num_back and _side_has(tags, "busway", {"lane"}, "left"):
        back_side.append(LaneType.BUS)

    if _side_has(tags, "cycleway", BIKE_LANE_VALUES, "right"):
        fwd_side.append(LaneType.BIKING)
    if tags.get("cycleway:left") in BIKE_LANE_VALUES or (
        num_back and _side_has(tags, "cycleway", BIKE_LANE_VALUES, "left")
    ):
        back_side.append(LaneType.BIKING)

    if highway not in NO_SIDEWALK_HIGHWAYS:
        if road.parking_lane_fwd:
            fwd_side.append(LaneType.PARKING)
        if road.parking_lane_back:
            back_side.append(LaneType.PARKING)

        sidewalk = tags.get("sidewalk", "both")
        if sidewalk in ("both", "right", "yes", "separate"):
            fwd_side.append(LaneType.SIDEWALK)
        if sidewalk in ("both", "left", "yes", "separate"):
            back_side.append(LaneType.SIDEWALK)

    specs = [LaneSpec(t, False) for t in fwd_side] + [LaneSpec(t, True) for t in back_side]

    for idx, lane_type in sorted(edits.lane_overrides.get(road_id, {}).items()):
        if 0 <= idx < len(specs):
            specs[idx] = LaneSpec(lane_type, specs[idx].reverse_pts)

    return specs
