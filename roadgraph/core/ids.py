"""
Stable Identifiers
====================

Opaque, ordered integer handles for intersections and roads. Entities only
ever refer to each other through these IDs, looked up in the owning map's
tables.

IDs come from an :class:`IDAllocator`, whose counters only move forward, so
an ID is never handed out twice in one construction run. IDs retired by
merges are remembered so they can't sneak back in through deserialization.
"""

from dataclasses import dataclass, field
from typing import Set


@dataclass(frozen=True, order=True)
class StableIntersectionID:
    """Handle for an intersection."""

    value: int

    def __str__(self) -> str:
        return f"i{self.value}"


@dataclass(frozen=True, order=True)
class StableRoadID:
    """Handle for a road."""

    value: int

    def __str__(self) -> str:
        return f"r{self.value}"


@dataclass
class IDAllocator:
    """Hand out never-reused stable IDs.

    Attributes:
        next_intersection: Next intersection ID value to allocate.
        next_road: Next road ID value to allocate.
        retired_intersections: Intersection IDs removed by merges.
        retired_roads: Road IDs removed by merges.
    """

    next_intersection: int = 0
    next_road: int = 0
    retired_intersections: Set[StableIntersectionID] = field(default_factory=set)
    retired_roads: Set[StableRoadID] = field(default_factory=set)

    def intersection(self) -> StableIntersectionID:
        i = StableIntersectionID(self.next_intersection)
        self.next_intersection += 1
        return i

    def road(self) -> StableRoadID:
        r = StableRoadID(self.next_road)
        self.next_road += 1
        return r

    def retire_intersection(self, i: StableIntersectionID) -> None:
        self.retired_intersections.add(i)

    def retire_road(self, r: StableRoadID) -> None:
        self.retired_roads.add(r)

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "next_intersection": self.next_intersection,
            "next_road": self.next_road,
            "retired_intersections": sorted(i.value for i in self.retired_intersections),
            "retired_roads": sorted(r.value for r in self.retired_roads),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IDAllocator":
        return cls(
            next_intersection=int(data["next_intersection"]),
            next_road=int(data["next_road"]),
            retired_intersections={
                StableIntersectionID(v) for v in data.get("retired_intersections", [])
            },
            retired_roads={StableRoadID(v) for v in data.get("retired_roads", [])},
        )
