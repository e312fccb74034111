"""
Feature Classification
========================

Decide what a tagged OSM way or relation represents: a drivable road, a
building, a park/water area, or nothing we model.

Raw tags are only ever inspected here. Everything downstream works with the
:class:`FeatureCategory` and :class:`AreaType` produced by the classifier.

Rules, in priority order:
    1. Road: ``highway`` present and not one of the excluded values
    2. Building: ``building`` present (any value)
    3. Area: park-like or water tags (see :data:`AREA_RULES`)
    4. Unclassified

Example::

    from roadgraph.osm.classify import FeatureClassifier, FeatureCategory

    classifier = FeatureClassifier()
    classifier.classify({"highway": "residential"})  # FeatureCategory.ROAD
    classifier.classify({"highway": "footway"})      # FeatureCategory.UNCLASSIFIED
"""

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Mapping, Optional, Tuple


class FeatureCategory(Enum):
    """Mutually exclusive classification of a tagged feature."""

    ROAD = "road"
    BUILDING = "building"
    AREA = "area"
    UNCLASSIFIED = "unclassified"


class AreaType(Enum):
    """Kinds of area we draw."""

    PARK = "park"
    WATER = "water"


# Non-drivable or speculative highway values, from
# https://wiki.openstreetmap.org/wiki/Key:highway plus a few found in the wild.
# "service" covers alleys and parking aisles.
DEFAULT_EXCLUDED_HIGHWAYS: FrozenSet[str] = frozenset(
    {
        "footway",
        "living_street",
        "pedestrian",
        "track",
        "bus_guideway",
        "escape",
        "raceway",
        "bridleway",
        "steps",
        "path",
        "cycleway",
        "proposed",
        "construction",
        "service",
        "abandoned",
        "elevator",
        "planned",
        "razed",
    }
)

# (key, value, area type), checked in order; first match wins.
AREA_RULES: Tuple[Tuple[str, str, AreaType], ...] = (
    ("leisure", "park", AreaType.PARK),
    ("leisure", "golf_course", AreaType.PARK),
    ("natural", "wood", AreaType.PARK),
    ("landuse", "cemetery", AreaType.PARK),
    ("natural", "water", AreaType.WATER),
)


@dataclass(frozen=True)
class Classification:
    """Result of classifying one feature.

    Attributes:
        category: The feature's category.
        area_type: Set only when ``category`` is AREA.
    """

    category: FeatureCategory
    area_type: Optional[AreaType] = None


class FeatureClassifier:
    """Classify tag mappings into feature categories.

    Args:
        excluded_highways: ``highway`` values that do not make a road.
            Defaults to :data:`DEFAULT_EXCLUDED_HIGHWAYS`.
    """

    def __init__(self, excluded_highways: Optional[Iterable[str]] = None):
        if excluded_highways is None:
            excluded_highways = DEFAULT_EXCLUDED_HIGHWAYS
        self.excluded_highways = frozenset(excluded_highways)

    def classify(self, tags: Mapping[str, str]) -> FeatureCategory:
        """Classify a feature by its tags. Total: never raises."""
        return self.classify_full(tags).category

    def classify_full(self, tags: Mapping[str, str]) -> Classification:
        """Classify a feature, also returning the area type for areas.

        Args:
            tags: The feature's key/value tags.

        Returns:
            Classification with the category and, for areas, the area type.
        """
        if self.is_road(tags):
            return Classification(FeatureCategory.ROAD)
        if self.is_building(tags):
            return Classification(FeatureCategory.BUILDING)
        area_type = self.area_type(tags)
        if area_type is not None:
            return Classification(FeatureCategory.AREA, area_type)
        return Classification(FeatureCategory.UNCLASSIFIED)

    def is_road(self, tags: Mapping[str, str]) -> bool:
        if "highway" not in tags:
            return False
        return tags["highway"] not in self.excluded_highways

    @staticmethod
    def is_building(tags: Mapping[str, str]) -> bool:
        return "building" in tags

    @staticmethod
    def area_type(tags: Mapping[str, str]) -> Optional[AreaType]:
        for key, value, area_type in AREA_RULES:
            if tags.get(key) == value:
                return area_type
        return None


def classify_tags(tags: Mapping[str, str]) -> FeatureCategory:
    """Classify with the default exclusion set."""
    return FeatureClassifier().classify(tags)
