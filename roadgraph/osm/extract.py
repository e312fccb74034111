"""
Feature Extraction
====================

Drive classification and multipolygon assembly over a whole OSM document,
producing three flat collections: roads, buildings and areas.

Ways are classified first. Ways that aren't roads, buildings or areas are
remembered by ID, because multipolygon relations refer to them as members.
Relations are processed second; each area-like multipolygon relation becomes
zero or more areas, one per glued ring.

Example::

    from roadgraph.osm import OSMDocument, OSMExtractor

    doc = OSMDocument.from_xml("montlake.osm")
    features = OSMExtractor().extract(doc, boundary)
    print(len(features.roads), len(features.buildings), len(features.areas))
"""

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Sequence, Tuple

from tqdm import tqdm

from roadgraph.osm.classify import AreaType, FeatureCategory, FeatureClassifier
from roadgraph.osm.document import MemberKind, OSMDocument, RawRelation
from roadgraph.osm.multipolygon import ClosureStrategy, glue_multipolygon
from roadgraph.utils.geometry import LonLat

if TYPE_CHECKING:
    from roadgraph.core.ids import StableIntersectionID

logger = logging.getLogger(__name__)

# parking:lane:* values that mean there's a usable parking lane
PARKING_LANE_VALUES = frozenset({"parallel", "diagonal", "perpendicular", "marked", "inline"})


@dataclass
class RawRoad:
    """A road way, before it is split at intersections.

    Attributes:
        osm_way_id: Source way ID.
        points: Ordered (lon, lat) points.
        osm_tags: The way's tags.
        i1: First endpoint intersection, filled in when ways are split.
        i2: Last endpoint intersection, filled in when ways are split.
        parking_lane_fwd: Whether there's parking on the forward side.
        parking_lane_back: Whether there's parking on the backward side.
    """

    osm_way_id: int
    points: List[LonLat]
    osm_tags: Dict[str, str] = field(default_factory=dict)
    i1: Optional["StableIntersectionID"] = None
    i2: Optional["StableIntersectionID"] = None
    parking_lane_fwd: bool = False
    parking_lane_back: bool = False

    def segment(
        self,
        points: List[LonLat],
        i1: "StableIntersectionID",
        i2: "StableIntersectionID",
    ) -> "RawRoad":
        """Copy of this road restricted to ``points`` with endpoints set."""
        return replace(self, points=list(points), osm_tags=dict(self.osm_tags), i1=i1, i2=i2)


@dataclass
class RawBuilding:
    """A building footprint.

    Attributes:
        osm_way_id: Source way ID.
        points: Ring points, not necessarily closed.
        osm_tags: The way's tags.
        num_residential_units: From ``building:flats`` when it's a number.
    """

    osm_way_id: int
    points: List[LonLat]
    osm_tags: Dict[str, str] = field(default_factory=dict)
    num_residential_units: Optional[int] = None


@dataclass
class RawArea:
    """A park or water area.

    Attributes:
        area_type: PARK or WATER.
        osm_id: Source way ID, or relation ID for glued multipolygons.
        points: Closed ring points.
        osm_tags: Tags of the source way or relation.
    """

    area_type: AreaType
    osm_id: int
    points: List[LonLat]
    osm_tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class ExtractedFeatures:
    """Everything the extractor produces.

    Attributes:
        roads: Road ways, in way ID order.
        buildings: Buildings, in way ID order.
        areas: Areas from ways (way ID order), then from relations.
        num_failed_relations: Multipolygon relations that yielded nothing.
    """

    roads: List[RawRoad] = field(default_factory=list)
    buildings: List[RawBuilding] = field(default_factory=list)
    areas: List[RawArea] = field(default_factory=list)
    num_failed_relations: int = 0


def parking_flags(tags: Mapping[str, str]) -> Tuple[bool, bool]:
    """(forward, backward) parking-lane presence from ``parking:lane:*`` tags."""
    both = tags.get("parking:lane:both") in PARKING_LANE_VALUES
    fwd = both or tags.get("parking:lane:right") in PARKING_LANE_VALUES
    back = both or tags.get("parking:lane:left") in PARKING_LANE_VALUES
    return fwd, back


def residential_units(tags: Mapping[str, str]) -> Optional[int]:
    value = tags.get("building:flats", "").strip()
    if value.isdigit():
        return int(value)
    return None


class OSMExtractor:
    """Classify every way and relation of a document into flat feature lists.

    Args:
        classifier: Feature classifier. Defaults to the standard rules.
        closure_strategy: How clipped multipolygon rings get closed.
        verbose: Whether to show progress bars.
    """

    def __init__(
        self,
        classifier: Optional[FeatureClassifier] = None,
        closure_strategy: ClosureStrategy = ClosureStrategy.STRAIGHT,
        verbose: bool = True,
    ):
        self.classifier = classifier if classifier is not None else FeatureClassifier()
        self.closure_strategy = closure_strategy
        self.verbose = verbose

    def extract(
        self, doc: OSMDocument, boundary: Sequence[LonLat] = ()
    ) -> ExtractedFeatures:
        """Extract roads, buildings and areas from a document.

        Args:
            doc: Parsed OSM document.
            boundary: Region boundary polygon, for closing clipped rings.

        Returns:
            ExtractedFeatures, deterministically ordered by source ID.
        """
        features = ExtractedFeatures()
        id_to_way: Dict[int, List[LonLat]] = {}

        for way_id in tqdm(
            sorted(doc.ways), desc="processing OSM ways", disable=not self.verbose
        ):
            way = doc.ways[way_id]
            tags = dict(way.tags)
            pts = list(way.points)
            result = self.classifier.classify_full(tags)

            if result.category == FeatureCategory.ROAD:
                fwd, back = parking_flags(tags)
                features.roads.append(
                    RawRoad(
                        osm_way_id=way.id,
                        points=pts,
                        osm_tags=tags,
                        parking_lane_fwd=fwd,
                        parking_lane_back=back,
                    )
                )
            elif result.category == FeatureCategory.BUILDING:
                features.buildings.append(
                    RawBuilding(
                        osm_way_id=way.id,
                        points=pts,
                        osm_tags=tags,
                        num_residential_units=residential_units(tags),
                    )
                )
            elif result.category == FeatureCategory.AREA:
                features.areas.append(
                    RawArea(
                        area_type=result.area_type,
                        osm_id=way.id,
                        points=pts,
                        osm_tags=tags,
                    )
                )
            else:
                # The way might be part of a relation later.
                id_to_way[way.id] = pts

        for rel_id in tqdm(
            sorted(doc.relations),
            desc="processing OSM relations",
            disable=not self.verbose,
        ):
            rel = doc.relations[rel_id]
            result = self.classifier.classify_full(rel.tags)
            if result.category != FeatureCategory.AREA:
                continue
            if rel.tags.get("type") != "multipolygon":
                continue

            rings = self._assemble(rel, id_to_way, boundary)
            if not rings:
                features.num_failed_relations += 1
                continue
            for points in rings:
                features.areas.append(
                    RawArea(
                        area_type=result.area_type,
                        osm_id=rel.id,
                        points=points,
                        osm_tags=dict(rel.tags),
                    )
                )

        logger.info(
            "Extracted %d roads, %d buildings, %d areas",
            len(features.roads),
            len(features.buildings),
            len(features.areas),
        )
        return features

    def _assemble(
        self,
        rel: RawRelation,
        id_to_way: Dict[int, List[LonLat]],
        boundary: Sequence[LonLat],
    ) -> List[List[LonLat]]:
        """Resolve a multipolygon's outer members and glue them into rings."""
        fragments: List[List[LonLat]] = []
        ok = True
        for member in rel.members:
            if member.kind != MemberKind.WAY:
                logger.warning(
                    "Relation %d refers to %s %d, which isn't handled",
                    rel.id,
                    member.kind.value,
                    member.ref,
                )
                ok = False
                continue
            pts = id_to_way.get(member.ref)
            if pts is None:
                # Clipped out of the extract; that's fine.
                continue
            if member.role == "outer":
                fragments.append(pts)
            else:
                logger.info(
                    "Relation %d has unhandled member role %s, ignoring it",
                    rel.id,
                    member.role,
                )
        if not ok:
            return []

        rings = glue_multipolygon(fragments, boundary, self.closure_strategy)
        if not rings:
            logger.warning("Relation %d failed to glue multipolygon", rel.id)
        return rings
