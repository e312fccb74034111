"""
OSM Document Parsing
======================

Parse an OpenStreetMap XML extract into raw, immutable ways and relations,
and load region boundary polygons.

Node references are resolved once the whole document has been read. A way
that refers to any node missing from the extract is invalid and is dropped
entirely; it is never partially used.

Example::

    from roadgraph.osm import OSMDocument, load_boundary_polygon

    doc = OSMDocument.from_xml("montlake.osm")
    boundary = load_boundary_polygon("montlake.poly")
    print(f"{len(doc.ways)} ways, {len(doc.relations)} relations")
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import IO, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from roadgraph.utils.geometry import LonLat

logger = logging.getLogger(__name__)


class MemberKind(Enum):
    """What a relation member refers to."""

    NODE = "node"
    WAY = "way"
    RELATION = "relation"


@dataclass(frozen=True)
class RelationMember:
    """One (reference, role) entry of a relation.

    Attributes:
        kind: Type of the referenced element.
        ref: OSM ID of the referenced element.
        role: Free-form role label, e.g. ``"outer"``.
    """

    kind: MemberKind
    ref: int
    role: str = ""


@dataclass(frozen=True)
class RawWay:
    """A way with all node references resolved to coordinates.

    Attributes:
        id: OSM way ID.
        points: Ordered (lon, lat) points.
        tags: Key/value tags.
        node_ids: OSM node IDs, parallel to ``points``.
    """

    id: int
    points: Tuple[LonLat, ...]
    tags: Mapping[str, str] = field(default_factory=dict)
    node_ids: Tuple[int, ...] = ()


@dataclass(frozen=True)
class RawRelation:
    """A relation: tagged, ordered list of members.

    Attributes:
        id: OSM relation ID.
        members: Ordered members.
        tags: Key/value tags.
    """

    id: int
    members: Tuple[RelationMember, ...]
    tags: Mapping[str, str] = field(default_factory=dict)


@dataclass
class OSMDocument:
    """A parsed OSM extract.

    Attributes:
        nodes: Node ID -> (lon, lat).
        ways: Way ID -> RawWay, only ways whose nodes all resolved.
        relations: Relation ID -> RawRelation.
        bounds: (min_lon, min_lat, max_lon, max_lat), from the ``<bounds>``
            element when present, otherwise the extent of all nodes.
        num_invalid_ways: Ways dropped because of unresolved node references.
    """

    nodes: Dict[int, LonLat] = field(default_factory=dict)
    ways: Dict[int, RawWay] = field(default_factory=dict)
    relations: Dict[int, RawRelation] = field(default_factory=dict)
    bounds: Optional[Tuple[float, float, float, float]] = None
    num_invalid_ways: int = 0

    @classmethod
    def from_xml(cls, source: Union[str, Path, IO]) -> "OSMDocument":
        """Parse an OSM XML file.

        Args:
            source: Path to a ``.osm`` file, or an open binary file object.

        Returns:
            OSMDocument with resolved ways.

        Raises:
            FileNotFoundError: If the path does not exist.
            xml.etree.ElementTree.ParseError: If the XML is malformed.
        """
        if isinstance(source, (str, Path)):
            source = Path(source)
            if not source.exists():
                raise FileNotFoundError(f"OSM file not found: {source}")
            source = str(source)

        nodes: Dict[int, LonLat] = {}
        ways: Dict[int, Tuple[List[int], Dict[str, str]]] = {}
        relations: Dict[int, Tuple[List[Tuple[str, int, str]], Dict[str, str]]] = {}
        bounds = None

        for _, elem in ET.iterparse(source, events=("end",)):
            if elem.tag == "node":
                nodes[int(elem.attrib["id"])] = (
                    float(elem.attrib["lon"]),
                    float(elem.attrib["lat"]),
                )
                elem.clear()
            elif elem.tag == "way":
                refs = [int(nd.attrib["ref"]) for nd in elem.findall("nd")]
                ways[int(elem.attrib["id"])] = (refs, _parse_tags(elem))
                elem.clear()
            elif elem.tag == "relation":
                members = [
                    (m.attrib["type"], int(m.attrib["ref"]), m.attrib.get("role", ""))
                    for m in elem.findall("member")
                ]
                relations[int(elem.attrib["id"])] = (members, _parse_tags(elem))
                elem.clear()
            elif elem.tag == "bounds":
                bounds = (
                    float(elem.attrib["minlon"]),
                    float(elem.attrib["minlat"]),
                    float(elem.attrib["maxlon"]),
                    float(elem.attrib["maxlat"]),
                )

        doc = cls.from_elements(nodes, ways, relations, bounds=bounds)
        logger.info(
            "OSM doc has %d nodes, %d ways, %d relations",
            len(doc.nodes),
            len(doc.ways) + doc.num_invalid_ways,
            len(doc.relations),
        )
        return doc

    @classmethod
    def from_elements(
        cls,
        nodes: Mapping[int, LonLat],
        ways: Mapping[int, Tuple[Sequence[int], Mapping[str, str]]],
        relations: Optional[
            Mapping[int, Tuple[Sequence[Tuple[str, int, str]], Mapping[str, str]]]
        ] = None,
        bounds: Optional[Tuple[float, float, float, float]] = None,
    ) -> "OSMDocument":
        """Build a document from plain Python data.

        Args:
            nodes: Node ID -> (lon, lat).
            ways: Way ID -> (node ID list, tags).
            relations: Relation ID -> (list of (kind, ref, role), tags).
                ``kind`` is one of "node", "way", "relation".
            bounds: Optional explicit (min_lon, min_lat, max_lon, max_lat).

        Returns:
            OSMDocument. Ways with unresolvable node references are dropped.

        Raises:
            ValueError: If a relation member has an unknown kind.
        """
        doc = cls(nodes=dict(nodes), bounds=bounds)

        for way_id in sorted(ways):
            refs, tags = ways[way_id]
            if any(ref not in doc.nodes for ref in refs) or len(refs) < 2:
                doc.num_invalid_ways += 1
                logger.debug("Way %d has unresolved or too few nodes, dropping it", way_id)
                continue
            doc.ways[way_id] = RawWay(
                id=way_id,
                points=tuple(doc.nodes[ref] for ref in refs),
                tags=dict(tags),
                node_ids=tuple(refs),
            )

        for rel_id in sorted(relations or {}):
            members, tags = relations[rel_id]
            try:
                parsed = tuple(
                    RelationMember(kind=MemberKind(kind), ref=int(ref), role=role)
                    for kind, ref, role in members
                )
            except ValueError as e:
                raise ValueError(f"Relation {rel_id} has a malformed member: {e}") from e
            doc.relations[rel_id] = RawRelation(id=rel_id, members=parsed, tags=dict(tags))

        if doc.bounds is None and doc.nodes:
            lons = [pt[0] for pt in doc.nodes.values()]
            lats = [pt[1] for pt in doc.nodes.values()]
            doc.bounds = (min(lons), min(lats), max(lons), max(lats))

        return doc


def _parse_tags(elem: ET.Element) -> Dict[str, str]:
    return {t.attrib["k"]: t.attrib.get("v", "") for t in elem.findall("tag")}


def load_boundary_polygon(path: Union[str, Path]) -> List[LonLat]:
    """Load the first outer ring of an Osmosis ``.poly`` file.

    The format is a name line, then one or more rings, each introduced by a
    ring name (``!``-prefixed for holes) and terminated by ``END``, then a
    final ``END``. Holes are skipped.

    Args:
        path: Path to the ``.poly`` file.

    Returns:
        Ring as a list of (lon, lat) points.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file contains no usable ring or a bad coordinate.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Boundary polygon not found: {path}")

    lines = [line.strip() for line in path.read_text().splitlines()]
    lines = [line for line in lines if line]
    ring: List[LonLat] = []
    in_ring = False
    skipping_hole = False

    # First line is the polygon's name.
    for lineno, line in enumerate(lines[1:], start=2):
        if not in_ring:
            if line == "END":
                break
            in_ring = True
            skipping_hole = line.startswith("!")
            continue
        if line == "END":
            if ring and not skipping_hole:
                return ring
            in_ring = False
            continue
        if skipping_hole:
            continue
        parts = line.split()
        if len(parts) != 2:
            raise ValueError(f"{path}:{lineno}: expected 'lon lat', got {line!r}")
        try:
            ring.append((float(parts[0]), float(parts[1])))
        except ValueError as e:
            raise ValueError(f"{path}:{lineno}: bad coordinate {line!r}") from e

    if not ring:
        raise ValueError(f"{path} contains no polygon ring")
    return ring
