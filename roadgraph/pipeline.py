"""
OSM to Road Graph Pipeline
============================

One call from an OSM extract to a finished :class:`InitialMap`:

    parse -> extract features -> split ways -> build graph
    -> synthesize polygons -> flag anomalies -> merge short roads

Example::

    from roadgraph.pipeline import convert_osm

    m = convert_osm("montlake.osm", boundary="montlake.poly")
    m.save("initial_maps")
"""

import logging
from pathlib import Path
from typing import Optional, Sequence, Union

from roadgraph.config import BuildConfig
from roadgraph.core.initial_map import InitialMap
from roadgraph.core.lane_specs import LaneLayout, MapEdits, get_lane_specs
from roadgraph.core.raw_map import RawMap, split_ways
from roadgraph.osm.classify import FeatureClassifier
from roadgraph.osm.document import OSMDocument, load_boundary_polygon
from roadgraph.osm.extract import OSMExtractor
from roadgraph.utils.geometry import LonLat

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def load_raw_map(
    osm: Union[PathLike, OSMDocument],
    boundary: Union[PathLike, Sequence[LonLat], None] = None,
    name: Optional[str] = None,
    config: Optional[BuildConfig] = None,
) -> RawMap:
    """Parse and extract an OSM extract into a :class:`RawMap`.

    Args:
        osm: Path to an ``.osm`` file, or an already parsed document.
        boundary: ``.poly`` file path or (lon, lat) ring. Optional.
        name: Map name. Defaults to the OSM file's stem, or ``"map"``.
        config: Build settings.

    Returns:
        RawMap with roads split at intersections.
    """
    config = config if config is not None else BuildConfig()

    if isinstance(osm, OSMDocument):
        doc = osm
        default_name = "map"
    else:
        doc = OSMDocument.from_xml(osm)
        default_name = Path(osm).stem

    if boundary is None:
        boundary_pts: Sequence[LonLat] = []
    elif isinstance(boundary, (str, Path)):
        boundary_pts = load_boundary_polygon(boundary)
    else:
        boundary_pts = list(boundary)

    extractor = OSMExtractor(
        classifier=FeatureClassifier(excluded_highways=config.excluded_highways),
        closure_strategy=config.closure_strategy,
        verbose=config.verbose,
    )
    features = extractor.extract(doc, boundary_pts)
    return split_ways(name or default_name, features, boundary_pts)


def convert_osm(
    osm: Union[PathLike, OSMDocument],
    boundary: Union[PathLike, Sequence[LonLat], None] = None,
    name: Optional[str] = None,
    config: Optional[BuildConfig] = None,
    edits: Optional[MapEdits] = None,
    lane_layout: LaneLayout = get_lane_specs,
) -> InitialMap:
    """Run the full pipeline.

    Args:
        osm: Path to an ``.osm`` file, or an already parsed document.
        boundary: ``.poly`` file path or (lon, lat) ring. Optional.
        name: Map name. Defaults to the OSM file's stem.
        config: Build settings.
        edits: Lane overrides.
        lane_layout: Lane policy.

    Returns:
        The finished InitialMap.

    Raises:
        FileNotFoundError: If an input file is missing.
        GraphInvariantError: If construction leaves the graph inconsistent.
    """
    config = config if config is not None else BuildConfig()
    raw = load_raw_map(osm, boundary, name, config)
    m = InitialMap.from_raw_map(raw, edits=edits, config=config, lane_layout=lane_layout)
    logger.info("Finished %r", m)
    return m
