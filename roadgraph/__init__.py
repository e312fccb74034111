"""
RoadGraph: Planar Road Graphs from OpenStreetMap
==================================================

RoadGraph turns an OpenStreetMap extract into a planar road graph ready for
lane-level geometry: intersections joined by roads, each road with a lane
layout, widths and a centerline trimmed back to its intersection polygons.

Key capabilities:
    - OSM XML parsing and feature classification (roads, buildings, areas)
    - Multipolygon assembly from relation fragments
    - Way splitting at shared nodes with stable IDs
    - Intersection polygon synthesis and road trimming
    - Suspicious crossing detection and short road merging

Quick start::

    from roadgraph import convert_osm

    m = convert_osm("montlake.osm", boundary="montlake.poly")
    print(m.intersections.keys(), m.roads.keys())
    m.save("initial_maps")
"""

__version__ = "0.1.0"

from roadgraph.config import BuildConfig
from roadgraph.core.initial_map import GraphInvariantError, InitialMap
from roadgraph.osm.document import OSMDocument
from roadgraph.pipeline import convert_osm, load_raw_map

__all__ = [
    "BuildConfig",
    "GraphInvariantError",
    "InitialMap",
    "OSMDocument",
    "convert_osm",
    "load_raw_map",
]
