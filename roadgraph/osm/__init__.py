"""
OpenStreetMap input: parsing, tag classification, multipolygon assembly and
feature extraction.
"""

from roadgraph.osm.document import (
    OSMDocument,
    RawRelation,
    RawWay,
    RelationMember,
    load_boundary_polygon,
)
from roadgraph.osm.classify import AreaType, FeatureCategory, FeatureClassifier, classify_tags
from roadgraph.osm.multipolygon import ClosureStrategy, glue_multipolygon
from roadgraph.osm.extract import ExtractedFeatures, OSMExtractor, RawArea, RawBuilding, RawRoad

__all__ = [
    "OSMDocument",
    "RawWay",
    "RawRelation",
    "RelationMember",
    "load_boundary_polygon",
    "AreaType",
    "FeatureCategory",
    "FeatureClassifier",
    "classify_tags",
    "ClosureStrategy",
    "glue_multipolygon",
    "ExtractedFeatures",
    "OSMExtractor",
    "RawArea",
    "RawBuilding",
    "RawRoad",
]
