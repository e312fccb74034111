#!/usr/bin/env python3
"""
Example 1: Convert an OSM Extract
===================================

This example converts an OpenStreetMap XML extract into a road graph,
prints a summary of what was built, and saves a JSON snapshot.

Usage:
    python 01_convert_osm.py /path/to/region.osm [/path/to/region.poly]
"""

import sys
from collections import Counter
from pathlib import Path

from roadgraph import BuildConfig, convert_osm
from roadgraph.core import LaneType, find_suspicious_crossings


def main():
    if len(sys.argv) < 2:
        print("Usage: python 01_convert_osm.py <region.osm> [region.poly]")
        print("\nThis example builds a road graph from an OSM extract.")
        return

    osm_path = Path(sys.argv[1])
    boundary = sys.argv[2] if len(sys.argv) > 2 else None

    config = BuildConfig(detect_anomalies=False)
    m = convert_osm(osm_path, boundary=boundary, config=config)

    print(f"\nBuilt {m.name}: {len(m.intersections)} intersections, {len(m.roads)} roads")
    print(f"Planar extent: {m.bounds.width:.0f} m x {m.bounds.height:.0f} m")

    # Intersection degree distribution
    degrees = Counter(len(i.roads) for i in m.intersections.values())
    print("\n--- Intersection Degree Distribution ---")
    for degree, count in sorted(degrees.items()):
        print(f"  {degree} roads: {count:5d}")

    # Lane type totals
    lanes = Counter(s.lane_type for r in m.roads.values() for s in r.lane_specs)
    print("\n--- Lanes ---")
    for lane_type in LaneType:
        print(f"  {lane_type.value:>10}: {lanes.get(lane_type, 0):6d}")

    # Anomalies, run by hand so we can show them
    findings = find_suspicious_crossings(m)
    print(f"\n--- {len(findings)} suspicious crossings ---")
    for finding in findings[:10]:
        print(f"  {finding}")

    path = m.save("initial_maps")
    print(f"\nSaved to {path}")


if __name__ == "__main__":
    main()
