"""
Command-line entry point.

Usage::

    roadgraph-convert montlake.osm --boundary montlake.poly --output initial_maps
"""

import argparse
import logging
import sys
from typing import List, Optional

from roadgraph.config import BuildConfig
from roadgraph.pipeline import convert_osm

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="roadgraph-convert",
        description="Convert an OpenStreetMap extract into a planar road graph.",
    )
    parser.add_argument("input", help="OSM XML file")
    parser.add_argument("--boundary", default=None, help="Osmosis .poly boundary file")
    parser.add_argument("--name", default=None, help="Map name (default: input file stem)")
    parser.add_argument("--config", default=None, help="YAML build config")
    parser.add_argument("--output", default="initial_maps", help="Snapshot directory")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        config = BuildConfig.from_yaml(args.config) if args.config else BuildConfig()
        m = convert_osm(args.input, boundary=args.boundary, name=args.name, config=config)
    except (FileNotFoundError, ValueError) as e:
        logger.error("%s", e)
        return 1

    path = m.save(args.output)
    print(f"Wrote {path}: {len(m.intersections)} intersections, {len(m.roads)} roads")
    return 0


if __name__ == "__main__":
    sys.exit(main())
