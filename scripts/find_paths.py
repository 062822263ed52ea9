#!/usr/bin/env python3
"""
CLI tool to find follow paths between two authors.

Example:
    followpaths-find 546195 2 --max-depth 4 --limit 20
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from followpaths import (
    DEFAULT_LIMIT,
    DEFAULT_MAX_DEPTH,
    FollowPathsError,
    ValidationError,
    find_follow_paths,
)
from followpaths.server import open_store
from followpaths.validation import parse_node_id, parse_positive_int

USAGE = "Usage: followpaths-find <fromMid> <toMid> [--max-depth <n>] [--limit <n>]"


def build_parser():
    parser = argparse.ArgumentParser(
        description="Find shortest follow paths between two authors",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Query the dashboard database (FOLLOWPATHS_DATABASE_URL or DATABASE_URL)
  followpaths-find 546195 2

  # Wider search with more results
  followpaths-find 546195 2 --max-depth 6 --limit 50

  # Query an offline snapshot built with followpaths-build
  followpaths-find 546195 2 --graph data/follows_mmap

  # Save results
  followpaths-find 546195 2 --json > paths.json
        """,
    )

    parser.add_argument("source", help="Source author id (mid)")
    parser.add_argument("target", help="Target author id (mid)")

    parser.add_argument(
        "--max-depth", "-d", default=str(DEFAULT_MAX_DEPTH), help="Total hop budget (default: 4)"
    )
    parser.add_argument(
        "--limit", "-n", default=str(DEFAULT_LIMIT), help="Maximum number of paths (default: 20)"
    )
    parser.add_argument(
        "--graph", "-g", type=Path, help="Snapshot directory (mmap or LMDB) instead of the database"
    )
    parser.add_argument(
        "--format",
        choices=["auto", "sql", "mmap", "lmdb"],
        default="auto",
        help="Store format (default: auto)",
    )
    parser.add_argument("--database-url", help="SQLAlchemy database URL")
    parser.add_argument("--timeout", type=float, help="Search deadline in seconds")
    parser.add_argument(
        "--concurrent",
        action="store_true",
        help="Build the forward and backward indices in parallel",
    )
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Log each BFS layer"
    )
    return parser


def main(argv=None):
    args, unknown = build_parser().parse_known_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    store = None
    try:
        # Reject malformed input before touching any store
        if unknown:
            raise ValidationError(f"Unrecognized arguments: {' '.join(unknown)}")
        parse_node_id(args.source, "source")
        parse_node_id(args.target, "target")
        parse_positive_int(args.max_depth, "max depth")
        parse_positive_int(args.limit, "limit")

        store = open_store(
            str(args.graph) if args.graph else "",
            args.format,
            args.database_url,
        )
        result = find_follow_paths(
            store,
            args.source,
            args.target,
            args.max_depth,
            args.limit,
            concurrent=args.concurrent,
            timeout=args.timeout,
        )
    except (FollowPathsError, OSError) as e:
        print(e, file=sys.stderr)
        print(USAGE, file=sys.stderr)
        return 1
    finally:
        if store is not None:
            store.close()

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return 0

    if not result.found:
        print("No paths found within the given depth.")
        return 0

    print(f"Found {result.num_paths} path(s).")
    for i, path in enumerate(result.paths, 1):
        print(f"{i}. depth={path.depth} path={' -> '.join(str(node_id) for node_id in path.path)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
