#!/usr/bin/env python3
"""
CLI tool to diagnose large follow path searches.

Example:
    followpaths-diagnose 546195 2 --graph data/follows_mmap
"""

import argparse
import sys
from pathlib import Path

from followpaths import DEFAULT_MAX_DEPTH, FollowPathsError, diagnose_path_explosion
from followpaths.server import open_store
from followpaths.validation import parse_node_id, parse_positive_int


def main(argv=None):
    parser = argparse.ArgumentParser(description="Diagnose follow path search size")
    parser.add_argument("source", help="Source author id (mid)")
    parser.add_argument("target", help="Target author id (mid)")
    parser.add_argument("--max-depth", "-d", default=str(DEFAULT_MAX_DEPTH))
    parser.add_argument("--top", type=int, default=10, help="Meeting nodes to list")
    parser.add_argument("--graph", "-g", type=Path, help="Snapshot directory")
    parser.add_argument(
        "--format", choices=["auto", "sql", "mmap", "lmdb"], default="auto"
    )
    parser.add_argument("--database-url", help="SQLAlchemy database URL")

    args = parser.parse_args(argv)

    store = None
    try:
        source = parse_node_id(args.source, "source")
        target = parse_node_id(args.target, "target")
        max_depth = parse_positive_int(args.max_depth, "max depth")
        store = open_store(str(args.graph) if args.graph else "", args.format, args.database_url)
        diagnose_path_explosion(store, source, target, max_depth, top=args.top)
    except (FollowPathsError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        if store is not None:
            store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
