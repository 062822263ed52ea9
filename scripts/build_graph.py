#!/usr/bin/env python3
"""
CLI tool to build an offline follow graph snapshot.

Example:
    followpaths-build --edges data/follows.jsonl --output data/follows_mmap
"""

import argparse
import sys
from pathlib import Path

from followpaths import FollowPathsError, LMDBFollowStore, build_graph_from_edges
from followpaths.loader import read_follow_edges_jsonl
from followpaths.sql_store import create_follow_engine, iter_follow_edges


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Build a follow graph snapshot from JSONL or the database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # From a JSONL dump ({"source": ..., "target": ...} per line)
  followpaths-build --edges follows.jsonl --output follows_mmap

  # Straight from author_follows, as an LMDB snapshot
  followpaths-build --database-url postgresql://localhost/dashboard \\
      --output follows_lmdb --format lmdb
        """,
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--edges", type=Path, help="Path to edges JSONL file")
    source.add_argument("--database-url", help="SQLAlchemy URL of the dashboard database")

    parser.add_argument(
        "--output", "-o", required=True, type=Path, help="Output snapshot directory"
    )
    parser.add_argument(
        "--format",
        choices=["mmap", "lmdb"],
        default="mmap",
        help="Snapshot format (default: mmap)",
    )

    args = parser.parse_args(argv)

    if args.edges and not args.edges.exists():
        print(f"Error: Edge file not found: {args.edges}", file=sys.stderr)
        return 1

    args.output.parent.mkdir(parents=True, exist_ok=True)

    try:
        if args.edges:
            print(f"Reading follow edges from {args.edges}")
            edges = read_follow_edges_jsonl(args.edges)
        else:
            print("Reading follow edges from author_follows")
            edges = iter_follow_edges(create_follow_engine(args.database_url))

        if args.format == "lmdb":
            store = LMDBFollowStore.build(args.output, edges)
            stats = store.stats()
            store.close()
            print("\nSnapshot built successfully!")
            print(f"  Sources: {stats['sources']:,}")
            print(f"  Targets: {stats['targets']:,}")
        else:
            graph = build_graph_from_edges(edges)
            graph.save_mmap(args.output)
            print("\nSnapshot built successfully!")
            print(f"  Nodes: {graph.num_nodes:,}")
            print(f"  Edges: {graph.num_edges:,}")
    except (FollowPathsError, OSError) as e:
        print(f"Error building snapshot: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
