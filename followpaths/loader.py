"""Load follow edges into an in-memory CSR snapshot.

Edge dumps are JSONL, one ``{"source": <id>, "target": <id>}`` object per
line. Ids may be JSON numbers or decimal strings (exports from the
dashboard database render bigints as strings).
"""

import json

import numpy as np

from followpaths.errors import ValidationError
from followpaths.graph import CSRFollowGraph
from followpaths.validation import parse_node_id


def read_follow_edges_jsonl(edge_jsonl_path):
    """Yield ``(source, target)`` pairs from a JSONL edge dump.

    Blank lines are skipped. Malformed JSON, a line that is not an object
    or a malformed id raises ``ValidationError`` with the line number.
    """
    with open(edge_jsonl_path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError as e:
                raise ValidationError(f"Malformed JSON on line {line_no}: {e}") from None
            if not isinstance(data, dict):
                raise ValidationError(f"Expected an edge object on line {line_no}: {line}")
            source = parse_node_id(data.get("source"), f"source on line {line_no}")
            target = parse_node_id(data.get("target"), f"target on line {line_no}")
            yield source, target


def build_graph_from_edges(edges):
    """Build a CSR snapshot from an iterable of ``(source, target)`` pairs."""
    sources = []
    targets = []
    for source, target in edges:
        sources.append(source)
        targets.append(target)
    return CSRFollowGraph.from_edges(
        np.array(sources, dtype=np.int64),
        np.array(targets, dtype=np.int64),
    )


def build_graph_from_jsonl(edge_jsonl_path):
    """Build a CSR snapshot from a JSONL edge dump.

    Duplicate edges collapse into one and self-loops are dropped.
    """
    edge_jsonl_path = str(edge_jsonl_path)
    print(f"Reading follow edges from {edge_jsonl_path}...")

    graph = build_graph_from_edges(read_follow_edges_jsonl(edge_jsonl_path))

    print("\nFollow graph statistics:")
    print(f"  Nodes: {graph.num_nodes:,}")
    print(f"  Edges: {graph.num_edges:,}")
    if graph.num_nodes:
        out_degrees = np.diff(graph.fwd_offsets)
        print(f"  Avg out-degree: {np.mean(out_degrees):.1f}")
        print(f"  Max out-degree: {np.max(out_degrees)}")
        memory_mb = (
            graph.node_ids.nbytes
            + graph.fwd_offsets.nbytes
            + graph.fwd_targets.nbytes
            + graph.rev_offsets.nbytes
            + graph.rev_sources.nbytes
        ) / 1024 / 1024
        print(f"  CSR memory usage: ~{memory_mb:.1f} MB")

    return graph
