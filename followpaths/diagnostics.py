"""Diagnostic tools for follow path searches."""
from collections import Counter

from followpaths.search import DEFAULT_MAX_DEPTH, build_indices
from followpaths.store import GraphStore


def diagnose_path_explosion(store: GraphStore, source: int, target: int, max_depth=DEFAULT_MAX_DEPTH, top=10):
    """
    Diagnose how large the two search frontiers get between two authors.

    Runs both index builders and reports per-layer frontier sizes, how many
    nodes and chains each side reached, and which meeting nodes contribute
    the most chain pairs (an upper bound on the paths joined through them).

    Returns:
        dict with the collected figures (also printed)
    """
    forward, backward = build_indices(store, source, target, max_depth)

    print("=== FOLLOW PATH DIAGNOSIS ===")
    print(f"Source: {source}")
    print(f"Target: {target}")
    print(f"Budget: {max_depth} hops ({forward.max_depth} forward, {backward.max_depth} backward)")
    print()

    report = {"source": source, "target": target, "max_depth": max_depth}

    for number, index in enumerate((forward, backward), 1):
        print(f"{number}. {index.direction.upper()} EXPANSION FROM {index.root}")
        for layer in index.layers:
            print(
                f"   Layer {layer['depth']}: {layer['frontier']:,} chains over "
                f"{layer['ids']:,} ids -> {layer['discovered']:,} new chains"
            )
        print(f"   Reachable nodes: {len(index):,}")
        print(f"   Chains: {index.num_chains:,}")
        print(f"   Store queries: {index.queries:,}")
        print()
        report[index.direction] = {
            "layers": list(index.layers),
            "reachable": len(index),
            "chains": index.num_chains,
            "queries": index.queries,
        }

    print("3. MEETING NODES")
    contributions = Counter()
    for node_id in forward.slots:
        if node_id in backward.slots:
            contributions[node_id] = len(forward.chains(node_id)) * len(backward.chains(node_id))
    print(f"   Nodes reached from both sides: {len(contributions):,}")
    print(f"   Chain pairs to check: {sum(contributions.values()):,}")

    heaviest = contributions.most_common(top)
    if heaviest:
        print(f"   Heaviest meeting nodes (top {top}):")
        for node_id, pairs in heaviest:
            print(f"      {node_id}: {pairs:,} chain pairs")
    print()

    report["meeting_nodes"] = len(contributions)
    report["chain_pairs"] = sum(contributions.values())
    report["heaviest"] = heaviest
    return report
