"""Bidirectional follow path search.

The search runs two layered BFS expansions, forward from the source over
outgoing follow edges and backward from the target over incoming ones, each
with half of the hop budget. Every expansion keeps *all* acyclic chains that
reach a node, not just the first, and the two indices are joined at the
nodes both sides reached.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

from followpaths.errors import DeadlineExceeded, ValidationError
from followpaths.store import BACKWARD, FORWARD, GraphStore, NeighborLoader
from followpaths.validation import parse_node_id, parse_positive_int

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 4
DEFAULT_LIMIT = 20

_NO_PARENT = -1


class PathArena:
    """
    Flat storage for the PathNodes of one builder run.

    A PathNode is the slot index into three parallel lists. ``parents`` holds
    the slot of the previous node on the chain (``-1`` for the root); a parent
    is always strictly shallower, so walking parents always terminates.
    """

    __slots__ = ("ids", "parents", "depths")

    def __init__(self):
        self.ids: list[int] = []
        self.parents: list[int] = []
        self.depths: list[int] = []

    def __len__(self):
        return len(self.ids)

    def add(self, node_id: int, parent: int, depth: int) -> int:
        self.ids.append(node_id)
        self.parents.append(parent)
        self.depths.append(depth)
        return len(self.ids) - 1

    def chain_contains(self, slot: int, node_id: int) -> bool:
        """True if ``node_id`` is on the chain ending at ``slot``."""
        while slot != _NO_PARENT:
            if self.ids[slot] == node_id:
                return True
            slot = self.parents[slot]
        return False

    def chain(self, slot: int) -> list[int]:
        """Node ids from the root to ``slot``, inclusive."""
        path = []
        while slot != _NO_PARENT:
            path.append(self.ids[slot])
            slot = self.parents[slot]
        path.reverse()
        return path


@dataclass
class PathIndex:
    """Every chain found by one builder run, keyed by the node it reaches."""
    root: int
    direction: str
    max_depth: int
    arena: PathArena = field(default_factory=PathArena)
    slots: dict[int, list[int]] = field(default_factory=dict)
    layers: list[dict] = field(default_factory=list)
    queries: int = 0

    def __contains__(self, node_id):
        return node_id in self.slots

    def __len__(self):
        return len(self.slots)

    def chains(self, node_id) -> list[int]:
        """Arena slots of every chain reaching ``node_id``, in discovery order."""
        return self.slots.get(node_id, [])

    def depth(self, slot: int) -> int:
        return self.arena.depths[slot]

    @property
    def num_chains(self):
        return len(self.arena)


def build_path_index(loader: NeighborLoader, root: int, max_depth: int) -> PathIndex:
    """
    Expand layer by layer from ``root`` up to ``max_depth`` hops.

    Extensions are rejected only when the new node already sits on the
    extending chain itself (an O(depth) ancestor walk). A node reached by
    several chains keeps every one of them.

    Args:
        loader: Direction-specific batched neighbor lookup
        root: Node id the chains start from
        max_depth: Maximum number of hops per chain

    Returns:
        PathIndex covering every node reachable within ``max_depth`` hops
    """
    index = PathIndex(root=root, direction=loader.direction, max_depth=max_depth)
    arena = index.arena
    root_slot = arena.add(root, _NO_PARENT, 0)
    index.slots[root] = [root_slot]

    frontier = [root_slot]
    for depth in range(max_depth):
        if not frontier:
            break

        # dict.fromkeys keeps first-seen order while deduplicating
        layer_ids = list(dict.fromkeys(arena.ids[slot] for slot in frontier))
        adjacency = loader.load(layer_ids)
        next_frontier = []
        chains_before = len(arena)

        for slot in frontier:
            node_depth = arena.depths[slot]
            for neighbor in adjacency.get(arena.ids[slot], ()):
                if arena.chain_contains(slot, neighbor):
                    continue

                child = arena.add(neighbor, slot, node_depth + 1)
                index.slots.setdefault(neighbor, []).append(child)

                if node_depth + 1 < max_depth:
                    next_frontier.append(child)

        index.layers.append({
            "depth": depth,
            "frontier": len(frontier),
            "ids": len(layer_ids),
            "discovered": len(arena) - chains_before,
        })
        logger.debug(
            "%s layer %d: %d chains over %d ids -> %d new chains",
            loader.direction,
            depth,
            len(frontier),
            len(layer_ids),
            index.layers[-1]["discovered"],
        )
        frontier = next_frontier

    index.queries = loader.queries
    return index


def can_join_paths(forward: PathIndex, forward_slot: int, backward: PathIndex, backward_slot: int) -> bool:
    """
    Check that two chains meeting at the same node form a simple path.

    The meeting node itself is shared by construction; every other node on
    the backward chain must be absent from the forward chain.
    """
    f_arena = forward.arena
    b_arena = backward.arena
    slot = b_arena.parents[backward_slot]
    while slot != _NO_PARENT:
        if f_arena.chain_contains(forward_slot, b_arena.ids[slot]):
            return False
        slot = b_arena.parents[slot]
    return True


def combine_paths(forward: PathIndex, forward_slot: int, backward: PathIndex, backward_slot: int) -> tuple:
    """Concatenate source -> meeting and meeting -> target, meeting node once."""
    head = forward.arena.chain(forward_slot)
    tail = backward.arena.chain(backward_slot)
    tail.reverse()
    return tuple(head + tail[1:])


@dataclass(frozen=True)
class FollowPath:
    """One simple follow path, source to target inclusive."""
    path: tuple

    @property
    def depth(self):
        return len(self.path) - 1

    def to_dict(self):
        return {"path": [str(node_id) for node_id in self.path], "depth": self.depth}


def join_path_indices(
    forward: PathIndex,
    backward: PathIndex,
    max_depth: int,
    limit: int,
    deadline: Optional[float] = None,
) -> list[FollowPath]:
    """
    Join a forward and a backward index into complete simple paths.

    Tiers are visited by ascending total depth so shorter paths always come
    first. Within a tier the candidate paths are sorted by their id sequence
    before being appended, and the search stops as soon as ``limit`` paths
    are collected, so a truncated tier keeps its lexicographically smallest
    paths.

    Args:
        forward: Index built from the source over outgoing edges
        backward: Index built from the target over incoming edges
        max_depth: Total hop budget
        limit: Maximum number of paths to return
        deadline: Optional monotonic deadline, checked before each tier

    Returns:
        Up to ``limit`` FollowPaths ordered by depth, then id sequence

    Raises:
        DeadlineExceeded: if the deadline passes before the join finishes
    """
    # Group backward chains of each meeting node by depth
    meeting = {}
    for node_id in forward.slots:
        if node_id not in backward.slots:
            continue
        by_depth = {}
        for b_slot in backward.slots[node_id]:
            by_depth.setdefault(backward.depth(b_slot), []).append(b_slot)
        meeting[node_id] = by_depth

    results = []
    if not meeting or limit <= 0:
        return results

    # No chain pair is deeper than the two deepest chains combined
    deepest = max(forward.arena.depths) + max(backward.arena.depths)
    for total_depth in range(1, min(max_depth, deepest) + 1):
        if deadline is not None and time.monotonic() >= deadline:
            raise DeadlineExceeded(f"Deadline exceeded while joining depth {total_depth} paths")
        candidates = set()
        for node_id, backward_by_depth in meeting.items():
            for f_slot in forward.slots[node_id]:
                f_depth = forward.depth(f_slot)
                if f_depth > total_depth:
                    continue
                for b_slot in backward_by_depth.get(total_depth - f_depth, ()):
                    if not can_join_paths(forward, f_slot, backward, b_slot):
                        continue
                    candidates.add(combine_paths(forward, f_slot, backward, b_slot))

        for path in sorted(candidates):
            results.append(FollowPath(path))
            if len(results) >= limit:
                return results

    return results


def build_indices(
    store: GraphStore,
    source: int,
    target: int,
    max_depth: int,
    concurrent: bool = False,
    deadline: Optional[float] = None,
) -> tuple[PathIndex, PathIndex]:
    """Split the hop budget and build the forward and backward indices.

    The forward side gets ``max_depth // 2`` hops and the backward side the
    rest. Each side has its own loader and cache, so the two builds share no
    mutable state and may run on separate threads.
    """
    forward_depth = max_depth // 2
    backward_depth = max_depth - forward_depth
    forward_loader = NeighborLoader(store, FORWARD, deadline=deadline)
    backward_loader = NeighborLoader(store, BACKWARD, deadline=deadline)

    if concurrent:
        with ThreadPoolExecutor(max_workers=2) as executor:
            forward_future = executor.submit(build_path_index, forward_loader, source, forward_depth)
            backward_future = executor.submit(build_path_index, backward_loader, target, backward_depth)
            return forward_future.result(), backward_future.result()

    forward = build_path_index(forward_loader, source, forward_depth)
    backward = build_path_index(backward_loader, target, backward_depth)
    return forward, backward


def find_paths_bidirectional(
    store: GraphStore,
    source: int,
    target: int,
    max_depth: int,
    limit: int,
    concurrent: bool = False,
    deadline: Optional[float] = None,
) -> list[FollowPath]:
    """Search already-validated ids. A ``max_depth`` of 0 finds nothing."""
    if source == target:
        return [FollowPath((source,))]
    forward, backward = build_indices(store, source, target, max_depth, concurrent, deadline)
    return join_path_indices(forward, backward, max_depth, limit, deadline)


@dataclass
class PathSearchResult:
    """Paths found between two authors, or an explicit empty answer."""
    source: int
    target: int
    max_depth: int
    limit: int
    paths: list[FollowPath]
    elapsed_seconds: float = 0.0

    @property
    def found(self) -> bool:
        return bool(self.paths)

    @property
    def num_paths(self) -> int:
        return len(self.paths)

    def to_dict(self):
        return {
            "source": str(self.source),
            "target": str(self.target),
            "max_depth": self.max_depth,
            "limit": self.limit,
            "found": self.found,
            "num_paths": self.num_paths,
            "elapsed_seconds": self.elapsed_seconds,
            "paths": [p.to_dict() for p in self.paths],
        }


def find_follow_paths(
    store: GraphStore,
    source,
    target,
    max_depth=DEFAULT_MAX_DEPTH,
    limit=DEFAULT_LIMIT,
    *,
    concurrent: bool = False,
    timeout: Optional[float] = None,
) -> PathSearchResult:
    """
    Find up to ``limit`` shortest simple follow paths from source to target.

    Args:
        store: GraphStore backend holding the follow edges
        source: Source author id (decimal string or int)
        target: Target author id (decimal string or int)
        max_depth: Total hop budget, a positive integer
        limit: Maximum number of paths, a positive integer
        concurrent: Build the forward and backward indices on two threads
        timeout: Optional deadline in seconds for the whole search

    Returns:
        PathSearchResult; ``found`` is False when no path exists in budget

    Raises:
        ValidationError: on malformed input, before any graph access
        TransportError: if the store fails; no partial result is returned
    """
    source = parse_node_id(source, "source")
    target = parse_node_id(target, "target")
    max_depth = parse_positive_int(max_depth, "max depth")
    limit = parse_positive_int(limit, "limit")
    if timeout is not None:
        try:
            timeout = float(timeout)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid timeout: {timeout}") from None
        if timeout <= 0:
            raise ValidationError(f"Invalid timeout: {timeout}")

    deadline = time.monotonic() + timeout if timeout is not None else None

    t0 = time.perf_counter()
    paths = find_paths_bidirectional(
        store,
        source,
        target,
        max_depth,
        limit,
        concurrent=concurrent,
        deadline=deadline,
    )
    elapsed = time.perf_counter() - t0

    logger.info(
        "Found %d path(s) from %d to %d (max_depth=%d, limit=%d) in %.3fs",
        len(paths),
        source,
        target,
        max_depth,
        limit,
        elapsed,
    )
    return PathSearchResult(
        source=source,
        target=target,
        max_depth=max_depth,
        limit=limit,
        paths=paths,
        elapsed_seconds=elapsed,
    )
