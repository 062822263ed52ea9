"""In-memory CSR snapshot of the follow graph."""

import logging
import time
from pathlib import Path
from typing import Union

import numpy as np

from followpaths.store import GraphStore

logger = logging.getLogger(__name__)


class CSRFollowGraph(GraphStore):
    """
    Compressed Sparse Row representation of the follow graph.

    Maintains two CSR structures over dense node indices:
    - Forward: node -> outgoing edges (who does this author follow?)
    - Reverse: node -> incoming edges (who follows this author?)

    Author ids are kept in a sorted int64 array, so id -> index is a binary
    search and no Python dict of 63-bit keys is needed. Every array is
    read-only after construction, which makes the snapshot safe to query
    from several threads at once.
    """

    def __init__(self, node_ids, fwd_offsets, fwd_targets, rev_offsets, rev_sources):
        """
        Args:
            node_ids: Sorted, unique int64 array of author ids
            fwd_offsets: int64 array, len(node_ids) + 1 forward row offsets
            fwd_targets: int32 array of target indices, sorted within each row
            rev_offsets: int64 array, len(node_ids) + 1 reverse row offsets
            rev_sources: int32 array of source indices, sorted within each row
        """
        self.node_ids = node_ids
        self.fwd_offsets = fwd_offsets
        self.fwd_targets = fwd_targets
        self.rev_offsets = rev_offsets
        self.rev_sources = rev_sources

    @property
    def num_nodes(self):
        return len(self.node_ids)

    @property
    def num_edges(self):
        return len(self.fwd_targets)

    @classmethod
    def from_edges(cls, sources, targets):
        """Build a snapshot from parallel arrays of source and target ids.

        Duplicate edges collapse into one and self-loops are dropped.
        """
        sources = np.asarray(sources, dtype=np.int64)
        targets = np.asarray(targets, dtype=np.int64)
        if sources.shape != targets.shape:
            raise ValueError("sources and targets must have the same length")

        keep = sources != targets
        sources = sources[keep]
        targets = targets[keep]

        node_ids = np.unique(np.concatenate([sources, targets]))
        num_nodes = len(node_ids)

        src_idx = np.searchsorted(node_ids, sources).astype(np.int32)
        dst_idx = np.searchsorted(node_ids, targets).astype(np.int32)

        # Deduplicate (src, dst) pairs
        if len(src_idx) > 0:
            pairs = np.unique(np.column_stack([src_idx, dst_idx]), axis=0)
            src_idx = pairs[:, 0].astype(np.int32)
            dst_idx = pairs[:, 1].astype(np.int32)

        # Forward CSR: sort by (src, dst); lexsort uses the last key as primary
        fwd_order = np.lexsort((dst_idx, src_idx))
        fwd_targets = dst_idx[fwd_order]
        fwd_offsets = np.searchsorted(
            src_idx[fwd_order], np.arange(num_nodes + 1)
        ).astype(np.int64)

        # Reverse CSR: sort by (dst, src)
        rev_order = np.lexsort((src_idx, dst_idx))
        rev_sources = src_idx[rev_order]
        rev_offsets = np.searchsorted(
            dst_idx[rev_order], np.arange(num_nodes + 1)
        ).astype(np.int64)

        return cls(node_ids, fwd_offsets, fwd_targets, rev_offsets, rev_sources)

    # ------------------------------------------------------------------
    # Index lookups
    # ------------------------------------------------------------------

    def get_node_idx(self, node_id):
        """Dense index of an author id, or None if the id has no edges."""
        if self.num_nodes == 0:
            return None
        pos = int(np.searchsorted(self.node_ids, node_id))
        if pos < self.num_nodes and int(self.node_ids[pos]) == node_id:
            return pos
        return None

    def get_node_id(self, node_idx):
        return int(self.node_ids[node_idx])

    def neighbors(self, node_idx):
        """Neighbor indices of a node index (nodes this node follows)."""
        start = self.fwd_offsets[node_idx]
        end = self.fwd_offsets[node_idx + 1]
        return self.fwd_targets[start:end]

    def incoming_neighbors(self, node_idx):
        """Incoming neighbor indices (nodes that follow this node)."""
        start = self.rev_offsets[node_idx]
        end = self.rev_offsets[node_idx + 1]
        return self.rev_sources[start:end]

    def degree(self, node_idx):
        """Out-degree of a node index."""
        return int(self.fwd_offsets[node_idx + 1] - self.fwd_offsets[node_idx])

    def in_degree(self, node_idx):
        return int(self.rev_offsets[node_idx + 1] - self.rev_offsets[node_idx])

    # ------------------------------------------------------------------
    # GraphStore interface
    # ------------------------------------------------------------------

    def _lookup(self, ids, offsets, columns):
        result = {}
        for node_id in ids:
            idx = self.get_node_idx(node_id)
            if idx is None:
                result[node_id] = []
                continue
            start = offsets[idx]
            end = offsets[idx + 1]
            result[node_id] = self.node_ids[columns[start:end]].tolist()
        return result

    def forward_neighbors(self, ids):
        return self._lookup(ids, self.fwd_offsets, self.fwd_targets)

    def backward_neighbors(self, ids):
        return self._lookup(ids, self.rev_offsets, self.rev_sources)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_mmap(self, directory: Union[str, Path]):
        """Save the snapshot as memory-mappable .npy files."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        print(f"Saving follow graph to {directory} (mmap format)...")
        t0 = time.perf_counter()

        np.save(directory / "node_ids.npy", self.node_ids)
        np.save(directory / "fwd_offsets.npy", self.fwd_offsets)
        np.save(directory / "fwd_targets.npy", self.fwd_targets)
        np.save(directory / "rev_offsets.npy", self.rev_offsets)
        np.save(directory / "rev_sources.npy", self.rev_sources)

        t1 = time.perf_counter()
        print(f"Follow graph saved in {t1 - t0:.2f}s")

        total_size = 0
        for f in sorted(directory.iterdir()):
            if f.is_file():
                size = f.stat().st_size
                total_size += size
                print(f"  {f.name}: {size / 1024 / 1024:.1f} MB")
        print(f"  Total: {total_size / 1024 / 1024:.1f} MB")

    @staticmethod
    def load_mmap(directory: Union[str, Path], mmap_mode: str = "r"):
        """Load a snapshot written by ``save_mmap``."""
        directory = Path(directory)
        logger.info("Loading follow graph from %s (mmap_mode=%s)...", directory, mmap_mode)
        t0 = time.perf_counter()

        graph = CSRFollowGraph(
            node_ids=np.load(directory / "node_ids.npy", mmap_mode=mmap_mode),
            fwd_offsets=np.load(directory / "fwd_offsets.npy", mmap_mode=mmap_mode),
            fwd_targets=np.load(directory / "fwd_targets.npy", mmap_mode=mmap_mode),
            rev_offsets=np.load(directory / "rev_offsets.npy", mmap_mode=mmap_mode),
            rev_sources=np.load(directory / "rev_sources.npy", mmap_mode=mmap_mode),
        )

        t1 = time.perf_counter()
        logger.info(
            "Follow graph loaded in %.2fs: %d nodes, %d edges",
            t1 - t0,
            graph.num_nodes,
            graph.num_edges,
        )
        return graph
