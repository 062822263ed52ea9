"""LMDB-backed snapshot of the follow graph.

Adjacency lists live in two named databases, ``forward`` (source -> targets)
and ``backward`` (target -> sources). Keys are author ids encoded as 8-byte
big-endian integers so LMDB's byte order matches numeric order; values are
msgpack arrays of neighbor ids.

LMDB is a memory-mapped B-tree. Multiple worker processes share the same
physical memory pages via the OS, and read transactions never block each
other, so one store can serve concurrent searches.
"""

import shutil
import struct
from pathlib import Path

import lmdb
import msgpack

from followpaths.errors import TransportError
from followpaths.store import GraphStore


# 50 GB virtual address space (not allocated until used)
_DEFAULT_MAP_SIZE = 50 * 1024 * 1024 * 1024

_FORWARD_DB = b"forward"
_BACKWARD_DB = b"backward"


def _encode_key(node_id: int) -> bytes:
    """Encode an author id as 8-byte big-endian for correct LMDB sort order."""
    return struct.pack(">Q", node_id)


class LMDBFollowStore(GraphStore):
    """Disk-backed follow graph snapshot using LMDB.

    Each lookup opens one read transaction and does a point read per id.
    """

    def __init__(self, path, readonly=True):
        self._path = Path(path)
        try:
            self._env = lmdb.open(
                str(self._path),
                readonly=readonly,
                max_dbs=2,
                map_size=_DEFAULT_MAP_SIZE,
                readahead=False,  # We only do point reads
                lock=not readonly,  # No lock file needed for read-only
            )
            self._forward = self._env.open_db(_FORWARD_DB, create=not readonly)
            self._backward = self._env.open_db(_BACKWARD_DB, create=not readonly)
        except lmdb.Error as e:
            raise TransportError(f"Cannot open LMDB store at {self._path}: {e}") from e

    @property
    def path(self):
        return self._path

    def _lookup(self, ids, db):
        if self._env is None:
            raise TransportError("LMDB store is closed")
        result = {}
        try:
            with self._env.begin(db=db, buffers=True) as txn:
                for node_id in ids:
                    val = txn.get(_encode_key(node_id))
                    result[node_id] = [] if val is None else msgpack.unpackb(val)
        except lmdb.Error as e:
            raise TransportError(f"LMDB read failed: {e}") from e
        return result

    def forward_neighbors(self, ids):
        return self._lookup(ids, self._forward)

    def backward_neighbors(self, ids):
        return self._lookup(ids, self._backward)

    def stats(self):
        """Return entry counts for both adjacency databases."""
        with self._env.begin() as txn:
            return {
                "sources": txn.stat(self._forward)["entries"],
                "targets": txn.stat(self._backward)["entries"],
            }

    def close(self):
        """Close the LMDB environment."""
        if getattr(self, "_env", None) is not None:
            self._env.close()
            self._env = None

    def __del__(self):
        self.close()

    @staticmethod
    def build(db_path, edge_iterator, commit_every=50_000):
        """Build an LMDB store from ``(source, target)`` edges.

        Edges are grouped in memory per direction, deduplicated and sorted,
        then written in key order. Self-loops are dropped.

        Args:
            db_path: Path for the LMDB directory (replaced if it exists).
            edge_iterator: Yields (source, target) id pairs in any order.
            commit_every: Commit the write transaction every N keys.

        Returns:
            LMDBFollowStore opened in read-only mode.
        """
        forward = {}
        backward = {}
        count = 0
        for source, target in edge_iterator:
            source = int(source)
            target = int(target)
            if source == target:
                continue
            forward.setdefault(source, set()).add(target)
            backward.setdefault(target, set()).add(source)
            count += 1
            if count % 1_000_000 == 0:
                print(f"    LMDB: grouped {count:,} edges...")

        db_path = Path(db_path)
        if db_path.exists():
            shutil.rmtree(db_path)
        db_path.mkdir(parents=True, exist_ok=True)

        env = lmdb.open(
            str(db_path),
            map_size=_DEFAULT_MAP_SIZE,
            readonly=False,
            max_dbs=2,
            readahead=False,
        )
        try:
            for name, adjacency in ((_FORWARD_DB, forward), (_BACKWARD_DB, backward)):
                db = env.open_db(name)
                txn = env.begin(write=True, db=db)
                written = 0
                try:
                    for node_id in sorted(adjacency):
                        val = msgpack.packb(sorted(adjacency[node_id]), use_bin_type=True)
                        txn.put(_encode_key(node_id), val)
                        written += 1
                        if written % commit_every == 0:
                            txn.commit()
                            txn = env.begin(write=True, db=db)
                    txn.commit()
                except BaseException:
                    txn.abort()
                    raise
                print(f"    LMDB: wrote {written:,} {name.decode()} adjacency lists")
        finally:
            env.close()

        print(f"    LMDB: follow graph written to {db_path} ({count:,} edges read)")
        return LMDBFollowStore(db_path, readonly=True)
