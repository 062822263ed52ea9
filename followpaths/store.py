"""Neighbor lookup against the follow edge table.

A ``GraphStore`` backend answers batched neighbor questions in either edge
direction with one round trip per call. It never caches: caching belongs to a
``NeighborLoader``, which is created fresh for every builder run so nothing
is reused across separate searches.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from followpaths.errors import DeadlineExceeded

logger = logging.getLogger(__name__)

FORWARD = "forward"
BACKWARD = "backward"


class GraphStore(ABC):
    """Read-only access to directed ``(source, target)`` follow edges."""

    @abstractmethod
    def forward_neighbors(self, ids: set[int]) -> dict[int, list[int]]:
        """Map each id to the targets of edges whose source is that id.

        Ids that do not appear in the graph map to an empty list.
        """

    @abstractmethod
    def backward_neighbors(self, ids: set[int]) -> dict[int, list[int]]:
        """Map each id to the sources of edges whose target is that id.

        Ids that do not appear in the graph map to an empty list.
        """

    def fetch_neighbors(
        self, ids: set[int], direction: str, timeout: Optional[float] = None
    ) -> dict[int, list[int]]:
        """Dispatch to the lookup for ``direction``.

        ``timeout`` is the time left before the caller's deadline. Local
        snapshots answer from memory and ignore it; remote backends bound
        their round trip by it.
        """
        if direction == FORWARD:
            return self.forward_neighbors(ids)
        if direction == BACKWARD:
            return self.backward_neighbors(ids)
        raise ValueError(f"Unknown direction: {direction}")

    def close(self):
        """Release backend resources. Backends without any do nothing."""


class NeighborLoader:
    """Batched, cached neighbor lookup for a single builder run.

    Previously resolved ids are served from the cache; every id not seen
    before is fetched in one backend call. An optional monotonic
    ``deadline`` is checked before and after each round trip, and the time
    left is handed to the backend to bound the call itself.
    """

    def __init__(self, store: GraphStore, direction: str, deadline: Optional[float] = None):
        if direction not in (FORWARD, BACKWARD):
            raise ValueError(f"Unknown direction: {direction}")
        self.store = store
        self.direction = direction
        self.deadline = deadline
        self._cache: dict[int, list[int]] = {}
        self.queries = 0
        self.fetched = 0

    def load(self, ids: Iterable[int]) -> dict[int, list[int]]:
        """Return the neighbor list for every id in ``ids``."""
        adjacency = {}
        pending = set()
        for node_id in ids:
            cached = self._cache.get(node_id)
            if cached is not None:
                adjacency[node_id] = cached
            else:
                pending.add(node_id)

        if not pending:
            return adjacency

        timeout = None
        if self.deadline is not None:
            timeout = self.deadline - time.monotonic()
            if timeout <= 0:
                raise DeadlineExceeded(
                    f"Deadline exceeded before fetching {len(pending)} {self.direction} ids"
                )

        fetched = self.store.fetch_neighbors(pending, self.direction, timeout=timeout)
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise DeadlineExceeded(
                f"Deadline exceeded while fetching {len(pending)} {self.direction} ids"
            )
        self.queries += 1
        self.fetched += len(pending)
        logger.debug(
            "Fetched %s neighbors for %d ids (%d cached)",
            self.direction,
            len(pending),
            len(adjacency),
        )

        for node_id in pending:
            neighbors = fetched.get(node_id) or []
            self._cache[node_id] = neighbors
            adjacency[node_id] = neighbors

        return adjacency
