"""Pytest fixtures shared across all test modules."""

import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from followpaths.graph import CSRFollowGraph
from followpaths.lmdb_store import LMDBFollowStore
from followpaths.loader import build_graph_from_edges
from followpaths.sql_store import SQLFollowStore, author_follows, metadata
from followpaths.store import GraphStore


FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "fixtures")
EDGES_FILE = os.path.join(FIXTURES_DIR, "follows.jsonl")

# A -> B, B -> C, A -> D, D -> C, C -> E with A=1, B=2, C=3, D=4, E=5
A, B, C, D, E = 1, 2, 3, 4, 5
DIAMOND_EDGES = [(A, B), (B, C), (A, D), (D, C), (C, E)]


class CountingStore(GraphStore):
    """Wraps a store and records every batched lookup it receives."""

    def __init__(self, inner):
        self.inner = inner
        self.calls = []

    def forward_neighbors(self, ids):
        self.calls.append(("forward", frozenset(ids)))
        return self.inner.forward_neighbors(ids)

    def backward_neighbors(self, ids):
        self.calls.append(("backward", frozenset(ids)))
        return self.inner.backward_neighbors(ids)

    def calls_for(self, direction):
        return [ids for d, ids in self.calls if d == direction]


def make_sql_store(edges, **kwargs):
    """SQLite in-memory database holding ``edges`` in author_follows."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    metadata.create_all(engine)
    rows = [{"source": s, "target": t} for s, t in dict.fromkeys(edges)]
    if rows:
        with engine.begin() as conn:
            conn.execute(author_follows.insert(), rows)
    return SQLFollowStore(engine, **kwargs)


def make_store(kind, edges, tmp_path):
    """Build the same edge set in any of the three backends."""
    if kind == "csr":
        return build_graph_from_edges(edges)
    if kind == "sql":
        return make_sql_store(edges)
    if kind == "lmdb":
        return LMDBFollowStore.build(tmp_path / "follows.lmdb", edges)
    raise ValueError(kind)


@pytest.fixture
def diamond_graph() -> CSRFollowGraph:
    """CSR snapshot of the five-node diamond graph."""
    return build_graph_from_edges(DIAMOND_EDGES)


@pytest.fixture(params=["csr", "sql", "lmdb"])
def store_factory(request, tmp_path):
    """Factory building an edge list into each backend in turn."""
    stores = []

    def factory(edges):
        store = make_store(request.param, edges, tmp_path / f"store{len(stores)}")
        stores.append(store)
        return store

    yield factory
    for store in stores:
        store.close()
