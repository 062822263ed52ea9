"""Tests for the GraphStore backends and the per-search neighbor loader."""

import time

import pytest
from sqlalchemy.exc import OperationalError, ProgrammingError

from conftest import DIAMOND_EDGES, CountingStore, make_sql_store
from followpaths.errors import DeadlineExceeded, TransportError
from followpaths.lmdb_store import LMDBFollowStore
from followpaths.search import find_follow_paths
from followpaths.sql_store import SQLFollowStore, create_follow_engine, iter_follow_edges
from followpaths.store import BACKWARD, FORWARD, NeighborLoader


class TestBackendContract:
    """Every backend answers the same batched questions the same way."""

    def test_forward_neighbors(self, store_factory):
        store = store_factory(DIAMOND_EDGES)
        assert store.forward_neighbors({1, 3}) == {1: [2, 4], 3: [5]}

    def test_backward_neighbors(self, store_factory):
        store = store_factory(DIAMOND_EDGES)
        assert store.backward_neighbors({3, 1}) == {3: [2, 4], 1: []}

    def test_absent_ids_map_to_empty(self, store_factory):
        store = store_factory(DIAMOND_EDGES)
        assert store.forward_neighbors({5, 77}) == {5: [], 77: []}

    def test_duplicate_edges_are_idempotent(self, store_factory):
        store = store_factory([(1, 2), (1, 2), (1, 3)])
        assert store.forward_neighbors({1}) == {1: [2, 3]}

    def test_fetch_neighbors_dispatch(self, store_factory):
        store = store_factory(DIAMOND_EDGES)
        assert store.fetch_neighbors({5}, BACKWARD) == {5: [3]}
        with pytest.raises(ValueError):
            store.fetch_neighbors({5}, "sideways")


class TestNeighborLoader:
    """Tests for batching and caching within one builder run."""

    def test_batches_and_caches(self, diamond_graph):
        store = CountingStore(diamond_graph)
        loader = NeighborLoader(store, FORWARD)

        assert loader.load([1]) == {1: [2, 4]}
        assert loader.load([1, 2, 4]) == {1: [2, 4], 2: [3], 4: [3]}

        # Only the uncached ids reach the store
        assert store.calls == [(FORWARD, frozenset({1})), (FORWARD, frozenset({2, 4}))]
        assert loader.queries == 2
        assert loader.fetched == 3

    def test_fully_cached_layer_skips_the_store(self, diamond_graph):
        store = CountingStore(diamond_graph)
        loader = NeighborLoader(store, BACKWARD)
        loader.load([3])
        loader.load([3])
        assert len(store.calls) == 1

    def test_empty_answers_are_cached(self, diamond_graph):
        store = CountingStore(diamond_graph)
        loader = NeighborLoader(store, FORWARD)
        loader.load([99])
        assert loader.load([99]) == {99: []}
        assert len(store.calls) == 1

    def test_expired_deadline(self, diamond_graph):
        loader = NeighborLoader(diamond_graph, FORWARD, deadline=time.monotonic() - 1)
        with pytest.raises(DeadlineExceeded):
            loader.load([1])

    def test_fetch_finishing_after_deadline(self, diamond_graph):
        class SlowStore(CountingStore):
            def forward_neighbors(self, ids):
                time.sleep(0.2)
                return super().forward_neighbors(ids)

        store = SlowStore(diamond_graph)
        loader = NeighborLoader(store, FORWARD, deadline=time.monotonic() + 0.05)
        with pytest.raises(DeadlineExceeded):
            loader.load([1])
        assert len(store.calls) == 1

    def test_remaining_time_reaches_the_store(self, diamond_graph):
        seen = []

        class RecordingStore(CountingStore):
            def fetch_neighbors(self, ids, direction, timeout=None):
                seen.append(timeout)
                return super().fetch_neighbors(ids, direction, timeout)

        deadline = time.monotonic() + 30
        NeighborLoader(RecordingStore(diamond_graph), FORWARD, deadline=deadline).load([1])
        NeighborLoader(RecordingStore(diamond_graph), FORWARD).load([1])

        assert 0 < seen[0] <= 30
        assert seen[1] is None

    def test_deadline_is_a_transport_error(self):
        assert issubclass(DeadlineExceeded, TransportError)

    def test_unknown_direction(self, diamond_graph):
        with pytest.raises(ValueError):
            NeighborLoader(diamond_graph, "sideways")


class FlakyEngine:
    """Engine stand-in whose connect() fails a fixed number of times."""

    def __init__(self, engine, failures, error=None):
        self.engine = engine
        self.dialect = engine.dialect
        self.failures = failures
        self.attempts = 0
        self.error = error or OperationalError("SELECT", {}, Exception("connection refused"))

    def connect(self):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise self.error
        return self.engine.connect()

    def dispose(self):
        self.engine.dispose()


class TestSQLFollowStore:
    """Tests specific to the relational backend."""

    def test_retries_operational_errors(self):
        inner = make_sql_store(DIAMOND_EDGES)
        engine = FlakyEngine(inner.engine, failures=2)
        store = SQLFollowStore(engine, retries=2, backoff=0)

        assert store.forward_neighbors({1}) == {1: [2, 4]}
        assert engine.attempts == 3

    def test_gives_up_after_retries(self):
        inner = make_sql_store(DIAMOND_EDGES)
        engine = FlakyEngine(inner.engine, failures=5)
        store = SQLFollowStore(engine, retries=2, backoff=0)

        with pytest.raises(TransportError) as excinfo:
            store.backward_neighbors({3})
        assert engine.attempts == 3
        assert isinstance(excinfo.value.__cause__, OperationalError)

    def test_other_errors_are_not_retried(self):
        inner = make_sql_store(DIAMOND_EDGES)
        error = ProgrammingError("SELECT", {}, Exception("syntax error"))
        engine = FlakyEngine(inner.engine, failures=1, error=error)
        store = SQLFollowStore(engine, retries=2, backoff=0)

        with pytest.raises(TransportError):
            store.forward_neighbors({1})
        assert engine.attempts == 1

    def test_backoff_does_not_outlast_deadline(self):
        inner = make_sql_store(DIAMOND_EDGES)
        engine = FlakyEngine(inner.engine, failures=5)
        store = SQLFollowStore(engine, retries=5, backoff=10)

        t0 = time.monotonic()
        with pytest.raises(DeadlineExceeded):
            store.fetch_neighbors({1}, FORWARD, timeout=0.5)
        assert time.monotonic() - t0 < 2
        assert engine.attempts == 1

    def test_timeout_within_budget(self):
        store = make_sql_store(DIAMOND_EDGES)
        assert store.fetch_neighbors({3}, BACKWARD, timeout=30) == {3: [2, 4]}

    def test_missing_table_aborts_search(self):
        store = make_sql_store([])
        store.table.drop(store.engine)
        store.retries = 0

        with pytest.raises(TransportError):
            find_follow_paths(store, 1, 5)

    def test_empty_batch_skips_query(self):
        inner = make_sql_store(DIAMOND_EDGES)
        engine = FlakyEngine(inner.engine, failures=10)
        store = SQLFollowStore(engine)

        assert store.forward_neighbors(set()) == {}
        assert engine.attempts == 0

    def test_iter_follow_edges(self):
        store = make_sql_store(DIAMOND_EDGES)
        assert sorted(iter_follow_edges(store.engine)) == sorted(DIAMOND_EDGES)

    def test_engine_requires_url(self, monkeypatch):
        monkeypatch.setattr("followpaths.sql_store.DATABASE_URL", None)
        with pytest.raises(TransportError):
            create_follow_engine()

    @pytest.mark.parametrize("url", ["not a url", "nosuchdialect://host/db"])
    def test_malformed_url(self, url):
        with pytest.raises(TransportError):
            create_follow_engine(url)


class TestLMDBFollowStore:
    """Tests specific to the LMDB snapshot."""

    def test_build_stats(self, tmp_path):
        store = LMDBFollowStore.build(tmp_path / "db", DIAMOND_EDGES + [(3, 3)])
        # Sources 1, 2, 3, 4; targets 2, 3, 4, 5; the self-loop is dropped
        assert store.stats() == {"sources": 4, "targets": 4}
        assert store.forward_neighbors({3}) == {3: [5]}
        store.close()

    def test_reopen_read_only(self, tmp_path):
        LMDBFollowStore.build(tmp_path / "db", DIAMOND_EDGES).close()
        store = LMDBFollowStore(tmp_path / "db")
        assert store.backward_neighbors({5}) == {5: [3]}
        store.close()

    def test_closed_store_raises(self, tmp_path):
        store = LMDBFollowStore.build(tmp_path / "db", DIAMOND_EDGES)
        store.close()
        with pytest.raises(TransportError):
            store.forward_neighbors({1})

    def test_missing_directory(self, tmp_path):
        with pytest.raises(TransportError):
            LMDBFollowStore(tmp_path / "nope")
