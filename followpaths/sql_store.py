"""Follow edge lookup against the relational ``author_follows`` table."""

import logging
import os
import time

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    MetaData,
    PrimaryKeyConstraint,
    Table,
    create_engine,
    func,
    select,
)
from sqlalchemy.exc import ArgumentError, OperationalError, SQLAlchemyError

from followpaths.errors import DeadlineExceeded, TransportError
from followpaths.store import BACKWARD, FORWARD, GraphStore

logger = logging.getLogger(__name__)

# Check both FOLLOWPATHS_DATABASE_URL and the dashboard's DATABASE_URL
DATABASE_URL = os.environ.get("FOLLOWPATHS_DATABASE_URL") or os.environ.get("DATABASE_URL")

metadata = MetaData()

author_follows = Table(
    "author_follows",
    metadata,
    Column("source", BigInteger, nullable=False),
    Column("target", BigInteger, nullable=False),
    Column("updated_at", DateTime(timezone=True)),
    PrimaryKeyConstraint("source", "target", name="author_follows_pkey"),
)


def create_follow_engine(url=None, **kwargs):
    """Create a SQLAlchemy engine for the follow table's database."""
    url = url or DATABASE_URL
    if not url:
        raise TransportError("No database URL configured (set FOLLOWPATHS_DATABASE_URL)")
    kwargs.setdefault("pool_pre_ping", True)
    try:
        return create_engine(url, **kwargs)
    except (ArgumentError, ImportError) as e:
        raise TransportError(f"Cannot create database engine: {e}") from e


class SQLFollowStore(GraphStore):
    """
    Batched neighbor lookup over ``author_follows``.

    Each call issues exactly one ``SELECT source, target ... WHERE <column>
    IN (...)`` statement and groups the rows per id in Python. Connection
    level failures (``OperationalError``) are retried with exponential
    backoff; reads are idempotent so a retry cannot change the answer.

    When a search passes the time left before its deadline, PostgreSQL runs
    the statement under a matching ``statement_timeout`` and no backoff
    sleep outlasts the deadline.
    """

    def __init__(self, engine, table=author_follows, retries=2, backoff=0.1):
        self.engine = engine
        self.table = table
        self.retries = retries
        self.backoff = backoff

    @classmethod
    def from_url(cls, url=None, **kwargs):
        return cls(create_follow_engine(url), **kwargs)

    def _execute(self, conn, stmt, deadline):
        if deadline is None or self.engine.dialect.name != "postgresql":
            return conn.execute(stmt).all()
        remaining_ms = max(1, int((deadline - time.monotonic()) * 1000))
        with conn.begin():
            # Scoped to this transaction only
            conn.execute(select(func.set_config("statement_timeout", str(remaining_ms), True)))
            return conn.execute(stmt).all()

    def _query(self, ids, key_column, value_column, timeout=None):
        stmt = (
            select(key_column, value_column)
            .where(key_column.in_(sorted(ids)))
        )
        deadline = time.monotonic() + timeout if timeout is not None else None
        attempt = 0
        while True:
            try:
                with self.engine.connect() as conn:
                    rows = self._execute(conn, stmt, deadline)
                break
            except OperationalError as e:
                if deadline is not None and time.monotonic() >= deadline:
                    raise DeadlineExceeded(f"Follow query ran past the deadline: {e}") from e
                if attempt >= self.retries:
                    raise TransportError(
                        f"Follow query failed after {attempt + 1} attempts: {e}"
                    ) from e
                delay = self.backoff * (2 ** attempt)
                if deadline is not None and time.monotonic() + delay >= deadline:
                    raise DeadlineExceeded(
                        f"Follow query failed and no retry fits before the deadline: {e}"
                    ) from e
                logger.warning(
                    "Follow query failed (attempt %d), retrying in %.2fs: %s",
                    attempt + 1,
                    delay,
                    e,
                )
                time.sleep(delay)
                attempt += 1
            except SQLAlchemyError as e:
                raise TransportError(f"Follow query failed: {e}") from e

        grouped = {node_id: set() for node_id in ids}
        for key, value in rows:
            grouped[int(key)].add(int(value))
        return {node_id: sorted(values) for node_id, values in grouped.items()}

    def forward_neighbors(self, ids, timeout=None):
        if not ids:
            return {}
        return self._query(ids, self.table.c.source, self.table.c.target, timeout)

    def backward_neighbors(self, ids, timeout=None):
        if not ids:
            return {}
        return self._query(ids, self.table.c.target, self.table.c.source, timeout)

    def fetch_neighbors(self, ids, direction, timeout=None):
        if direction == FORWARD:
            return self.forward_neighbors(ids, timeout)
        if direction == BACKWARD:
            return self.backward_neighbors(ids, timeout)
        raise ValueError(f"Unknown direction: {direction}")

    def close(self):
        self.engine.dispose()


def iter_follow_edges(engine, table=author_follows, batch_size=100_000):
    """Stream every ``(source, target)`` row, used to build offline snapshots."""
    stmt = select(table.c.source, table.c.target)
    try:
        with engine.connect() as conn:
            result = conn.execution_options(yield_per=batch_size).execute(stmt)
            for source, target in result:
                yield int(source), int(target)
    except SQLAlchemyError as e:
        raise TransportError(f"Follow edge export failed: {e}") from e
