"""Follow path HTTP service."""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from followpaths import (
    DEFAULT_LIMIT,
    DEFAULT_MAX_DEPTH,
    CSRFollowGraph,
    DeadlineExceeded,
    GraphStore,
    LMDBFollowStore,
    SQLFollowStore,
    TransportError,
    ValidationError,
    find_follow_paths,
)

logger = logging.getLogger(__name__)

STORE: Optional[GraphStore] = None

# Configuration via environment variables
GRAPH_PATH = os.environ.get("FOLLOWPATHS_GRAPH_PATH", "")
GRAPH_FORMAT = os.environ.get("FOLLOWPATHS_GRAPH_FORMAT", "auto")  # "auto", "sql", "mmap" or "lmdb"
DATABASE_URL = os.environ.get("FOLLOWPATHS_DATABASE_URL") or os.environ.get("DATABASE_URL")
QUERY_TIMEOUT = float(os.environ.get("FOLLOWPATHS_QUERY_TIMEOUT", "0")) or None
CONCURRENT = os.environ.get("FOLLOWPATHS_CONCURRENT", "false").lower() == "true"


def open_store(path: str = "", format: str = "auto", database_url: Optional[str] = None) -> GraphStore:
    """
    Open the follow graph store.

    Args:
        path: Snapshot directory (mmap or LMDB), unused for "sql"
        format: "auto" (detect from path), "sql", "mmap" or "lmdb"
        database_url: SQLAlchemy URL, used for "sql"

    Returns:
        An opened GraphStore
    """
    if format == "auto":
        if path and Path(path).is_dir():
            format = "lmdb" if (Path(path) / "data.mdb").exists() else "mmap"
        else:
            format = "sql"

    if format == "sql":
        return SQLFollowStore.from_url(database_url)
    elif format == "mmap":
        return CSRFollowGraph.load_mmap(path)
    elif format == "lmdb":
        return LMDBFollowStore(path, readonly=True)
    else:
        raise ValueError(f"Unknown format: {format}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the follow graph store on startup."""
    global STORE
    if STORE is None:
        logger.info("Opening follow graph store (format=%s)...", GRAPH_FORMAT)
        STORE = open_store(GRAPH_PATH, GRAPH_FORMAT, DATABASE_URL)
    logger.info("Server ready!")
    yield
    if STORE is not None:
        STORE.close()
    STORE = None


APP = FastAPI(
    title="followpaths",
    lifespan=lifespan,
)

APP.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@APP.get("/health")
def health():
    """Liveness probe."""
    return {"status": "ok"}


@APP.get("/paths")
def get_paths(
    source: str,
    target: str,
    max_depth: str = str(DEFAULT_MAX_DEPTH),
    limit: str = str(DEFAULT_LIMIT),
):
    """Find shortest follow paths from source to target."""
    if STORE is None:
        raise HTTPException(503, "Follow graph store is not loaded")
    try:
        result = find_follow_paths(
            STORE,
            source,
            target,
            max_depth,
            limit,
            concurrent=CONCURRENT,
            timeout=QUERY_TIMEOUT,
        )
    except ValidationError as e:
        raise HTTPException(400, str(e))
    except DeadlineExceeded as e:
        logger.warning("Path search from %s to %s timed out: %s", source, target, e)
        raise HTTPException(504, str(e))
    except TransportError as e:
        logger.error("Path search from %s to %s failed: %s", source, target, e)
        raise HTTPException(503, str(e))

    return result.to_dict()
