"""
followpaths - Bidirectional shortest follow path search over an author graph
"""

__version__ = "0.1.0"

from followpaths.diagnostics import diagnose_path_explosion
from followpaths.errors import (
    DeadlineExceeded,
    FollowPathsError,
    TransportError,
    ValidationError,
)
from followpaths.graph import CSRFollowGraph
from followpaths.lmdb_store import LMDBFollowStore
from followpaths.loader import build_graph_from_edges, build_graph_from_jsonl
from followpaths.search import (
    DEFAULT_LIMIT,
    DEFAULT_MAX_DEPTH,
    FollowPath,
    PathSearchResult,
    build_path_index,
    find_follow_paths,
    find_paths_bidirectional,
    join_path_indices,
)
from followpaths.sql_store import SQLFollowStore, author_follows
from followpaths.store import GraphStore, NeighborLoader
from followpaths.validation import (
    MAX_NODE_ID,
    VerificationResult,
    parse_node_id,
    parse_positive_int,
    verify_paths,
)

__all__ = [
    # Stores
    "GraphStore",
    "NeighborLoader",
    "CSRFollowGraph",
    "LMDBFollowStore",
    "SQLFollowStore",
    "author_follows",
    # Loading
    "build_graph_from_edges",
    "build_graph_from_jsonl",
    # Search
    "DEFAULT_LIMIT",
    "DEFAULT_MAX_DEPTH",
    "FollowPath",
    "PathSearchResult",
    "build_path_index",
    "find_follow_paths",
    "find_paths_bidirectional",
    "join_path_indices",
    # Diagnostics
    "diagnose_path_explosion",
    # Errors
    "FollowPathsError",
    "ValidationError",
    "TransportError",
    "DeadlineExceeded",
    # Validation
    "MAX_NODE_ID",
    "VerificationResult",
    "parse_node_id",
    "parse_positive_int",
    "verify_paths",
]
