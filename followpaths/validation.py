"""Input parsing and result verification for follow path searches.

Parsing helpers turn user input (CLI tokens, query strings) into node ids and
search budgets, raising ``ValidationError`` before any graph access. The
verification helpers are development and testing tools that check returned
paths against the store they came from.
"""

import re
from dataclasses import dataclass
from typing import Optional, Union

from followpaths.errors import ValidationError
from followpaths.store import GraphStore

MIN_NODE_ID = 0
MAX_NODE_ID = 2**63 - 1

_DIGITS = re.compile(r"^[0-9]+$")


def parse_node_id(value: Union[str, int, None], label: str = "node id") -> int:
    """Parse an author id given as a decimal string or an int.

    Surrounding whitespace is ignored. Signs, decimal points and anything
    outside ``[0, 2**63 - 1]`` are rejected.
    """
    if value is None or value == "":
        raise ValidationError(f"Missing {label}.")
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {label}: {value!r}")
    if isinstance(value, int):
        node_id = value
    else:
        text = str(value).strip()
        if not _DIGITS.match(text):
            raise ValidationError(f"Invalid {label}: {value}")
        node_id = int(text)
    if node_id < MIN_NODE_ID or node_id > MAX_NODE_ID:
        raise ValidationError(f"Out of range {label}: {value}")
    return node_id


def parse_positive_int(value: Union[str, int, None], label: str, default: Optional[int] = None) -> int:
    """Parse a strictly positive integer, falling back to ``default`` when unset."""
    if value is None or value == "":
        if default is None:
            raise ValidationError(f"Missing {label}.")
        return default
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {label}: {value!r}")
    if isinstance(value, int):
        parsed = value
    else:
        text = str(value).strip()
        if not _DIGITS.match(text):
            raise ValidationError(f"Invalid {label}: {value}")
        parsed = int(text)
    if parsed <= 0:
        raise ValidationError(f"Invalid {label}: {value}")
    return parsed


@dataclass
class PathIssue:
    """A problem found while verifying a returned path."""
    issue_type: str
    message: str
    path_index: Optional[int] = None
    node_id: Optional[int] = None


@dataclass
class VerificationResult:
    """Result of verifying search results against the store."""
    valid: bool
    total_paths: int
    valid_paths: int
    issues: list[PathIssue]

    def summary(self) -> str:
        """Return a human-readable summary."""
        lines = [
            f"Verification {'PASSED' if self.valid else 'FAILED'}",
            f"  Total paths: {self.total_paths}",
            f"  Valid paths: {self.valid_paths}",
            f"  Invalid paths: {self.total_paths - self.valid_paths}",
        ]
        if self.issues:
            lines.append(f"  Issues ({len(self.issues)}):")
            for issue in self.issues[:10]:
                lines.append(f"    - [{issue.issue_type}] {issue.message}")
            if len(self.issues) > 10:
                lines.append(f"    ... and {len(self.issues) - 10} more issues")
        return "\n".join(lines)


def verify_paths(
    store: GraphStore,
    paths,
    source: int,
    target: int,
    max_depth: Optional[int] = None,
) -> VerificationResult:
    """
    Check that every path is a simple chain of existing follow edges.

    For each path this verifies:
    1. It starts at ``source`` and ends at ``target``
    2. No node id repeats
    3. Its depth does not exceed ``max_depth`` (when given)
    4. Every consecutive pair is an edge in ``store``

    Args:
        store: The store the paths were computed from
        paths: Iterable of id sequences or objects with a ``path`` attribute
        source: Expected first id
        target: Expected last id
        max_depth: Optional hop budget

    Returns:
        VerificationResult with one issue per violation found
    """
    sequences = [tuple(getattr(p, "path", p)) for p in paths]

    # One batched lookup for every node that has an outgoing hop
    hop_sources = {node_id for seq in sequences for node_id in seq[:-1]}
    adjacency = store.forward_neighbors(hop_sources) if hop_sources else {}
    adjacency = {node_id: set(targets) for node_id, targets in adjacency.items()}

    issues = []
    valid_paths = 0
    for i, seq in enumerate(sequences):
        path_issues = []
        if not seq or seq[0] != source or seq[-1] != target:
            path_issues.append(PathIssue(
                issue_type="WRONG_ENDPOINTS",
                message=f"Path {i} does not run from {source} to {target}: {list(seq)}",
                path_index=i,
            ))
        if len(set(seq)) != len(seq):
            path_issues.append(PathIssue(
                issue_type="REPEATED_NODE",
                message=f"Path {i} repeats a node: {list(seq)}",
                path_index=i,
            ))
        if max_depth is not None and len(seq) - 1 > max_depth:
            path_issues.append(PathIssue(
                issue_type="DEPTH_EXCEEDED",
                message=f"Path {i} has depth {len(seq) - 1} > {max_depth}",
                path_index=i,
            ))
        for src, dst in zip(seq, seq[1:]):
            if dst not in adjacency.get(src, ()):
                path_issues.append(PathIssue(
                    issue_type="EDGE_NOT_FOUND",
                    message=f"Path {i} uses missing edge {src} -> {dst}",
                    path_index=i,
                    node_id=src,
                ))
        if not path_issues:
            valid_paths += 1
        issues.extend(path_issues)

    return VerificationResult(
        valid=not issues,
        total_paths=len(sequences),
        valid_paths=valid_paths,
        issues=issues,
    )
