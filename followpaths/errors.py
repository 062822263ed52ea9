"""Exception taxonomy for follow path searches."""


class FollowPathsError(Exception):
    """Base class for every error raised by followpaths."""


class ValidationError(FollowPathsError, ValueError):
    """Malformed search input. Raised before any graph access."""


class TransportError(FollowPathsError):
    """The edge store could not be reached or a batched query failed."""


class DeadlineExceeded(TransportError):
    """The search ran past its deadline while waiting on the edge store."""
