"""
Tagged outcome of a usage fetch.

A fetch ends in exactly one of three shapes, so consumers can branch
exhaustively instead of mixing exceptions with error fields.
"""

from dataclasses import dataclass
from typing import Union

from .errors import CrsStatusError
from crs_status.storage.models import UsageSnapshot


@dataclass(frozen=True)
class Ok:
    """Freshly fetched (or still-fresh cached) snapshot."""
    snapshot: UsageSnapshot


@dataclass(frozen=True)
class OkWithWarning:
    """Stale snapshot served because the refresh failed."""
    snapshot: UsageSnapshot
    warning: str


@dataclass(frozen=True)
class Err:
    """Failure with no usable snapshot to fall back to."""
    error: CrsStatusError


UsageResult = Union[Ok, OkWithWarning, Err]
