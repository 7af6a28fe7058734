"""Memoization of interaction lookups within one propagation run.

Multi-path traversal revisits the same node through different parents. Each
arrival anchors its window to its own interaction date, so keys carry the
window bounds and only arrivals that land on the same window share a query.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from exposure_chain.models import Interaction

from .base import BoundedCache


class QueryType(str, Enum):
    INTERACTIONS = "interactions"


def query_key(
    query_type: QueryType,
    partner_identity: str,
    window_start: datetime,
    window_end: datetime,
) -> str:
    """Cache key ``type:partner:start:end`` with epoch-millisecond bounds."""
    start_ms = int(window_start.timestamp() * 1000)
    end_ms = int(window_end.timestamp() * 1000)
    return f"{query_type.value}:{partner_identity}:{start_ms}:{end_ms}"


class QueryCache(BoundedCache[str, list[Interaction]]):
    """Interaction query results keyed by ``query_key``."""

    name = "QueryCache"

    def __init__(self, max_entries: int = 1000) -> None:
        super().__init__(max_entries=max_entries)
