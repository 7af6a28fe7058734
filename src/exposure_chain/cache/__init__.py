"""Run-scoped caches for propagation."""

from .base import BoundedCache, CacheStats
from .query_cache import QueryCache, QueryType, query_key
from .user_cache import NOT_FOUND, UserCacheStats, UserLookupCache

__all__ = [
    "NOT_FOUND",
    "BoundedCache",
    "CacheStats",
    "QueryCache",
    "QueryType",
    "UserCacheStats",
    "UserLookupCache",
    "query_key",
]
