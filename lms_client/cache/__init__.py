"""
Query cache package: keyed server state, observers and optimistic mutations.
"""

from .mutation import (
    CacheSnapshot,
    Mutation,
    MutationContext,
    OptimisticUpdate,
    optimistic_mutation,
)
from .query_client import (
    CacheEntry,
    QueryClient,
    QueryObserver,
    QueryOptions,
    QueryResult,
)
from .query_key import QueryKey, as_key, make_query_key, matches_key

__all__ = [
    "CacheSnapshot",
    "Mutation",
    "MutationContext",
    "OptimisticUpdate",
    "optimistic_mutation",
    "CacheEntry",
    "QueryClient",
    "QueryObserver",
    "QueryOptions",
    "QueryResult",
    "QueryKey",
    "as_key",
    "make_query_key",
    "matches_key",
]
