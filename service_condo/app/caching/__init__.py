"""
Response caching package.

Memoizes idempotent read responses in the shared store and evicts them after
successful writes. Keys live under the ``cache:`` namespace so invalidation
patterns never touch rate-limit counters.
"""

from .invalidation import CacheInvalidator, default_invalidation_pattern
from .response_cache import CACHE_HEADER, CACHE_PREFIX, ResponseCache, default_cache_key

__all__ = [
    "CACHE_HEADER",
    "CACHE_PREFIX",
    "CacheInvalidator",
    "ResponseCache",
    "default_cache_key",
    "default_invalidation_pattern",
]
