"""
Backing stores for the cache and rate-limit layers.

``RedisStore`` is the shared, networked store; ``MemoryCounterStore`` is the
per-process fallback for rate-limit counters.
"""

from .memory_counter import MemoryCounterStore
from .redis_store import RedisStore, StoreAvailability

__all__ = ["MemoryCounterStore", "RedisStore", "StoreAvailability"]
