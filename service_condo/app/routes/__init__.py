"""
HTTP routers mounted under ``/api``.
"""

from .auth import Authenticator, auth_router
from .resources import InMemoryRepository, resource_router, tenant_cache_key

__all__ = [
    "Authenticator",
    "InMemoryRepository",
    "auth_router",
    "resource_router",
    "tenant_cache_key",
]
