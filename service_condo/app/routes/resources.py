"""
CRUD routers for the back-office resources.

Persistence and field validation belong to the domain services; the
repository here keeps records in memory so the cache and rate-limit layers
can be wired and exercised against real routes.
"""

import itertools
import math
import threading
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Query, Request

from condo_shared.errors import NotFoundError
from ..caching import CacheInvalidator, ResponseCache, default_cache_key
from ..routing import LayeredRoute, with_middleware

TENANT_HEADER = "X-Tenant-ID"
DEFAULT_TENANT = "default"


def tenant_of(request: Request) -> str:
    return request.headers.get(TENANT_HEADER) or DEFAULT_TENANT


def tenant_cache_key(request: Request) -> str:
    """Default cache key plus the tenant, so tenants never share entries.

    The tenant goes last to keep the ``cache:<path>`` prefix that
    invalidation patterns rely on.
    """
    return f"{default_cache_key(request)}#tenant={tenant_of(request)}"


class InMemoryRepository:
    """Tenant-scoped record store for one resource."""

    def __init__(self, resource: str, search_fields: Optional[List[str]] = None):
        self.resource = resource
        self.search_fields = search_fields or ["nome"]
        self._records: Dict[str, Dict[int, Dict[str, Any]]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _tenant(self, tenant: str) -> Dict[int, Dict[str, Any]]:
        return self._records.setdefault(tenant, {})

    def list(self, tenant: str, search: Optional[str] = None) -> List[Dict[str, Any]]:
        records = list(self._tenant(tenant).values())
        if search:
            needle = search.lower()
            records = [
                record for record in records
                if any(needle in str(record.get(field, "")).lower() for field in self.search_fields)
            ]
        return sorted(records, key=lambda record: record["id"])

    def get(self, tenant: str, record_id: int) -> Dict[str, Any]:
        record = self._tenant(tenant).get(record_id)
        if record is None:
            raise NotFoundError(self.resource, record_id)
        return record

    def create(self, tenant: str, data: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            record = {**data, "id": next(self._ids)}
            self._tenant(tenant)[record["id"]] = record
        return record

    def update(self, tenant: str, record_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            record = self.get(tenant, record_id)
            record.update({key: value for key, value in data.items() if key != "id"})
        return record

    def delete(self, tenant: str, record_id: int) -> None:
        with self._lock:
            self.get(tenant, record_id)
            del self._tenant(tenant)[record_id]


def resource_router(
    path: str,
    repository: InMemoryRepository,
    *,
    response_cache: ResponseCache,
    invalidator: CacheInvalidator,
    ttl_seconds: int = 300,
) -> APIRouter:
    """List/get/create/update/delete routes with caching on reads."""
    router = APIRouter(prefix=path, tags=[repository.resource], route_class=LayeredRoute)
    cached = with_middleware(response_cache.decorate(ttl_seconds, tenant_cache_key))
    invalidates = with_middleware(invalidator.decorate())

    @router.get("")
    @cached
    async def list_records(
        request: Request,
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        search: Optional[str] = None,
    ):
        tenant = tenant_of(request)
        records = repository.list(tenant, search)
        offset = (page - 1) * limit
        return {
            "status": "success",
            "data": records[offset:offset + limit],
            "meta": {
                "total": len(records),
                "page": page,
                "limit": limit,
                "pages": math.ceil(len(records) / limit),
            },
        }

    @router.get("/{record_id}")
    @cached
    async def get_record(record_id: int, request: Request):
        return {"status": "success", "data": repository.get(tenant_of(request), record_id)}

    @router.post("", status_code=201)
    @invalidates
    async def create_record(request: Request, data: Dict[str, Any] = Body(...)):
        record = repository.create(tenant_of(request), data)
        return {"status": "success", "data": record}

    @router.put("/{record_id}")
    @invalidates
    async def update_record(record_id: int, request: Request, data: Dict[str, Any] = Body(...)):
        record = repository.update(tenant_of(request), record_id, data)
        return {"status": "success", "data": record}

    @router.delete("/{record_id}")
    @invalidates
    async def delete_record(record_id: int, request: Request):
        repository.delete(tenant_of(request), record_id)
        return {"status": "success", "message": f"{repository.resource} removed"}

    return router
