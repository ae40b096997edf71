"""
Unit tests for cache invalidation.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from fastapi import APIRouter, FastAPI, HTTPException
from fastapi.testclient import TestClient

from service_condo.app.caching import CacheInvalidator
from service_condo.app.routing import LayeredRoute, route_base_path, with_middleware


@pytest.fixture
def seeded_store(store):
    """Store holding two condominium entries and one supplier entry."""
    store.put("cache:/condominios/1", '{"id": 1}', 300)
    store.put("cache:/condominios/2", '{"id": 2}', 300)
    store.put("cache:/fornecedores/1", '{"id": 1}', 300)
    return store


def build_app(store, pattern=None):
    invalidator = CacheInvalidator(store)
    invalidates = with_middleware(invalidator.decorate(pattern))
    router = APIRouter(prefix="/condominios", route_class=LayeredRoute)

    @router.post("", status_code=201)
    @invalidates
    async def create_condominio():
        return {"id": 3}

    @router.put("/{item_id}")
    @invalidates
    async def update_condominio(item_id: int):
        if item_id == 404:
            raise HTTPException(status_code=404, detail="not found")
        return {"id": item_id}

    @router.delete("/{item_id}/unidades/{unit_id}")
    @invalidates
    async def delete_unidade(item_id: int, unit_id: int):
        return {"removed": unit_id}

    app = FastAPI()
    app.include_router(router)
    return app


class TestCacheInvalidator:
    """Test cases for CacheInvalidator."""

    def test_default_pattern_scopes_to_route_base(self, seeded_store):
        """A write on /condominios evicts only condominium entries."""
        response = TestClient(build_app(seeded_store)).put("/condominios/1")

        assert response.status_code == 200
        assert seeded_store.calls_for("scan") == ["cache:/condominios*"]
        assert "cache:/condominios/1" not in seeded_store.data
        assert "cache:/condominios/2" not in seeded_store.data
        assert "cache:/fornecedores/1" in seeded_store.data

    def test_collection_route_uses_same_base(self, seeded_store):
        response = TestClient(build_app(seeded_store)).post("/condominios")

        assert response.status_code == 201
        assert seeded_store.calls_for("scan") == ["cache:/condominios*"]
        assert set(seeded_store.data) == {"cache:/fornecedores/1"}

    def test_nested_route_uses_static_prefix(self, seeded_store):
        TestClient(build_app(seeded_store)).delete("/condominios/1/unidades/9")

        assert seeded_store.calls_for("scan") == ["cache:/condominios*"]

    def test_explicit_pattern(self, seeded_store):
        app = build_app(seeded_store, pattern="cache:/fornecedores*")

        TestClient(app).put("/condominios/1")

        assert seeded_store.calls_for("scan") == ["cache:/fornecedores*"]
        assert set(seeded_store.data) == {"cache:/condominios/1", "cache:/condominios/2"}

    def test_failed_mutation_keeps_cache(self, seeded_store):
        response = TestClient(build_app(seeded_store)).put("/condominios/404")

        assert response.status_code == 404
        assert seeded_store.calls == []
        assert len(seeded_store.data) == 3

    def test_store_unavailable_skips_invalidation(self, seeded_store):
        seeded_store.set_ready(False)

        response = TestClient(build_app(seeded_store)).put("/condominios/1")

        assert response.status_code == 200
        assert seeded_store.calls == []

    def test_scan_error_does_not_fail_request(self, seeded_store):
        seeded_store.failing.add("scan")

        response = TestClient(build_app(seeded_store)).put("/condominios/1")

        assert response.status_code == 200
        assert response.json() == {"id": 1}
        assert len(seeded_store.data) == 3

    def test_delete_error_does_not_fail_request(self, seeded_store):
        seeded_store.failing.add("delete")

        response = TestClient(build_app(seeded_store)).put("/condominios/1")

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_invalidate_returns_count(self, seeded_store):
        invalidator = CacheInvalidator(seeded_store)

        deleted = await invalidator.invalidate("cache:/condominios*")

        assert deleted == 2
        assert seeded_store.calls_for("delete") == [["cache:/condominios/1", "cache:/condominios/2"]]

    @pytest.mark.asyncio
    async def test_invalidate_nothing_matching(self, seeded_store):
        invalidator = CacheInvalidator(seeded_store)

        assert await invalidator.invalidate("cache:/documentos*") == 0
        assert len(seeded_store.data) == 3

    @pytest.mark.asyncio
    async def test_invalidate_error_returns_zero(self, seeded_store):
        seeded_store.failing.add("delete")
        invalidator = CacheInvalidator(seeded_store)

        assert await invalidator.invalidate("cache:/condominios*") == 0

    def test_router_inside_prefixed_router(self, store):
        """Parent router prefixes are part of the evicted namespace."""
        store.put("cache:/api/unidades#tenant=default", "[]", 300)
        store.put("cache:/api/unidades/5#tenant=default", '{"id": 5}', 300)
        store.put("cache:/unidades/5", '{"id": 5}', 300)

        invalidates = with_middleware(CacheInvalidator(store).decorate())
        child = APIRouter(prefix="/unidades", route_class=LayeredRoute)

        @child.put("/{item_id}")
        @invalidates
        async def update_unidade(item_id: int):
            return {"id": item_id}

        parent = APIRouter(prefix="/api")
        parent.include_router(child)
        app = FastAPI()
        app.include_router(parent)

        response = TestClient(app).put("/api/unidades/5")

        assert response.status_code == 200
        assert store.calls_for("scan") == ["cache:/api/unidades*"]
        assert set(store.data) == {"cache:/unidades/5"}


class TestRouteBasePath:
    """Test cases for route_base_path."""

    def _request(self, path, template=None):
        request = MagicMock()
        request.url.path = path
        request.scope = {"route": SimpleNamespace(path=template)} if template else {}
        return request

    @pytest.mark.parametrize("path,template,expected", [
        ("/api/condominios", "/condominios", "/api/condominios"),
        ("/api/condominios/", "/condominios/", "/api/condominios"),
        ("/api/condominios/7", "/condominios/{record_id}", "/api/condominios"),
        ("/api/condominios/7", "/api/condominios/{record_id}", "/api/condominios"),
        ("/api/condominios/7/estatisticas", "/condominios/{id}/estatisticas", "/api/condominios"),
        ("/v1/api/condominios/7/unidades/9", "/{id}/unidades/{unit_id}", "/v1/api/condominios"),
        ("/7", "/{record_id}", "/"),
    ])
    def test_prefix_from_request_path(self, path, template, expected):
        assert route_base_path(self._request(path, template)) == expected

    def test_without_route_uses_request_path(self):
        assert route_base_path(self._request("/api/documentos/")) == "/api/documentos"
