"""
Condominium back-office API service.
"""

import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST

from condo_shared.config import Settings, get_settings
from condo_shared.errors import CondoException
from condo_shared.logging import (
    clear_context,
    configure_logging,
    get_logger,
    set_request_context,
    set_request_id,
)
from condo_shared.metrics import get_metrics_collector
from .caching import CacheInvalidator, ResponseCache
from .ratelimit import AUTH_POLICY, RateLimiter, build_limiter, general_policy
from .routes import Authenticator, InMemoryRepository, auth_router, resource_router
from .routes.auth import reject_all
from .routes.resources import TENANT_HEADER
from .store import RedisStore

# path -> fields searched by ?search=
RESOURCES: Dict[str, list] = {
    "/condominios": ["nome", "cnpj", "cidade"],
    "/unidades": ["numero", "bloco"],
    "/documentos": ["titulo", "tipo"],
    "/fornecedores": ["nome", "cnpj", "categoria"],
    "/financeiro": ["descricao", "categoria"],
}


class CondoService:
    """Back-office API: CRUD routers behind the cache and rate-limit layers."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        store: Optional[RedisStore] = None,
        authenticate: Authenticator = reject_all,
    ):
        self.config = settings or get_settings()
        self.service_name = self.config.service_name
        configure_logging(self.service_name, self.config.log_level)
        self.logger = get_logger("condo.service")
        self.metrics = get_metrics_collector(self.service_name)
        self._start_time = time.time()

        self.store = store or RedisStore(
            self.config.store_url(),
            socket_timeout=self.config.redis_socket_timeout,
            health_check_interval=self.config.redis_health_check_interval,
            metrics=self.metrics,
        )
        self.response_cache = ResponseCache(self.store, metrics=self.metrics)
        self.invalidator = CacheInvalidator(self.store, metrics=self.metrics)
        self.api_limiter = build_limiter(
            general_policy(self.config),
            self.store,
            trust_forwarded=self.config.trust_forwarded,
            metrics=self.metrics,
        )
        self.auth_limiter = build_limiter(
            AUTH_POLICY,
            self.store,
            trust_forwarded=self.config.trust_forwarded,
            metrics=self.metrics,
        )
        self.repositories = {
            path: InMemoryRepository(path.strip("/"), fields) for path, fields in RESOURCES.items()
        }
        self.authenticate = authenticate

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()
        self._setup_api_routes()
        self.app.state.condo_service = self

    @property
    def limiters(self) -> Dict[str, RateLimiter]:
        return {"api": self.api_limiter, "auth": self.auth_limiter}

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        await self.store.start()
        # Limiters built before the handshake get a second chance at Redis.
        for limiter in self.limiters.values():
            limiter.select_backend()
        self.logger.info("Service started", store=self.store.availability.value)
        try:
            yield
        finally:
            await self.store.close()
            self.logger.info("Service stopped")

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        return FastAPI(
            title="Condominium Back-Office API",
            version="1.0.0",
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
            lifespan=self._lifespan,
        )

    def _setup_middleware(self):
        """Set up middleware. The last one added runs first."""

        # General rate limit on every request, ahead of any business logic
        self.app.middleware("http")(self.api_limiter)

        @self.app.middleware("http")
        async def add_request_timing(request: Request, call_next):
            request_id = set_request_id(request.headers.get("X-Request-ID"))
            set_request_context(
                client_ip=request.client.host if request.client else None,
                tenant_id=request.headers.get(TENANT_HEADER),
            )
            start_time = time.time()
            try:
                response = await call_next(request)
                duration = time.time() - start_time

                self.metrics.record_http_request(
                    method=request.method,
                    endpoint=request.url.path,
                    status_code=response.status_code,
                    duration=duration
                )
                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(duration * 1000, 2)
                )
                response.headers["X-Request-ID"] = request_id
                return response
            finally:
                clear_context()

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if self.config.env == "local" else [],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["X-Cache", "RateLimit-Limit", "RateLimit-Remaining", "RateLimit-Reset"],
        )

    def _setup_routes(self):
        """Set up service routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint.

            Always 200: without the store the API still serves, only slower
            and with per-process rate limits.
            """
            dependencies = self._check_dependencies()
            status = "ok" if self.store.is_ready() else "degraded"
            self.metrics.record_health_check(status)
            return {
                "service": self.service_name,
                "status": status,
                "uptime_seconds": round(time.time() - self._start_time, 3),
                "dependencies": dependencies,
                "version": "1.0.0",
            }

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(content=self.metrics.render(), media_type=CONTENT_TYPE_LATEST)

        @self.app.exception_handler(CondoException)
        async def condo_exception_handler(request: Request, exc: CondoException):
            """Handle CondoException."""
            log = self.logger.error if exc.status_code >= 500 else self.logger.warning
            log(
                "Request failed",
                method=request.method,
                path=request.url.path,
                code=exc.code,
                message=exc.message,
                details=exc.details
            )
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response().model_dump()
            )

    def _setup_api_routes(self):
        """Mount resource and auth routers under /api."""
        api = APIRouter(prefix="/api")

        @api.get("")
        async def api_root():
            return {
                "message": "Condominium back-office API",
                "version": "1.0.0",
                "documentation": "/docs",
            }

        for path, repository in self.repositories.items():
            api.include_router(resource_router(
                path,
                repository,
                response_cache=self.response_cache,
                invalidator=self.invalidator,
                ttl_seconds=self.config.default_cache_ttl,
            ))
        api.include_router(auth_router(self.auth_limiter, self.authenticate))
        self.app.include_router(api)

    def _check_dependencies(self) -> Dict[str, Any]:
        """Report store availability and where each limiter keeps its counters."""
        return {
            "store": self.store.availability.value,
            "rate_limit_backends": {
                name: "shared" if limiter.uses_shared_store else "memory"
                for name, limiter in self.limiters.items()
            },
        }

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )


def create_app(settings: Optional[Settings] = None, **kwargs) -> FastAPI:
    """Create FastAPI application."""
    service = CondoService(settings, **kwargs)
    return service.app


def run():
    CondoService().run()


if __name__ == "__main__":
    run()
