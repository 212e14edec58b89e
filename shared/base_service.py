"""
FastAPI service shell used by the outfit gateway.

Owns the pieces every HTTP entry point needs: the lifespan hooks, CORS for
the browser app, a request id on every response, the catch-all error
handler and the ``/health`` route.
"""

import time
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import ServiceSettings, get_settings
from .logging import get_logger, setup_logging
from .schemas import HealthCheck, HealthStatus

REQUEST_ID_HEADER = "X-Request-ID"


class BaseService(ABC):
    """FastAPI application with startup, shutdown and health plumbing."""

    def __init__(self, service_name: str, version: str = "1.0.0", settings: ServiceSettings | None = None):
        self.service_name = service_name
        self.version = version
        self.settings = settings if settings is not None else get_settings()

        setup_logging(service_name, self.settings)
        self.logger = get_logger(service_name)

        self.started_at: float | None = None
        self._is_healthy = True
        self._health_details: dict[str, Any] = {}

        self.app = self._create_app()

    def _create_app(self) -> FastAPI:
        app = FastAPI(
            title="Outfit Analysis Gateway",
            version=self.version,
            lifespan=self._lifespan,
        )

        # The browser app is served from a different origin in development
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
            expose_headers=[REQUEST_ID_HEADER],
        )
        app.middleware("http")(self._tag_request)
        app.add_exception_handler(Exception, self._unhandled_exception)
        app.add_api_route("/health", self.health_check, methods=["GET"], response_model=HealthCheck)

        self._add_routes(app)
        return app

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        self.started_at = time.time()
        try:
            await self._initialize_service()
        except Exception as e:
            self._is_healthy = False
            self.logger.error("Service failed to start", error_type=type(e).__name__, error=str(e))
            raise
        self.logger.info("Service started", version=self.version, environment=self.settings.environment)

        try:
            yield
        finally:
            try:
                await self._cleanup_service()
            except Exception as e:
                self.logger.error("Error during shutdown", error_type=type(e).__name__, error=str(e))
            else:
                self.logger.info("Service stopped")

    async def _tag_request(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        request.state.logger = get_logger(self.service_name, request_id=request_id)

        start_time = time.time()
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id

        request.state.logger.debug(
            "Request handled",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=int((time.time() - start_time) * 1000),
        )
        return response

    async def _unhandled_exception(self, request: Request, exc: Exception) -> JSONResponse:
        # Details stay in the log; the response body is the same for every failure
        self.logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "service": self.service_name,
                "timestamp": time.time(),
            },
        )

    async def health_check(self) -> HealthCheck:
        """Report liveness plus whatever details the service has recorded."""
        try:
            service_healthy = await self._check_service_health()
        except Exception as e:
            self.logger.error("Health check failed", error_type=type(e).__name__, error=str(e))
            return HealthCheck(
                service=self.service_name,
                status=HealthStatus.UNHEALTHY,
                version=self.version,
                details={"error": type(e).__name__},
            )

        # The service check runs first so it can clear a startup failure
        healthy = service_healthy and self._is_healthy
        uptime = time.time() - self.started_at if self.started_at else 0
        return HealthCheck(
            service=self.service_name,
            status=HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY,
            version=self.version,
            details={"uptime_seconds": round(uptime, 1), **self._health_details},
        )

    @abstractmethod
    def _add_routes(self, app: FastAPI) -> None:
        """Register the service routes."""

    async def _initialize_service(self) -> None:
        pass

    async def _cleanup_service(self) -> None:
        pass

    async def _check_service_health(self) -> bool:
        return True

    def set_health_detail(self, key: str, value: Any) -> None:
        self._health_details[key] = value

    def set_unhealthy(self, reason: str) -> None:
        self._is_healthy = False
        self._health_details["unhealthy_reason"] = reason
        self.logger.warning("Service marked as unhealthy", reason=reason)

    def set_healthy(self) -> None:
        self._is_healthy = True
        self._health_details.pop("unhealthy_reason", None)

    def run(self, host: str | None = None, port: int | None = None) -> None:
        """Serve the app with uvicorn; logging stays with loguru."""
        import uvicorn

        service_config = self.settings.get_service_config()
        run_host = host or service_config.host
        run_port = port or service_config.port

        self.logger.info("Starting service", host=run_host, port=run_port, debug=self.settings.debug)
        uvicorn.run(
            self.app,
            host=run_host,
            port=run_port,
            log_config=None,
            access_log=False,
        )
