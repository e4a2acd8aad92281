"""
FastAPI shell shared by cache service processes.

Subclasses add their routes and override ``start``/``stop`` and
``_check_dependencies``; this module owns the lifespan, request
correlation, ``/health``, ``/metrics`` and the error envelope.
"""

import os
import time
from contextlib import asynccontextmanager
from typing import Dict

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST

from shared.config import get_config
from shared.errors import CacheLayerException
from shared.logging import clear_context, configure_logging, get_logger, request_id_var, set_request_id
from shared.metrics import get_metrics_collector

REQUEST_ID_HEADER = "x-request-id"
VERSION = "1.0.0"


class BaseService:
    """One HTTP process: config, logger, metrics and the FastAPI app."""

    def __init__(self, service_name: str, port: int, **config_overrides):
        self.service_name = service_name
        self.port = port
        self.config = get_config(service_name, port, **config_overrides)
        configure_logging(service_name, self.config.log_level)

        self.logger = get_logger(f"{service_name}.http")
        self.metrics = get_metrics_collector(service_name)
        self._started_at = time.monotonic()

        self.app = FastAPI(
            title=f"{service_name.title()} Service",
            description=f"Tiered document cache - {service_name} admin API",
            version=VERSION,
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url=None,
            lifespan=self._lifespan,
        )
        self.app.middleware("http")(self._correlate_request)
        self.app.add_exception_handler(CacheLayerException, self._cache_error)
        self.app.add_api_route("/health", self._health, methods=["GET"])
        self.app.add_api_route("/metrics", self._metrics_endpoint, methods=["GET"])

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        await self.start()
        try:
            yield
        finally:
            await self.stop()

    async def _correlate_request(self, request: Request, call_next):
        """Tag logs with the caller's request id, echo it and record timing."""
        started = time.perf_counter()
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        try:
            response = await call_next(request)
            elapsed = time.perf_counter() - started

            self.metrics.record_http_request(request.method, request.url.path, response.status_code, elapsed)
            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(elapsed * 1000, 2)
            )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            clear_context()

    async def _health(self):
        try:
            dependencies = await self._check_dependencies()
        except Exception as exc:
            self.logger.error("Health check failed", error=str(exc))
            self.metrics.record_health_check("error")
            return JSONResponse(
                status_code=503,
                content={"service": self.service_name, "status": "error", "error": str(exc)}
            )

        self.metrics.record_health_check("ok")
        return {
            "service": self.service_name,
            "status": "ok",
            "uptime_seconds": round(time.monotonic() - self._started_at, 3),
            "dependencies": dependencies,
            "version": VERSION,
            "commit": os.getenv("GIT_COMMIT", "unknown"),
        }

    async def _metrics_endpoint(self):
        return Response(content=self.metrics.export(), media_type=CONTENT_TYPE_LATEST)

    async def _cache_error(self, request: Request, exc: CacheLayerException):
        self.logger.warning("Cache layer error", code=exc.code, message=exc.message, details=exc.details)
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response(request_id_var.get()).model_dump()
        )

    async def _check_dependencies(self) -> Dict[str, str]:
        """Map dependency name to "ok", "error" or "disabled"."""
        return {}

    async def start(self):
        """Bring up service components."""

    async def stop(self):
        """Release service components."""

    def run(self):
        import uvicorn
        uvicorn.run(self.app, host=self.config.host, port=self.config.port, log_level=self.config.log_level.lower())
