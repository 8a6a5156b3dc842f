"""
Base service class for Relay Access services.
"""

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from typing import Optional
import time

from shared.config import ServiceConfig, get_config
from shared.logging import configure_logging, get_logger, set_request_id, clear_context
from shared.metrics import get_metrics_collector
from shared.errors import RelayError

REQUEST_ID_HEADER = "X-Request-ID"


class BaseService:
    """
    FastAPI scaffolding shared by services: logging, metrics, CORS,
    request ids, ``/health`` and ``/metrics``.

    Subclasses add their own routes after calling ``__init__``.
    """

    def __init__(self, service_name: str, port: Optional[int] = None, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.config = config or get_config(service_name, port)
        self.port = self.config.port

        configure_logging(service_name, self.config.log_level, json_output=self.config.log_format == "json")
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        docs_enabled = self.config.env == "local"
        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"Relay Access - {self.service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if docs_enabled else None,
            redoc_url=None,
            openapi_url="/openapi.json" if docs_enabled else None,
        )

    def _setup_middleware(self):
        """Set up middleware."""

        # Relayed responses are readable from any origin.
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["*"],
        )

        @self.app.middleware("http")
        async def track_request(request: Request, call_next):
            request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
            start_time = time.perf_counter()

            try:
                response = await call_next(request)
            except Exception:
                self._observe(request, 500, time.perf_counter() - start_time)
                clear_context()
                raise

            self._observe(request, response.status_code, time.perf_counter() - start_time)
            response.headers[REQUEST_ID_HEADER] = request_id
            clear_context()
            return response

    def _observe(self, request: Request, status_code: int, duration: float):
        self.metrics.record_http_request(
            method=request.method,
            endpoint=request.url.path,
            status_code=status_code,
            duration=duration
        )

        log = self.logger.warning if status_code >= 500 else self.logger.info
        log(
            "HTTP request",
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=round(duration * 1000, 2)
        )

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/health")
        async def health_check():
            """Liveness probe; independent of cache and upstream state."""
            self.metrics.record_health_check("ok")
            return PlainTextResponse("OK")

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(
                content=generate_latest(self.metrics.registry),
                media_type=CONTENT_TYPE_LATEST
            )

        @self.app.exception_handler(RelayError)
        async def relay_exception_handler(request: Request, exc: RelayError):
            """Render RelayErrors raised outside the relay dispatcher."""
            self.logger.error(
                "Relay error",
                code=exc.code,
                message=exc.message,
                details=exc.details
            )
            self.metrics.record_error(exc.code)
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response().model_dump()
            )

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal Server Error",
                    "message": str(exc),
                    "code": "INTERNAL_ERROR",
                    "details": {}
                }
            )

    def run(self):
        """Run the service behind any reverse proxy that sets X-Forwarded-* headers."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower(),
            proxy_headers=True,
            forwarded_allow_ips="*",
        )
