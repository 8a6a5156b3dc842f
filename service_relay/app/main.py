"""
Relay service for the Relay Access layer.
"""

from typing import Optional

import httpx
from fastapi import Request

from shared.base_service import BaseService
from shared.config import ServiceConfig

from .adapters.source_loader import SourceLoader
from .caching.source_cache import SourceCache
from .domain.dispatcher import RelayDispatcher
from .domain.sources import SourceRegistry
from .proxy.forwarder import ProxyForwarder

RELAY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class RelayService(BaseService):
    """Relay service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        proxy_transport: Optional[httpx.AsyncBaseTransport] = None,
        source_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__("relay", config=config)

        self.registry = self._build_registry()
        self.source_loader = SourceLoader(
            timeout_seconds=self.config.source_timeout_seconds,
            user_agent=self.config.user_agent,
            transport=source_transport,
        )
        self.source_cache = SourceCache(
            self.registry,
            self.source_loader,
            ttl_seconds=self.config.cache_ttl_seconds,
            metrics=self.metrics,
        )
        self.forwarder = ProxyForwarder(
            self.config.proxy_timeout_seconds,
            transport=proxy_transport,
        )
        self.dispatcher = RelayDispatcher(
            self.registry,
            self.source_cache,
            self.forwarder,
            block_private_targets=self.config.block_private_targets,
            max_body_bytes=self.config.max_body_bytes,
            metrics=self.metrics,
        )

        @self.app.on_event("startup")
        async def _startup():
            self.source_cache.start_sweeper()
            self.logger.info(
                "Relay service started",
                port=self.config.port,
                source_mode=self.config.source_mode,
                sources=self.registry.as_dict(),
            )

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.source_cache.stop_sweeper()
            await self.forwarder.close()
            self.logger.info("Relay service stopped")

        self._setup_relay_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.relay_service = self

    def _build_registry(self) -> SourceRegistry:
        if self.config.source_mode == "local":
            return SourceRegistry.local(
                self.config.source_dir,
                self.config.source_urls,
                self.config.default_source,
            )
        return SourceRegistry.remote(self.config.source_urls, self.config.default_source)

    def _setup_relay_routes(self):
        """Set up the relay root endpoint."""

        @self.app.api_route("/", methods=RELAY_METHODS)
        async def relay(request: Request):
            """Proxy, transform or describe depending on query parameters."""
            return await self.dispatcher.handle(request)


def create_app(config: Optional[ServiceConfig] = None, **kwargs):
    """Create FastAPI application."""
    service = RelayService(config, **kwargs)
    return service.app


if __name__ == "__main__":
    service = RelayService()
    service.run()
