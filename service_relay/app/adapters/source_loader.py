"""
Loaders that retrieve configuration documents from their locations.
"""

import asyncio
import json
from typing import Any, Optional

import httpx

from shared.logging import get_logger

from ..domain.sources import SourceLocation


class SourceLoadError(Exception):
    """Raised when a source document cannot be retrieved or parsed."""

    def __init__(self, location: str, message: str, status_code: Optional[int] = None):
        self.location = location
        self.status_code = status_code
        super().__init__(message)


class SourceLoader:
    """Fetches remote documents over HTTP and reads local ones from disk."""

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        user_agent: str = "Relay Access Proxy",
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent
        self.logger = get_logger("relay.source_loader")
        self._transport = transport

    async def load(self, location: SourceLocation) -> Any:
        """Return the parsed JSON document at ``location``."""
        if location.is_remote:
            return await self._load_remote(location.url)
        return await self._load_local(location)

    async def _load_remote(self, url: str) -> Any:
        headers = {"User-Agent": self.user_agent, "Accept": "application/json"}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            raise SourceLoadError(url, f"request failed: {exc}") from exc

        if not response.is_success:
            self.logger.error(
                "Source request failed",
                url=url,
                status_code=response.status_code,
            )
            raise SourceLoadError(
                url,
                f"upstream returned {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise SourceLoadError(url, f"invalid JSON: {exc}") from exc

        self.logger.debug("Source document retrieved", url=url)
        return data

    async def _load_local(self, location: SourceLocation) -> Any:
        path = location.path
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise SourceLoadError(str(path), f"read failed: {exc}") from exc

        # UnicodeDecodeError is a ValueError.
        try:
            return json.loads(data.decode("utf-8"))
        except ValueError as exc:
            raise SourceLoadError(str(path), f"invalid JSON: {exc}") from exc
