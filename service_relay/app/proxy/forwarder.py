"""
Outbound leg of proxy mode.

The upstream response is handed back unread; callers stream it with
``iter_body`` so large payloads never sit in memory.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Optional

import httpx

from shared.errors import InternalFailureError, UpstreamTimeoutError
from shared.logging import get_logger

from .headers import filter_headers

BODYLESS_METHODS = frozenset({"GET", "HEAD"})


@dataclass
class ProxyRequest:
    """Transient description of one forwarded request."""

    target_url: str
    method: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None


class ProxyForwarder:
    """Sends ProxyRequests upstream with a hard deadline."""

    def __init__(
        self,
        timeout_seconds: float = 9.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.logger = get_logger("relay.proxy")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_request(self, target_url: str, method: str, headers, body: Optional[bytes]) -> ProxyRequest:
        """Assemble a ProxyRequest from inbound request parts."""
        method = method.upper()
        outbound = filter_headers(headers)
        # Bodies are relayed decoded, so let the client negotiate encodings it can decode.
        outbound = {k: v for k, v in outbound.items() if k.lower() != "accept-encoding"}
        return ProxyRequest(
            target_url=target_url,
            method=method,
            headers=outbound,
            body=None if method in BODYLESS_METHODS else body,
        )

    async def send(self, proxy_request: ProxyRequest) -> httpx.Response:
        """Send the request and return the upstream response with its body unread."""
        client = self._get_client()
        request = client.build_request(
            proxy_request.method,
            proxy_request.target_url,
            headers=proxy_request.headers,
            content=proxy_request.body,
        )

        try:
            response = await asyncio.wait_for(
                client.send(request, stream=True),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            self.logger.warning(
                "Upstream request timed out",
                url=proxy_request.target_url,
                timeout=self.timeout_seconds,
            )
            raise UpstreamTimeoutError(
                f"Gateway Timeout ({self.timeout_seconds:g}s limit)",
                details={"url": proxy_request.target_url},
            ) from exc
        except httpx.HTTPError as exc:
            self.logger.error(
                "Upstream request failed",
                url=proxy_request.target_url,
                error=str(exc),
            )
            raise InternalFailureError(
                f"Upstream request failed: {exc}",
                details={"url": proxy_request.target_url},
            ) from exc

        self.logger.debug(
            "Upstream responded",
            url=proxy_request.target_url,
            status_code=response.status_code,
        )
        return response

    @staticmethod
    async def iter_body(response: httpx.Response) -> AsyncIterator[bytes]:
        """Yield the upstream body chunk by chunk, closing the response afterwards."""
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        finally:
            await response.aclose()
