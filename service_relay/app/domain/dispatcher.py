"""
Request dispatch for the relay root endpoint.

A non-empty ``url`` parameter selects proxy mode, otherwise a ``format``
parameter selects transform mode, otherwise an informational payload is
returned. Every failure is rendered as a JSON error response here so no
request can escape the handler.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, unquote

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from shared.errors import (
    ForbiddenTargetError,
    MalformedInputError,
    PayloadTooLargeError,
    RelayError,
)
from shared.logging import get_logger, set_relay_context, strip_query

from ..caching.source_cache import SourceCache
from ..guard.safety import Verdict, classify
from ..proxy.forwarder import BODYLESS_METHODS, ProxyForwarder
from ..proxy.headers import filter_headers
from ..transform import base58
from ..transform.formats import FORMAT_DIRECTIVES, resolve_format
from ..transform.rewriter import rewrite
from .sources import SourceRegistry

JSON_MEDIA_TYPE = "application/json;charset=UTF-8"
TEXT_MEDIA_TYPE = "text/plain;charset=UTF-8"


@dataclass(frozen=True)
class RelayParams:
    """Query parameters that drive dispatch."""

    target_url: Optional[str]
    format: Optional[str]
    source: Optional[str]
    prefix: Optional[str]


def extract_target_url(raw_query: str) -> Optional[str]:
    """
    Return the ``url`` parameter, taking everything after ``url=``.

    Targets frequently carry their own unencoded query string, so any ``&``
    following ``url=`` belongs to the target rather than to the relay. An
    empty value is skipped in favour of a later ``url=``.
    """
    query = "&" + raw_query
    marker = query.find("&url=")
    while marker != -1:
        value = query[marker + len("&url="):]
        if value and not value.startswith("&"):
            return unquote(value)
        marker = query.find("&url=", marker + 1)
    return None


def parse_params(request: Request) -> RelayParams:
    raw_query = request.scope.get("query_string", b"").decode("utf-8", errors="replace")
    query = parse_qs(raw_query, keep_blank_values=True)

    def first(name: str) -> Optional[str]:
        values = query.get(name)
        return values[0] if values else None

    return RelayParams(
        target_url=extract_target_url(raw_query),
        format=first("format"),
        source=first("source"),
        prefix=first("prefix"),
    )


def request_origin(request: Request) -> str:
    """``<scheme>://<host>`` as seen by the caller, honouring forwarding headers."""
    proto = _first_header_value(request, "x-forwarded-proto") or request.url.scheme
    host = _first_header_value(request, "x-forwarded-host") or request.headers.get("host") or request.url.netloc
    return f"{proto}://{host}"


def request_host(request: Request) -> Optional[str]:
    return _first_header_value(request, "x-forwarded-host") or request.headers.get("host")


def _first_header_value(request: Request, name: str) -> Optional[str]:
    value = request.headers.get(name)
    if not value:
        return None
    return value.split(",")[0].strip() or None


class RelayDispatcher:
    """Decides between proxy and transform mode and shapes the response."""

    def __init__(
        self,
        registry: SourceRegistry,
        source_cache: SourceCache,
        forwarder: ProxyForwarder,
        *,
        block_private_targets: bool = True,
        max_body_bytes: int = 100 * 1024 * 1024,
        metrics=None,
        version: str = "1.0.0",
    ):
        self.registry = registry
        self.source_cache = source_cache
        self.forwarder = forwarder
        self.block_private_targets = block_private_targets
        self.max_body_bytes = max_body_bytes
        self.metrics = metrics
        self.version = version
        self.logger = get_logger("relay.dispatcher")

    async def handle(self, request: Request) -> Response:
        params = parse_params(request)
        try:
            if params.target_url:
                set_relay_context("proxy", strip_query(params.target_url))
                return await self.proxy(request, params.target_url)
            if params.format:
                set_relay_context("transform", params.source or self.registry.default_key)
                return await self.transform(request, params)
            set_relay_context("info")
            return self.describe(request)
        except RelayError as exc:
            self.logger.warning(
                "Request rejected",
                code=exc.code,
                message=exc.message,
                status_code=exc.status_code,
            )
            if self.metrics is not None:
                self.metrics.record_error(exc.code)
            return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())
        except Exception as exc:
            self.logger.error("Server error", error=str(exc), exc_info=True)
            if self.metrics is not None:
                self.metrics.record_error("INTERNAL_ERROR")
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal Server Error",
                    "message": str(exc),
                    "code": "INTERNAL_ERROR",
                    "details": {},
                },
            )

    async def proxy(self, request: Request, target_url: str) -> Response:
        verdict = classify(target_url, request_host(request), block_private=self.block_private_targets)
        if self.metrics is not None:
            self.metrics.record_proxy_verdict(verdict.value)

        if verdict is Verdict.REJECTED_LOCAL:
            raise ForbiddenTargetError(details={"url": target_url})
        if verdict is Verdict.REJECTED_MALFORMED:
            raise MalformedInputError("Invalid URL", details={"url": target_url})
        if verdict is Verdict.REJECTED_LOOP:
            raise MalformedInputError("Loop detected", details={"url": target_url})

        body = None
        if request.method.upper() not in BODYLESS_METHODS:
            body = await self._read_body(request)

        proxy_request = self.forwarder.build_request(target_url, request.method, request.headers, body)
        upstream = await self.forwarder.send(proxy_request)
        if self.metrics is not None:
            self.metrics.record_upstream_response(upstream.status_code)

        self.logger.info(
            "Proxying response",
            url=target_url,
            method=proxy_request.method,
            status_code=upstream.status_code,
        )
        return StreamingResponse(
            self.forwarder.iter_body(upstream),
            status_code=upstream.status_code,
            headers=filter_headers(upstream.headers),
            background=BackgroundTask(upstream.aclose),
        )

    async def _read_body(self, request: Request) -> bytes:
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_body_bytes:
            raise PayloadTooLargeError(details={"limit": self.max_body_bytes})

        chunks = []
        size = 0
        async for chunk in request.stream():
            size += len(chunk)
            if size > self.max_body_bytes:
                raise PayloadTooLargeError(details={"limit": self.max_body_bytes})
            chunks.append(chunk)
        return b"".join(chunks)

    async def transform(self, request: Request, params: RelayParams) -> Response:
        directive = resolve_format(params.format)
        if directive is None:
            raise MalformedInputError(
                "Invalid format parameter",
                details={"format": params.format, "accepted": sorted(FORMAT_DIRECTIVES)},
            )

        source = params.source or self.registry.default_key
        if source not in self.registry:
            raise MalformedInputError(
                "Invalid source parameter",
                details={"source": source, "accepted": list(self.registry.keys)},
            )

        document = await self.source_cache.get(source)

        if directive.rewrite_prefix:
            document = rewrite(document, params.prefix or self.default_prefix(request))

        if directive.base58_encode:
            return Response(content=base58.encode(document), media_type=TEXT_MEDIA_TYPE)
        return JSONResponse(content=document, media_type=JSON_MEDIA_TYPE)

    def default_prefix(self, request: Request) -> str:
        return f"{request_origin(request)}/?url="

    def describe(self, request: Request) -> Response:
        """Informational payload describing how to use the relay."""
        origin = request_origin(request)
        examples: Dict[str, Dict[str, str]] = {
            key: {token: f"{origin}/?format={token}&source={key}" for token in ("0", "1", "2", "3")}
            for key in self.registry.keys
        }
        payload: Dict[str, Any] = {
            "service": "relay",
            "message": "API relay and configuration subscription service",
            "version": self.version,
            "usage": {
                "proxy": f"{self.default_prefix(request)}<target url>",
                "timeout_seconds": self.forwarder.timeout_seconds,
            },
            "parameters": {
                "format": {
                    "0|raw": "original JSON",
                    "1|proxy": "JSON with api endpoints routed through the relay",
                    "2|base58": "original JSON, base58 encoded",
                    "3|proxy-base58": "relayed JSON, base58 encoded",
                },
                "source": {"keys": list(self.registry.keys), "default": self.registry.default_key},
                "prefix": "custom relay prefix, only used by format 1 and 3",
            },
            "examples": examples,
        }
        return JSONResponse(content=payload)
