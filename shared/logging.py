"""
Shared logging configuration for the Relay Access service.

Log events are JSON lines on stdout. Per-request context (request id, relay
mode and the proxied host or source key) lives in context variables and is
merged into every event emitted while the request is handled.
"""

import sys
import structlog
import logging
import uuid
from typing import Any, Dict, Optional
from contextvars import ContextVar
from urllib.parse import urlsplit, urlunsplit

# Context variables for correlation IDs
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
service_name_var: ContextVar[Optional[str]] = ContextVar('service_name', default=None)
relay_mode_var: ContextVar[Optional[str]] = ContextVar('relay_mode', default=None)
relay_target_var: ContextVar[Optional[str]] = ContextVar('relay_target', default=None)

# Event keys that may carry caller-supplied URLs.
URL_FIELDS = ("url", "location")


def configure_logging(service_name: str, log_level: str = "info", json_output: bool = True) -> None:
    """Configure structured logging for a service."""
    service_name_var.set(service_name)

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            add_service_context,
            add_relay_context,
            redact_url_queries,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
        force=True,
    )


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add service name, falling back to the logger namespace ("relay.proxy" -> "relay")."""
    service_name = service_name_var.get()
    if service_name:
        event_dict.setdefault("service", service_name)
        return event_dict

    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict.setdefault("service", logger_name.split(".")[0])

    return event_dict


def add_relay_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add request id, relay mode and target to log events."""
    for key, var in (
        ("request_id", request_id_var),
        ("mode", relay_mode_var),
        ("target", relay_target_var),
    ):
        value = var.get()
        if value:
            event_dict.setdefault(key, value)

    return event_dict


def redact_url_queries(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Drop query strings from URL fields; proxied targets often embed API keys there."""
    for key in URL_FIELDS:
        value = event_dict.get(key)
        if isinstance(value, str):
            event_dict[key] = strip_query(value)
    return event_dict


def strip_query(url: str) -> str:
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.query:
        return url
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set request ID in context."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_relay_context(mode: str, target: Optional[str] = None) -> None:
    """Record which relay mode handles the current request and what it targets."""
    relay_mode_var.set(mode)
    relay_target_var.set(target)


def clear_context():
    """Clear all per-request context variables."""
    request_id_var.set(None)
    relay_mode_var.set(None)
    relay_target_var.set(None)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
