"""
Target URL classification for proxy mode.

Runs before any outbound connection is opened; no DNS lookups happen here.
"""

from __future__ import annotations

import ipaddress
import re
from enum import Enum
from typing import Optional
from urllib.parse import urlsplit


_SCHEME_PATTERN = re.compile(r"^https?://", re.IGNORECASE)
_LOCAL_HOST_PATTERN = re.compile(
    r"^(127\.|localhost$|192\.168\.|10\.|172\.(1[6-9]|2[0-9]|3[0-1])\.|::1$)",
    re.IGNORECASE,
)
_LOCAL_SUFFIXES = (".localhost", ".local", ".internal")
_DEFAULT_PORTS = {"http": 80, "https": 443}


class Verdict(str, Enum):
    """Outcome of classifying a proxy target."""

    ALLOWED = "allowed"
    REJECTED_LOCAL = "rejected_local"
    REJECTED_MALFORMED = "rejected_malformed"
    REJECTED_LOOP = "rejected_loop"


def classify(target_url: str, request_host: Optional[str], *, block_private: bool = True) -> Verdict:
    """Classify ``target_url`` against the host the relay is addressed as."""
    if not target_url or not _SCHEME_PATTERN.match(target_url):
        return Verdict.REJECTED_MALFORMED

    try:
        parts = urlsplit(target_url)
        hostname = parts.hostname
        port = parts.port
    except ValueError:
        return Verdict.REJECTED_MALFORMED

    if not hostname:
        return Verdict.REJECTED_MALFORMED

    if block_private and is_local_host(hostname):
        return Verdict.REJECTED_LOCAL

    if request_host and _authority(parts.scheme, hostname, port) == request_host.strip().lower():
        return Verdict.REJECTED_LOOP

    return Verdict.ALLOWED


def is_local_host(hostname: str) -> bool:
    """Return True when ``hostname`` points at loopback or private address space."""
    host = hostname.strip("[]").rstrip(".").lower()

    if _LOCAL_HOST_PATTERN.match(host):
        return True

    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        # Dotless names (e.g. "intranet") only resolve inside the deployment network.
        return "." not in host or host.endswith(_LOCAL_SUFFIXES)

    return (
        address.is_loopback
        or address.is_private
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
    )


def _authority(scheme: str, hostname: str, port: Optional[int]) -> str:
    """Render ``host[:port]`` the way a Host header would, omitting default ports."""
    host = f"[{hostname}]" if ":" in hostname else hostname
    if port is None or port == _DEFAULT_PORTS.get(scheme.lower()):
        return host.lower()
    return f"{host}:{port}".lower()
