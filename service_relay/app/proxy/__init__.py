"""
Relay proxy package.
"""

from .headers import EXCLUDED_HEADERS, filter_headers
from .forwarder import ProxyForwarder, ProxyRequest

__all__ = ["EXCLUDED_HEADERS", "filter_headers", "ProxyForwarder", "ProxyRequest"]
