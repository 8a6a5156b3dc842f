"""
Relay domain package.

Keep imports here limited to leaf modules; the dispatcher depends on the
caching and adapters packages and is imported from its module directly.
"""

from .sources import SourceLocation, SourceRegistry

__all__ = ["SourceLocation", "SourceRegistry"]
