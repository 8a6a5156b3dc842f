"""
Adapters package for the Relay Service.

Contains I/O wrappers for the documents served in transform mode. Adapters
raise their own errors; recovery policy belongs to the caching layer.
"""

from .source_loader import SourceLoader, SourceLoadError

__all__ = [
    "SourceLoader",
    "SourceLoadError",
]
