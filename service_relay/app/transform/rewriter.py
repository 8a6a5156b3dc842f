"""
Prefix rewriting of ``api`` endpoints inside configuration documents.
"""

from typing import Any

API_KEY = "api"
URL_MARKER = "?url="


def rewrite(value: Any, prefix: str) -> Any:
    """
    Return a copy of ``value`` whose ``api`` strings are routed through ``prefix``.

    Any relay wrapping (everything up to and including the first ``?url=``) is
    stripped before the prefix is applied, so an endpoint carrying its own
    ``url`` query parameter keeps it.
    The input is never mutated.
    """
    if isinstance(value, list):
        return [rewrite(item, prefix) for item in value]

    if isinstance(value, dict):
        return {
            key: rewrite_api_url(item, prefix)
            if key == API_KEY and isinstance(item, str)
            else rewrite(item, prefix)
            for key, item in value.items()
        }

    return value


def rewrite_api_url(api_url: str, prefix: str) -> str:
    """Rewrite a single endpoint string."""
    marker = api_url.find(URL_MARKER)
    if marker != -1:
        api_url = api_url[marker + len(URL_MARKER):]
    if not api_url.startswith(prefix):
        api_url = prefix + api_url
    return api_url
