"""
Header filtering applied on both legs of a proxied exchange.
"""

from typing import Dict, FrozenSet, Iterable, Mapping, Tuple, Union

# Connection-scoped, body-framing or identity headers that must not cross the relay.
EXCLUDED_HEADERS: FrozenSet[str] = frozenset({
    "content-encoding",
    "content-length",
    "transfer-encoding",
    "connection",
    "keep-alive",
    "set-cookie",
    "set-cookie2",
    "host",
})

HeaderSource = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


def filter_headers(headers: HeaderSource) -> Dict[str, str]:
    """Return a copy of ``headers`` without the excluded set, preserving order."""
    items = headers.items() if isinstance(headers, Mapping) else headers
    return {
        name: value
        for name, value in items
        if name.lower() not in EXCLUDED_HEADERS
    }
