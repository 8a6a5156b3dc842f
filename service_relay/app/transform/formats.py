"""
Output format directives accepted by transform mode.
"""

from typing import Dict, NamedTuple, Optional


class FormatDirective(NamedTuple):
    rewrite_prefix: bool
    base58_encode: bool


_RAW = FormatDirective(rewrite_prefix=False, base58_encode=False)
_PROXY = FormatDirective(rewrite_prefix=True, base58_encode=False)
_BASE58 = FormatDirective(rewrite_prefix=False, base58_encode=True)
_PROXY_BASE58 = FormatDirective(rewrite_prefix=True, base58_encode=True)

FORMAT_DIRECTIVES: Dict[str, FormatDirective] = {
    "0": _RAW, "raw": _RAW,
    "1": _PROXY, "proxy": _PROXY,
    "2": _BASE58, "base58": _BASE58,
    "3": _PROXY_BASE58, "proxy-base58": _PROXY_BASE58,
}


def resolve_format(token: str) -> Optional[FormatDirective]:
    """Look up a format token; returns None for unknown tokens."""
    return FORMAT_DIRECTIVES.get(token)
