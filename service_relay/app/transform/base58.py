"""
Base-58 text encoding of configuration documents (Bitcoin alphabet).
"""

import json
from typing import Any

from shared.errors import EncodingError

ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_INDEX = {char: position for position, char in enumerate(ALPHABET)}
_BASE = len(ALPHABET)


def canonical_json(value: Any) -> bytes:
    """Serialize ``value`` to compact UTF-8 JSON."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False).encode("utf-8")


def encode_bytes(data: bytes) -> str:
    """Encode raw bytes; each leading zero byte becomes a leading ``1``."""
    if not data:
        return ""

    zeros = len(data) - len(data.lstrip(b"\x00"))
    number = int.from_bytes(data, "big")

    digits = []
    while number > 0:
        number, remainder = divmod(number, _BASE)
        digits.append(ALPHABET[remainder])

    return ALPHABET[0] * zeros + "".join(reversed(digits))


def decode(text: str) -> bytes:
    """Inverse of :func:`encode_bytes`. Raises ValueError on foreign characters."""
    if not text:
        return b""

    number = 0
    for char in text:
        try:
            number = number * _BASE + _INDEX[char]
        except KeyError:
            raise ValueError(f"Invalid base58 character {char!r}") from None

    zeros = len(text) - len(text.lstrip(ALPHABET[0]))
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return b"\x00" * zeros + body


def encode(value: Any) -> str:
    """Encode a JSON value as base-58 text of its canonical serialization."""
    try:
        return encode_bytes(canonical_json(value))
    except (TypeError, ValueError, OverflowError) as exc:
        raise EncodingError(f"Base58 encoding failed: {exc}") from exc
