"""Small string and integer helpers."""

from __future__ import annotations

import math
import re
import unicodedata

__all__ = [
    "is_normal_string",
    "must_any_to_int",
    "is_numeric",
    "split_int64_to_two_int32",
]

_ATOI_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_PRINTABLE_CATEGORIES = frozenset("LMNPS")


def _is_print(ch: str) -> bool:
    return ch == " " or unicodedata.category(ch)[0] in _PRINTABLE_CATEGORIES


def is_normal_string(data: bytes) -> bool:
    """Return True if ``data`` is valid UTF-8 made only of printable characters."""
    try:
        text = bytes(data).decode("utf-8")
    except UnicodeDecodeError:
        return False
    return all(_is_print(ch) for ch in text)


def _as_text(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(value)


def must_any_to_int(value: object) -> int:
    """Convert ``value`` to an int via its text form, or return 0."""
    text = _as_text(value)
    if not _ATOI_RE.fullmatch(text):
        return 0
    number = int(text)
    if not _INT64_MIN <= number <= _INT64_MAX:
        return 0
    return number


def is_numeric(text: str) -> bool:
    """Return True if ``text`` is non-empty and consists of decimal digits."""
    return bool(text) and all(unicodedata.category(ch) == "Nd" for ch in text)


def split_int64_to_two_int32(value: int) -> tuple[int, int]:
    """Split a 64-bit integer into its low 32 bits and its (signed) high part."""
    return value & 0xFFFFFFFF, value >> 32