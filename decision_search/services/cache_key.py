"""Cache key derivation for search requests.

The request is normalized (query trimmed and lower-cased, filters / limit /
offset defaulted), serialized to compact JSON with a fixed field order and
reduced to a 32-bit polynomial string hash over UTF-16 code units. Keys are
``search_`` followed by the absolute hash in base 36, e.g. ``search_1x3k9a``.

Pure: no I/O, no clock, no randomness — identical across processes.
"""

import json
from typing import Any

from decision_search.search.schemas import SearchRequest

KEY_PREFIX = "search_"

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def normalize(request: SearchRequest) -> dict[str, Any]:
    """Return the normalized ``(query, filters, limit, offset)`` mapping."""
    return {
        "query": request.normalized_query,
        "filters": request.effective_filters.as_dict(),
        "limit": request.limit or 10,
        "offset": request.offset or 0,
    }


def canonical_string(request: SearchRequest) -> str:
    return json.dumps(normalize(request), ensure_ascii=False, separators=(",", ":"))


def string_hash(text: str) -> int:
    """Classic ``h = h * 31 + c`` hash, wrapped to a signed 32-bit int."""
    h = 0
    data = text.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        code_unit = data[i] | (data[i + 1] << 8)
        h = (h * 31 + code_unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def to_base36(number: int) -> str:
    if number < 0:
        raise ValueError("number must be non-negative")
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36_DIGITS[rem])
    return "".join(reversed(digits))


def derive_key(request: SearchRequest) -> str:
    """Deterministic cache key for a search request."""
    return f"{KEY_PREFIX}{to_base36(abs(string_hash(canonical_string(request))))}"
