"""Character-based token estimation.

This is not a tokenizer. One token is approximated as four characters, which
is monotonic in length and close enough for budget arithmetic. Every budget
decision in the project goes through :func:`estimate_tokens`.
"""

from __future__ import annotations

import math

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str | None) -> int:
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_parts(*parts: str | None) -> int:
    """Estimate the concatenation of ``parts`` (``None`` counts as empty)."""
    return estimate_tokens("".join(p for p in parts if p))
