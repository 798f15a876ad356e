"""Random tool-call identifiers in the shapes vendors issue them."""

from __future__ import annotations

import secrets

_CHARS = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

OPENAI_PREFIX = "call_"
ANTHROPIC_PREFIX = "toolu_01"


def _random_chars(n: int) -> str:
    return "".join(secrets.choice(_CHARS) for _ in range(n))


def openai_call_id() -> str:
    """Return an id like ``call_`` followed by 24 alphanumerics."""
    return OPENAI_PREFIX + _random_chars(24)


def anthropic_call_id() -> str:
    """Return an id like ``toolu_01`` followed by 21 alphanumerics."""
    return ANTHROPIC_PREFIX + _random_chars(21)
