"""Small shared helpers: LIKE escaping and batching."""

from __future__ import annotations

from itertools import islice

LIKE_ESCAPE = "\\"


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so ``value`` matches literally inside a pattern."""
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def chunked(items, size: int):
    """Yield lists of at most ``size`` items."""
    it = iter(items)
    while batch := list(islice(it, size)):
        yield batch
