"""Character-safe truncation helpers.

Every function here is total: for any input and any budget it returns a
valid string no longer than requested, never splitting a multi-byte
character.
"""

from __future__ import annotations

_ELLIPSIS = "..."


def truncate_bytes(text: str, max_bytes: int, suffix: str = "") -> str:
    """Truncate ``text`` so its UTF-8 encoding fits in ``max_bytes``.

    The cut always lands on a character boundary; a trailing character that
    would only partially fit is dropped. When truncation happens, ``suffix``
    is appended (and counted against the budget when it fits).
    """
    text = text or ""
    budget = max(0, int(max_bytes))
    encoded = text.encode("utf-8")
    if len(encoded) <= budget:
        return text

    suffix_bytes = len(suffix.encode("utf-8"))
    if suffix and suffix_bytes < budget:
        budget -= suffix_bytes
    else:
        suffix = ""
    # Dropping the dangling continuation bytes keeps only whole characters.
    head = encoded[:budget].decode("utf-8", errors="ignore")
    return head + suffix


def truncate_chars(text: str, max_chars: int) -> str:
    """Keep at most ``max_chars`` characters."""
    text = text or ""
    return text[: max(0, int(max_chars))]


def truncate_display(text: str, max_len: int) -> str:
    """Shorten a description for one-line terminal output, adding '...'."""
    text = text or ""
    if len(text) <= max_len:
        return text
    if max_len <= len(_ELLIPSIS):
        return text[: max(0, max_len)]
    return text[: max_len - len(_ELLIPSIS)] + _ELLIPSIS
