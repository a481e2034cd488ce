"""Text and stream helpers."""

from __future__ import annotations

import codecs
import io

__all__ = ["is_blank", "normalize_encoding", "string_to_stream"]


def is_blank(s: str | None) -> bool:
    """Whether a string is None, empty or whitespace only."""
    return s is None or not s.strip()


def normalize_encoding(encoding: str) -> str:
    """Return the canonical codec name.

    Raises:
        LookupError: If Python has no codec by that name
    """
    return codecs.lookup(encoding).name


def string_to_stream(s: str, encoding: str) -> io.BytesIO:
    """Encode a string into a readable binary stream positioned at 0."""
    return io.BytesIO(s.encode(encoding))
