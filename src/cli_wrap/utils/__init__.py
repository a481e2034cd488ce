"""Utility helpers.

Argument guards and text/stream conversion.
"""

from .guards import guard_not_blank, guard_not_none
from .text import is_blank, normalize_encoding, string_to_stream

__all__ = [
    "guard_not_blank",
    "guard_not_none",
    "is_blank",
    "normalize_encoding",
    "string_to_stream",
]
