"""Argument guards."""

from __future__ import annotations

from typing import TypeVar

__all__ = ["guard_not_none", "guard_not_blank"]

T = TypeVar("T")


def guard_not_none(value: T | None, name: str) -> T:
    """Return value, or raise TypeError if it is None."""
    if value is None:
        raise TypeError(f"{name} must not be None")
    return value


def guard_not_blank(value: str | None, name: str) -> str:
    """Return value, or raise if it is None or whitespace only."""
    value = guard_not_none(value, name)
    if not value.strip():
        raise ValueError(f"{name} must not be empty")
    return value
