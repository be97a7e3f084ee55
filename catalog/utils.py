"""Normalization helpers for catalog data."""

from __future__ import annotations

import re
from typing import Iterator, List, Optional, Sequence, TypeVar

T = TypeVar("T")

_SUBDOMAIN_INVALID = re.compile(r"[^a-z0-9.-]")
_DASH_RUN = re.compile(r"-{2,}")


def normalize_handle(value: Optional[str]) -> Optional[str]:
    """Return the handle without a leading '@', or None if empty."""
    if value is None:
        return None
    cleaned = value.strip().lstrip("@").strip()
    return cleaned or None


def sanitize_handle_for_subdomain(value: str) -> str:
    """Lowercase, replace anything outside [a-z0-9.-] with '-', collapse and trim dashes."""
    cleaned = _SUBDOMAIN_INVALID.sub("-", (value or "").strip().lstrip("@").lower())
    cleaned = _DASH_RUN.sub("-", cleaned)
    return cleaned.strip("-")


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive slices of at most `size` items."""
    if size <= 0:
        raise ValueError("size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


__all__ = ["normalize_handle", "sanitize_handle_for_subdomain", "chunked"]
