"""Small text helpers."""

from __future__ import annotations


def first_line(value: str) -> str:
    """Return the first line of ``value`` with surrounding whitespace removed."""
    value = value.strip()
    if not value:
        return ""
    head, _, _ = value.partition("\n")
    return head.strip()