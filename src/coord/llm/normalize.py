"""Segment list normalization."""

from __future__ import annotations

from coord.types import Segment, Text


def merge_texts(parts: list[Segment]) -> list[Segment]:
    """Concatenate every run of adjacent ``Text`` segments into one."""
    if len(parts) < 2:
        return list(parts)

    merged: list[Segment] = []
    for part in parts:
        if isinstance(part, Text) and merged and isinstance(merged[-1], Text):
            merged[-1] = Text(merged[-1].text + part.text)
        else:
            merged.append(part)
    return merged


def normalize(parts: list[Segment]) -> list[Segment]:
    """Merge adjacent text, then drop text that is empty after stripping.

    A lone whitespace-only text segment is kept so that a provider that
    legitimately answered with blank text still yields a non-empty
    content.  A lone zero-length text is still dropped.
    """
    merged = merge_texts(parts)
    if len(merged) == 1:
        only = merged[0]
        if isinstance(only, Text) and only.text == "":
            return []
        return merged

    return [
        p for p in merged
        if not (isinstance(p, Text) and not p.text.strip())
    ]


def drop_blank_texts(parts: list[Segment]) -> list[Segment]:
    """Remove every whitespace-only text segment, with no lone-segment exception."""
    return [
        p for p in parts
        if not (isinstance(p, Text) and not p.text.strip())
    ]
