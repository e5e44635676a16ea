"""Split outbound text into sends that fit a destination's size limit."""

from __future__ import annotations

import re

import regex

from discirc.core.constants import MIN_MESSAGE_LIMIT, SizeUnit

# Line breaks are send boundaries; a bare CR would terminate an IRC line early.
_LINE_BREAK = re.compile(r"\r\n|\r|\n")
_GRAPHEME = regex.compile(r"\X")


def _utf8_size(text: str) -> int:
    return len(text.encode("utf-8"))


_MEASURES = {"bytes": _utf8_size, "chars": len}


def _split_code_points(cluster: str, limit: int, size) -> list[str]:
    """Split one oversized grapheme cluster between code points."""
    pieces: list[str] = []
    current = ""
    for cp in cluster:
        if current and size(current) + size(cp) > limit:
            pieces.append(current)
            current = ""
        current += cp
    if current:
        pieces.append(current)
    return pieces


def _split_line(line: str, limit: int, size) -> list[str]:
    if size(line) <= limit:
        return [line] if line else []

    pieces: list[str] = []
    current: list[str] = []
    used = 0
    for cluster in _GRAPHEME.findall(line):
        cluster_size = size(cluster)
        if cluster_size > limit:
            if current:
                pieces.append("".join(current))
                current, used = [], 0
            pieces.extend(_split_code_points(cluster, limit, size))
            continue
        if used + cluster_size > limit:
            pieces.append("".join(current))
            current, used = [], 0
        current.append(cluster)
        used += cluster_size
    if current:
        pieces.append("".join(current))
    return pieces


def chunk(content: str, limit: int, unit: SizeUnit = "bytes") -> list[str]:
    """Split content into sends of at most `limit` units each.

    `unit` is "bytes" (UTF-8, for IRC) or "chars" (code points, for Discord).
    Every line becomes its own send. Lines over the limit are cut at the last
    grapheme cluster boundary that fits, so combining marks, emoji sequences
    and multi-byte characters stay whole. Empty lines are dropped.
    Concatenating the result gives back the input minus its line breaks.
    """
    if limit < MIN_MESSAGE_LIMIT:
        raise ValueError(f"limit must be at least {MIN_MESSAGE_LIMIT}, got {limit}")
    try:
        size = _MEASURES[unit]
    except KeyError:
        raise ValueError(f"unknown size unit {unit!r}") from None
    if not content:
        return []

    chunks: list[str] = []
    for line in _LINE_BREAK.split(content):
        chunks.extend(_split_line(line, limit, size))
    return chunks
