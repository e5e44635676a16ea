"""Resolve Discord user mentions (<@123>, <@!123>) to readable @names for IRC."""

from __future__ import annotations

import re
from collections.abc import Mapping

from discirc.identity import MentionCache

MENTION_PATTERN = re.compile(r"<@!?(?P<id>[0-9]+)>")


def resolve_inline_references(
    content: str,
    cache: MentionCache,
    context: Mapping[int | str, str] | None = None,
) -> str:
    """Replace every user mention with `@name` or the raw `<@id>` form.

    Text between mentions is kept byte for byte and in order.
    """
    if not content:
        return content

    parts: list[str] = []
    last_end = 0
    for m in MENTION_PATTERN.finditer(content):
        parts.append(content[last_end : m.start()])
        parts.append(cache.resolve_or_search(int(m.group("id")), context))
        last_end = m.end()
    if not parts:
        return content
    parts.append(content[last_end:])
    return "".join(parts)
