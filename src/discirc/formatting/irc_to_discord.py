"""Convert IRC control codes to Discord markdown."""

from __future__ import annotations

import re

# IRC control codes
BOLD = "\x02"
COLOR = "\x03"
HEX_COLOR = "\x04"
ITALIC = "\x1d"
UNDERLINE = "\x1f"
STRIKETHROUGH = "\x1e"
REVERSE = "\x16"
RESET = "\x0f"

_MARKDOWN_CHARS = "\\*_`~|"

_COLOR_PATTERN = re.compile(r"\x03(?:\d{1,2}(?:,\d{1,2})?)?")
_HEX_COLOR_PATTERN = re.compile(r"\x04(?:[0-9a-fA-F]{6}(?:,[0-9a-fA-F]{6})?)?")

# URL pattern - do not escape inside URLs
_URL_PATTERN = re.compile(
    r"https?://[^\s<>\[\]()]+(?:\([^\s<>\[\]()]*\)|[^\s<>\[\]()])*",
    re.IGNORECASE,
)

# code -> markdown delimiter, in close order
_TOGGLES = {
    BOLD: "**",
    ITALIC: "*",
    UNDERLINE: "__",
    STRIKETHROUGH: "~~",
}


def escape_markdown(text: str) -> str:
    """Backslash-escape characters Discord would read as markdown."""
    return "".join("\\" + c if c in _MARKDOWN_CHARS else c for c in text)


def irc_to_discord(content: str) -> str:
    """Convert IRC formatting to Discord markdown. Strip colors. Preserve URLs."""
    if not content:
        return content

    content = _COLOR_PATTERN.sub("", content)
    content = _HEX_COLOR_PATTERN.sub("", content)
    content = content.replace(REVERSE, "")

    result_parts: list[str] = []
    last_end = 0
    for m in _URL_PATTERN.finditer(content):
        if m.start() > last_end:
            result_parts.append(_convert_irc_codes(content[last_end : m.start()]))
        result_parts.append(m.group(0))
        last_end = m.end()
    if last_end < len(content):
        result_parts.append(_convert_irc_codes(content[last_end:]))
    return "".join(result_parts)


def _convert_irc_codes(text: str) -> str:
    """Convert IRC bold/italic/underline/strikethrough to Discord markdown."""
    result: list[str] = []
    open_marks: list[str] = []

    for c in text:
        if c in _TOGGLES:
            mark = _TOGGLES[c]
            if mark in open_marks:
                open_marks.remove(mark)
            else:
                open_marks.append(mark)
            result.append(mark)
        elif c == RESET:
            result.extend(reversed(open_marks))
            open_marks.clear()
        else:
            result.append(escape_markdown(c))

    # Close any unclosed formatting
    result.extend(reversed(open_marks))
    return "".join(result)
