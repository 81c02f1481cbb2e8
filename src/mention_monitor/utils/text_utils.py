from __future__ import annotations

import html as html_lib
import re
from typing import Sequence

_BREAK_TAGS = re.compile(r"</?(?:br|p|li|div|tr|h\d|ul|ol|table)[^>]*>", re.IGNORECASE)
_HTML_TAGS = re.compile(r"<[^>]+>")
_MULTISPACE = re.compile(r"\s+")


def find_keyword(text: str, keywords: Sequence[str]) -> str | None:
    """Return the first keyword that occurs in ``text``, ignoring case."""
    lowered = text.lower()
    for keyword in keywords:
        if keyword and keyword.lower() in lowered:
            return keyword
    return None


def truncate(value: str, max_length: int) -> str:
    if len(value) <= max_length:
        return value
    return f"{value[: max_length - 3]}..."


def html_to_text(value: str) -> str:
    with_breaks = _BREAK_TAGS.sub("\n", value)
    without_tags = _HTML_TAGS.sub(" ", with_breaks)
    unescaped = html_lib.unescape(without_tags)

    cleaned_lines = []
    for line in unescaped.splitlines():
        normalized = normalize_whitespace(line)
        if normalized:
            cleaned_lines.append(normalized)
    return "\n".join(cleaned_lines)


def normalize_whitespace(value: str) -> str:
    return _MULTISPACE.sub(" ", value).strip()
