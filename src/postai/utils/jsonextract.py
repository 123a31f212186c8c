"""Defensive JSON extraction from free-form text-completion replies."""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from typing import Any

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def _balanced_literals(text: str, opener: str, closer: str) -> Iterator[str]:
    """Yield each balanced opener..closer span in order, respecting JSON strings.

    Args:
        text: Text to scan.
        opener: Opening bracket character.
        closer: Matching closing bracket character.

    Yields:
        Substrings that are candidate literals.
    """
    start = text.find(opener)
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end = -1
        for idx in range(start, len(text)):
            ch = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == opener:
                depth += 1
            elif ch == closer:
                depth -= 1
                if depth == 0:
                    end = idx
                    break
        if end == -1:
            return
        yield text[start : end + 1]
        start = text.find(opener, end + 1)


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Extract the first JSON object from a reply that may contain prose.

    A fenced ```json block wins over a bare object literal.

    Args:
        text: Raw reply text.

    Returns:
        Parsed dict, or None when nothing parseable is found.
    """
    if not text:
        return None

    candidates = [match.group(1) for match in _FENCED_JSON_RE.finditer(text)]
    candidates.append(text)

    for candidate in candidates:
        for literal in _balanced_literals(candidate, "{", "}"):
            try:
                parsed = json.loads(literal)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                return parsed
    return None


def extract_json_array(text: str) -> list[Any] | None:
    """Extract the first bracketed array literal that parses.

    Args:
        text: Raw reply text.

    Returns:
        Parsed list, or None when no array literal parses.
    """
    if not text:
        return None
    for literal in _balanced_literals(text, "[", "]"):
        try:
            parsed = json.loads(literal)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, list):
            return parsed
    return None
