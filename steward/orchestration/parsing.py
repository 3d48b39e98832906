"""Tolerant parsing of free-text planner replies.

Parsing never raises: every reply maps to either ``ParseSuccess`` carrying the
raw step mappings or ``ParseFailure`` carrying the reason.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Literal

_MARKER = r"(?:PLAN|CALL_TOOLS|TOOL_CALLS)"
_FENCED_AFTER_MARKER = re.compile(
    r"\b" + _MARKER + r"\s*:?\s*```(?:json)?\s*(\[[\s\S]*?\])\s*```",
    re.IGNORECASE,
)
_MARKER_LINE = re.compile(r"(?:^|\n)\s*(?:#+\s*|\*\*)?" + _MARKER + r"\b\s*(?:\*\*)?\s*:?", re.IGNORECASE)
_WHOLE_FENCE = re.compile(r"^```(?:json)?\s*([\s\S]*?)\s*```$")

Strategy = Literal["fenced_marker", "labelled_section", "whole_reply"]


@dataclass(slots=True)
class ParseSuccess:
    steps: list[dict[str, Any]]
    strategy: Strategy
    ok: Literal[True] = field(default=True, init=False)


@dataclass(slots=True)
class ParseFailure:
    reason: str
    ok: Literal[False] = field(default=False, init=False)


ParseResult = ParseSuccess | ParseFailure


def _load_array(text: str) -> list[dict[str, Any]] | None:
    try:
        payload = json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError):
        return None
    if not isinstance(payload, list):
        return None
    return [item for item in payload if isinstance(item, dict)]


def extract_balanced_array(text: str, start: int = 0) -> str | None:
    """Return the first bracket-balanced ``[...]`` at or after ``start``, respecting JSON strings."""
    open_index = text.find("[", start)
    if open_index == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for index in range(open_index, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return text[open_index : index + 1]
    return None


def find_plan_marker(text: str) -> int | None:
    match = _MARKER_LINE.search(text)
    if match is None:
        return None
    return match.start()


def parse_plan_reply(text: str | None) -> ParseResult:
    if not text or not text.strip():
        return ParseFailure(reason="empty reply")
    trimmed = text.strip()

    fenced = _FENCED_AFTER_MARKER.search(trimmed)
    if fenced:
        steps = _load_array(fenced.group(1))
        if steps is not None:
            return ParseSuccess(steps=steps, strategy="fenced_marker")

    marker = _MARKER_LINE.search(trimmed)
    if marker:
        candidate = extract_balanced_array(trimmed, marker.end())
        if candidate is not None:
            steps = _load_array(candidate)
            if steps is not None:
                return ParseSuccess(steps=steps, strategy="labelled_section")

    whole = trimmed
    fence = _WHOLE_FENCE.match(whole)
    if fence:
        whole = fence.group(1).strip()
    steps = _load_array(whole)
    if steps is not None:
        return ParseSuccess(steps=steps, strategy="whole_reply")

    return ParseFailure(reason="no JSON array found in reply")


def split_analysis(text: str) -> str:
    """Return the rationale portion of a reply, i.e. everything before the plan marker."""
    trimmed = (text or "").strip()
    position = find_plan_marker(trimmed)
    if position is None:
        return trimmed
    analysis = trimmed[:position].strip()
    return re.sub(r"^(?:#+\s*|\*\*)?ANALYSIS\b\s*(?:\*\*)?\s*:?\s*", "", analysis, flags=re.IGNORECASE).strip()
