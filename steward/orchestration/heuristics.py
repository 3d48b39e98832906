from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Collection
from zoneinfo import ZoneInfo

from ..core.logging import get_logger
from ..tools.catalog import FILE_SEARCH_TOOL, KNOWLEDGE_SEARCH_TOOL
from .state import PlannedStep
from .temporal import (
    ALL_DAY_PATTERN,
    NAMED_TIME_PATTERN,
    RELATIVE_DATE_PATTERN,
    TIME_OF_DAY_PATTERN,
    format_timestamp,
    parse_time_of_day,
    resolve_relative_date,
)

logger = get_logger(name=__name__)

# Nouns like "schedule" or "block" only signal creation in verb position.
CREATE_INTENT = re.compile(
    r"^\s*(?:(?:please|can you|could you|would you)\s+)?(?:schedule|add|create|book|set up|put|block|remind me)\b"
    r"|\b(?:create|book|set up|remind me)\b"
    r"|\bschedule\s+(?:a|an|the|me|my|us|it|this|that|lunch|dinner|meeting|call|event|appointment)\b",
    re.IGNORECASE,
)
QUESTION_FORM = re.compile(
    r"^\s*(?:what|when|where|which|who|how|why|is|are|am|do|does|did|have|has|any)\b",
    re.IGNORECASE,
)

_TITLE_NOISE = re.compile(
    r"\b(schedule|add|create|book|set up|put|remind me( to)?|block( out)?|please|can you|could you|"
    r"for me|(on|to|in|into) my calendar|calendar|an event( for)?|new event)\b",
    re.IGNORECASE,
)
_EDGE_FILLER = {"a", "an", "the", "my", "me", "at", "on", "in", "for", "from", "to", "by", "and", "of"}
_MAX_TITLE_WORDS = 8

# (domain keywords, candidate tools in preference order, include the request as query)
_LOOKUP_RULES: tuple[tuple[re.Pattern[str], tuple[str, ...], bool], ...] = (
    (
        re.compile(r"\b(meetings?|events?|calendar|schedule|appointments?|agenda|busy|free time)\b", re.IGNORECASE),
        ("search_events", "get_events"),
        True,
    ),
    (re.compile(r"\b(e-?mails?|inbox|mail)\b", re.IGNORECASE), ("search_emails",), True),
    (re.compile(r"\b(passports?|identity documents?|id cards?)\b", re.IGNORECASE), ("get_passports",), False),
    (
        re.compile(r"\b(files?|documents?|uploads?|uploaded|pdfs?|attachments?)\b", re.IGNORECASE),
        (FILE_SEARCH_TOOL,),
        True,
    ),
    (
        re.compile(r"\b(polic(y|ies)|procedures?|handbook|guidelines?|knowledge base)\b", re.IGNORECASE),
        (KNOWLEDGE_SEARCH_TOOL,),
        True,
    ),
    (re.compile(r"\b(web|online|website|internet|news|look up)\b", re.IGNORECASE), ("search_web",), True),
)


def derive_title(request: str) -> str:
    text = TIME_OF_DAY_PATTERN.sub(" ", request)
    text = ALL_DAY_PATTERN.sub(" ", text)
    text = NAMED_TIME_PATTERN.sub(" ", text)
    text = RELATIVE_DATE_PATTERN.sub(" ", text)
    text = _TITLE_NOISE.sub(" ", text)
    words = [word.strip(" ,.;:!?\"'") for word in text.split()]
    words = [word for word in words if word]
    while words and words[0].lower() in _EDGE_FILLER:
        words.pop(0)
    while words and words[-1].lower() in _EDGE_FILLER:
        words.pop()
    if not words:
        return "New event"
    title = " ".join(words[:_MAX_TITLE_WORDS])
    return title[0].upper() + title[1:]


def _scaffold_event(request: str, now: datetime, timezone: str) -> PlannedStep | None:
    """A create step needs both a date phrase and a time phrase: a clock time or an explicit "all day"."""
    zone = ZoneInfo(timezone)
    today = now.astimezone(zone).date()
    day = resolve_relative_date(request, today)
    if day is None:
        return None
    clock = parse_time_of_day(request)
    if clock is None and not ALL_DAY_PATTERN.search(request):
        return None
    title = derive_title(request)
    if clock is not None:
        start = datetime(day.year, day.month, day.day, clock[0], clock[1], tzinfo=zone)
        end = start + timedelta(hours=1)
        span = {
            "start": {"dateTime": format_timestamp(start), "timeZone": timezone},
            "end": {"dateTime": format_timestamp(end), "timeZone": timezone},
        }
    else:
        span = {
            "start": {"date": day.isoformat()},
            "end": {"date": (day + timedelta(days=1)).isoformat()},
        }
    return PlannedStep(
        id="heuristic_1",
        goal=f"Create calendar event '{title}'",
        tool="create_event",
        parameters={"event_data": {"summary": title, **span}},
    )


def build_heuristic_plan(
    request: str,
    valid_tools: Collection[str],
    *,
    now: datetime,
    timezone: str = "UTC",
    has_artifacts: bool = False,
) -> list[PlannedStep]:
    """Minimal plan from keyword matching, used when the model's plan yields no usable step.

    Only structural scaffolding is produced: event spans and titles come from the
    request itself, never identifiers of existing records.
    """
    if "create_event" in valid_tools and CREATE_INTENT.search(request) and not QUESTION_FORM.match(request):
        scaffold = _scaffold_event(request, now, timezone)
        if scaffold is not None:
            logger.info("heuristic_plan_scaffold", tool=scaffold.tool, title=scaffold.parameters["event_data"]["summary"])
            return [scaffold]

    for pattern, candidates, with_query in _LOOKUP_RULES:
        if not pattern.search(request):
            continue
        if candidates == (FILE_SEARCH_TOOL,) and not has_artifacts:
            continue
        tool = next((name for name in candidates if name in valid_tools), None)
        if tool is None:
            continue
        parameters = {"query": request} if with_query else {}
        logger.info("heuristic_plan_lookup", tool=tool)
        return [PlannedStep(id="heuristic_1", goal=f"Look up information with {tool}", tool=tool, parameters=parameters)]

    return []