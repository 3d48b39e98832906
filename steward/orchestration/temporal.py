from __future__ import annotations

import re
from datetime import date, datetime, timedelta

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

CLOCK_PATTERN = re.compile(r"\b(\d{1,2}):(\d{2})\s*(a\.?m\.?|p\.?m\.?)?(?=\W|$)", re.IGNORECASE)
MERIDIEM_PATTERN = re.compile(r"\b(\d{1,2})\s*(a\.?m\.?|p\.?m\.?)(?=\W|$)", re.IGNORECASE)
# Day periods only count as a time when anchored, so greetings like "good morning" do not.
NAMED_TIME_PATTERN = re.compile(
    r"\b(?:(noon|midday|midnight|tonight)|(?:in the|this|tomorrow|at)\s+(morning|afternoon|evening)"
    r"|(\d{1,2})\s*o'?clock)\b",
    re.IGNORECASE,
)
ALL_DAY_PATTERN = re.compile(r"\ball[- ]day\b", re.IGNORECASE)
TIME_OF_DAY_PATTERN = re.compile(
    "|".join(pattern.pattern for pattern in (CLOCK_PATTERN, MERIDIEM_PATTERN, NAMED_TIME_PATTERN)),
    re.IGNORECASE,
)

_NAMED_HOURS = {
    "noon": (12, 0),
    "midday": (12, 0),
    "midnight": (0, 0),
    "morning": (9, 0),
    "afternoon": (14, 0),
    "evening": (18, 0),
    "tonight": (19, 0),
}

RELATIVE_DATE_PATTERN = re.compile(
    r"\b(?:(?:on|this|next|coming)\s+)?(?:"
    + "|".join(WEEKDAYS)
    + r")\b|\bday after tomorrow\b|\btomorrow\b|\btoday\b|\btonight\b|\bin\s+\d{1,2}\s+days?\b",
    re.IGNORECASE,
)


def mentions_time_of_day(text: str) -> bool:
    return bool(TIME_OF_DAY_PATTERN.search(text or ""))


def _apply_meridiem(hour: int, meridiem: str | None) -> int:
    if not meridiem:
        return hour
    marker = meridiem.lower().replace(".", "")
    if marker == "pm" and hour < 12:
        return hour + 12
    if marker == "am" and hour == 12:
        return 0
    return hour


def parse_time_of_day(text: str) -> tuple[int, int] | None:
    """Return the first ``(hour, minute)`` expressed in ``text``."""
    text = text or ""
    candidates: list[tuple[int, tuple[int, int]]] = []

    clock = CLOCK_PATTERN.search(text)
    if clock:
        hour = _apply_meridiem(int(clock.group(1)), clock.group(3))
        minute = int(clock.group(2))
        if hour < 24 and minute < 60:
            candidates.append((clock.start(), (hour, minute)))

    meridiem = MERIDIEM_PATTERN.search(text)
    if meridiem:
        hour = _apply_meridiem(int(meridiem.group(1)), meridiem.group(2))
        if hour < 24:
            candidates.append((meridiem.start(), (hour, 0)))

    named = NAMED_TIME_PATTERN.search(text)
    if named:
        if named.group(3):
            hour = int(named.group(3))
            if hour < 24:
                candidates.append((named.start(), (hour, 0)))
        else:
            period = named.group(1) or named.group(2)
            candidates.append((named.start(), _NAMED_HOURS[period.lower()]))

    if not candidates:
        return None
    return min(candidates, key=lambda item: item[0])[1]


def resolve_relative_date(text: str, today: date) -> date | None:
    match = RELATIVE_DATE_PATTERN.search(text or "")
    if match is None:
        return None
    phrase = match.group(0).lower()
    if phrase in {"today", "tonight"}:
        return today
    if phrase == "day after tomorrow":
        return today + timedelta(days=2)
    if phrase == "tomorrow":
        return today + timedelta(days=1)
    if phrase.startswith("in "):
        return today + timedelta(days=int(re.search(r"\d+", phrase).group(0)))  # type: ignore[union-attr]
    words = phrase.split()
    ahead = (WEEKDAYS.index(words[-1]) - today.weekday()) % 7
    # "this Monday" or "on Monday" said on a Monday means today.
    if ahead == 0 and words[0] not in {"this", "on"}:
        ahead = 7
    return today + timedelta(days=ahead)


def parse_timestamp(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None


def parse_date(value: str) -> date | None:
    try:
        return date.fromisoformat(value.strip()[:10])
    except (AttributeError, ValueError):
        return None


def format_timestamp(value: datetime) -> str:
    rendered = value.isoformat(timespec="seconds")
    if rendered.endswith("+00:00"):
        return rendered[: -len("+00:00")] + "Z"
    return rendered
