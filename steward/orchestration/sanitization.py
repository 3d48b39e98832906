from __future__ import annotations

import copy
from datetime import date, datetime, time, timedelta
from typing import Any, Mapping

from ..core.logging import get_logger
from .temporal import (
    format_timestamp,
    mentions_time_of_day,
    parse_date,
    parse_time_of_day,
    parse_timestamp,
)

logger = get_logger(name=__name__)

DEFAULT_START_TIME = time(9, 0)


def _side(payload: dict[str, Any], key: str) -> dict[str, Any] | None:
    value = payload.get(key)
    if isinstance(value, Mapping):
        return dict(value)
    return None


def _has_value(side: Mapping[str, Any] | None) -> bool:
    return bool(side) and bool(side.get("date") or side.get("dateTime"))  # type: ignore[union-attr]


def _side_date(side: Mapping[str, Any]) -> date | None:
    if side.get("date"):
        return parse_date(str(side["date"]))
    if side.get("dateTime"):
        stamp = parse_timestamp(str(side["dateTime"]))
        return stamp.date() if stamp else parse_date(str(side["dateTime"]))
    return None


def _with(side: Mapping[str, Any], **values: str) -> dict[str, Any]:
    rebuilt = {key: value for key, value in side.items() if key not in {"date", "dateTime"}}
    rebuilt.update(values)
    return rebuilt


def _derive_start(end: Mapping[str, Any]) -> dict[str, Any] | None:
    if end.get("dateTime"):
        stamp = parse_timestamp(str(end["dateTime"]))
        if stamp is not None:
            return _with(end, dateTime=format_timestamp(stamp - timedelta(hours=1)))
    if end.get("date"):
        day = parse_date(str(end["date"]))
        if day is not None:
            return _with(end, date=(day - timedelta(days=1)).isoformat())
    return None


def sanitize_schedule_payload(request_text: str, payload: Mapping[str, Any] | None) -> dict[str, Any]:
    """Normalize the start/end span of an event payload against what the user actually asked for.

    Requests without a time of day become all-day spans (end is the following
    day). Requests with one become timestamped spans defaulting to one hour,
    and a date-only start picks up the clock time stated in the request.
    """
    data: dict[str, Any] = copy.deepcopy(dict(payload or {}))
    start = _side(data, "start")
    end = _side(data, "end")

    if not _has_value(start) and _has_value(end):
        start = _derive_start(end)  # type: ignore[arg-type]
        if start is not None:
            data["start"] = start
            logger.info("sanitize_start_derived", start=start)

    if start is None or not _has_value(start):
        return data

    if not mentions_time_of_day(request_text):
        start_day = _side_date(start)
        if start_day is None:
            return data
        data["start"] = _with(start, date=start_day.isoformat())
        data["end"] = _with(end or {}, date=(start_day + timedelta(days=1)).isoformat())
        return data

    start_stamp = parse_timestamp(str(start["dateTime"])) if start.get("dateTime") else None
    if start_stamp is None:
        start_day = _side_date(start)
        if start_day is None:
            return data
        hour_minute = parse_time_of_day(request_text)
        clock = time(*hour_minute) if hour_minute else DEFAULT_START_TIME
        start_stamp = datetime.combine(start_day, clock)

    end_stamp = None
    if end and end.get("dateTime"):
        end_stamp = parse_timestamp(str(end["dateTime"]))
    if end_stamp is not None and (end_stamp.tzinfo is None) != (start_stamp.tzinfo is None):
        end_stamp = None
    if end_stamp is None or end_stamp <= start_stamp:
        end_stamp = start_stamp + timedelta(hours=1)

    data["start"] = _with(start, dateTime=format_timestamp(start_stamp))
    data["end"] = _with(end or {}, dateTime=format_timestamp(end_stamp))
    return data
