"""
shared/utils/dates.py
Date helpers: the operator's local "today", preset ranges and the
display formats used in listings and CSV exports.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from fastapi import HTTPException

from config.settings import settings

DateRange = Tuple[date, date]


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def today_local() -> date:
    """Current calendar date in the operator's timezone."""
    return datetime.now(local_tz()).date()


def date_range_for(
    preset: str,
    today: date,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> DateRange:
    """
    Resolve a preset into inclusive (start, end) bounds.
    Accepts the consultation presets (today, last7days, last30days, custom)
    and the order presets (weekly, monthly).
    """
    if preset == "today":
        return today, today
    if preset == "last7days":
        return today - timedelta(days=6), today
    if preset == "last30days":
        return today - timedelta(days=29), today
    if preset == "weekly":
        return today - timedelta(days=7), today
    if preset == "monthly":
        return today - timedelta(days=30), today
    if preset == "custom":
        start = start or end or today
        end = end or start
        return start, end
    raise HTTPException(status_code=422, detail=f"Unknown date range preset: {preset}")


def clamp_range(start: date, end: date, moved: str = "start") -> DateRange:
    """
    Keep start <= end. Moving the start past the end drags the end along;
    moving the end before the start drags the start.
    """
    if start <= end:
        return start, end
    if moved == "end":
        return end, end
    return start, start


def consultation_log_window(start: date, end: date) -> dict:
    """Query window for consultation logs: endDate is exclusive and only sent for multi-day ranges."""
    params = {"startDate": start.isoformat()}
    if start != end:
        params["endDate"] = (end + timedelta(days=1)).isoformat()
    return params


def day_bounds(day: date) -> Tuple[str, str]:
    """ISO datetimes for the start and end of a local day."""
    tz = local_tz()
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day, time(23, 59, 59, 999000), tzinfo=tz)
    return start.isoformat(), end.isoformat()


def next_days(today: date, count: int = 10) -> list[date]:
    """Selectable dates for slot management: tomorrow onwards."""
    return [today + timedelta(days=i + 1) for i in range(count)]


# ── Display Formats ───────────────────────────────────────────

def parse_backend_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(local_tz())
    return parsed


def format_day(value: Optional[str], fallback: str = "N/A") -> str:
    """DD/MM/YYYY"""
    parsed = parse_backend_datetime(value)
    return parsed.strftime("%d/%m/%Y") if parsed else fallback


def format_timestamp(value: Optional[str], fallback: str = "N/A") -> str:
    """DD/MM/YYYY HH:MM:SS"""
    parsed = parse_backend_datetime(value)
    return parsed.strftime("%d/%m/%Y %H:%M:%S") if parsed else fallback


def day_label(day: date) -> str:
    """Short label for the date picker, e.g. 'Sat, 18 Oct'."""
    return day.strftime("%a, %d %b")


def format_order_time(value: Optional[str]) -> str:
    """YYYY-MM-DD hh:mm am/pm in local time, blank when unset."""
    parsed = parse_backend_datetime(value)
    if not parsed:
        return ""
    return parsed.strftime("%Y-%m-%d %I:%M ") + parsed.strftime("%p").lower()
