"""
shared/utils/timeslots.py
12-hour time parsing, the half-hour block options and blocked-slot
scope classification used by slot management.
"""

import re
from typing import Optional, Tuple

from shared.schemas.schemas import BlockScope, BlockedSlot

_TIME_RE = re.compile(r"(\d+):(\d+)\s*(AM|PM)", re.IGNORECASE)


def to_minutes(value: Optional[str]) -> int:
    """'9:30PM' -> 1290. Unparsable values sort first."""
    if not value:
        return 0
    match = _TIME_RE.search(value)
    if not match:
        return 0
    hours, minutes, period = int(match.group(1)), int(match.group(2)), match.group(3).upper()
    if period == "PM" and hours != 12:
        hours += 12
    if period == "AM" and hours == 12:
        hours = 0
    return hours * 60 + minutes


def start_minutes(time_range: Optional[str]) -> int:
    """Minutes-since-midnight of the start of a 'start-end' range."""
    if not time_range:
        return 0
    return to_minutes(time_range.split("-")[0])


def format_minutes(total: int) -> str:
    hours, minutes = divmod(total, 60)
    period = "PM" if hours >= 12 else "AM"
    display = hours % 12 or 12
    return f"{display}:{minutes:02d}{period}"


def half_hour_options(first: str = "10:00AM", last: str = "7:00PM") -> list[str]:
    start, end = to_minutes(first), to_minutes(last)
    return [format_minutes(m) for m in range(start, end + 1, 30)]


TIME_OPTIONS = half_hour_options()


def classify_block(slot: BlockedSlot) -> Tuple[BlockScope, str]:
    """Scope of a blocked slot and its label. A missing dimension applies to all."""
    has_astrologer = bool(slot.astrologer_id)
    has_prefix = bool(slot.prefix)
    name = slot.astrologer_name or "Astrologer"
    if has_astrologer and has_prefix:
        return BlockScope.REPORT_ASTROLOGER, f"{slot.prefix} - {name}"
    if has_prefix:
        return BlockScope.REPORT, f"{slot.prefix} (All Astrologers)"
    if has_astrologer:
        return BlockScope.ASTROLOGER, f"{name} (All Reports)"
    return BlockScope.GLOBAL, "All Reports & Astrologers"


def describe_block(astrologer_name: Optional[str], prefix: Optional[str]) -> str:
    return f"{astrologer_name or 'All Astrologers'} • {prefix or 'All Reports'}"


def describe_target(prefix_label: Optional[str], astrologer_name: Optional[str]) -> str:
    """Slot board heading: the report first, then the astrologer."""
    return f"{prefix_label or 'All Reports'} • {astrologer_name or 'All Astrologers'}"
