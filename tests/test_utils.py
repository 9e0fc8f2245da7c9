"""
tests/test_utils.py
Tests for the pure helpers: statuses, date ranges, time slots, CSV,
batch results, search and secret masking.
"""

import csv
import io
from datetime import date

import pytest
from fastapi import HTTPException

from shared.clients.backend import ApiResult, ErrorKind
from shared.schemas.schemas import BlockedSlot, BlockScope
from shared.utils.batch import Skip, batch_notices, run_sequential, summarize
from shared.utils.csv_export import rows_to_csv
from shared.utils.dates import (
    clamp_range,
    consultation_log_window,
    date_range_for,
    format_day,
    format_order_time,
    next_days,
)
from shared.utils.search import deep_search
from shared.utils.security import mask_secret
from shared.utils.statuses import matches_status, status_counts, status_display
from shared.utils.timeslots import (
    TIME_OPTIONS,
    classify_block,
    describe_block,
    describe_target,
    start_minutes,
    to_minutes,
)

TODAY = date(2024, 3, 15)


# ── Statuses ───────────────────────────────────────────────────────────────────

def test_in_progress_counts_as_failed():
    statuses = ["completed"] * 4 + ["booked"] * 3 + ["in-progress"] * 3
    counts = status_counts(statuses)
    assert counts["all"] == 10
    assert counts["failed"] == 3
    assert counts["completed"] == 4


def test_in_progress_displays_as_failed():
    assert status_display("in-progress") == ("Failed", "red")
    assert status_display("failed") == ("Failed", "red")


def test_failed_filter_matches_in_progress():
    assert matches_status("in-progress", "failed")
    assert matches_status("booked", "all")
    assert not matches_status("booked", "failed")


def test_unknown_status_keeps_raw_label():
    assert status_display("refunded") == ("refunded", "default")


# ── Date Ranges ────────────────────────────────────────────────────────────────

def test_today_preset_is_a_single_day():
    assert date_range_for("today", TODAY) == (TODAY, TODAY)


def test_last_7_days_includes_today():
    start, end = date_range_for("last7days", TODAY)
    assert start == date(2024, 3, 9)
    assert end == TODAY


def test_last_30_days():
    assert date_range_for("last30days", TODAY)[0] == date(2024, 2, 15)


def test_custom_with_only_start_is_single_day():
    assert date_range_for("custom", TODAY, start=date(2024, 1, 1)) == (date(2024, 1, 1), date(2024, 1, 1))


def test_unknown_preset_rejected():
    with pytest.raises(HTTPException) as exc:
        date_range_for("fortnight", TODAY)
    assert exc.value.status_code == 422


def test_clamp_drags_the_other_bound():
    start, end = date(2024, 3, 10), date(2024, 3, 5)
    assert clamp_range(start, end, moved="start") == (start, start)
    assert clamp_range(start, end, moved="end") == (end, end)


def test_log_window_end_is_exclusive_for_ranges():
    assert consultation_log_window(TODAY, TODAY) == {"startDate": "2024-03-15"}
    assert consultation_log_window(date(2024, 3, 9), TODAY) == {
        "startDate": "2024-03-09",
        "endDate": "2024-03-16",
    }


def test_next_days_start_tomorrow():
    days = next_days(TODAY)
    assert len(days) == 10
    assert days[0] == date(2024, 3, 16)


def test_display_formats():
    assert format_day("2024-03-15T10:00:00") == "15/03/2024"
    assert format_day(None) == "N/A"
    assert format_day("not a date") == "N/A"
    assert format_order_time("2024-03-15T18:30:00") == "2024-03-15 06:30 pm"
    assert format_order_time(None) == ""


# ── Time Slots ─────────────────────────────────────────────────────────────────

def test_time_parsing():
    assert to_minutes("10:00AM") == 600
    assert to_minutes("12:30PM") == 750
    assert to_minutes("12:00AM") == 0
    assert to_minutes("7:00PM") == 1140
    assert to_minutes("soon") == 0
    assert start_minutes("2:00PM-2:30PM") == 840


def test_time_options_are_half_hours_from_ten_to_seven():
    assert TIME_OPTIONS[0] == "10:00AM"
    assert TIME_OPTIONS[-1] == "7:00PM"
    assert len(TIME_OPTIONS) == 19
    assert "12:30PM" in TIME_OPTIONS


@pytest.mark.parametrize("astrologer_id, prefix, scope, label", [
    (None, None, BlockScope.GLOBAL, "All Reports & Astrologers"),
    (None, "#LJR-", BlockScope.REPORT, "#LJR- (All Astrologers)"),
    ({"_id": "a1", "name": "Asha"}, None, BlockScope.ASTROLOGER, "Asha (All Reports)"),
    ({"_id": "a1", "name": "Asha"}, "#KM-", BlockScope.REPORT_ASTROLOGER, "#KM- - Asha"),
    ("a2", "#KM-", BlockScope.REPORT_ASTROLOGER, "#KM- - Astrologer"),
])
def test_classify_block(astrologer_id, prefix, scope, label):
    slot = BlockedSlot.model_validate({"timeRange": "10:00AM-10:30AM", "astrologerId": astrologer_id, "prefix": prefix})
    assert classify_block(slot) == (scope, label)


def test_describe_block_defaults_to_all():
    assert describe_block(None, None) == "All Astrologers • All Reports"
    assert describe_block("Asha", "#LR-") == "Asha • #LR-"


def test_board_target_names_the_report_first():
    assert describe_target("Life Journey Report", "Asha") == "Life Journey Report • Asha"
    assert describe_target(None, None) == "All Reports • All Astrologers"


# ── CSV ────────────────────────────────────────────────────────────────────────

def test_csv_has_one_line_per_row_and_doubles_quotes():
    rows = [
        {"name": 'Ravi "RK" Kumar', "note": "line one\nline two"},
        {"name": "Meera", "note": None},
        {"name": "Anil, Jr.", "note": "ok"},
    ]
    columns = [("Name", lambda r: r["name"]), ("Note", lambda r: r["note"])]
    text = rows_to_csv(rows, columns)

    lines = text.splitlines()
    assert len(lines) == len(rows) + 1
    assert lines[0] == '"Name","Note"'
    assert lines[1] == '"Ravi ""RK"" Kumar","line one line two"'
    assert lines[2] == '"Meera",""'

    parsed = list(csv.reader(io.StringIO(text)))
    assert parsed[3] == ["Anil, Jr.", "ok"]


def test_csv_with_no_rows_has_only_header():
    assert rows_to_csv([], [("A", lambda r: r)]).splitlines() == ['"A"']


# ── Batch ──────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_run_sequential_counts_each_outcome_in_order():
    seen = []

    async def operation(item: str) -> ApiResult:
        seen.append(item)
        if item == "skip":
            raise Skip("not available")
        if item == "bad":
            return ApiResult.failure(ErrorKind.HTTP, "boom", 500)
        return ApiResult.success({})

    result = await run_sequential(["a", "skip", "bad", "b"], operation)

    assert seen == ["a", "skip", "bad", "b"]
    assert (result.succeeded, result.failed, result.skipped) == (2, 1, 1)
    assert [i.status for i in result.items] == ["succeeded", "skipped", "failed", "succeeded"]
    assert result.items[2].reason == "boom"
    assert summarize(result).succeeded == 2


@pytest.mark.asyncio
async def test_batch_notices():
    async def operation(item: int) -> ApiResult:
        return ApiResult.success({}) if item < 3 else ApiResult.failure(ErrorKind.HTTP, "x", 400)

    result = await run_sequential([1, 2, 3], operation)
    messages = [n.message for n in batch_notices(result, "blocked", "block")]
    assert messages == ["2 slot(s) blocked successfully!", "1 slot(s) failed to block"]


# ── Search / Security ──────────────────────────────────────────────────────────

def test_deep_search_matches_nested_values():
    rows = [
        {"fullName": "Ravi", "astrologerId": {"name": "Asha Devi"}},
        {"fullName": "Meera", "paymentDetails": {"contact": "9876543210"}},
    ]
    assert deep_search(rows, "asha") == [rows[0]]
    assert deep_search(rows, "98765") == [rows[1]]
    assert deep_search(rows, "  ") == rows


def test_mask_secret_keeps_last_four():
    assert mask_secret("123456789012") == "********9012"
    assert mask_secret("abc") == "***"
    assert mask_secret("") == ""
