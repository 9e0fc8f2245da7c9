"""
shared/utils/statuses.py
Status normalization, display labels and counts for consultation logs,
puja bookings and report orders.
"""

from typing import Iterable, Tuple

# ── Consultation Statuses ─────────────────────────────────────

CONSULTATION_STATUSES = ("pending_payment", "booked", "failed", "completed", "cancelled")

_CONSULTATION_DISPLAY = {
    "pending_payment": ("Pending Payment", "orange"),
    "booked": ("Booked", "blue"),
    "completed": ("Completed", "green"),
    "cancelled": ("Cancelled", "grey"),
    "failed": ("Failed", "red"),
}


def normalize_status(status: str) -> str:
    """Sessions stuck 'in-progress' are reported as failed."""
    return "failed" if status == "in-progress" else status


def status_display(status: str) -> Tuple[str, str]:
    """(label, color) for a consultation status."""
    normalized = normalize_status(status)
    if normalized in _CONSULTATION_DISPLAY:
        return _CONSULTATION_DISPLAY[normalized]
    return status, "default"


def matches_status(status: str, wanted: str) -> bool:
    if wanted in ("", "all"):
        return True
    return normalize_status(status) == wanted or status == wanted


def status_counts(statuses: Iterable[str]) -> dict[str, int]:
    counts = {"all": 0, **{s: 0 for s in CONSULTATION_STATUSES}}
    for status in statuses:
        counts["all"] += 1
        normalized = normalize_status(status)
        if normalized in counts:
            counts[normalized] += 1
    return counts


# ── Payment Statuses ──────────────────────────────────────────

PAYMENT_STATUSES = ("successful", "pending", "failed")

_PAYMENT_DISPLAY = {
    "successful": ("Paid", "green"),
    "pending": ("Pending Payment", "orange"),
    "failed": ("Failed", "red"),
}


def payment_status_display(status: str) -> Tuple[str, str]:
    return _PAYMENT_DISPLAY.get(status, (status, "default"))


def payment_counts(statuses: Iterable[str]) -> dict[str, int]:
    counts = {"all": 0, **{s: 0 for s in PAYMENT_STATUSES}}
    for status in statuses:
        counts["all"] += 1
        if status in counts:
            counts[status] += 1
    return counts


def capitalize_status(status: str) -> str:
    """Badge text for booked-slot statuses."""
    return status[:1].upper() + status[1:] if status else "Unknown"
