"""
services/logs/router.py
Consultation logs and consultation bookings: date-window listings,
status filtering and counts, and CSV exports.
"""

import logging
from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query

from shared.clients.backend import BackendClient, get_backend
from shared.middleware.auth import UpstreamCredentials, get_credentials
from shared.schemas.schemas import (
    AstrologerRef,
    ConsultationBookingsEnvelope,
    ConsultationBookingsResponse,
    ConsultationLog,
    ConsultationLogRow,
    ConsultationLogsEnvelope,
    ConsultationLogsResponse,
    CustomerRef,
    StatusCounts,
)
from shared.utils.csv_export import csv_response, rows_to_csv
from shared.utils.dates import (
    clamp_range,
    consultation_log_window,
    date_range_for,
    day_bounds,
    format_day,
    format_timestamp,
    today_local,
)
from shared.utils.search import deep_search
from shared.utils.statuses import matches_status, normalize_status, status_counts, status_display

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/logs", tags=["Logs"])


# ── Helpers ───────────────────────────────────────────────────

def to_row(log: ConsultationLog) -> ConsultationLogRow:
    customer = log.customer_id if isinstance(log.customer_id, CustomerRef) else None
    astrologer = log.astrologer_id if isinstance(log.astrologer_id, AstrologerRef) else None
    payment_id = log.payment_details.payment_id if log.payment_details else None
    label, color = status_display(log.status)
    return ConsultationLogRow(
        id=log.id,
        booking_id=log.booking_id,
        customer_name=log.full_name or (customer.name if customer else None),
        customer_email=customer.email if customer else None,
        mobile_number=log.mobile_number,
        astrologer_id=astrologer.id if astrologer else log.astrologer_id,
        astrologer_name=astrologer.display_name if astrologer else None,
        date=log.date,
        from_time=log.from_time,
        to_time=log.to_time,
        consultation_type=log.consultation_type,
        consultation_topic=log.consultation_topic,
        consultation_price=log.consultation_price,
        status=log.status,
        normalized_status=normalize_status(log.status),
        status_label=label,
        status_color=color,
        is_paid=bool(payment_id),
        payment_id=payment_id,
        created_at=log.created_at,
    )


def resolve_window(
    preset: str,
    start_date: Optional[date],
    end_date: Optional[date],
    moved: str,
) -> tuple[date, date]:
    start, end = date_range_for(preset, today_local(), start_date, end_date)
    return clamp_range(start, end, moved)


async def _fetch_logs(
    start: date,
    end: date,
    backend: BackendClient,
    credentials: UpstreamCredentials,
) -> List[ConsultationLog]:
    result = await backend.get(
        "/api/customers/all_consultation_logs",
        credentials,
        params=consultation_log_window(start, end),
        expect=ConsultationLogsEnvelope,
    )
    return result.unwrap().data


# ── Consultation Logs ─────────────────────────────────────────

class LogFilters:
    def __init__(
        self,
        preset: Literal["today", "last7days", "last30days", "custom"] = Query("today"),
        start_date: Optional[date] = Query(None),
        end_date: Optional[date] = Query(None),
        moved: Literal["start", "end"] = Query("start", description="Which bound the operator changed last"),
        status: str = Query("all"),
    ):
        self.start, self.end = resolve_window(preset, start_date, end_date, moved)
        self.status = status


@router.get("/consultations", response_model=ConsultationLogsResponse)
async def list_consultation_logs(
    filters: LogFilters = Depends(),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
):
    """
    Consultation sessions in a date window. Counts cover the whole window;
    items are narrowed by status ('in-progress' counts as failed).
    """
    logs = await _fetch_logs(filters.start, filters.end, backend, credentials)
    counts = status_counts(log.status for log in logs)
    items = [to_row(log) for log in logs if matches_status(log.status, filters.status)]
    return ConsultationLogsResponse(
        start_date=filters.start,
        end_date=filters.end,
        status=filters.status,
        counts=StatusCounts(**counts),
        items=items,
    )


LOG_CSV_COLUMNS = [
    ("Name", lambda r: r.customer_name or "N/A"),
    ("Mobile", lambda r: r.mobile_number or "N/A"),
    ("Astrologer", lambda r: r.astrologer_name or "N/A"),
    ("Type", lambda r: r.consultation_type or "N/A"),
    ("Date", lambda r: format_day(r.date)),
    ("From", lambda r: r.from_time or "N/A"),
    ("To", lambda r: r.to_time or "N/A"),
    ("Price", lambda r: r.consultation_price if r.consultation_price is not None else "N/A"),
    ("Payment", lambda r: "Paid" if r.is_paid else "Unpaid"),
    ("Status", lambda r: r.status_label),
    ("Created At", lambda r: format_timestamp(r.created_at)),
]


@router.get("/consultations/export")
async def export_consultation_logs(
    filters: LogFilters = Depends(),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
):
    logs = await _fetch_logs(filters.start, filters.end, backend, credentials)
    rows = [to_row(log) for log in logs if matches_status(log.status, filters.status)]
    filename = f"consultation_logs_{filters.start.isoformat()}_{filters.end.isoformat()}.csv"
    return csv_response(rows_to_csv(rows, LOG_CSV_COLUMNS), filename)


# ── Consultation Bookings ─────────────────────────────────────

class BookingFilters:
    def __init__(
        self,
        status: Optional[str] = Query(None),
        customer_name: Optional[str] = Query(None),
        astrologer_name: Optional[str] = Query(None),
        start_date: Optional[date] = Query(None),
        end_date: Optional[date] = Query(None),
        search: Optional[str] = Query(None, description="Matches any field, nested ones included"),
    ):
        self.search = search
        self.params = {
            "page": 1,
            "limit": 1000,
            "status": status,
            "customerName": customer_name,
            "astrologerName": astrologer_name,
        }
        if start_date:
            self.params["startDate"] = day_bounds(start_date)[0]
        if end_date:
            self.params["endDate"] = day_bounds(end_date)[1]


async def _fetch_bookings(
    filters: BookingFilters,
    backend: BackendClient,
    credentials: UpstreamCredentials,
) -> List[ConsultationLog]:
    result = await backend.get(
        "/api/admin/all_consultations_booking",
        credentials,
        params=filters.params,
        expect=ConsultationBookingsEnvelope,
    )
    bookings = result.unwrap().bookings
    if not filters.search:
        return bookings
    raws = [(b, b.raw()) for b in bookings]
    matched = {id(raw) for raw in deep_search([raw for _, raw in raws], filters.search)}
    return [b for b, raw in raws if id(raw) in matched]


@router.get("/bookings", response_model=ConsultationBookingsResponse)
async def list_consultation_bookings(
    filters: BookingFilters = Depends(),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
):
    bookings = await _fetch_bookings(filters, backend, credentials)
    return ConsultationBookingsResponse(total=len(bookings), items=[to_row(b) for b in bookings])


def _slot_time(booking: ConsultationLog, attr: str) -> str:
    slot = booking.slot_id
    value = getattr(slot, attr, None) if slot is not None and not isinstance(slot, str) else None
    return value or getattr(booking, attr) or "N/A"


BOOKING_CSV_COLUMNS = [
    ("Astrologer Name", lambda b: b.astrologer_id.display_name
        if isinstance(b.astrologer_id, AstrologerRef) and b.astrologer_id.display_name else "N/A"),
    ("Customer Name", lambda b: b.full_name
        or (b.customer_id.name if isinstance(b.customer_id, CustomerRef) else None) or "N/A"),
    ("Email", lambda b: (b.customer_id.email if isinstance(b.customer_id, CustomerRef) else None)
        or (b.payment_details.email if b.payment_details else None) or "N/A"),
    ("Mobile", lambda b: b.mobile_number or "N/A"),
    ("Gender", lambda b: b.gender or "N/A"),
    ("Date of Birth", lambda b: format_day(b.date_of_birth)),
    ("Time of Birth", lambda b: b.time_of_birth or "N/A"),
    ("Place of Birth", lambda b: b.place_of_birth or "N/A"),
    ("Consultation Date", lambda b: format_day(b.date)),
    ("Slot From", lambda b: _slot_time(b, "from_time")),
    ("Slot To", lambda b: _slot_time(b, "to_time")),
    ("Consultation Type", lambda b: b.consultation_type or "N/A"),
    ("Consultation Topic", lambda b: b.consultation_topic or "N/A"),
    ("Payment Amount", lambda b: b.payment_details.payment_amount
        if b.payment_details and b.payment_details.payment_amount is not None
        else (b.consultation_price if b.consultation_price is not None else "N/A")),
    ("Payment Method", lambda b: (b.payment_details.payment_method if b.payment_details else None) or "N/A"),
    ("Status", lambda b: b.status or "N/A"),
    ("Created At", lambda b: format_timestamp(b.created_at)),
    ("Updated At", lambda b: format_timestamp(b.updated_at)),
]


@router.get("/bookings/export")
async def export_consultation_bookings(
    filters: BookingFilters = Depends(),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
):
    bookings = await _fetch_bookings(filters, backend, credentials)
    filename = f"consultation_bookings_{today_local().isoformat()}.csv"
    return csv_response(rows_to_csv(bookings, BOOKING_CSV_COLUMNS), filename)
