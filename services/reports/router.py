"""
services/reports/router.py
Report automation queue (selection, processing, delivery), report orders
(aggregated listing, stats, edits, soft delete, export) and report
consultation bookings.
"""

import logging
from collections import defaultdict
from datetime import date
from typing import Any, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from shared.clients.backend import BackendClient, get_backend
from shared.middleware.auth import UpstreamCredentials, get_credentials
from shared.schemas.schemas import (
    ConsultationBookedSlotsEnvelope,
    ConsultationSlotRow,
    ConsultationSlotsResponse,
    DeliveryStatus,
    MessageResponse,
    ProcessReportsRequest,
    QueuePagination,
    ReportOrder,
    ReportOrderStats,
    ReportOrderStatsResponse,
    ReportOrdersPage,
    ReportOrdersResponse,
    ReportOrderUpdate,
    ReportPrefix,
    ReportQueueEnvelope,
    ReportQueueResponse,
    SelectionResponse,
    ToggleAllRequest,
)
from shared.utils.audit import record_action
from shared.utils.csv_export import csv_response, rows_to_csv
from shared.utils.dates import date_range_for, format_order_time, today_local
from shared.utils.fetching import LatestOnlyFetcher, get_fetcher
from shared.utils.statuses import capitalize_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["Reports"])

ORDERS_API = "/api/admin/life-journey-orders"
DELIVERED = DeliveryStatus.DELIVERED.value


# ── Selection ─────────────────────────────────────────────────

def _is_selectable(order_id: Optional[str], delivery_status: Optional[str]) -> bool:
    return bool(order_id) and delivery_status != DELIVERED


def auto_select(orders: List[ReportOrder], first_n: Optional[int]) -> List[str]:
    """Ids of the first N orders that have an id and are not yet delivered."""
    if not first_n or first_n <= 0:
        return []
    selectable = [o.id for o in orders if _is_selectable(o.id, o.report_delivery_status)]
    return selectable[:first_n]


def toggle_all(selected_ids: List[str], rows) -> List[str]:
    """Select every selectable row, or clear the selection if all are already selected."""
    selectable = [r.id for r in rows if _is_selectable(r.id, r.report_delivery_status)]
    if len(selected_ids) == len(selectable) and selectable:
        return []
    return selectable


# ── Automation Queue ──────────────────────────────────────────

@router.get("/queue", response_model=ReportQueueResponse)
async def get_report_queue(
    q: Optional[str] = Query(None),
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    language: Optional[str] = Query("all"),
    report_delivery_status: Optional[str] = Query("all"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.REPORT_QUEUE_PAGE_LIMIT, ge=1, le=500),
    select_first_n: Optional[int] = Query(None, ge=1),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    fetcher: LatestOnlyFetcher = Depends(get_fetcher),
):
    """
    One page of report orders awaiting automated delivery, sorted by
    creation time. Only the operator's latest filter change is served.
    """
    params = {
        "page": page,
        "limit": limit,
        "q": q,
        "language": language,
        "reportDeliveryStatus": report_delivery_status,
        "sortBy": "createdAt",
        "sortOrder": sort_order,
    }
    if from_date and to_date:
        params["from"] = from_date.isoformat()
        params["to"] = to_date.isoformat()
    elif from_date:
        params["date"] = from_date.isoformat()

    async def fetch():
        return await backend.get("/api/admin/get-reports", credentials, params=params, expect=ReportQueueEnvelope)

    result = await fetcher.run(f"report-queue:{credentials.fingerprint()}", fetch)
    data = result.unwrap().data
    items = data.items

    return ReportQueueResponse(
        items=[o.raw() for o in items],
        pagination=QueuePagination(
            page=data.pagination.page,
            pages=data.pagination.pages,
            total=data.pagination.total,
            limit=data.pagination.limit or limit,
            has_more=data.pagination.has_more,
            showing=data.pagination.showing or len(items),
        ),
        summary=data.summary,
        selected_ids=auto_select(items, select_first_n),
        failed_count=sum(1 for o in items if o.report_delivery_status == DeliveryStatus.FAILED.value),
        delivered_count=sum(1 for o in items if o.report_delivery_status == DELIVERED),
    )


@router.post("/queue/toggle-all", response_model=SelectionResponse)
async def toggle_queue_selection(
    data: ToggleAllRequest,
    _: UpstreamCredentials = Depends(get_credentials),
):
    return SelectionResponse(selected_ids=toggle_all(data.selected_ids, data.rows))


async def _process(
    report_ids: List[str],
    request: Request,
    backend: BackendClient,
    credentials: UpstreamCredentials,
    db: AsyncSession,
) -> None:
    result = await backend.post(
        "/api/life-journey-report/process-lcr-reports",
        credentials,
        json={"reportIds": report_ids},
    )
    result.unwrap()
    await record_action(db, credentials, "PROCESS_REPORTS", "ReportOrder", None,
                        {"report_ids": report_ids}, request)


@router.post("/queue/process", response_model=MessageResponse)
async def process_selected_reports(
    data: ProcessReportsRequest,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    """Submit the selected report ids for generation in a single request."""
    if not data.report_ids:
        raise HTTPException(status_code=400, detail="Please select at least one report.")
    await _process(data.report_ids, request, backend, credentials, db)
    return MessageResponse(message=f"{len(data.report_ids)} reports queued for generation.")


@router.post("/queue/{report_id}/process", response_model=MessageResponse)
async def resend_report(
    report_id: str,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    await _process([report_id], request, backend, credentials, db)
    return MessageResponse(message="Report generation has been restarted.")


@router.put("/queue/{report_id}/delivered", response_model=MessageResponse)
async def mark_report_delivered(
    report_id: str,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    """Manually mark a failed report as delivered."""
    result = await backend.put(f"/api/admin/update-status/{report_id}", credentials)
    body = result.unwrap()
    await record_action(db, credentials, "MARK_REPORT_DELIVERED", "ReportOrder", report_id, None, request)
    message = body.get("message") if isinstance(body, dict) else None
    return MessageResponse(message=message or "Marked as delivered")


# ── Report Orders ─────────────────────────────────────────────

def _order_filters(
    q: Optional[str],
    from_date: Optional[date],
    to_date: Optional[date],
    date_range: Optional[str],
    language: Optional[str],
    status: Optional[str],
    astro_consultation: Optional[bool],
    express_delivery: Optional[bool],
    include_deleted: bool,
    sort_by: str,
    sort_order: str,
) -> dict[str, Any]:
    if date_range:
        from_date, to_date = date_range_for(date_range, today_local())
    elif from_date and not to_date:
        to_date = from_date
    return {
        "q": q,
        "from": from_date.isoformat() if from_date else None,
        "to": to_date.isoformat() if to_date else None,
        "language": language,
        "status": status,
        "astroConsultation": astro_consultation,
        "expressDelivery": express_delivery,
        "includeDeleted": True if include_deleted else None,
        "sortBy": sort_by,
        "sortOrder": sort_order,
    }


class OrderFilters:
    """Query parameters shared by the order listing, stats and export."""

    def __init__(
        self,
        q: Optional[str] = Query(None),
        from_date: Optional[date] = Query(None, alias="from"),
        to_date: Optional[date] = Query(None, alias="to"),
        date_range: Optional[Literal["today", "weekly", "monthly"]] = Query(None),
        language: Optional[str] = Query(None),
        status: Optional[str] = Query("paid"),
        astro_consultation: Optional[bool] = Query(None),
        express_delivery: Optional[bool] = Query(None),
        include_deleted: bool = Query(False),
        sort_by: str = Query("createdAt"),
        sort_order: Literal["asc", "desc"] = Query("desc"),
        plan_name: Optional[str] = Query(None, description="Case-insensitive plan name substring"),
    ):
        self.plan_name = plan_name
        self.params = _order_filters(
            q, from_date, to_date, date_range, language, status,
            astro_consultation, express_delivery, include_deleted, sort_by, sort_order,
        )


async def _fetch_all_orders(
    filters: OrderFilters,
    backend: BackendClient,
    credentials: UpstreamCredentials,
) -> tuple[List[ReportOrder], int]:
    """Walk every page of the order listing, then apply the plan-name filter."""
    orders: List[ReportOrder] = []
    page, pages = 1, 1
    while page <= pages:
        result = await backend.get(
            ORDERS_API,
            credentials,
            params={**filters.params, "page": page, "limit": settings.REPORT_ORDERS_PAGE_LIMIT},
            expect=ReportOrdersPage,
            data_key="data",
        )
        data = result.unwrap()
        orders.extend(data.items)
        pages = data.pages
        page += 1

    needle = (filters.plan_name or "").strip().lower()
    if needle:
        orders = [o for o in orders if needle in (o.plan_name or "").lower()]
    return orders, page - 1


@router.get("/orders", response_model=ReportOrdersResponse)
async def list_report_orders(
    filters: OrderFilters = Depends(),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
):
    orders, pages_fetched = await _fetch_all_orders(filters, backend, credentials)
    return ReportOrdersResponse(items=[o.raw() for o in orders], total=len(orders), pages_fetched=pages_fetched)


@router.get("/orders/stats", response_model=Optional[ReportOrderStatsResponse])
async def get_report_order_stats(
    filters: OrderFilters = Depends(),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
):
    """Order and revenue totals. Returns null rather than failing when unavailable."""
    result = await backend.get(
        f"{ORDERS_API}/stats",
        credentials,
        params={**filters.params, "planName": filters.plan_name},
        expect=ReportOrderStats,
        data_key="data",
    )
    if not result.ok:
        return None
    stats = result.data
    return ReportOrderStatsResponse(
        total_orders=stats.total_orders,
        total_revenue=stats.total_revenue,
        today_orders=stats.today_orders,
        today_revenue=stats.today_revenue,
    )


ORDER_CSV_COLUMNS = [
    ("_id", lambda r: r.get("_id", "")),
    ("orderID", lambda r: r.get("orderID", "")),
    ("planName", lambda r: r.get("planName", "")),
    ("name", lambda r: r.get("name", "")),
    ("email", lambda r: r.get("email", "")),
    ("whatsapp", lambda r: r.get("whatsapp", "")),
    ("gender", lambda r: r.get("gender", "")),
    ("reportLanguage", lambda r: r.get("reportLanguage", "")),
    ("amount", lambda r: r.get("amount", "")),
    ("status", lambda r: r.get("status", "")),
    ("paymentTxnId", lambda r: r.get("paymentTxnId", "")),
    ("razorpayOrderId", lambda r: r.get("razorpayOrderId", "")),
    ("paymentAt", lambda r: format_order_time(r.get("paymentAt"))),
    ("astroConsultation", lambda r: "Yes" if r.get("astroConsultation") else "No"),
    ("consultationDate", lambda r: r.get("consultationDate", "")),
    ("consultationTime", lambda r: r.get("consultationTime", "")),
    ("expressDelivery", lambda r: "Yes" if r.get("expressDelivery") else "No"),
    ("utm_source", lambda r: r.get("utm_source", "")),
    ("utm_medium", lambda r: r.get("utm_medium", "")),
    ("utm_campaign", lambda r: r.get("utm_campaign", "")),
    ("utm_term", lambda r: r.get("utm_term", "")),
    ("utm_content", lambda r: r.get("utm_content", "")),
    ("createdAt", lambda r: format_order_time(r.get("createdAt"))),
    ("deletedAt", lambda r: format_order_time(r.get("deletedAt"))),
]


@router.get("/orders/export")
async def export_report_orders(
    filters: OrderFilters = Depends(),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
):
    orders, _ = await _fetch_all_orders(filters, backend, credentials)
    text = rows_to_csv([o.raw() for o in orders], ORDER_CSV_COLUMNS)
    return csv_response(text, "life_journey_orders.csv")


@router.patch("/orders/{order_id}", response_model=MessageResponse)
async def update_report_order(
    order_id: str,
    data: ReportOrderUpdate,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    """Edit an order by _id or orderID. Only the provided fields are sent."""
    payload = data.model_dump(by_alias=True, exclude_unset=True, mode="json")
    if not payload:
        raise HTTPException(status_code=400, detail="No changes to update")
    result = await backend.patch(f"{ORDERS_API}/{order_id}", credentials, json=payload)
    result.unwrap()
    await record_action(db, credentials, "UPDATE_REPORT_ORDER", "ReportOrder", order_id, payload, request)
    return MessageResponse(message="Order updated")


@router.delete("/orders/{order_id}", response_model=MessageResponse)
async def soft_delete_report_order(
    order_id: str,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    result = await backend.delete(f"{ORDERS_API}/{order_id}", credentials)
    result.unwrap()
    await record_action(db, credentials, "DELETE_REPORT_ORDER", "ReportOrder", order_id, None, request)
    return MessageResponse(message="Order deleted")


@router.post("/orders/{order_id}/restore", response_model=MessageResponse)
async def restore_report_order(
    order_id: str,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    result = await backend.post(f"{ORDERS_API}/{order_id}/restore", credentials, json={})
    result.unwrap()
    await record_action(db, credentials, "RESTORE_REPORT_ORDER", "ReportOrder", order_id, None, request)
    return MessageResponse(message="Order restored")


# ── Consultation Bookings ─────────────────────────────────────

@router.get("/consultations", response_model=ConsultationSlotsResponse)
async def get_report_consultations(
    preset: Literal["today", "last7days", "last30days", "custom"] = Query("today"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    prefix: ReportPrefix = Query(ReportPrefix.LIFE_JOURNEY),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
):
    """Consultation slots booked with report orders, grouped by date."""
    start, end = date_range_for(preset, today_local(), start_date, end_date)
    result = await backend.get(
        "/api/life-journey-report/consultation-booked-slots",
        credentials,
        params={"startDate": start.isoformat(), "endDate": end.isoformat(), "prefix": prefix.value},
        expect=ConsultationBookedSlotsEnvelope,
    )
    rows = [
        ConsultationSlotRow(
            order_id=s.order_id,
            name=s.name,
            email=s.email,
            whatsapp=s.whatsapp,
            consultation_date=s.consultation_date,
            consultation_time=s.consultation_time,
            plan_name=s.plan_name,
            status=s.status,
            status_label=capitalize_status(s.status),
        )
        for s in result.unwrap().all_slots
    ]
    by_date: dict[str, List[ConsultationSlotRow]] = defaultdict(list)
    for row in rows:
        by_date[row.consultation_date or "Unscheduled"].append(row)
    return ConsultationSlotsResponse(
        start_date=start, end_date=end, prefix=prefix.value, items=rows, by_date=dict(by_date),
    )
