"""
services/puja/router.py
Puja bookings (listing, payment counts, export), categories and the
multi-tab puja editor whose drafts are held in Redis.
"""

import logging
from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from services.puja import editor
from shared.clients.backend import BackendClient, get_backend, multipart_fields
from shared.middleware.auth import UpstreamCredentials, get_credentials
from shared.schemas.schemas import (
    CustomerRef,
    MessageResponse,
    PaymentCounts,
    PujaBooking,
    PujaBookingRow,
    PujaBookingsEnvelope,
    PujaBookingsResponse,
    PujaCategoriesEnvelope,
    PujaCategory,
    PujaDraftCreate,
    PujaDraftState,
    PujaRef,
    PujaTabUpdate,
)
from shared.utils.audit import record_action
from shared.utils.csv_export import csv_response, rows_to_csv
from shared.utils.dates import clamp_range, format_timestamp, today_local
from shared.utils.statuses import payment_counts, payment_status_display

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pujas", tags=["Pujas"])

PUJA_API = "/api/puja-new"
CATEGORIES_CACHE_KEY = "puja_categories"


# ── Bookings ──────────────────────────────────────────────────

def to_booking_row(booking: PujaBooking) -> PujaBookingRow:
    customer = booking.customer_id if isinstance(booking.customer_id, CustomerRef) else None
    details = booking.puja_details
    puja = details.puja_id if details and isinstance(details.puja_id, PujaRef) else None
    label, color = payment_status_display(booking.payment_status)
    return PujaBookingRow(
        id=booking.id,
        confirmation_number=booking.confirmation_number,
        customer_name=customer.name if customer else None,
        customer_email=customer.email if customer else None,
        customer_phone=customer.phone if customer else None,
        puja_title=(puja.title or puja.puja_name) if puja else None,
        package_id=details.package_id if details else None,
        selected_date=details.selected_date if details else None,
        price=details.price if details else None,
        assigned_astrologer=details.assigned_astro.display_name if details and details.assigned_astro else None,
        sankalp_name=booking.sankalp_person.full_name if booking.sankalp_person else None,
        payment_status=booking.payment_status,
        payment_label=label,
        payment_color=color,
        created_at=booking.created_at,
    )


class BookingWindow:
    def __init__(
        self,
        start_date: Optional[date] = Query(None, description="Defaults to today"),
        end_date: Optional[date] = Query(None, description="Defaults to the start date"),
        payment_status: Literal["all", "successful", "pending", "failed"] = Query("all"),
    ):
        start = start_date or today_local()
        self.start, self.end = clamp_range(start, end_date or start)
        self.payment_status = payment_status


async def _fetch_bookings(
    window: BookingWindow,
    backend: BackendClient,
    credentials: UpstreamCredentials,
) -> List[PujaBooking]:
    result = await backend.get(
        f"{PUJA_API}/get_all_puja_bookings",
        credentials,
        params={"startDate": window.start.isoformat(), "endDate": window.end.isoformat()},
        expect=PujaBookingsEnvelope,
    )
    return result.unwrap().data


@router.get("/bookings", response_model=PujaBookingsResponse)
async def list_puja_bookings(
    window: BookingWindow = Depends(),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
):
    """Puja bookings in a date window with counts per payment status."""
    bookings = await _fetch_bookings(window, backend, credentials)
    counts = payment_counts(b.payment_status for b in bookings)
    items = [
        to_booking_row(b) for b in bookings
        if window.payment_status == "all" or b.payment_status == window.payment_status
    ]
    return PujaBookingsResponse(
        start_date=window.start,
        end_date=window.end,
        payment_status=window.payment_status,
        counts=PaymentCounts(**counts),
        items=items,
    )


BOOKING_CSV_COLUMNS = [
    ("Confirmation Number", lambda r: r.confirmation_number or "N/A"),
    ("Customer Name", lambda r: r.customer_name or "N/A"),
    ("Email", lambda r: r.customer_email or "N/A"),
    ("Phone", lambda r: r.customer_phone or "N/A"),
    ("Puja", lambda r: r.puja_title or "N/A"),
    ("Sankalp Name", lambda r: r.sankalp_name or "N/A"),
    ("Selected Date", lambda r: r.selected_date or "N/A"),
    ("Price", lambda r: r.price if r.price is not None else "N/A"),
    ("Assigned Astrologer", lambda r: r.assigned_astrologer or "N/A"),
    ("Payment", lambda r: r.payment_label),
    ("Created At", lambda r: format_timestamp(r.created_at)),
]


@router.get("/bookings/export")
async def export_puja_bookings(
    window: BookingWindow = Depends(),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
):
    bookings = await _fetch_bookings(window, backend, credentials)
    rows = [
        to_booking_row(b) for b in bookings
        if window.payment_status == "all" or b.payment_status == window.payment_status
    ]
    filename = f"puja_bookings_{window.start.isoformat()}_{window.end.isoformat()}.csv"
    return csv_response(rows_to_csv(rows, BOOKING_CSV_COLUMNS), filename)


# ── Categories ────────────────────────────────────────────────

@router.get("/categories", response_model=List[PujaCategory])
async def list_puja_categories(
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    redis=Depends(get_redis),
):
    cache = RedisCache(redis)
    cached = await cache.get(CATEGORIES_CACHE_KEY)
    if cached is not None:
        return [PujaCategory.model_validate(c) for c in cached]

    result = await backend.get("/api/puja/get_puja_category", credentials, expect=PujaCategoriesEnvelope)
    categories = result.unwrap().results
    await cache.set(CATEGORIES_CACHE_KEY, [c.raw() for c in categories])
    return categories


# ── Editor Drafts ─────────────────────────────────────────────

async def _load_draft(draft_id: str, cache: RedisCache) -> PujaDraftState:
    stored = await cache.load_draft(draft_id)
    if stored is None:
        raise HTTPException(status_code=404, detail="Draft not found or expired")
    return PujaDraftState.model_validate(stored)


async def _save_draft(state: PujaDraftState, cache: RedisCache) -> PujaDraftState:
    await cache.save_draft(state.draft_id, state.model_dump(mode="json"))
    return state


@router.post("/drafts", response_model=PujaDraftState, status_code=status.HTTP_201_CREATED)
async def create_draft(
    data: PujaDraftCreate,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    redis=Depends(get_redis),
):
    """Start an editor session, blank or pre-filled from an existing puja."""
    form = None
    if data.puja_id:
        result = await backend.get(f"{PUJA_API}/get_puja_by/{data.puja_id}", credentials)
        body = result.unwrap()
        puja = (body.get("data") or body.get("puja")) if isinstance(body, dict) else None
        if not puja:
            raise HTTPException(status_code=404, detail="Puja not found")
        form = editor.form_from_backend(puja)
    state = editor.new_draft(form, data.puja_id)
    return await _save_draft(state, RedisCache(redis))


@router.get("/drafts/{draft_id}", response_model=PujaDraftState)
async def get_draft(
    draft_id: str,
    _: UpstreamCredentials = Depends(get_credentials),
    redis=Depends(get_redis),
):
    return await _load_draft(draft_id, RedisCache(redis))


@router.put("/drafts/{draft_id}/tabs/{tab}", response_model=PujaDraftState)
async def save_tab(
    draft_id: str,
    tab: int,
    data: PujaTabUpdate,
    _: UpstreamCredentials = Depends(get_credentials),
    redis=Depends(get_redis),
):
    """Save the fields of one tab and make it the active tab."""
    if not 0 <= tab < len(editor.TABS):
        raise HTTPException(status_code=404, detail="Unknown tab")
    cache = RedisCache(redis)
    state = await _load_draft(draft_id, cache)
    try:
        state = editor.update_tab(state, tab, data.data)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return await _save_draft(state, cache)


@router.post("/drafts/{draft_id}/next", response_model=PujaDraftState)
async def next_tab(
    draft_id: str,
    _: UpstreamCredentials = Depends(get_credentials),
    redis=Depends(get_redis),
):
    """Move forward if the active tab is valid; otherwise stay and report field errors."""
    cache = RedisCache(redis)
    state = editor.go_next(await _load_draft(draft_id, cache))
    return await _save_draft(state, cache)


@router.post("/drafts/{draft_id}/previous", response_model=PujaDraftState)
async def previous_tab(
    draft_id: str,
    _: UpstreamCredentials = Depends(get_credentials),
    redis=Depends(get_redis),
):
    cache = RedisCache(redis)
    state = editor.go_previous(await _load_draft(draft_id, cache))
    return await _save_draft(state, cache)


@router.post("/drafts/{draft_id}/packages/{package_id}/popular", response_model=PujaDraftState)
async def mark_package_popular(
    draft_id: str,
    package_id: int,
    _: UpstreamCredentials = Depends(get_credentials),
    redis=Depends(get_redis),
):
    cache = RedisCache(redis)
    state = await _load_draft(draft_id, cache)
    try:
        state = editor.set_popular(state, package_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Package not found")
    return await _save_draft(state, cache)


@router.post("/drafts/{draft_id}/submit", response_model=MessageResponse)
async def submit_draft(
    draft_id: str,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """
    Re-validate every required tab. On failure the draft jumps to the
    first failing tab and the response lists all violations; otherwise the
    puja is created or updated and the draft discarded.
    """
    cache = RedisCache(redis)
    state = await _load_draft(draft_id, cache)

    violations = editor.validate_required(state.data)
    if violations:
        first = violations[0].tab
        state.active_tab = first
        state.field_errors = {v.field: v.message for v in violations if v.tab == first}
        await _save_draft(editor.refresh(state), cache)
        raise HTTPException(
            status_code=422,
            detail={
                "message": f"Please complete {editor.TABS[first].label}",
                "active_tab": first,
                "violations": [v.model_dump() for v in violations],
            },
        )

    files = multipart_fields(editor.backend_fields(state.data))
    if state.puja_id:
        result = await backend.put(f"{PUJA_API}/update-puja/{state.puja_id}", credentials, files=files)
        action, message = "UPDATE_PUJA", "Puja Updated Successfully!"
    else:
        result = await backend.post(f"{PUJA_API}/create_puja", credentials, files=files)
        action, message = "CREATE_PUJA", "Puja Created Successfully!"
    result.unwrap()

    await record_action(db, credentials, action, "Puja", state.puja_id,
                        {"puja_name": state.data.puja_name, "category_id": state.data.category_id}, request)
    await cache.discard_draft(draft_id)
    logger.info(f"Puja draft {draft_id} submitted ({action})")
    return MessageResponse(message=message)


@router.delete("/drafts/{draft_id}", response_model=MessageResponse)
async def discard_draft(
    draft_id: str,
    _: UpstreamCredentials = Depends(get_credentials),
    redis=Depends(get_redis),
):
    await RedisCache(redis).discard_draft(draft_id)
    return MessageResponse(message="Draft discarded")
