"""
services/slots/router.py
Report consultation slot management: merged available/blocked board,
single and bulk block/unblock, and date-level time-range blocks.
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from shared.clients.backend import ApiResult, BackendClient, ErrorKind, UpstreamError, get_backend
from shared.middleware.auth import UpstreamCredentials, get_credentials
from shared.schemas.schemas import (
    AvailableSlotsEnvelope,
    BlockedSlotsEnvelope,
    BulkSlotRequest,
    BulkSlotResponse,
    MessageResponse,
    NextDay,
    REPORT_PREFIX_LABELS,
    ReportAstrologer,
    ReportAstrologersEnvelope,
    ReportPrefix,
    SlotBlockRequest,
    SlotBoardResponse,
    SlotView,
    TimeRangeBlockRequest,
    TimeRangeView,
)
from shared.utils.audit import record_action
from shared.utils.batch import Skip, batch_notices, run_sequential, summarize
from shared.utils.dates import day_label, next_days, today_local
from shared.utils.timeslots import (
    TIME_OPTIONS,
    classify_block,
    describe_block,
    describe_target,
    start_minutes,
    to_minutes,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slots", tags=["Slots"])

REPORT_API = "/api/life-journey-report"
ASTROLOGERS_CACHE_KEY = "report_astrologers"


# ── Helpers ───────────────────────────────────────────────────

async def _report_astrologers(
    backend: BackendClient,
    credentials: UpstreamCredentials,
    cache: RedisCache,
) -> List[ReportAstrologer]:
    cached = await cache.get(ASTROLOGERS_CACHE_KEY)
    if cached is not None:
        return [ReportAstrologer.model_validate(a) for a in cached]

    result = await backend.get(f"{REPORT_API}/report-astrologers", credentials, expect=ReportAstrologersEnvelope)
    astrologers = result.unwrap().astrologers
    await cache.set(ASTROLOGERS_CACHE_KEY, [a.raw() for a in astrologers])
    return astrologers


async def _astrologer_name(
    astrologer_id: Optional[str],
    backend: BackendClient,
    credentials: UpstreamCredentials,
    cache: RedisCache,
) -> Optional[str]:
    if not astrologer_id:
        return None
    try:
        astrologers = await _report_astrologers(backend, credentials, cache)
    except UpstreamError as e:
        logger.warning(f"Astrologer lookup failed for {astrologer_id}: {e.message}")
        return "Astrologer"
    for astrologer in astrologers:
        if astrologer.id == astrologer_id:
            return astrologer.name
    return "Astrologer"


async def _load_board(
    day: date,
    prefix: str,
    astrologer_id: Optional[str],
    backend: BackendClient,
    credentials: UpstreamCredentials,
    cache: RedisCache,
) -> SlotBoardResponse:
    """
    Merge available and blocked slots for one date into a single list
    sorted by start time. A failed availability fetch fails the board.
    """
    available_result = await backend.get(
        f"{REPORT_API}/available-consultation-slots",
        credentials,
        params={"date": day.isoformat(), "prefix": prefix, "astrologerId": astrologer_id},
        expect=AvailableSlotsEnvelope,
    )
    available = available_result.unwrap().slots

    blocked_result = await backend.get(
        f"{REPORT_API}/blocked-slots",
        credentials,
        params={"date": day.isoformat(), "astrologerId": astrologer_id, "prefix": prefix},
        expect=BlockedSlotsEnvelope,
    )
    if blocked_result.kind == ErrorKind.REJECTED:
        blocked = []
    else:
        blocked = blocked_result.unwrap().blocked_slots

    views = [
        SlotView(
            time=slot.time,
            capacity=slot.capacity,
            available_astrologers=[a.display_name or a.id or "" for a in slot.available_astrologers],
            is_available=True,
            is_blocked=False,
        )
        for slot in available
    ]
    for slot in blocked:
        scope, label = classify_block(slot)
        views.append(SlotView(
            time=slot.time_range or "",
            is_available=False,
            is_blocked=True,
            blocked_slot_id=slot.id,
            scope=scope,
            block_scope=label,
            reason=slot.reason,
            blocked_by=slot.blocked_by,
        ))
    views.sort(key=lambda v: start_minutes(v.time))

    name = await _astrologer_name(astrologer_id, backend, credentials, cache)
    return SlotBoardResponse(
        date=day,
        prefix=prefix,
        astrologer_id=astrologer_id,
        target_description=describe_target(REPORT_PREFIX_LABELS.get(prefix, prefix), name),
        available_count=len(available),
        blocked_count=len(blocked),
        slots=views,
    )


def _astrologer_scope(astrologer_id: Optional[str]) -> Optional[str]:
    return None if astrologer_id in (None, "", "all") else astrologer_id


# ── Board ─────────────────────────────────────────────────────

@router.get("", response_model=SlotBoardResponse)
async def get_slot_board(
    day: Optional[date] = Query(None, alias="date", description="Defaults to tomorrow"),
    prefix: ReportPrefix = Query(ReportPrefix.LIFE_JOURNEY),
    astrologer_id: Optional[str] = Query("all"),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    redis=Depends(get_redis),
):
    """Available and blocked slots for a date, report type and astrologer."""
    day = day or next_days(today_local(), 1)[0]
    return await _load_board(
        day, prefix.value, _astrologer_scope(astrologer_id), backend, credentials, RedisCache(redis)
    )


@router.get("/next-days", response_model=List[NextDay])
async def get_next_days(_: UpstreamCredentials = Depends(get_credentials)):
    """The ten selectable dates, starting tomorrow."""
    return [NextDay(date=d, label=day_label(d)) for d in next_days(today_local())]


@router.get("/prefixes")
async def get_report_prefixes(_: UpstreamCredentials = Depends(get_credentials)):
    return [{"value": value, "label": label} for value, label in REPORT_PREFIX_LABELS.items()]


@router.get("/astrologers", response_model=List[ReportAstrologer])
async def get_report_astrologers(
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    redis=Depends(get_redis),
):
    """Astrologers who take report consultations. Cached briefly in Redis."""
    return await _report_astrologers(backend, credentials, RedisCache(redis))


# ── Block / Unblock ───────────────────────────────────────────

async def _block(
    backend: BackendClient,
    credentials: UpstreamCredentials,
    day: date,
    time_range: str,
    prefix: str,
    astrologer_id: Optional[str],
) -> ApiResult:
    return await backend.post(
        f"{REPORT_API}/blocked-slots",
        credentials,
        json={
            "date": day.isoformat(),
            "timeRange": time_range,
            "prefix": prefix,
            "astrologerId": astrologer_id,
            "blockedBy": "Admin",
            "reason": "Blocked via slot management",
        },
    )


async def _unblock(backend: BackendClient, credentials: UpstreamCredentials, blocked_slot_id: str) -> ApiResult:
    return await backend.delete(f"{REPORT_API}/blocked-slots/{blocked_slot_id}", credentials)


@router.post("/block", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def block_slot(
    data: SlotBlockRequest,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    result = await _block(backend, credentials, data.date, data.time_range, data.prefix, data.astrologer_id)
    result.unwrap()
    await record_action(db, credentials, "BLOCK_SLOT", "BlockedSlot", data.time_range,
                        data.model_dump(mode="json"), request)
    return MessageResponse(message="Slot blocked successfully")


@router.delete("/blocked/{blocked_slot_id}", response_model=MessageResponse)
async def unblock_slot(
    blocked_slot_id: str,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    result = await _unblock(backend, credentials, blocked_slot_id)
    result.unwrap()
    await record_action(db, credentials, "UNBLOCK_SLOT", "BlockedSlot", blocked_slot_id, None, request)
    return MessageResponse(message="Slot unblocked successfully")


@router.post("/bulk", response_model=BulkSlotResponse)
async def bulk_block_slots(
    data: BulkSlotRequest,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """
    Block or unblock the selected time ranges one at a time.
    Slots whose state doesn't match the action are skipped. The board is
    reloaded once after the sweep.
    """
    if not data.time_ranges:
        raise HTTPException(status_code=400, detail="Please select at least one slot")

    cache = RedisCache(redis)
    board = await _load_board(data.date, data.prefix, data.astrologer_id, backend, credentials, cache)
    available = {slot.time for slot in board.slots if slot.is_available}
    blocked: dict[str, str] = {}
    for slot in board.slots:
        if slot.is_blocked and slot.blocked_slot_id:
            blocked.setdefault(slot.time, slot.blocked_slot_id)

    async def apply(time_range: str) -> ApiResult:
        if data.action == "block":
            if time_range not in available:
                raise Skip("not available")
            return await _block(backend, credentials, data.date, time_range, data.prefix, data.astrologer_id)
        if time_range not in blocked:
            raise Skip("not blocked")
        return await _unblock(backend, credentials, blocked[time_range])

    result = await run_sequential(data.time_ranges, apply)
    if data.action == "block":
        notices = batch_notices(result, "blocked", "block")
    else:
        notices = batch_notices(result, "unblocked", "unblock")

    await record_action(
        db, credentials, f"BULK_{data.action.upper()}_SLOTS", "BlockedSlot", data.date.isoformat(),
        {"prefix": data.prefix, "astrologer_id": data.astrologer_id,
         "succeeded": result.succeeded, "failed": result.failed, "skipped": result.skipped},
        request,
    )

    try:
        refreshed = await _load_board(data.date, data.prefix, data.astrologer_id, backend, credentials, cache)
    except UpstreamError as e:
        logger.warning(f"Slot board reload after bulk {data.action} failed: {e.message}")
        refreshed = None

    return BulkSlotResponse(action=data.action, result=summarize(result), notices=notices, board=refreshed)


# ── Time-Range Blocks ─────────────────────────────────────────

@router.get("/time-options", response_model=List[str])
async def get_time_options(_: UpstreamCredentials = Depends(get_credentials)):
    return TIME_OPTIONS


@router.get("/ranges", response_model=List[TimeRangeView])
async def list_time_ranges(
    day: date = Query(..., alias="date"),
    prefix: Optional[str] = Query("all"),
    astrologer_id: Optional[str] = Query("all"),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
):
    """Blocks recorded for a date, optionally narrowed by report type and astrologer."""
    result = await backend.get(
        f"{REPORT_API}/blocked-slots",
        credentials,
        params={"date": day.isoformat(), "prefix": prefix, "astrologerId": astrologer_id},
        expect=BlockedSlotsEnvelope,
    )
    views = []
    for slot in result.unwrap().blocked_slots:
        views.append(TimeRangeView(
            id=slot.id,
            date=slot.date,
            time_range=slot.time_range,
            start_time=slot.start_time,
            end_time=slot.end_time,
            prefix=slot.prefix,
            astrologer_name=slot.astrologer_name,
            description=describe_block(slot.astrologer_name, slot.prefix),
            reason=slot.reason,
            blocked_by=slot.blocked_by,
        ))
    return views


@router.post("/ranges", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def block_time_range(
    data: TimeRangeBlockRequest,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    """
    Block a whole day or a start/end window. "all" report type or
    astrologer is sent as null, which the backend treats as every one.
    """
    if not data.full_day:
        if not data.start_time or not data.end_time:
            raise HTTPException(status_code=400, detail="Please select start and end time")
        if data.start_time not in TIME_OPTIONS or data.end_time not in TIME_OPTIONS:
            raise HTTPException(status_code=400, detail="Times must be on the half hour between 10:00AM and 7:00PM")
        if to_minutes(data.start_time) >= to_minutes(data.end_time):
            raise HTTPException(status_code=400, detail="End time must be after start time")

    payload = {
        "date": data.date.isoformat(),
        "startTime": None if data.full_day else data.start_time,
        "endTime": None if data.full_day else data.end_time,
        "astrologerId": data.astrologer_id,
        "prefix": data.prefix,
    }
    result = await backend.post(f"{REPORT_API}/block-astrologer-time-range", credentials, json=payload)
    body = result.unwrap()
    await record_action(db, credentials, "BLOCK_TIME_RANGE", "BlockedSlot", data.date.isoformat(), payload, request)

    message = body.get("message") if isinstance(body, dict) else None
    return MessageResponse(message=message or "Time range blocked successfully")


@router.delete("/ranges/{block_id}", response_model=MessageResponse)
async def unblock_time_range(
    block_id: str,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    result = await _unblock(backend, credentials, block_id)
    result.unwrap()
    await record_action(db, credentials, "UNBLOCK_TIME_RANGE", "BlockedSlot", block_id, None, request)
    return MessageResponse(message="Time range unblocked successfully")
