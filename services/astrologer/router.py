"""
services/astrologer/router.py
Astrologer administration: listing and export, verification, profile
and bank/KYC edits, per-duration consultation prices and first-time
offer pricing (per astrologer and global).
"""

import logging
from datetime import date
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from shared.clients.backend import BackendClient, get_backend
from shared.middleware.auth import UpstreamCredentials, get_credentials
from shared.schemas.schemas import (
    Astrologer,
    AstrologerDetailEnvelope,
    AstrologerListEnvelope,
    AstrologerProfileUpdate,
    AstrologerRow,
    ConsultationPrice,
    ConsultationPricesView,
    DurationOption,
    FirstTimeOfferEnvelope,
    FirstTimeOfferView,
    GlobalOfferPrice,
    MessageResponse,
    OfferPriceEnvelope,
    PriceCreate,
    PricedDuration,
    PricingModeUpdate,
    ProfileUpdateResponse,
    SlotDuration,
    SlotDurationsEnvelope,
    VerificationRequest,
)
from shared.utils.audit import record_action
from shared.utils.csv_export import csv_response, rows_to_csv
from shared.utils.dates import format_day, today_local
from shared.utils.security import mask_secret

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/astrologers", tags=["Astrologers"])

DURATIONS_CACHE_KEY = "slot_durations"

# Console field -> backend field
PERSONAL_FIELDS = {
    "astrologer_name": "astrologerName",
    "display_name": "displayName",
    "email": "email",
    "phone_number": "phoneNumber",
    "alternate_number": "alternateNumber",
    "country_phone_code": "country_phone_code",
    "gender": "gender",
    "date_of_birth": "dateOfBirth",
    "address": "address",
    "country": "country",
    "state": "state",
    "city": "city",
    "zip_code": "zipCode",
    "password": "password",
}
BANK_FIELDS = (
    "account_holder_name",
    "account_number",
    "IFSC_code",
    "account_type",
    "account_name",
    "panCard",
    "aadharNumber",
)
SENSITIVE_FIELDS = ("account_number", "aadharNumber", "panCard")
REFERENCE_LIST_FIELDS = ("skill", "mainExpertise", "remedies")
READ_ONLY_FIELDS = ("_id", "consultationPrices", "createdAt", "updatedAt", "__v")


# ── Helpers ───────────────────────────────────────────────────

async def _get_astrologer(
    astrologer_id: str,
    backend: BackendClient,
    credentials: UpstreamCredentials,
) -> Astrologer:
    result = await backend.post(
        "/api/admin/get_astrologer_by_id",
        credentials,
        json={"astrologerId": astrologer_id},
        expect=AstrologerDetailEnvelope,
    )
    if not result.ok and result.status_code == 404:
        raise HTTPException(status_code=404, detail="Astrologer not found")
    return result.unwrap().results


async def _active_durations(
    backend: BackendClient,
    credentials: UpstreamCredentials,
    cache: RedisCache,
) -> List[SlotDuration]:
    cached = await cache.get(DURATIONS_CACHE_KEY)
    if cached is not None:
        durations = [SlotDuration.model_validate(d) for d in cached]
    else:
        result = await backend.get("/api/admin/get_slots_duration", credentials, expect=SlotDurationsEnvelope)
        durations = result.unwrap().slots
        await cache.set(DURATIONS_CACHE_KEY, [d.raw() for d in durations])
    return [d for d in durations if d.active]


def _priced(prices: List[ConsultationPrice], durations: List[SlotDuration]) -> List[PricedDuration]:
    minutes = {d.id: d.slot_duration for d in durations}
    return [
        PricedDuration(
            duration_id=p.duration_id,
            slot_duration=p.duration.slot_duration if isinstance(p.duration, SlotDuration)
            else minutes.get(p.duration_id),
            price=p.price,
        )
        for p in prices
    ]


def _unused(durations: List[SlotDuration], prices: List[ConsultationPrice]) -> List[DurationOption]:
    used = {p.duration_id for p in prices}
    return [DurationOption(id=d.id, slot_duration=d.slot_duration) for d in durations if d.id not in used]


def _row(astrologer: Astrologer) -> AstrologerRow:
    return AstrologerRow(
        id=astrologer.id,
        name=astrologer.astrologer_name,
        email=astrologer.email,
        mobile=astrologer.phone_number,
        created_at=astrologer.created_at,
        is_verified=astrologer.is_verified,
        status_label="Verified" if astrologer.is_verified else "Unverified",
    )


def _reference_ids(values: Any) -> List[str]:
    ids = []
    for value in values or []:
        ids.append(value.get("_id") if isinstance(value, dict) else value)
    return [i for i in ids if i]


def _normalize(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str) and len(value) >= 10 and value[4:5] == "-" and "T" in value:
        return value[:10]
    return value


def profile_changes(current: Dict[str, Any], update: AstrologerProfileUpdate) -> Dict[str, Any]:
    """Backend fields whose submitted value differs from the stored record."""
    changes: Dict[str, Any] = {}
    if update.personal:
        for field, value in update.personal.model_dump(exclude_unset=True).items():
            key = PERSONAL_FIELDS.get(field)
            if key is None or value is None:
                continue
            if key == "password" or _normalize(value) != _normalize(current.get(key)):
                changes[key] = _normalize(value)
        if "password" in changes:
            changes["confirm_password"] = changes["password"]
    if update.bank:
        for key, value in update.bank.model_dump(exclude_unset=True).items():
            if value is not None and value != current.get(key):
                changes[key] = value
    return changes


def _audit_safe(changes: Dict[str, Any]) -> Dict[str, Any]:
    safe = {}
    for key, value in changes.items():
        if key in ("password", "confirm_password"):
            continue
        safe[key] = mask_secret(str(value)) if key in SENSITIVE_FIELDS else value
    return safe


# ── Global First-Time Offer ───────────────────────────────────

@router.get("/offer-price/global", response_model=GlobalOfferPrice | None)
async def get_global_offer_price(
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
):
    result = await backend.get("/api/customers/get-offer-price", credentials, expect=OfferPriceEnvelope)
    data = result.unwrap().data
    if not data or data.offer_price is None:
        return None
    return GlobalOfferPrice(offer_price=data.offer_price)


@router.put("/offer-price/global", response_model=MessageResponse)
async def set_global_offer_price(
    data: GlobalOfferPrice,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    result = await backend.post("/api/customers/offer-price", credentials, json={"OfferPrice": data.offer_price})
    result.unwrap()
    await record_action(db, credentials, "SET_GLOBAL_OFFER_PRICE", "OfferPrice", None,
                        {"offer_price": data.offer_price}, request)
    return MessageResponse(message="Offer price updated successfully")


# ── Listing ───────────────────────────────────────────────────

async def _list_astrologers(backend: BackendClient, credentials: UpstreamCredentials) -> List[Astrologer]:
    result = await backend.get("/api/admin/get-all-astrologers", credentials, expect=AstrologerListEnvelope)
    astrologers = result.unwrap().astrologers
    return sorted(astrologers, key=lambda a: a.created_at or "", reverse=True)


@router.get("", response_model=List[AstrologerRow])
async def list_astrologers(
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
):
    """All astrologers, newest first."""
    return [_row(a) for a in await _list_astrologers(backend, credentials)]


ASTROLOGER_CSV_COLUMNS = [
    ("Name", lambda r: r.name or "N/A"),
    ("Email", lambda r: r.email or "N/A"),
    ("Mobile", lambda r: r.mobile or "N/A"),
    ("Created Date", lambda r: format_day(r.created_at)),
    ("Status", lambda r: r.status_label),
]


@router.get("/export")
async def export_astrologers(
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
):
    rows = [_row(a) for a in await _list_astrologers(backend, credentials)]
    numbered = [(i + 1, row) for i, row in enumerate(rows)]
    columns = [("S.No.", lambda n: n[0])] + [
        (header, lambda n, getter=getter: getter(n[1])) for header, getter in ASTROLOGER_CSV_COLUMNS
    ]
    return csv_response(rows_to_csv(numbered, columns), f"astrologers_{today_local().isoformat()}.csv")


@router.get("/{astrologer_id}")
async def get_astrologer(
    astrologer_id: str,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
):
    """The full astrologer record as stored by the backend."""
    astrologer = await _get_astrologer(astrologer_id, backend, credentials)
    return astrologer.raw()


@router.post("/{astrologer_id}/verification", response_model=MessageResponse)
async def set_verification(
    astrologer_id: str,
    data: VerificationRequest,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    result = await backend.post(
        "/api/astrologer/verify-astrologer-profile",
        credentials,
        json={"astrologerId": astrologer_id, "isVerified": data.is_verified},
    )
    result.unwrap()
    await record_action(db, credentials, "VERIFY_ASTROLOGER" if data.is_verified else "UNVERIFY_ASTROLOGER",
                        "Astrologer", astrologer_id, {"is_verified": data.is_verified}, request)
    return MessageResponse(message="Astrologer verified" if data.is_verified else "Astrologer unverified")


# ── Profile ───────────────────────────────────────────────────

@router.patch("/{astrologer_id}/profile", response_model=ProfileUpdateResponse)
async def update_profile(
    astrologer_id: str,
    data: AstrologerProfileUpdate,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    """
    Update personal and bank/KYC details. The backend expects the whole
    record, so changes are merged into the stored one before sending.
    """
    current = (await _get_astrologer(astrologer_id, backend, credentials)).raw()
    changes = profile_changes(current, data)
    if not changes:
        return ProfileUpdateResponse(message="No changes to update", changed_fields=[])

    payload = {k: v for k, v in current.items() if k not in READ_ONLY_FIELDS}
    for key in REFERENCE_LIST_FIELDS:
        payload[key] = _reference_ids(current.get(key))
    payload.update(changes)
    payload["astrologerId"] = astrologer_id

    result = await backend.post("/api/admin/update-astrologer", credentials, json=payload)
    result.unwrap()

    changed = sorted(k for k in changes if k != "confirm_password")
    await record_action(db, credentials, "UPDATE_ASTROLOGER_PROFILE", "Astrologer", astrologer_id,
                        _audit_safe(changes), request)
    return ProfileUpdateResponse(message="Profile updated successfully", changed_fields=changed)


# ── Consultation Prices ───────────────────────────────────────

@router.get("/{astrologer_id}/prices", response_model=ConsultationPricesView)
async def get_consultation_prices(
    astrologer_id: str,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    redis=Depends(get_redis),
):
    """Prices already set, plus the active durations still without one."""
    astrologer = await _get_astrologer(astrologer_id, backend, credentials)
    durations = await _active_durations(backend, credentials, RedisCache(redis))
    prices = astrologer.consultation_prices
    return ConsultationPricesView(prices=_priced(prices, durations), available_durations=_unused(durations, prices))


@router.post("/{astrologer_id}/prices", response_model=MessageResponse)
async def add_consultation_price(
    astrologer_id: str,
    data: PriceCreate,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    result = await backend.post(
        "/api/admin/consultation-price",
        credentials,
        json={"astrologerId": astrologer_id, "durationId": data.duration_id, "price": data.price},
    )
    result.unwrap()
    await record_action(db, credentials, "ADD_CONSULTATION_PRICE", "Astrologer", astrologer_id,
                        data.model_dump(), request)
    return MessageResponse(message="Consultation price added successfully")


@router.delete("/{astrologer_id}/prices/{duration_id}", response_model=MessageResponse)
async def delete_consultation_price(
    astrologer_id: str,
    duration_id: str,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    result = await backend.post(
        "/api/admin/delete-consultation-price",
        credentials,
        json={"astrologerId": astrologer_id, "durationId": duration_id},
    )
    result.unwrap()
    await record_action(db, credentials, "DELETE_CONSULTATION_PRICE", "Astrologer", astrologer_id,
                        {"duration_id": duration_id}, request)
    return MessageResponse(message="Consultation price deleted successfully")


# ── First-Time Offer ──────────────────────────────────────────

async def _offer_prices(
    astrologer_id: str,
    backend: BackendClient,
    credentials: UpstreamCredentials,
):
    result = await backend.get(
        f"/api/astrologer/get-first-time-offer/{astrologer_id}",
        credentials,
        expect=FirstTimeOfferEnvelope,
    )
    return result.unwrap().data


async def _update_offer(
    astrologer_id: str,
    payload: Dict[str, Any],
    backend: BackendClient,
    credentials: UpstreamCredentials,
) -> None:
    result = await backend.patch(
        f"/api/astrologer/update-first-time-offer/{astrologer_id}",
        credentials,
        json=payload,
    )
    result.unwrap()


def _offer_payload(prices: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Custom pricing while any price remains, global otherwise."""
    return {
        "GoWithCustomPricings": bool(prices),
        "useGlobalFirstTimeOfferPrice": not prices,
        "firstTimeOfferPrices": prices,
    }


@router.get("/{astrologer_id}/first-time-offer", response_model=FirstTimeOfferView)
async def get_first_time_offer(
    astrologer_id: str,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    redis=Depends(get_redis),
):
    offer = await _offer_prices(astrologer_id, backend, credentials)
    durations = await _active_durations(backend, credentials, RedisCache(redis))
    prices = offer.first_time_offer_prices if offer else []
    custom = bool(offer and offer.go_with_custom_pricings)

    global_result = await backend.get("/api/customers/get-offer-price", credentials, expect=OfferPriceEnvelope)
    global_data = global_result.unwrap_or(None)
    return FirstTimeOfferView(
        mode="custom" if custom else "global",
        prices=_priced(prices, durations),
        available_durations=_unused(durations, prices),
        global_offer_price=global_data.data.offer_price if global_data and global_data.data else None,
    )


@router.put("/{astrologer_id}/first-time-offer/mode", response_model=MessageResponse)
async def set_offer_mode(
    astrologer_id: str,
    data: PricingModeUpdate,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    """Switch between global and custom pricing. Switching to global clears custom prices."""
    payload: Dict[str, Any] = {
        "useGlobalFirstTimeOfferPrice": data.mode == "global",
        "GoWithCustomPricings": data.mode == "custom",
    }
    if data.mode == "global":
        payload["firstTimeOfferPrices"] = []
    await _update_offer(astrologer_id, payload, backend, credentials)
    await record_action(db, credentials, "SET_OFFER_MODE", "Astrologer", astrologer_id, {"mode": data.mode}, request)
    return MessageResponse(message=f"Switched to {data.mode} pricing successfully")


@router.post("/{astrologer_id}/first-time-offer/prices", response_model=MessageResponse)
async def add_offer_price(
    astrologer_id: str,
    data: PriceCreate,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    """Add a custom first-time price. Adding a price switches the astrologer to custom pricing."""
    offer = await _offer_prices(astrologer_id, backend, credentials)
    existing = offer.first_time_offer_prices if offer else []
    if any(p.duration_id == data.duration_id for p in existing):
        raise HTTPException(status_code=400, detail="A price is already set for this duration")

    prices = [{"duration": p.duration_id, "price": p.price} for p in existing]
    prices.append({"duration": data.duration_id, "price": data.price})
    await _update_offer(astrologer_id, _offer_payload(prices), backend, credentials)
    await record_action(db, credentials, "ADD_OFFER_PRICE", "Astrologer", astrologer_id, data.model_dump(), request)
    return MessageResponse(message="First-time offer price added successfully")


@router.delete("/{astrologer_id}/first-time-offer/prices/{duration_id}", response_model=MessageResponse)
async def delete_offer_price(
    astrologer_id: str,
    duration_id: str,
    request: Request,
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    """Remove a custom price. With none left the astrologer falls back to global pricing."""
    offer = await _offer_prices(astrologer_id, backend, credentials)
    existing = offer.first_time_offer_prices if offer else []
    prices = [{"duration": p.duration_id, "price": p.price} for p in existing if p.duration_id != duration_id]
    await _update_offer(astrologer_id, _offer_payload(prices), backend, credentials)
    await record_action(db, credentials, "DELETE_OFFER_PRICE", "Astrologer", astrologer_id,
                        {"duration_id": duration_id}, request)
    return MessageResponse(message="First-time offer price deleted successfully")
