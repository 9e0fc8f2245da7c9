"""
tests/test_astrologers.py
Tests for astrologer administration: listing, verification, profile
edits, consultation prices and first-time offer pricing.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from services.astrologer.router import profile_changes
from shared.models.models import AdminAuditLog
from shared.schemas.schemas import AstrologerProfileUpdate
from tests.conftest import FakeBackend, auth_headers

DURATIONS = {"slots": [
    {"_id": "d15", "slotDuration": 15, "active": True},
    {"_id": "d30", "slotDuration": 30, "active": True},
    {"_id": "d60", "slotDuration": 60, "active": False},
]}

STORED = {
    "_id": "a1",
    "astrologerName": "Asha Devi",
    "email": "asha@example.com",
    "phoneNumber": "9876543210",
    "dateOfBirth": "1985-06-01T00:00:00.000Z",
    "city": "Varanasi",
    "account_number": "123456789012",
    "skill": [{"_id": "sk1", "title": "Vedic"}, "sk2"],
    "mainExpertise": [{"_id": "ex1"}],
    "consultationPrices": [{"duration": {"_id": "d15", "slotDuration": 15}, "price": 199}],
    "createdAt": "2024-01-01T10:00:00.000Z",
}


def _stored(backend: FakeBackend, record: dict = STORED):
    backend.on("POST", "/api/admin/get_astrologer_by_id", {"success": True, "results": record})


def _offer(backend: FakeBackend, prices: list, custom: bool):
    backend.on("GET", "/api/astrologer/get-first-time-offer/a1", {"data": {
        "firstTimeOfferPrices": prices,
        "GoWithCustomPricings": custom,
    }})
    backend.on("PATCH", "/api/astrologer/update-first-time-offer/a1", {"success": True})


# ── Listing ────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_list_is_newest_first(client: AsyncClient, backend: FakeBackend):
    backend.on("GET", "/api/admin/get-all-astrologers", {"astrologers": [
        {"_id": "a1", "astrologerName": "Old", "createdAt": "2023-01-01T00:00:00Z"},
        {"_id": "a2", "astrologerName": "New", "createdAt": "2024-06-01T00:00:00Z", "isVerified": True},
    ]})

    response = await client.get("/astrologers", headers=auth_headers())

    rows = response.json()
    assert [r["name"] for r in rows] == ["New", "Old"]
    assert rows[0]["status_label"] == "Verified"
    assert rows[1]["status_label"] == "Unverified"


@pytest.mark.asyncio
async def test_export_numbers_rows(client: AsyncClient, backend: FakeBackend):
    backend.on("GET", "/api/admin/get-all-astrologers", {"astrologers": [
        {"_id": "a1", "astrologerName": "Asha", "createdAt": "2024-03-15T10:00:00Z"},
        {"_id": "a2"},
    ]})

    response = await client.get("/astrologers/export", headers=auth_headers())

    lines = response.text.splitlines()
    assert lines[0] == '"S.No.","Name","Email","Mobile","Created Date","Status"'
    assert lines[1] == '"1","Asha","N/A","N/A","15/03/2024","Unverified"'
    assert lines[2].startswith('"2","N/A"')


@pytest.mark.asyncio
async def test_missing_astrologer_is_404(client: AsyncClient, backend: FakeBackend):
    backend.on("POST", "/api/admin/get_astrologer_by_id", {"message": "nope"}, status=404)

    response = await client.get("/astrologers/zzz", headers=auth_headers())

    assert response.status_code == 404
    assert response.json()["detail"] == "Astrologer not found"


@pytest.mark.asyncio
async def test_verification(client: AsyncClient, backend: FakeBackend):
    backend.on("POST", "/api/astrologer/verify-astrologer-profile", {"success": True})

    response = await client.post("/astrologers/a1/verification", json={"is_verified": True}, headers=auth_headers())

    assert response.json()["message"] == "Astrologer verified"
    assert backend.requests("POST")[0].json == {"astrologerId": "a1", "isVerified": True}


# ── Profile ────────────────────────────────────────────────────────────────────

def test_profile_changes_only_include_differences():
    update = AstrologerProfileUpdate.model_validate({
        "personal": {"astrologer_name": "Asha Devi", "city": "Kashi", "date_of_birth": "1985-06-01"},
        "bank": {"account_number": "123456789012"},
    })
    assert profile_changes(STORED, update) == {"city": "Kashi"}


def test_password_change_sets_confirmation():
    update = AstrologerProfileUpdate.model_validate({
        "personal": {"password": "secret1", "confirm_password": "secret1"},
    })
    assert profile_changes(STORED, update) == {"password": "secret1", "confirm_password": "secret1"}


@pytest.mark.asyncio
async def test_profile_without_changes_sends_nothing(client: AsyncClient, backend: FakeBackend):
    _stored(backend)

    response = await client.patch(
        "/astrologers/a1/profile",
        json={"personal": {"email": "asha@example.com"}},
        headers=auth_headers(),
    )

    assert response.json() == {"message": "No changes to update", "changed_fields": []}
    assert backend.requests("POST", "/api/admin/update-astrologer") == []


@pytest.mark.asyncio
async def test_profile_update_merges_into_stored_record(
    client: AsyncClient,
    backend: FakeBackend,
    db: AsyncSession,
):
    _stored(backend)
    backend.on("POST", "/api/admin/update-astrologer", {"success": True})

    response = await client.patch(
        "/astrologers/a1/profile",
        json={"personal": {"city": "Kashi"}, "bank": {"account_number": "998877665544"}},
        headers=auth_headers(),
    )

    assert response.json()["changed_fields"] == ["account_number", "city"]
    sent = backend.requests("POST", "/api/admin/update-astrologer")[0].json
    assert sent["astrologerId"] == "a1"
    assert sent["city"] == "Kashi"
    assert sent["astrologerName"] == "Asha Devi"
    assert sent["skill"] == ["sk1", "sk2"]
    assert sent["mainExpertise"] == ["ex1"]
    assert "consultationPrices" not in sent and "_id" not in sent

    log = (await db.execute(
        select(AdminAuditLog).where(AdminAuditLog.action == "UPDATE_ASTROLOGER_PROFILE")
    )).scalar_one()
    assert log.payload["account_number"] == "********5544"


@pytest.mark.asyncio
async def test_profile_validation(client: AsyncClient):
    response = await client.patch(
        "/astrologers/a1/profile",
        json={"personal": {"phone_number": "12345"}},
        headers=auth_headers(),
    )
    assert response.status_code == 422


# ── Consultation Prices ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_prices_list_unused_active_durations(client: AsyncClient, backend: FakeBackend):
    _stored(backend)
    backend.on("GET", "/api/admin/get_slots_duration", DURATIONS)

    response = await client.get("/astrologers/a1/prices", headers=auth_headers())

    data = response.json()
    assert data["prices"] == [{"duration_id": "d15", "slot_duration": 15, "price": 199.0}]
    assert data["available_durations"] == [{"id": "d30", "slot_duration": 30}]


@pytest.mark.asyncio
async def test_price_must_be_positive(client: AsyncClient, backend: FakeBackend):
    response = await client.post(
        "/astrologers/a1/prices", json={"duration_id": "d30", "price": 0}, headers=auth_headers()
    )
    assert response.status_code == 422
    assert backend.requests("POST") == []


@pytest.mark.asyncio
async def test_add_and_delete_price(client: AsyncClient, backend: FakeBackend):
    backend.on("POST", "/api/admin/consultation-price", {"success": True})
    backend.on("POST", "/api/admin/delete-consultation-price", {"success": True})

    await client.post("/astrologers/a1/prices", json={"duration_id": "d30", "price": 299}, headers=auth_headers())
    await client.delete("/astrologers/a1/prices/d15", headers=auth_headers())

    assert backend.requests("POST", "/api/admin/consultation-price")[0].json == {
        "astrologerId": "a1", "durationId": "d30", "price": 299.0,
    }
    assert backend.requests("POST", "/api/admin/delete-consultation-price")[0].json == {
        "astrologerId": "a1", "durationId": "d15",
    }


# ── First-Time Offer ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_offer_view(client: AsyncClient, backend: FakeBackend):
    _offer(backend, [{"duration": "d15", "price": 49}], custom=True)
    backend.on("GET", "/api/admin/get_slots_duration", DURATIONS)
    backend.on("GET", "/api/customers/get-offer-price", {"data": {"OfferPrice": 99}})

    response = await client.get("/astrologers/a1/first-time-offer", headers=auth_headers())

    data = response.json()
    assert data["mode"] == "custom"
    assert data["prices"][0]["slot_duration"] == 15
    assert data["available_durations"] == [{"id": "d30", "slot_duration": 30}]
    assert data["global_offer_price"] == 99


@pytest.mark.asyncio
async def test_adding_offer_price_switches_to_custom(client: AsyncClient, backend: FakeBackend):
    _offer(backend, [], custom=False)

    response = await client.post(
        "/astrologers/a1/first-time-offer/prices", json={"duration_id": "d15", "price": 49}, headers=auth_headers()
    )

    assert response.status_code == 200
    assert backend.requests("PATCH")[0].json == {
        "GoWithCustomPricings": True,
        "useGlobalFirstTimeOfferPrice": False,
        "firstTimeOfferPrices": [{"duration": "d15", "price": 49.0}],
    }


@pytest.mark.asyncio
async def test_duplicate_offer_duration_rejected(client: AsyncClient, backend: FakeBackend):
    _offer(backend, [{"duration": {"_id": "d15", "slotDuration": 15}, "price": 49}], custom=True)

    response = await client.post(
        "/astrologers/a1/first-time-offer/prices", json={"duration_id": "d15", "price": 59}, headers=auth_headers()
    )

    assert response.status_code == 400
    assert backend.requests("PATCH") == []


@pytest.mark.asyncio
async def test_deleting_last_offer_price_reverts_to_global(client: AsyncClient, backend: FakeBackend):
    _offer(backend, [{"duration": "d15", "price": 49}], custom=True)

    await client.delete("/astrologers/a1/first-time-offer/prices/d15", headers=auth_headers())

    assert backend.requests("PATCH")[0].json == {
        "GoWithCustomPricings": False,
        "useGlobalFirstTimeOfferPrice": True,
        "firstTimeOfferPrices": [],
    }


@pytest.mark.asyncio
async def test_switching_to_global_clears_custom_prices(client: AsyncClient, backend: FakeBackend):
    _offer(backend, [{"duration": "d15", "price": 49}], custom=True)

    response = await client.put("/astrologers/a1/first-time-offer/mode", json={"mode": "global"},
                                headers=auth_headers())

    assert response.json()["message"] == "Switched to global pricing successfully"
    assert backend.requests("PATCH")[0].json["firstTimeOfferPrices"] == []


@pytest.mark.asyncio
async def test_global_offer_price(client: AsyncClient, backend: FakeBackend):
    backend.on("GET", "/api/customers/get-offer-price", {"data": None})
    backend.on("POST", "/api/customers/offer-price", {"success": True})

    current = await client.get("/astrologers/offer-price/global", headers=auth_headers())
    updated = await client.put("/astrologers/offer-price/global", json={"offer_price": 79}, headers=auth_headers())
    rejected = await client.put("/astrologers/offer-price/global", json={"offer_price": -1}, headers=auth_headers())

    assert current.json() is None
    assert updated.status_code == 200
    assert backend.requests("POST", "/api/customers/offer-price")[0].json == {"OfferPrice": 79.0}
    assert rejected.status_code == 422
