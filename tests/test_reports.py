"""
tests/test_reports.py
Tests for the report automation queue, report orders and report
consultation bookings.
"""

import pytest
from httpx import AsyncClient

from main import app
from services.reports.router import auto_select, toggle_all
from shared.schemas.schemas import ReportOrder, SelectableRow
from shared.utils.fetching import LatestOnlyFetcher, RequestSuperseded, get_fetcher
from tests.conftest import FakeBackend, auth_headers

ORDERS_API = "/api/admin/life-journey-orders"


def _orders(*statuses):
    return [
        ReportOrder.model_validate({"_id": f"o{i}", "reportDeliveryStatus": s})
        for i, s in enumerate(statuses, start=1)
    ]


# ── Selection ──────────────────────────────────────────────────────────────────

def test_auto_select_skips_delivered_and_missing_ids():
    orders = _orders("pending", "delivered", "failed", "pending", "processing")
    orders.insert(1, ReportOrder.model_validate({"reportDeliveryStatus": "pending"}))

    assert auto_select(orders, 3) == ["o1", "o3", "o4"]
    assert auto_select(orders, 10) == ["o1", "o3", "o4", "o5"]
    assert auto_select(orders, None) == []
    assert auto_select(orders, 0) == []


def test_toggle_all_selects_then_clears():
    rows = [
        SelectableRow(id="o1", report_delivery_status="pending"),
        SelectableRow(id="o2", report_delivery_status="delivered"),
        SelectableRow(id="o3", report_delivery_status="failed"),
    ]
    selected = toggle_all([], rows)
    assert selected == ["o1", "o3"]
    assert toggle_all(selected, rows) == []


# ── Automation Queue ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_queue_preselects_first_n_undelivered(client: AsyncClient, backend: FakeBackend):
    backend.on("GET", "/api/admin/get-reports", {
        "message": "ok",
        "data": {
            "items": [
                {"_id": "o1", "orderID": "#LJR-1", "reportDeliveryStatus": "delivered"},
                {"_id": "o2", "orderID": "#LJR-2", "reportDeliveryStatus": "failed"},
                {"_id": "o3", "orderID": "#LJR-3", "reportDeliveryStatus": "pending"},
                {"_id": "o4", "orderID": "#LJR-4", "reportDeliveryStatus": "pending"},
            ],
            "pagination": {"page": 1, "pages": 3, "total": 9, "hasMore": True},
        },
    })

    response = await client.get(
        "/reports/queue",
        params={"select_first_n": 2, "language": "all", "q": ""},
        headers=auth_headers(),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["selected_ids"] == ["o2", "o3"]
    assert data["failed_count"] == 1
    assert data["delivered_count"] == 1
    assert data["pagination"]["has_more"] is True
    assert data["pagination"]["limit"] == 200
    assert data["items"][0]["orderID"] == "#LJR-1"

    sent = backend.requests("GET", "/api/admin/get-reports")[0].params
    assert "language" not in sent and "q" not in sent
    assert sent["sortBy"] == "createdAt"


@pytest.mark.asyncio
async def test_queue_single_date_uses_date_param(client: AsyncClient, backend: FakeBackend):
    backend.on("GET", "/api/admin/get-reports", {"data": {"items": []}})

    await client.get("/reports/queue", params={"from": "2024-03-01"}, headers=auth_headers())

    sent = backend.requests("GET", "/api/admin/get-reports")[0].params
    assert sent["date"] == "2024-03-01"
    assert "from" not in sent


@pytest.mark.asyncio
async def test_process_with_empty_selection_rejected(client: AsyncClient, backend: FakeBackend):
    response = await client.post("/reports/queue/process", json={"report_ids": []}, headers=auth_headers())

    assert response.status_code == 400
    assert response.json()["detail"] == "Please select at least one report."
    assert backend.requests("POST") == []


@pytest.mark.asyncio
async def test_process_sends_selection_in_one_request(client: AsyncClient, backend: FakeBackend):
    backend.on("POST", "/api/life-journey-report/process-lcr-reports", {"success": True})

    response = await client.post(
        "/reports/queue/process", json={"report_ids": ["o2", "o3"]}, headers=auth_headers()
    )

    assert response.status_code == 200
    assert response.json()["message"] == "2 reports queued for generation."
    calls = backend.requests("POST", "/api/life-journey-report/process-lcr-reports")
    assert len(calls) == 1
    assert calls[0].json == {"reportIds": ["o2", "o3"]}


@pytest.mark.asyncio
async def test_mark_delivered_uses_backend_message(client: AsyncClient, backend: FakeBackend):
    backend.on("PUT", "/api/admin/update-status/o2", {"success": True, "message": "Status updated"})

    response = await client.put("/reports/queue/o2/delivered", headers=auth_headers())

    assert response.json()["message"] == "Status updated"


class _AlwaysSuperseded(LatestOnlyFetcher):
    async def run(self, key, factory):
        raise RequestSuperseded(key)


@pytest.mark.asyncio
async def test_superseded_queue_fetch_is_409(client: AsyncClient, backend: FakeBackend):
    app.dependency_overrides[get_fetcher] = lambda: _AlwaysSuperseded()

    response = await client.get("/reports/queue", headers={**auth_headers(), "X-Request-ID": "req-9"})

    assert response.status_code == 409
    assert response.json()["request_id"] == "req-9"
    assert response.json()["key"].startswith("report-queue:")
    assert backend.requests("GET", "/api/admin/get-reports") == []


# ── Report Orders ──────────────────────────────────────────────────────────────

def _paged_orders(backend: FakeBackend, pages: list[list[dict]]):
    def handler(request):
        page = int(request.url.params.get("page", "1"))
        return 200, {"success": True, "data": {"items": pages[page - 1], "page": page, "pages": len(pages)}}

    backend.on("GET", ORDERS_API, handler=handler)


@pytest.mark.asyncio
async def test_orders_walk_every_page_and_filter_by_plan(client: AsyncClient, backend: FakeBackend):
    _paged_orders(backend, [
        [{"_id": "o1", "planName": "Life Journey Premium"}, {"_id": "o2", "planName": "Basic"}],
        [{"_id": "o3", "planName": "PREMIUM plus"}],
    ])

    response = await client.get("/reports/orders", params={"plan_name": " premium "}, headers=auth_headers())

    data = response.json()
    assert [o["_id"] for o in data["items"]] == ["o1", "o3"]
    assert data["total"] == 2
    assert data["pages_fetched"] == 2
    first_call = backend.requests("GET", ORDERS_API)[0].params
    assert first_call["status"] == "paid"
    assert first_call["limit"] == "100"
    assert "planName" not in first_call


@pytest.mark.asyncio
async def test_order_export_has_one_line_per_order(client: AsyncClient, backend: FakeBackend):
    _paged_orders(backend, [[
        {"_id": "o1", "orderID": "#LJR-1", "name": 'Ravi "RK"', "astroConsultation": True},
        {"_id": "o2", "orderID": "#LJR-2", "name": "Meera\nSharma"},
    ]])

    response = await client.get("/reports/orders/export", headers=auth_headers())

    assert response.status_code == 200
    assert "attachment" in response.headers["content-disposition"]
    lines = response.text.splitlines()
    assert len(lines) == 3
    assert lines[0].startswith('"_id","orderID","planName"')
    assert '"Ravi ""RK"""' in lines[1]
    assert '"Yes"' in lines[1]


@pytest.mark.asyncio
async def test_stats_are_null_when_backend_fails(client: AsyncClient, backend: FakeBackend):
    backend.on("GET", f"{ORDERS_API}/stats", {"message": "boom"}, status=500)

    response = await client.get("/reports/orders/stats", headers=auth_headers())

    assert response.status_code == 200
    assert response.json() is None


@pytest.mark.asyncio
async def test_stats(client: AsyncClient, backend: FakeBackend):
    backend.on("GET", f"{ORDERS_API}/stats", {
        "data": {"totalOrders": 12, "totalRevenue": 5988.0, "todayOrders": 2, "todayRevenue": 998},
    })

    response = await client.get("/reports/orders/stats", params={"plan_name": "Premium"}, headers=auth_headers())

    assert response.json()["total_orders"] == 12
    assert backend.requests("GET", f"{ORDERS_API}/stats")[0].params["planName"] == "Premium"


@pytest.mark.asyncio
async def test_order_update_sends_only_changed_fields(client: AsyncClient, backend: FakeBackend):
    backend.on("PATCH", f"{ORDERS_API}/o1", {"success": True})

    response = await client.patch(
        "/reports/orders/o1",
        json={"name": "Ravi Kumar", "express_delivery": True},
        headers=auth_headers(),
    )

    assert response.status_code == 200
    assert backend.requests("PATCH")[0].json == {"name": "Ravi Kumar", "expressDelivery": True}


@pytest.mark.asyncio
async def test_order_update_without_changes_rejected(client: AsyncClient, backend: FakeBackend):
    response = await client.patch("/reports/orders/o1", json={}, headers=auth_headers())

    assert response.status_code == 400
    assert backend.requests("PATCH") == []


@pytest.mark.asyncio
async def test_delete_and_restore_order(client: AsyncClient, backend: FakeBackend):
    backend.on("DELETE", f"{ORDERS_API}/o1", {"success": True})
    backend.on("POST", f"{ORDERS_API}/o1/restore", {"success": True})

    deleted = await client.delete("/reports/orders/o1", headers=auth_headers())
    restored = await client.post("/reports/orders/o1/restore", headers=auth_headers())

    assert deleted.json()["message"] == "Order deleted"
    assert restored.json()["message"] == "Order restored"


@pytest.mark.asyncio
async def test_missing_order_passes_backend_404(client: AsyncClient, backend: FakeBackend):
    response = await client.delete("/reports/orders/missing", headers=auth_headers())

    assert response.status_code == 404


# ── Consultation Bookings ──────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_consultations_grouped_by_date(client: AsyncClient, backend: FakeBackend):
    backend.on("GET", "/api/life-journey-report/consultation-booked-slots", {
        "allSlots": [
            {"orderID": "#KM-1", "consultationDate": "2024-03-15", "status": "booked"},
            {"orderID": "#KM-2", "consultationDate": "2024-03-15", "status": "completed"},
            {"orderID": "#KM-3", "status": "booked"},
        ],
    })

    response = await client.get(
        "/reports/consultations",
        params={"preset": "custom", "start_date": "2024-03-10", "end_date": "2024-03-15", "prefix": "#KM-"},
        headers=auth_headers(),
    )

    data = response.json()
    assert len(data["by_date"]["2024-03-15"]) == 2
    assert len(data["by_date"]["Unscheduled"]) == 1
    assert data["items"][1]["status_label"] == "Completed"
    sent = backend.requests("GET", "/api/life-journey-report/consultation-booked-slots")[0].params
    assert sent == {"startDate": "2024-03-10", "endDate": "2024-03-15", "prefix": "#KM-"}
