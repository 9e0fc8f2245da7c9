"""
tests/test_admin.py
Tests for super-admin endpoints: admin accounts, password changes, audit log.
"""

import pytest
from httpx import AsyncClient

from services.admin.router import admin_stats
from shared.schemas.schemas import AdminAccount
from tests.conftest import FakeBackend, auth_headers


# ── Access Control ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_admin_role_cannot_manage_admins(client: AsyncClient, backend: FakeBackend):
    """Plain admins get 403 on super-admin endpoints."""
    backend.admin = {**backend.admin, "role": "ADMIN"}

    response = await client.get("/admins", headers=auth_headers())
    assert response.status_code == 403

    response = await client.get("/audit-logs", headers=auth_headers())
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_expired_session_is_401(client: AsyncClient, backend: FakeBackend):
    backend.on("GET", "/api/admin/me", {"message": "jwt expired"}, status=401)

    response = await client.get("/admins", headers=auth_headers())

    assert response.status_code == 401
    assert response.json()["detail"] == "Session expired"


@pytest.mark.asyncio
async def test_unauthenticated_cannot_access_admin(client: AsyncClient):
    response = await client.get("/admins")
    assert response.status_code == 401


# ── Admin Accounts ─────────────────────────────────────────────────────────────

def test_admin_stats():
    admins = [
        AdminAccount.model_validate({"_id": "1", "username": "a", "isActive": True}),
        AdminAccount.model_validate({"_id": "2", "username": "b", "isActive": False}),
        AdminAccount.model_validate({"_id": "3", "username": "c"}),
    ]
    stats = admin_stats(admins)
    assert (stats.total, stats.active, stats.inactive) == (3, 2, 1)


@pytest.mark.asyncio
async def test_list_admins_with_stats(client: AsyncClient, backend: FakeBackend):
    backend.on("GET", "/api/admin/admins", {"admins": [
        {"_id": "admin-1", "username": "root", "role": "SUPER_ADMIN", "isActive": True},
        {"_id": "admin-2", "username": "ops", "role": "ADMIN", "isActive": False,
         "assignedRoutes": ["r1", "r2"]},
    ]})

    response = await client.get("/admins", headers=auth_headers())

    assert response.status_code == 200
    data = response.json()
    assert data["stats"] == {"total": 2, "active": 1, "inactive": 1}
    assert data["admins"][1]["assigned_routes"] == ["r1", "r2"]


@pytest.mark.asyncio
async def test_create_admin_validates_password(client: AsyncClient, backend: FakeBackend):
    response = await client.post("/admins", json={"username": "ops", "password": "123"}, headers=auth_headers())

    assert response.status_code == 422
    assert backend.requests("POST") == []


@pytest.mark.asyncio
async def test_create_admin(client: AsyncClient, backend: FakeBackend):
    backend.on("POST", "/api/admin/create-admin", {"success": True})

    response = await client.post("/admins", json={"username": "ops", "password": "secret1"}, headers=auth_headers())

    assert response.status_code == 201
    assert response.json()["message"] == "Admin created successfully!"
    assert backend.requests("POST", "/api/admin/create-admin")[0].json == {"username": "ops", "password": "secret1"}


@pytest.mark.asyncio
async def test_duplicate_admin_passes_backend_message(client: AsyncClient, backend: FakeBackend):
    backend.on("POST", "/api/admin/create-admin", {"message": "Username already exists"}, status=409)

    response = await client.post("/admins", json={"username": "ops", "password": "secret1"}, headers=auth_headers())

    assert response.status_code == 409
    assert response.json()["detail"] == "Username already exists"


@pytest.mark.asyncio
async def test_cannot_delete_own_account(client: AsyncClient, backend: FakeBackend):
    response = await client.delete("/admins/admin-1", headers=auth_headers())

    assert response.status_code == 400
    assert backend.requests("DELETE") == []


@pytest.mark.asyncio
async def test_delete_other_admin(client: AsyncClient, backend: FakeBackend):
    backend.on("DELETE", "/api/admin/delete-admin/admin-2", {"success": True})

    response = await client.delete("/admins/admin-2", headers=auth_headers())

    assert response.status_code == 200


# ── Passwords ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_own_password_change_sends_verification(client: AsyncClient, backend: FakeBackend):
    backend.on("POST", "/api/admin/change-password", {"success": True})

    response = await client.post("/admins/me/password", headers=auth_headers(), json={
        "current_password": "oldpass", "new_password": "newpass1", "confirm_password": "newpass1",
    })

    assert response.json()["message"] == "Verification email sent to root@example.com"
    assert backend.requests("POST", "/api/admin/change-password")[0].json == {
        "username": "root", "currentPassword": "oldpass", "newPassword": "newpass1",
    }


@pytest.mark.asyncio
async def test_password_confirmation_must_match(client: AsyncClient):
    response = await client.post("/admins/me/password", headers=auth_headers(), json={
        "current_password": "oldpass", "new_password": "newpass1", "confirm_password": "newpass2",
    })
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_verify_password_change_needs_no_session(client: AsyncClient, backend: FakeBackend):
    backend.on("POST", "/api/admin/verify-password-change", {"success": True})

    response = await client.post("/admins/password/verify", json={"token": "emailed-token"})

    assert response.status_code == 200
    call = backend.requests("POST", "/api/admin/verify-password-change")[0]
    assert call.json == {"token": "emailed-token"}
    assert "authorization" not in call.headers


@pytest.mark.asyncio
async def test_reset_other_admin_password(client: AsyncClient, backend: FakeBackend):
    backend.on("POST", "/api/admin/change-admin-password", {"success": True})

    await client.post("/admins/admin-2/password", json={"new_password": "reset12"}, headers=auth_headers())

    assert backend.requests("POST")[0].json == {"adminId": "admin-2", "newPassword": "reset12"}


# ── Audit Log ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_mutations_are_audited(client: AsyncClient, backend: FakeBackend):
    backend.on("POST", "/api/admin/create-admin", {"success": True})
    backend.on("DELETE", "/api/admin/delete-admin/admin-2", {"success": True})

    await client.post("/admins", json={"username": "ops", "password": "secret1"}, headers=auth_headers())
    await client.delete("/admins/admin-2", headers=auth_headers())

    response = await client.get("/audit-logs", headers=auth_headers())
    data = response.json()
    assert data["total"] == 2
    assert {item["action"] for item in data["items"]} == {"CREATE_ADMIN", "DELETE_ADMIN"}
    assert all(item["actor"] == "root" for item in data["items"])

    filtered = await client.get("/audit-logs", params={"action": "delete_admin"}, headers=auth_headers())
    assert filtered.json()["total"] == 1
    assert filtered.json()["items"][0]["entity_id"] == "admin-2"


@pytest.mark.asyncio
async def test_audit_log_pagination(client: AsyncClient, backend: FakeBackend):
    backend.on("POST", "/api/admin/create-admin", {"success": True})
    for i in range(3):
        await client.post("/admins", json={"username": f"ops{i}", "password": "secret1"}, headers=auth_headers())

    response = await client.get("/audit-logs", params={"page": 2, "page_size": 2}, headers=auth_headers())

    data = response.json()
    assert data["total_pages"] == 2
    assert len(data["items"]) == 1
