"""
services/admin/router.py
Super-admin endpoints: admin accounts, password changes and the
console's immutable audit log.

ALL mutations are logged to AdminAuditLog before returning.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.clients.backend import BackendClient, get_backend
from shared.middleware.auth import (
    UpstreamCredentials,
    get_credentials,
    get_current_admin,
    require_super_admin,
)
from shared.models.models import AdminAuditLog
from shared.schemas.schemas import (
    AdminAccount,
    AdminCreateRequest,
    AdminIdentity,
    AdminPasswordReset,
    AdminsEnvelope,
    AdminsResponse,
    AdminStats,
    AdminView,
    AuditLogView,
    ChangePasswordRequest,
    MessageResponse,
    PasswordChangeVerification,
)
from shared.utils.audit import record_action

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin"])


# ── Helpers ───────────────────────────────────────────────────

def admin_stats(admins: list[AdminAccount]) -> AdminStats:
    active = sum(1 for a in admins if a.is_active)
    return AdminStats(total=len(admins), active=active, inactive=len(admins) - active)


def _view(admin: AdminAccount) -> AdminView:
    return AdminView(
        id=admin.id,
        username=admin.username,
        email=admin.email,
        role=admin.role,
        is_active=admin.is_active,
        assigned_routes=admin.assigned_routes,
        created_at=admin.created_at,
        last_login=admin.last_login,
    )


# ── Admin Accounts ────────────────────────────────────────────

@router.get("/admins", response_model=AdminsResponse)
async def list_admins(
    _: AdminIdentity = Depends(require_super_admin),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
):
    result = await backend.get("/api/admin/admins", credentials, expect=AdminsEnvelope)
    admins = result.unwrap().admins
    return AdminsResponse(admins=[_view(a) for a in admins], stats=admin_stats(admins))


@router.post("/admins", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def create_admin(
    data: AdminCreateRequest,
    request: Request,
    current: AdminIdentity = Depends(require_super_admin),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    result = await backend.post(
        "/api/admin/create-admin",
        credentials,
        json={"username": data.username, "password": data.password},
    )
    result.unwrap()
    await record_action(db, credentials, "CREATE_ADMIN", "Admin", None,
                        {"username": data.username}, request, actor=current.username)
    return MessageResponse(message="Admin created successfully!")


@router.post("/admins/me/password", response_model=MessageResponse)
async def change_own_password(
    data: ChangePasswordRequest,
    request: Request,
    current: AdminIdentity = Depends(get_current_admin),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    """
    Request a password change. The backend emails a verification link;
    the new password only takes effect once that link is followed.
    """
    result = await backend.post(
        "/api/admin/change-password",
        credentials,
        json={
            "username": current.username,
            "currentPassword": data.current_password,
            "newPassword": data.new_password,
        },
    )
    result.unwrap()
    await record_action(db, credentials, "REQUEST_PASSWORD_CHANGE", "Admin", current.id,
                        request=request, actor=current.username)
    target = current.email or "your email"
    return MessageResponse(message=f"Verification email sent to {target}")


@router.post("/admins/password/verify", response_model=MessageResponse)
async def verify_password_change(
    data: PasswordChangeVerification,
    backend: BackendClient = Depends(get_backend),
):
    """Complete a password change from the emailed token. Needs no session."""
    result = await backend.post(
        "/api/admin/verify-password-change",
        json={"token": data.token},
    )
    result.unwrap()
    return MessageResponse(message="Your password has been updated successfully")


@router.post("/admins/{admin_id}/password", response_model=MessageResponse)
async def reset_admin_password(
    admin_id: str,
    data: AdminPasswordReset,
    request: Request,
    current: AdminIdentity = Depends(require_super_admin),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    result = await backend.post(
        "/api/admin/change-admin-password",
        credentials,
        json={"adminId": admin_id, "newPassword": data.new_password},
    )
    result.unwrap()
    await record_action(db, credentials, "RESET_ADMIN_PASSWORD", "Admin", admin_id,
                        request=request, actor=current.username)
    return MessageResponse(message="Admin password changed successfully!")


@router.delete("/admins/{admin_id}", response_model=MessageResponse)
async def delete_admin(
    admin_id: str,
    request: Request,
    current: AdminIdentity = Depends(require_super_admin),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    if admin_id == current.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    result = await backend.delete(f"/api/admin/delete-admin/{admin_id}", credentials)
    result.unwrap()
    await record_action(db, credentials, "DELETE_ADMIN", "Admin", admin_id,
                        request=request, actor=current.username)
    return MessageResponse(message="Admin has been deleted successfully")


# ── Audit Log ─────────────────────────────────────────────────

@router.get("/audit-logs")
async def get_audit_logs(
    action: str = Query(None, description="Filter by action type e.g. BULK_BLOCK_SLOTS"),
    entity_type: str = Query(None),
    actor: str = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    _: AdminIdentity = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db),
):
    """Immutable console audit log, append-only, never editable."""
    query = select(AdminAuditLog).order_by(AdminAuditLog.created_at.desc())
    if action:
        query = query.where(AdminAuditLog.action == action.upper())
    if entity_type:
        query = query.where(AdminAuditLog.entity_type == entity_type)
    if actor:
        query = query.where(AdminAuditLog.actor == actor)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(query.offset((page - 1) * page_size).limit(page_size))
    logs = result.scalars().all()

    return {
        "items": [AuditLogView.model_validate(log).model_dump(mode="json") for log in logs],
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": -(-total // page_size),  # ceiling division
    }
