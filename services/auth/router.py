"""
services/auth/router.py
Session endpoints. Sign-in itself happens against the backend; the
console only resolves the current operator and ends sessions.
"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from shared.clients.backend import BackendClient, get_backend
from shared.middleware.auth import UpstreamCredentials, get_credentials, get_current_admin
from shared.schemas.schemas import AdminIdentity, MessageResponse
from shared.utils.audit import record_action

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/logout", response_model=MessageResponse, summary="Logout operator")
async def logout(
    response: Response,
    request: Request,
    credentials: UpstreamCredentials = Depends(get_credentials),
    backend: BackendClient = Depends(get_backend),
    db: AsyncSession = Depends(get_db),
):
    """
    End the backend session, then clear the session cookies.
    Cookies are cleared even when the backend call fails.
    """
    result = await backend.post("/api/admin/logout", credentials)
    if not result.ok:
        logger.warning(f"Backend logout failed: {result.error}")

    for name in settings.session_cookie_list:
        response.delete_cookie(key=name, path="/")

    await record_action(db, credentials, "LOGOUT", "Session", request=request)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=AdminIdentity, summary="Get current operator")
async def get_me(admin: AdminIdentity = Depends(get_current_admin)):
    """Returns the signed-in operator as reported by the backend."""
    return admin
