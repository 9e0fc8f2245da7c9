"""
services/sidebar/router.py
Navigation sidebar for the signed-in operator and super-admin route
management (routes, folders, assignment of routes to admins).
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.navigation import get_fallback_routes, sort_routes
from shared.clients.backend import BackendClient, get_backend
from shared.middleware.auth import UpstreamCredentials, get_credentials, require_super_admin
from shared.schemas.schemas import (
    AdminIdentity,
    FolderCreate,
    MessageResponse,
    RouteAssignment,
    RouteUpsert,
    SidebarEnvelope,
    SidebarResponse,
    SidebarRoute,
    SidebarRouteView,
)
from shared.utils.audit import record_action

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sidebar", tags=["Sidebar"])

SIDEBAR_API = "/api/admin/sidebar"


def to_view(route: SidebarRoute) -> SidebarRouteView:
    return SidebarRouteView(
        id=route.id,
        name=route.name,
        path=route.path,
        icon=route.icon,
        order=route.order,
        sub_routes=[to_view(r) for r in route.sub_routes],
    )


@router.get("", response_model=SidebarResponse)
async def get_sidebar(
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    fallback: List[SidebarRoute] = Depends(get_fallback_routes),
):
    """
    Routes assigned to the operator. The static sidebar is served instead
    when the backend asks for it or cannot be reached.
    """
    result = await backend.get(SIDEBAR_API, credentials, expect=SidebarEnvelope)
    envelope = result.unwrap_or(None)
    if envelope is None or envelope.use_fallback:
        reason = "requested by backend" if envelope else result.error
        logger.info(f"Serving fallback sidebar ({reason})")
        return SidebarResponse(source="fallback", routes=[to_view(r) for r in fallback])
    return SidebarResponse(source="backend", routes=[to_view(r) for r in sort_routes(envelope.routes)])


# ── Route Management ──────────────────────────────────────────

@router.get("/routes", response_model=List[SidebarRouteView])
async def list_all_routes(
    _: AdminIdentity = Depends(require_super_admin),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
):
    result = await backend.get(f"{SIDEBAR_API}/all", credentials, expect=SidebarEnvelope)
    return [to_view(r) for r in sort_routes(result.unwrap().routes)]


@router.post("/routes", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def create_route(
    data: RouteUpsert,
    request: Request,
    current: AdminIdentity = Depends(require_super_admin),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    result = await backend.post(f"{SIDEBAR_API}/create", credentials, json=data.model_dump(exclude_none=True))
    result.unwrap()
    await record_action(db, credentials, "CREATE_ROUTE", "SidebarRoute", None,
                        data.model_dump(exclude_none=True), request, actor=current.username)
    return MessageResponse(message=f"{data.name} has been created successfully")


@router.put("/routes/{route_id}", response_model=MessageResponse)
async def update_route(
    route_id: str,
    data: RouteUpsert,
    request: Request,
    current: AdminIdentity = Depends(require_super_admin),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    result = await backend.put(f"{SIDEBAR_API}/{route_id}", credentials, json=data.model_dump(exclude_none=True))
    result.unwrap()
    await record_action(db, credentials, "UPDATE_ROUTE", "SidebarRoute", route_id,
                        data.model_dump(exclude_none=True), request, actor=current.username)
    return MessageResponse(message=f"{data.name} has been updated successfully")


@router.delete("/routes/{route_id}", response_model=MessageResponse)
async def delete_route(
    route_id: str,
    request: Request,
    current: AdminIdentity = Depends(require_super_admin),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    result = await backend.delete(f"{SIDEBAR_API}/{route_id}", credentials)
    result.unwrap()
    await record_action(db, credentials, "DELETE_ROUTE", "SidebarRoute", route_id,
                        request=request, actor=current.username)
    return MessageResponse(message="Route has been deleted successfully")


@router.post("/folders", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def create_folder(
    data: FolderCreate,
    request: Request,
    current: AdminIdentity = Depends(require_super_admin),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    """Group existing routes under a new folder entry."""
    result = await backend.post(
        f"{SIDEBAR_API}/create-folder",
        credentials,
        json={"folderName": data.folder_name, "routeIds": data.route_ids},
    )
    result.unwrap()
    await record_action(db, credentials, "CREATE_FOLDER", "SidebarRoute", None,
                        data.model_dump(), request, actor=current.username)
    return MessageResponse(message=f"{data.folder_name} created with {len(data.route_ids)} routes")


@router.post("/assign", response_model=MessageResponse)
async def assign_routes(
    data: RouteAssignment,
    request: Request,
    current: AdminIdentity = Depends(require_super_admin),
    backend: BackendClient = Depends(get_backend),
    credentials: UpstreamCredentials = Depends(get_credentials),
    db: AsyncSession = Depends(get_db),
):
    """Replace the set of routes an admin can see."""
    result = await backend.post(
        f"{SIDEBAR_API}/assign",
        credentials,
        json={"adminId": data.admin_id, "routeIds": data.route_ids},
    )
    result.unwrap()
    await record_action(db, credentials, "ASSIGN_ROUTES", "Admin", data.admin_id,
                        {"route_ids": data.route_ids}, request, actor=current.username)
    return MessageResponse(message="Routes assigned successfully")
