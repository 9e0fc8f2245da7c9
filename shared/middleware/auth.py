"""
shared/middleware/auth.py
FastAPI dependency functions for authentication and authorization.

The console never validates tokens itself: it forwards the operator's
bearer token and session cookies to the backend, which owns auth.
Credentials are built per request and passed down explicitly.
"""

from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config.settings import settings
from shared.clients.backend import BackendClient, get_backend
from shared.schemas.schemas import AdminIdentity, AdminRole
from shared.utils.security import hash_token

security = HTTPBearer(auto_error=False)


@dataclass
class UpstreamCredentials:
    bearer_token: Optional[str] = None
    session_cookies: dict[str, str] = field(default_factory=dict)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.bearer_token or self.session_cookies)

    def as_headers(self) -> dict[str, str]:
        headers = {}
        if self.bearer_token:
            headers["Authorization"] = f"Bearer {self.bearer_token}"
        if self.session_cookies:
            headers["Cookie"] = "; ".join(f"{k}={v}" for k, v in self.session_cookies.items())
        return headers

    def fingerprint(self) -> str:
        """Stable, non-reversible operator key for audit rows and fetch keys."""
        secret = self.bearer_token or "|".join(
            f"{k}={v}" for k, v in sorted(self.session_cookies.items())
        )
        return hash_token(secret)[:16] if secret else "anonymous"


async def get_credentials(
    request: Request,
    bearer: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> UpstreamCredentials:
    """
    Collect the operator's bearer token and session cookies.
    Requests carrying neither are rejected before reaching the backend.
    """
    cookies = {
        name: request.cookies[name]
        for name in settings.session_cookie_list
        if request.cookies.get(name)
    }
    credentials = UpstreamCredentials(
        bearer_token=bearer.credentials if bearer else None,
        session_cookies=cookies,
    )
    if not credentials.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials


async def get_current_admin(
    credentials: UpstreamCredentials = Depends(get_credentials),
    backend: BackendClient = Depends(get_backend),
) -> AdminIdentity:
    """Resolve the signed-in operator via the backend's /me endpoint."""
    result = await backend.get("/api/admin/me", credentials, expect=AdminIdentity, data_key="admin")
    if not result.ok:
        if result.status_code in (401, 403):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired")
        result.unwrap()
    return result.data


class RoleRequired:
    """Dependency factory for role-based access control."""

    def __init__(self, *roles: AdminRole):
        self.roles = roles

    async def __call__(
        self,
        admin: AdminIdentity = Depends(get_current_admin),
    ) -> AdminIdentity:
        if admin.role not in [r.value for r in self.roles]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Required role: {[r.value for r in self.roles]}",
            )
        return admin


require_admin = RoleRequired(AdminRole.ADMIN, AdminRole.SUPER_ADMIN)
require_super_admin = RoleRequired(AdminRole.SUPER_ADMIN)
