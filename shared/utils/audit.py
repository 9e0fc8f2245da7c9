"""
shared/utils/audit.py
Audit trail for mutations the console forwards to the backend.
"""

import logging
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.middleware.auth import UpstreamCredentials
from shared.models.models import AdminAuditLog

logger = logging.getLogger(__name__)


async def record_action(
    db: AsyncSession,
    credentials: UpstreamCredentials,
    action: str,
    entity_type: str,
    entity_id: Optional[str] = None,
    payload: dict | None = None,
    request: Request | None = None,
    actor: Optional[str] = None,
) -> None:
    """Append an immutable record to AdminAuditLog. Committed by get_db."""
    log = AdminAuditLog(
        actor=actor or credentials.fingerprint(),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        payload=payload or {},
        ip_address=request.client.host if request and request.client else None,
    )
    db.add(log)
    logger.info(f"Audit {action} {entity_type}:{entity_id} by {log.actor}")
