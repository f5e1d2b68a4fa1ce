"""Audit trail endpoints."""
from typing import Optional

from fastapi import APIRouter, Query

from manifest_guard.core.dependencies import DbSession, Supervisor
from manifest_guard.core.enums import AuditAction
from manifest_guard.schemas.audit import AuditLogListResponse, AuditLogResponse
from manifest_guard.services.audit import AuditService


router = APIRouter()


@router.get("", response_model=AuditLogListResponse)
async def list_audit_logs(
    user: Supervisor,
    db: DbSession,
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    action: Optional[AuditAction] = Query(None),
    user_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Audit entries, newest first."""
    entries, total = await AuditService.list_entries(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action.value if action else None,
        user_id=user_id,
        limit=limit,
        offset=offset,
    )
    return AuditLogListResponse(
        entries=[AuditLogResponse.model_validate(entry) for entry in entries],
        total=total,
        limit=limit,
        offset=offset,
    )
