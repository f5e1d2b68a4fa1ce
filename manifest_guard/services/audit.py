"""AuditService - append-only audit trail.

Static methods so every service can write entries inside its own unit of
work; the entry commits or rolls back with the caller's transaction.
"""
from datetime import datetime
from typing import Optional

from pydantic import TypeAdapter
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from manifest_guard.core.enums import AuditAction
from manifest_guard.models.audit_log import AuditLog
from manifest_guard.schemas.audit import AuditMetadata

_metadata_adapter = TypeAdapter(AuditMetadata)


class AuditService:
    """Audit trail writer and query interface."""

    @staticmethod
    async def record(
        db: AsyncSession,
        *,
        user_id: Optional[str],
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        metadata: AuditMetadata,
    ) -> AuditLog:
        """Append one entry. Entries are never updated afterwards."""
        entry = AuditLog(
            user_id=user_id,
            action=action.value,
            entity_type=entity_type,
            entity_id=entity_id,
            details=_metadata_adapter.dump_python(metadata, mode="json"),
        )
        db.add(entry)
        await db.flush()
        return entry

    @staticmethod
    async def count_since(
        db: AsyncSession,
        *,
        action: AuditAction,
        since: datetime,
        user_id: Optional[str] = None,
    ) -> int:
        query = select(func.count(AuditLog.id)).where(
            AuditLog.action == action.value,
            AuditLog.created_at >= since,
        )
        if user_id is not None:
            query = query.where(AuditLog.user_id == user_id)
        return (await db.execute(query)).scalar() or 0

    @staticmethod
    async def list_entries(
        db: AsyncSession,
        *,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        action: Optional[str] = None,
        user_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AuditLog], int]:
        """Newest first, with the total matching count."""
        query = select(AuditLog)
        count_query = select(func.count(AuditLog.id))

        filters = []
        if entity_type:
            filters.append(AuditLog.entity_type == entity_type)
        if entity_id:
            filters.append(AuditLog.entity_id == entity_id)
        if action:
            filters.append(AuditLog.action == action)
        if user_id:
            filters.append(AuditLog.user_id == user_id)
        if filters:
            query = query.where(*filters)
            count_query = count_query.where(*filters)

        total = (await db.execute(count_query)).scalar() or 0
        result = await db.execute(
            query.order_by(AuditLog.created_at.desc()).offset(offset).limit(limit)
        )
        return list(result.scalars().all()), total
