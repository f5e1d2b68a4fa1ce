"""Manifest store: reads, lifecycle transitions and claim-safe creation."""
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select, func, update, text, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from manifest_guard.core.database import is_postgres
from manifest_guard.core.enums import ManifestType, ManifestStatus, ManifestItemStatus, AuditAction
from manifest_guard.core.exceptions import NotFoundError, ConflictError
from manifest_guard.core.logging import get_logger
from manifest_guard.models.manifest import Manifest, ManifestItem, claim_key
from manifest_guard.schemas.audit import ManifestStatusChangedMeta
from manifest_guard.services.audit import AuditService

logger = get_logger(__name__)

# Forward-only lifecycle
ALLOWED_TRANSITIONS = {
    ManifestStatus.DRAFT: ManifestStatus.CONFIRMED,
    ManifestStatus.CONFIRMED: ManifestStatus.PROCESSED,
}


@dataclass
class NewManifestItem:
    awb_number: str
    original_awb_number: Optional[str] = None
    order_id: Optional[str] = None
    invoice_id: Optional[str] = None


async def get_manifest(db: AsyncSession, manifest_id: str, for_update: bool = False) -> Manifest:
    query = (
        select(Manifest)
        .options(selectinload(Manifest.items))
        .where(Manifest.id == manifest_id)
    )
    if for_update:
        query = query.with_for_update()
    manifest = (await db.execute(query)).scalar_one_or_none()
    if manifest is None:
        raise NotFoundError("Manifest not found")
    return manifest


async def list_manifests(
    db: AsyncSession,
    manifest_type: Optional[ManifestType] = None,
    status: Optional[ManifestStatus] = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """Manifests newest first, each with item / processed / error counters."""
    filters = []
    if manifest_type:
        filters.append(Manifest.type == manifest_type)
    if status:
        filters.append(Manifest.status == status)

    total = (await db.execute(select(func.count(Manifest.id)).where(*filters))).scalar() or 0

    counts = (
        select(
            ManifestItem.manifest_id.label("manifest_id"),
            func.count(ManifestItem.id).label("item_count"),
            func.sum(case((ManifestItem.status == ManifestItemStatus.PROCESSED, 1), else_=0)).label("processed_count"),
            func.sum(case((ManifestItem.status == ManifestItemStatus.ERROR, 1), else_=0)).label("error_count"),
        )
        .group_by(ManifestItem.manifest_id)
        .subquery()
    )
    result = await db.execute(
        select(Manifest, counts.c.item_count, counts.c.processed_count, counts.c.error_count)
        .outerjoin(counts, counts.c.manifest_id == Manifest.id)
        .where(*filters)
        .order_by(Manifest.created_at.desc())
        .offset(offset)
        .limit(limit)
    )

    rows = []
    for manifest, item_count, processed_count, error_count in result.all():
        rows.append({
            "id": manifest.id,
            "type": manifest.type,
            "status": manifest.status,
            "document_date": manifest.document_date,
            "created_at": manifest.created_at,
            "confirmed_at": manifest.confirmed_at,
            "confirmed_by": manifest.confirmed_by,
            "processed_at": manifest.processed_at,
            "item_count": item_count or 0,
            "processed_count": processed_count or 0,
            "error_count": error_count or 0,
        })
    return rows, total


async def open_awb_numbers(
    db: AsyncSession,
    manifest_type: ManifestType,
    awb_numbers: Optional[list[str]] = None,
) -> set[str]:
    """AWB numbers held by a not-yet-PROCESSED manifest of ``manifest_type``."""
    query = (
        select(ManifestItem.awb_number)
        .join(Manifest, Manifest.id == ManifestItem.manifest_id)
        .where(
            Manifest.type == manifest_type,
            Manifest.status != ManifestStatus.PROCESSED,
        )
    )
    if awb_numbers is not None:
        query = query.where(ManifestItem.awb_number.in_(awb_numbers))
    return set((await db.execute(query)).scalars().all())


async def lock_generation(db: AsyncSession, manifest_type: ManifestType) -> None:
    """Serialize generation runs of one manifest type until the transaction ends.

    PostgreSQL only; elsewhere the ``active_claim`` unique constraint is the
    sole guard.
    """
    if is_postgres(db):
        await db.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
            {"key": f"manifest-generation:{manifest_type.value}"},
        )


async def create_manifest(
    db: AsyncSession,
    manifest_type: ManifestType,
    document_date: date,
    items: list[NewManifestItem],
) -> Manifest:
    """Insert a DRAFT manifest with PENDING items, claiming every AWB.

    Raises ConflictError (after rolling back) when another manifest claimed
    one of the AWBs first.
    """
    manifest = Manifest(
        type=manifest_type,
        status=ManifestStatus.DRAFT,
        document_date=document_date,
        items=[
            ManifestItem(
                awb_number=item.awb_number,
                original_awb_number=item.original_awb_number,
                order_id=item.order_id,
                invoice_id=item.invoice_id,
                status=ManifestItemStatus.PENDING,
                active_claim=claim_key(manifest_type, item.awb_number),
            )
            for item in items
        ],
    )
    db.add(manifest)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        logger.warning(f"Concurrent {manifest_type.value} manifest generation claimed the same AWBs")
        raise ConflictError("Some shipments were claimed by another manifest in the meantime. Retry the generation.")
    return manifest


async def apply_transition(
    db: AsyncSession,
    manifest: Manifest,
    target: ManifestStatus,
    user_id: Optional[str],
) -> None:
    """Move ``manifest`` one step forward without committing."""
    if ALLOWED_TRANSITIONS.get(manifest.status) != target:
        raise ConflictError(
            f"Cannot move manifest from {manifest.status.value} to {target.value}"
        )

    previous = manifest.status
    now = datetime.now(timezone.utc)
    manifest.status = target
    if target == ManifestStatus.CONFIRMED:
        manifest.confirmed_at = now
        manifest.confirmed_by = user_id
    elif target == ManifestStatus.PROCESSED:
        manifest.processed_at = now
        # Release the AWBs so a re-scan can be claimed again
        await db.execute(
            update(ManifestItem)
            .where(ManifestItem.manifest_id == manifest.id)
            .values(active_claim=None)
            .execution_options(synchronize_session=False)
        )
        for item in manifest.items:
            item.active_claim = None

    await AuditService.record(
        db,
        user_id=user_id,
        action=AuditAction.MANIFEST_STATUS_CHANGED,
        entity_type="Manifest",
        entity_id=manifest.id,
        metadata=ManifestStatusChangedMeta(from_status=previous, to_status=target),
    )
    logger.info(
        f"Manifest {manifest.id} moved {previous.value} -> {target.value}",
        extra={"manifest_id": manifest.id, "user_id": user_id},
    )


async def transition_manifest(
    db: AsyncSession,
    manifest_id: str,
    target: ManifestStatus,
    user_id: Optional[str],
) -> Manifest:
    """Load, transition and commit."""
    manifest = await get_manifest(db, manifest_id, for_update=True)
    await apply_transition(db, manifest, target, user_id)
    await db.commit()
    return manifest
