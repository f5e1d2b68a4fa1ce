"""Manifest generation.

Return manifests are built from scanned returns received at the warehouse;
delivery manifests from the courier's list of delivered AWBs. Both link each
AWB to its order and that order's latest issued invoice, skip AWBs already
held by an open manifest of the same type, and create the manifest in one
transaction under a per-type generation lock.
"""
import csv
from dataclasses import dataclass
from datetime import date, datetime, timezone
from io import StringIO
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from manifest_guard.core.enums import (
    ManifestType, InvoiceStatus, AuditAction, RECEIVED_RETURN_STATUSES
)
from manifest_guard.core.exceptions import (
    NoNewReturnsError, NoNewDeliveriesError, ValidationFailureError
)
from manifest_guard.core.logging import get_logger
from manifest_guard.models.invoice import Invoice
from manifest_guard.models.order import ReturnShipment, Shipment
from manifest_guard.schemas.audit import ManifestGeneratedMeta
from manifest_guard.services.audit import AuditService
from manifest_guard.services.manifest_store import (
    NewManifestItem, create_manifest, lock_generation, open_awb_numbers
)

logger = get_logger(__name__)

AWB_COLUMN_NAMES = ("awb", "awb_number", "awbnumber", "nr_awb", "colet")


@dataclass
class GenerationResult:
    manifest_id: str
    item_count: int
    skipped_count: int = 0


async def latest_issued_invoices(db: AsyncSession, order_ids: Iterable[str]) -> dict[str, Invoice]:
    """Most recently created issued invoice per order.

    At most one issued invoice should exist per order; the ordering only
    makes the pick deterministic if that ever breaks.
    """
    ids = {order_id for order_id in order_ids if order_id}
    if not ids:
        return {}
    result = await db.execute(
        select(Invoice)
        .where(Invoice.order_id.in_(ids), Invoice.status == InvoiceStatus.ISSUED)
        .order_by(Invoice.order_id, Invoice.created_at.desc(), Invoice.id.desc())
    )
    latest: dict[str, Invoice] = {}
    for invoice in result.scalars().all():
        latest.setdefault(invoice.order_id, invoice)
    return latest


def resolve_return_order_id(return_shipment: ReturnShipment) -> Optional[str]:
    """Direct order link first, then the order of the original shipment."""
    if return_shipment.order_id:
        return return_shipment.order_id
    if return_shipment.original_shipment is not None:
        return return_shipment.original_shipment.order_id
    return None


async def _record_generation(
    db: AsyncSession,
    user_id: Optional[str],
    manifest_id: str,
    manifest_type: ManifestType,
    document_date: date,
    item_count: int,
    skipped_count: int,
) -> None:
    await AuditService.record(
        db,
        user_id=user_id,
        action=AuditAction.MANIFEST_GENERATED,
        entity_type="Manifest",
        entity_id=manifest_id,
        metadata=ManifestGeneratedMeta(
            manifest_type=manifest_type,
            document_date=document_date,
            item_count=item_count,
            skipped_count=skipped_count,
        ),
    )


async def generate_return_manifest(
    db: AsyncSession,
    user_id: Optional[str] = None,
    document_date: Optional[date] = None,
    return_shipment_ids: Optional[list[str]] = None,
) -> GenerationResult:
    """Create a DRAFT return manifest from received returns not yet claimed.

    Raises NoNewReturnsError when nothing is left to include.
    """
    manifest_date = document_date or datetime.now(timezone.utc).date()

    await lock_generation(db, ManifestType.RETURN)
    excluded = await open_awb_numbers(db, ManifestType.RETURN)

    query = (
        select(ReturnShipment)
        .options(selectinload(ReturnShipment.original_shipment))
        .where(ReturnShipment.status.in_(RECEIVED_RETURN_STATUSES))
        .order_by(ReturnShipment.scanned_at.desc())
    )
    if return_shipment_ids:
        query = query.where(ReturnShipment.id.in_(return_shipment_ids))
    returns = (await db.execute(query)).scalars().all()

    invoices = await latest_issued_invoices(db, (resolve_return_order_id(r) for r in returns))

    items: list[NewManifestItem] = []
    seen: set[str] = set()
    skipped = 0
    for return_shipment in returns:
        awb_number = return_shipment.return_awb_number
        if awb_number in excluded or awb_number in seen:
            skipped += 1
            continue
        seen.add(awb_number)

        order_id = resolve_return_order_id(return_shipment)
        invoice = invoices.get(order_id) if order_id else None
        original = return_shipment.original_shipment
        items.append(NewManifestItem(
            awb_number=awb_number,
            original_awb_number=original.awb_number if original is not None else None,
            order_id=order_id,
            invoice_id=invoice.id if invoice is not None else None,
        ))

    if not items:
        raise NoNewReturnsError("No new returns available for manifest generation")

    manifest = await create_manifest(db, ManifestType.RETURN, manifest_date, items)
    await _record_generation(db, user_id, manifest.id, ManifestType.RETURN, manifest_date, len(items), skipped)
    await db.commit()

    logger.info(
        f"Return manifest generated with {len(items)} items ({skipped} skipped)",
        extra={"manifest_id": manifest.id, "user_id": user_id},
    )
    return GenerationResult(manifest_id=manifest.id, item_count=len(items), skipped_count=skipped)


def parse_delivery_csv(content: str) -> list[str]:
    """AWB numbers from a courier CSV export with a recognised AWB column."""
    reader = csv.reader(StringIO(content.strip()))
    rows = [row for row in reader if any(cell.strip() for cell in row)]
    if len(rows) < 2:
        raise ValidationFailureError("CSV file is empty or has no data rows")

    header = [cell.strip().lower() for cell in rows[0]]
    awb_index = next((i for i, name in enumerate(header) if name in AWB_COLUMN_NAMES), None)
    if awb_index is None:
        raise ValidationFailureError("Could not find AWB column in CSV")

    awbs = [row[awb_index].strip() for row in rows[1:] if len(row) > awb_index and row[awb_index].strip()]
    if not awbs:
        raise ValidationFailureError("No valid AWB numbers found in CSV")
    return awbs


def _unique_awbs(awb_numbers: Iterable[str]) -> list[str]:
    unique: dict[str, None] = {}
    for awb in awb_numbers:
        awb = (awb or "").strip()
        if awb:
            unique.setdefault(awb, None)
    return list(unique)


async def generate_delivery_manifest(
    db: AsyncSession,
    awb_numbers: list[str],
    document_date: date,
    user_id: Optional[str] = None,
) -> GenerationResult:
    """Create a DRAFT delivery manifest from delivered AWBs not yet claimed.

    Unknown AWBs are kept with empty order/invoice links so the operator
    sees them; AWBs in an open delivery manifest are skipped.
    """
    awbs = _unique_awbs(awb_numbers)
    if not awbs:
        raise ValidationFailureError("No valid AWB numbers provided")

    await lock_generation(db, ManifestType.DELIVERY)
    excluded = await open_awb_numbers(db, ManifestType.DELIVERY, awbs)

    shipments = (
        await db.execute(select(Shipment).where(Shipment.awb_number.in_(awbs)))
    ).scalars().all()
    shipment_by_awb = {shipment.awb_number: shipment for shipment in shipments}
    invoices = await latest_issued_invoices(db, (s.order_id for s in shipments))

    items: list[NewManifestItem] = []
    skipped = 0
    for awb_number in awbs:
        if awb_number in excluded:
            skipped += 1
            continue
        shipment = shipment_by_awb.get(awb_number)
        order_id = shipment.order_id if shipment is not None else None
        invoice = invoices.get(order_id) if order_id else None
        items.append(NewManifestItem(
            awb_number=awb_number,
            order_id=order_id,
            invoice_id=invoice.id if invoice is not None else None,
        ))

    if not items:
        raise NoNewDeliveriesError("All AWBs are already in pending manifests")

    manifest = await create_manifest(db, ManifestType.DELIVERY, document_date, items)
    await _record_generation(db, user_id, manifest.id, ManifestType.DELIVERY, document_date, len(items), skipped)
    await db.commit()

    logger.info(
        f"Delivery manifest generated with {len(items)} items ({skipped} skipped)",
        extra={"manifest_id": manifest.id, "user_id": user_id},
    )
    return GenerationResult(manifest_id=manifest.id, item_count=len(items), skipped_count=skipped)
