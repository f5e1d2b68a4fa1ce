"""Operation guard.

Decides whether an invoice operation is backed by manifest evidence:
cancellation needs a RETURN manifest, marking as paid a DELIVERY manifest,
and the manifest must be CONFIRMED or PROCESSED. Anything else requires a
PIN override. Decisions are read from the database on every call; a
generation run may land between two requests.
"""
from sqlalchemy import select, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from manifest_guard.core.enums import ManifestType, ManifestStatus, OperationSource
from manifest_guard.core.exceptions import NotFoundError
from manifest_guard.models.invoice import Invoice
from manifest_guard.models.manifest import Manifest, ManifestItem
from manifest_guard.schemas.invoice import GuardDecision

EVIDENCE_STATUSES = (ManifestStatus.CONFIRMED, ManifestStatus.PROCESSED)

_LABELS = {
    ManifestType.RETURN: "return",
    ManifestType.DELIVERY: "delivery",
}


async def evaluate(db: AsyncSession, invoice: Invoice, manifest_type: ManifestType) -> GuardDecision:
    """Guard decision for ``invoice`` against manifests of ``manifest_type``."""
    # An order-level item only counts while it names no invoice; once linked,
    # it is evidence for that invoice alone, not for a re-issued one.
    references = [ManifestItem.invoice_id == invoice.id]
    if invoice.order_id:
        references.append(and_(
            ManifestItem.invoice_id.is_(None),
            ManifestItem.order_id == invoice.order_id,
        ))

    result = await db.execute(
        select(Manifest.id, Manifest.status)
        .join(ManifestItem, ManifestItem.manifest_id == Manifest.id)
        .where(Manifest.type == manifest_type, or_(*references))
        .order_by(Manifest.created_at.desc())
    )
    rows = result.all()

    for manifest_id, status in rows:
        if status in EVIDENCE_STATUSES:
            return GuardDecision(
                allowed=True,
                requires_override=False,
                source=OperationSource.MANIFEST,
                manifest_id=manifest_id,
                manifest_type=manifest_type,
            )

    label = _LABELS[manifest_type]
    draft_id = next((manifest_id for manifest_id, status in rows if status == ManifestStatus.DRAFT), None)
    if draft_id:
        reason = f"Invoice is in {label} manifest {draft_id}, which has not been confirmed yet"
    else:
        reason = f"Invoice is not in a confirmed {label} manifest"
    return GuardDecision(
        allowed=False,
        requires_override=True,
        reason=reason,
        manifest_id=draft_id,
        manifest_type=manifest_type if draft_id else None,
    )


async def _load_invoice(db: AsyncSession, invoice_id: str) -> Invoice:
    invoice = await db.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError("Invoice not found")
    return invoice


async def can_cancel(db: AsyncSession, invoice_id: str) -> GuardDecision:
    return await evaluate(db, await _load_invoice(db, invoice_id), ManifestType.RETURN)


async def can_mark_paid(db: AsyncSession, invoice_id: str) -> GuardDecision:
    return await evaluate(db, await _load_invoice(db, invoice_id), ManifestType.DELIVERY)


async def operation_status(db: AsyncSession, invoice_id: str) -> tuple[Invoice, GuardDecision, GuardDecision]:
    """Invoice plus both guard decisions, for the operator UI."""
    invoice = await _load_invoice(db, invoice_id)
    return (
        invoice,
        await evaluate(db, invoice, ManifestType.RETURN),
        await evaluate(db, invoice, ManifestType.DELIVERY),
    )
