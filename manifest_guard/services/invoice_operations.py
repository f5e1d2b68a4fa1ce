"""Guarded invoice operations: cancel (storno) and collect (mark as paid).

Flow for both: lock the invoice row, check the pre-condition, ask the guard,
fall back to the override PIN, call the external ledger, and only after the
ledger succeeded mutate the invoice, its order and the audit trail in one
commit. The final UPDATE re-checks the pre-condition so a concurrent call
cannot apply the same operation twice.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from manifest_guard.core.config import settings
from manifest_guard.core.enums import (
    ManifestType, InvoiceStatus, PaymentStatus, OperationSource, OrderStatus, AuditAction
)
from manifest_guard.core.exceptions import (
    NotFoundError, InvoiceStateError, ValidationFailureError,
    OverrideRejectedError, ExternalServiceError
)
from manifest_guard.core.invoicing import InvoicingClient, InvoicingClientFactory, StornoResult
from manifest_guard.core.logging import get_logger
from manifest_guard.models.company import Company, Store
from manifest_guard.models.invoice import Invoice
from manifest_guard.models.order import Order
from manifest_guard.schemas.audit import (
    CancelViaManifestMeta, CancelViaOverrideMeta,
    CollectViaManifestMeta, CollectViaOverrideMeta, OperationBlockedMeta,
)
from manifest_guard.schemas.invoice import GuardDecision
from manifest_guard.services import operation_guard
from manifest_guard.services.audit import AuditService
from manifest_guard.services.pin_service import PinService

logger = get_logger(__name__)


@dataclass
class OperationSucceeded:
    source: OperationSource
    manifest_id: Optional[str] = None
    storno_series: Optional[str] = None
    storno_number: Optional[str] = None


@dataclass
class OperationBlocked:
    """No manifest evidence and no override supplied. Only the denial is recorded."""
    reason: str
    manifest_id: Optional[str] = None


OperationOutcome = Union[OperationSucceeded, OperationBlocked]


def resolve_billing_company(invoice: Invoice) -> Optional[Company]:
    """Billing entity of ``invoice``.

    The company set on the invoice itself wins; otherwise the company of the
    store the order came through. ``None`` when neither is set.
    """
    if invoice.company is not None:
        return invoice.company
    order = invoice.order
    if order is not None and order.store is not None:
        return order.store.company
    return None


async def load_invoice_for_update(db: AsyncSession, invoice_id: str) -> Invoice:
    """Invoice with order, store and companies, row-locked until commit."""
    result = await db.execute(
        select(Invoice)
        .options(
            selectinload(Invoice.company),
            selectinload(Invoice.order).selectinload(Order.store).selectinload(Store.company),
        )
        .where(Invoice.id == invoice_id)
        .with_for_update()
    )
    invoice = result.scalar_one_or_none()
    if invoice is None:
        raise NotFoundError("Invoice not found")
    return invoice


async def _authorize(
    db: AsyncSession,
    invoice: Invoice,
    decision: GuardDecision,
    pin: Optional[str],
    user_id: str,
) -> Optional[OperationBlocked]:
    """``None`` when the operation may proceed, a blocked outcome otherwise.

    A wrong override raises after committing the failed attempt.
    """
    if decision.allowed:
        return None
    if not pin:
        return OperationBlocked(reason=decision.reason or "Override required", manifest_id=decision.manifest_id)

    verification = await PinService(db).verify(pin, user_id, invoice_id=invoice.id, record_success=False)
    if not verification.valid:
        await db.commit()
        logger.warning(
            f"Override rejected for invoice {invoice.display_number}: {verification.error}",
            extra={"invoice_id": invoice.id, "user_id": user_id},
        )
        raise OverrideRejectedError(verification.error or "Invalid PIN")
    return None


async def _record_blocked(
    db: AsyncSession,
    invoice: Invoice,
    action: AuditAction,
    blocked: OperationBlocked,
    user_id: str,
    reason: Optional[str],
) -> None:
    """Audit a guard denial and commit it. The invoice itself is untouched."""
    await AuditService.record(
        db,
        user_id=user_id,
        action=action,
        entity_type="Invoice",
        entity_id=invoice.id,
        metadata=OperationBlockedMeta(
            operation="cancel" if action == AuditAction.INVOICE_CANCEL_BLOCKED else "collect",
            invoice_series=invoice.series,
            invoice_number=invoice.number,
            order_id=invoice.order_id,
            reason=reason,
            blocked_reason=blocked.reason,
            manifest_id=blocked.manifest_id,
        ),
    )
    await db.commit()


def ledger_client(invoice: Invoice, client_factory: InvoicingClientFactory) -> InvoicingClient:
    company = resolve_billing_company(invoice)
    if company is None:
        raise ValidationFailureError("Invoice has no associated company")
    if not invoice.series or not invoice.number:
        raise ValidationFailureError("Invoice has no series/number in the invoicing ledger")
    client = client_factory(company)
    if client is None:
        raise ValidationFailureError(f"Invoicing credentials are not configured for {company.name}")
    return client


async def record_cancellation(
    db: AsyncSession,
    invoice: Invoice,
    source: OperationSource,
    manifest_id: Optional[str],
    reason: Optional[str],
    storno: StornoResult,
) -> None:
    """Mark ``invoice`` cancelled after a successful storno. Does not commit."""
    result = await db.execute(
        update(Invoice)
        .where(Invoice.id == invoice.id, Invoice.status == InvoiceStatus.ISSUED)
        .values(
            status=InvoiceStatus.CANCELLED,
            cancelled_at=datetime.now(timezone.utc),
            cancel_reason=reason or None,
            cancellation_source=source,
            cancelled_from_manifest_id=manifest_id,
            storno_series=storno.new_series,
            storno_number=storno.new_number,
        )
    )
    if result.rowcount != 1:
        logger.error(
            f"Storno accepted by the ledger but invoice {invoice.display_number} changed concurrently",
            extra={"invoice_id": invoice.id},
        )
        raise InvoiceStateError("Invoice was modified by another operation")
    if invoice.order is not None:
        invoice.order.status = OrderStatus.INVOICE_PENDING.value


async def record_collection(
    db: AsyncSession,
    invoice: Invoice,
    source: OperationSource,
    manifest_id: Optional[str],
) -> None:
    """Mark ``invoice`` paid after a successful collect. Does not commit."""
    result = await db.execute(
        update(Invoice)
        .where(
            Invoice.id == invoice.id,
            Invoice.status == InvoiceStatus.ISSUED,
            Invoice.payment_status == PaymentStatus.UNPAID,
        )
        .values(
            payment_status=PaymentStatus.PAID,
            paid_at=datetime.now(timezone.utc),
            paid_amount=invoice.order.total_price if invoice.order is not None else None,
            payment_source=source,
            paid_from_manifest_id=manifest_id,
        )
    )
    if result.rowcount != 1:
        logger.error(
            f"Collect accepted by the ledger but invoice {invoice.display_number} changed concurrently",
            extra={"invoice_id": invoice.id},
        )
        raise InvoiceStateError("Invoice was modified by another operation")
    if invoice.order is not None:
        invoice.order.status = OrderStatus.PAID.value


async def cancel_invoice(
    db: AsyncSession,
    invoice_id: str,
    user_id: str,
    client_factory: InvoicingClientFactory,
    pin: Optional[str] = None,
    reason: Optional[str] = None,
) -> OperationOutcome:
    """Storno an issued invoice, gated on RETURN manifest evidence or the PIN."""
    invoice = await load_invoice_for_update(db, invoice_id)
    if invoice.status == InvoiceStatus.CANCELLED:
        raise InvoiceStateError("Invoice is already cancelled")

    decision = await operation_guard.evaluate(db, invoice, ManifestType.RETURN)
    blocked = await _authorize(db, invoice, decision, pin, user_id)
    if blocked is not None:
        logger.info(
            f"Cancel blocked for invoice {invoice.display_number}: {blocked.reason}",
            extra={"invoice_id": invoice.id, "user_id": user_id},
        )
        await _record_blocked(db, invoice, AuditAction.INVOICE_CANCEL_BLOCKED, blocked, user_id, reason)
        return blocked

    source = OperationSource.MANIFEST if decision.allowed else OperationSource.PIN_OVERRIDE
    manifest_id = decision.manifest_id if decision.allowed else None

    client = ledger_client(invoice, client_factory)
    storno = await client.storno(invoice.series, invoice.number)
    if not storno.success:
        logger.error(
            f"Ledger storno failed for invoice {invoice.display_number}: {storno.error}",
            extra={"invoice_id": invoice.id, "user_id": user_id},
        )
        raise ExternalServiceError(f"Invoicing provider error: {storno.error or 'storno failed'}")

    await record_cancellation(db, invoice, source, manifest_id, reason, storno)

    common = dict(
        invoice_series=invoice.series,
        invoice_number=invoice.number,
        order_id=invoice.order_id,
        reason=reason,
        storno_series=storno.new_series,
        storno_number=storno.new_number,
    )
    metadata = (
        CancelViaManifestMeta(manifest_id=manifest_id, **common)
        if source == OperationSource.MANIFEST
        else CancelViaOverrideMeta(**common)
    )
    await AuditService.record(
        db,
        user_id=user_id,
        action=AuditAction.INVOICE_CANCELLED,
        entity_type="Invoice",
        entity_id=invoice.id,
        metadata=metadata,
    )
    await db.commit()

    logger.info(
        f"Invoice {invoice.display_number} cancelled via {source.value}",
        extra={"invoice_id": invoice.id, "user_id": user_id, "manifest_id": manifest_id},
    )
    return OperationSucceeded(
        source=source,
        manifest_id=manifest_id,
        storno_series=storno.new_series,
        storno_number=storno.new_number,
    )


async def mark_invoice_paid(
    db: AsyncSession,
    invoice_id: str,
    user_id: str,
    client_factory: InvoicingClientFactory,
    pin: Optional[str] = None,
    reason: Optional[str] = None,
    collect_type: Optional[str] = None,
) -> OperationOutcome:
    """Collect an issued invoice, gated on DELIVERY manifest evidence or the PIN."""
    collect_type = collect_type or settings.DEFAULT_COLLECT_TYPE

    invoice = await load_invoice_for_update(db, invoice_id)
    if invoice.payment_status == PaymentStatus.PAID or invoice.paid_at is not None:
        raise InvoiceStateError("Invoice is already paid")
    if invoice.status == InvoiceStatus.CANCELLED:
        raise InvoiceStateError("A cancelled invoice cannot be collected")

    decision = await operation_guard.evaluate(db, invoice, ManifestType.DELIVERY)
    blocked = await _authorize(db, invoice, decision, pin, user_id)
    if blocked is not None:
        logger.info(
            f"Collect blocked for invoice {invoice.display_number}: {blocked.reason}",
            extra={"invoice_id": invoice.id, "user_id": user_id},
        )
        await _record_blocked(db, invoice, AuditAction.INVOICE_COLLECT_BLOCKED, blocked, user_id, reason)
        return blocked

    source = OperationSource.MANIFEST if decision.allowed else OperationSource.PIN_OVERRIDE
    manifest_id = decision.manifest_id if decision.allowed else None

    client = ledger_client(invoice, client_factory)
    collected = await client.collect(invoice.series, invoice.number, collect_type)
    if not collected.success:
        logger.error(
            f"Ledger collect failed for invoice {invoice.display_number}: {collected.error}",
            extra={"invoice_id": invoice.id, "user_id": user_id},
        )
        raise ExternalServiceError(f"Invoicing provider error: {collected.error or 'collect failed'}")

    await record_collection(db, invoice, source, manifest_id)

    amount = invoice.order.total_price if invoice.order is not None else None
    common = dict(
        invoice_series=invoice.series,
        invoice_number=invoice.number,
        order_id=invoice.order_id,
        reason=reason,
        collect_type=collect_type,
        amount=str(amount) if amount is not None else None,
    )
    metadata = (
        CollectViaManifestMeta(manifest_id=manifest_id, **common)
        if source == OperationSource.MANIFEST
        else CollectViaOverrideMeta(**common)
    )
    await AuditService.record(
        db,
        user_id=user_id,
        action=AuditAction.INVOICE_PAID,
        entity_type="Invoice",
        entity_id=invoice.id,
        metadata=metadata,
    )
    await db.commit()

    logger.info(
        f"Invoice {invoice.display_number} collected via {source.value} ({collect_type})",
        extra={"invoice_id": invoice.id, "user_id": user_id, "manifest_id": manifest_id},
    )
    return OperationSucceeded(source=source, manifest_id=manifest_id)
