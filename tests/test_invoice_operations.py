"""Guarded cancel / collect tests."""
import pytest
from datetime import date
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from manifest_guard.core.enums import (
    ManifestType, ManifestStatus, InvoiceStatus, PaymentStatus, OperationSource, AuditAction
)
from manifest_guard.core.exceptions import (
    InvoiceStateError, ExternalServiceError, OverrideRejectedError, ValidationFailureError
)
from manifest_guard.core.invoicing import StornoResult
from manifest_guard.models import AuditLog, Company, Invoice, Order
from manifest_guard.services import manifest_store
from manifest_guard.services.invoice_operations import (
    cancel_invoice, mark_invoice_paid, resolve_billing_company, load_invoice_for_update,
    OperationBlocked, OperationSucceeded,
)
from manifest_guard.services.manifest_store import NewManifestItem
from manifest_guard.services.pin_service import PinService

PIN = "424242"


async def _confirmed_manifest(db, manifest_type, invoice):
    manifest = await manifest_store.create_manifest(
        db,
        manifest_type,
        date(2026, 10, 1),
        [NewManifestItem(awb_number=f"AWB-{invoice.id[:8]}", order_id=invoice.order_id, invoice_id=invoice.id)],
    )
    await db.commit()
    await manifest_store.transition_manifest(db, manifest.id, ManifestStatus.CONFIRMED, None)
    return manifest


async def _invoice_entries(db: AsyncSession, invoice_id: str) -> list[AuditLog]:
    result = await db.execute(
        select(AuditLog).where(AuditLog.entity_type == "Invoice", AuditLog.entity_id == invoice_id)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_cancel_without_evidence_or_pin_is_blocked(db_session: AsyncSession, test_user, make_invoice, ledger):
    invoice = await make_invoice()

    outcome = await cancel_invoice(db_session, invoice.id, test_user.id, ledger.factory)

    assert isinstance(outcome, OperationBlocked)
    assert ledger.storno_calls == []
    await db_session.refresh(invoice)
    assert invoice.status == InvoiceStatus.ISSUED
    entries = await _invoice_entries(db_session, invoice.id)
    assert len(entries) == 1
    assert entries[0].action == AuditAction.INVOICE_CANCEL_BLOCKED.value
    assert entries[0].details["kind"] == "operation-blocked"
    assert entries[0].details["operation"] == "cancel"
    assert "not in a confirmed return manifest" in entries[0].details["blocked_reason"]


@pytest.mark.asyncio
async def test_cancel_with_override_pin(db_session: AsyncSession, test_user, make_invoice, ledger):
    """No manifest, correct PIN: cancelled via override with a single audit entry."""
    await PinService(db_session).set_pin(PIN, test_user.id)
    invoice = await make_invoice(series="TST", number="1001")

    outcome = await cancel_invoice(
        db_session, invoice.id, test_user.id, ledger.factory, pin=PIN, reason="Customer refused"
    )

    assert isinstance(outcome, OperationSucceeded)
    assert outcome.source == OperationSource.PIN_OVERRIDE
    assert outcome.manifest_id is None
    assert ledger.storno_calls == [("TST", "1001")]
    await db_session.refresh(invoice)
    assert invoice.status == InvoiceStatus.CANCELLED
    assert invoice.cancellation_source == OperationSource.PIN_OVERRIDE
    assert invoice.cancel_reason == "Customer refused"
    assert invoice.storno_number == "1001-S"
    entries = await _invoice_entries(db_session, invoice.id)
    assert len(entries) == 1
    assert entries[0].action == AuditAction.INVOICE_CANCELLED.value
    assert entries[0].details["kind"] == "cancel-via-override"


@pytest.mark.asyncio
async def test_cancel_with_confirmed_return_manifest(db_session: AsyncSession, test_user, make_invoice, ledger):
    invoice = await make_invoice()
    manifest = await _confirmed_manifest(db_session, ManifestType.RETURN, invoice)

    outcome = await cancel_invoice(db_session, invoice.id, test_user.id, ledger.factory)

    assert outcome.source == OperationSource.MANIFEST
    assert outcome.manifest_id == manifest.id
    await db_session.refresh(invoice)
    assert invoice.cancelled_from_manifest_id == manifest.id
    order = await db_session.get(Order, invoice.order_id)
    await db_session.refresh(order)
    assert order.status == "INVOICE_PENDING"
    entries = await _invoice_entries(db_session, invoice.id)
    assert entries[0].details["kind"] == "cancel-via-manifest"
    assert entries[0].details["manifest_id"] == manifest.id


@pytest.mark.asyncio
async def test_cancel_twice_is_rejected(db_session: AsyncSession, test_user, make_invoice, ledger):
    await PinService(db_session).set_pin(PIN, test_user.id)
    invoice = await make_invoice()
    await cancel_invoice(db_session, invoice.id, test_user.id, ledger.factory, pin=PIN)

    with pytest.raises(InvoiceStateError, match="already cancelled"):
        await cancel_invoice(db_session, invoice.id, test_user.id, ledger.factory, pin=PIN)

    assert len(ledger.storno_calls) == 1
    assert len(await _invoice_entries(db_session, invoice.id)) == 1


@pytest.mark.asyncio
async def test_wrong_pin_is_rejected_and_recorded(db_session: AsyncSession, test_user, make_invoice, ledger):
    await PinService(db_session).set_pin(PIN, test_user.id)
    invoice = await make_invoice()

    with pytest.raises(OverrideRejectedError, match="Invalid PIN"):
        await cancel_invoice(db_session, invoice.id, test_user.id, ledger.factory, pin="000000")

    assert ledger.storno_calls == []
    failures = (
        await db_session.execute(
            select(AuditLog).where(AuditLog.action == AuditAction.PIN_FAILED_ATTEMPT.value)
        )
    ).scalars().all()
    assert len(failures) == 1
    assert failures[0].details["invoice_id"] == invoice.id


@pytest.mark.asyncio
async def test_ledger_failure_leaves_invoice_untouched(db_session: AsyncSession, test_user, make_invoice, ledger):
    await PinService(db_session).set_pin(PIN, test_user.id)
    invoice = await make_invoice()
    ledger.error = "Document already cancelled"

    with pytest.raises(ExternalServiceError, match="Document already cancelled"):
        await cancel_invoice(db_session, invoice.id, test_user.id, ledger.factory, pin=PIN)

    await db_session.refresh(invoice)
    assert invoice.status == InvoiceStatus.ISSUED
    assert await _invoice_entries(db_session, invoice.id) == []


@pytest.mark.asyncio
async def test_missing_credentials(db_session: AsyncSession, test_user, make_invoice, ledger, company):
    await PinService(db_session).set_pin(PIN, test_user.id)
    company.invoicing_token = None
    await db_session.commit()
    invoice = await make_invoice()

    with pytest.raises(ValidationFailureError, match="credentials"):
        await cancel_invoice(db_session, invoice.id, test_user.id, ledger.factory, pin=PIN)


@pytest.mark.asyncio
async def test_mark_paid_with_delivery_manifest(db_session: AsyncSession, test_user, make_invoice, ledger):
    invoice = await make_invoice(total_price="249.90")
    manifest = await _confirmed_manifest(db_session, ManifestType.DELIVERY, invoice)

    outcome = await mark_invoice_paid(db_session, invoice.id, test_user.id, ledger.factory, collect_type="Card")

    assert outcome.source == OperationSource.MANIFEST
    assert ledger.collect_calls == [(invoice.series, invoice.number, "Card")]
    await db_session.refresh(invoice)
    assert invoice.payment_status == PaymentStatus.PAID
    assert invoice.paid_amount == Decimal("249.90")
    assert invoice.paid_from_manifest_id == manifest.id
    entries = await _invoice_entries(db_session, invoice.id)
    assert entries[0].action == AuditAction.INVOICE_PAID.value
    assert entries[0].details["kind"] == "collect-via-manifest"
    assert entries[0].details["collect_type"] == "Card"


@pytest.mark.asyncio
async def test_return_manifest_does_not_authorize_collect(db_session: AsyncSession, test_user, make_invoice, ledger):
    invoice = await make_invoice()
    await _confirmed_manifest(db_session, ManifestType.RETURN, invoice)

    outcome = await mark_invoice_paid(db_session, invoice.id, test_user.id, ledger.factory)

    assert isinstance(outcome, OperationBlocked)
    assert ledger.collect_calls == []
    entries = await _invoice_entries(db_session, invoice.id)
    assert [entry.action for entry in entries] == [AuditAction.INVOICE_COLLECT_BLOCKED.value]
    assert entries[0].details["operation"] == "collect"


@pytest.mark.asyncio
async def test_cancelled_invoice_cannot_be_collected(db_session: AsyncSession, test_user, make_invoice, ledger):
    await PinService(db_session).set_pin(PIN, test_user.id)
    invoice = await make_invoice()
    await cancel_invoice(db_session, invoice.id, test_user.id, ledger.factory, pin=PIN)

    with pytest.raises(InvoiceStateError):
        await mark_invoice_paid(db_session, invoice.id, test_user.id, ledger.factory, pin=PIN)


@pytest.mark.asyncio
async def test_billing_company_precedence(db_session: AsyncSession, make_invoice, company):
    own = Company(name="Invoice Company", vat_code="RO999")
    db_session.add(own)
    await db_session.commit()

    through_store = await make_invoice()
    direct = await make_invoice(company_id=own.id)
    orphan = await make_invoice(store_id=None)

    through_store, direct, orphan = [
        await load_invoice_for_update(db_session, invoice.id) for invoice in (through_store, direct, orphan)
    ]

    assert resolve_billing_company(through_store).id == company.id
    assert resolve_billing_company(direct).id == own.id
    assert resolve_billing_company(orphan) is None


@pytest.mark.asyncio
async def test_concurrent_change_during_storno_is_a_conflict(
    db_session: AsyncSession, test_user, make_invoice, ledger
):
    """The final UPDATE only applies to an invoice that is still issued."""
    await PinService(db_session).set_pin(PIN, test_user.id)
    invoice = await make_invoice()

    async def storno_racing(series, number):
        # Another operation lands while the ledger call is in flight
        await db_session.execute(
            update(Invoice).where(Invoice.id == invoice.id).values(status=InvoiceStatus.CANCELLED)
        )
        return StornoResult(success=True, new_series=series, new_number=f"{number}-S")

    ledger.storno = storno_racing

    with pytest.raises(InvoiceStateError, match="modified by another operation"):
        await cancel_invoice(db_session, invoice.id, test_user.id, ledger.factory, pin=PIN)

    cancelled = (
        await db_session.execute(
            select(AuditLog).where(AuditLog.action == AuditAction.INVOICE_CANCELLED.value)
        )
    ).scalars().all()
    assert cancelled == []
