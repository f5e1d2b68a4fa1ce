"""Bulk processing of confirmed manifests.

A RETURN manifest storno-s every linked invoice, a DELIVERY manifest collects
every linked invoice. Items are independent: each one is committed on its
own, so the local state follows the ledger even if a later item fails. The
manifest ends PROCESSED, which releases its AWBs.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from manifest_guard.core.config import settings
from manifest_guard.core.enums import (
    ManifestType, ManifestStatus, ManifestItemStatus, InvoiceStatus,
    PaymentStatus, OperationSource, AuditAction
)
from manifest_guard.core.exceptions import AppException, ConflictError, ValidationFailureError
from manifest_guard.core.invoicing import InvoicingClientFactory
from manifest_guard.core.logging import get_logger
from manifest_guard.models.manifest import ManifestItem
from manifest_guard.schemas.audit import BulkItemProcessedMeta
from manifest_guard.schemas.manifest import BulkProcessResponse, BulkItemError
from manifest_guard.services.audit import AuditService
from manifest_guard.services.invoice_operations import (
    load_invoice_for_update, record_cancellation, record_collection, ledger_client
)
from manifest_guard.services.manifest_store import get_manifest, apply_transition

logger = get_logger(__name__)


class _ItemFailed(Exception):
    """Per-item failure; becomes an ERROR item, the batch continues."""


class _ItemSkipped(Exception):
    """Nothing to do for the item."""

    def __init__(self, message: str, item_status: ManifestItemStatus):
        super().__init__(message)
        self.item_status = item_status


def _record_item_error(result: BulkProcessResponse, item_id: str, awb_number: str, message: str) -> None:
    result.error_count += 1
    result.errors.append(BulkItemError(
        item_id=item_id,
        awb_number=awb_number,
        invoice_number=None,
        error=message,
    ))


def _finish_item(item: ManifestItem, status: ManifestItemStatus, message: Optional[str] = None) -> None:
    item.status = status
    item.error_message = message
    if status == ManifestItemStatus.PROCESSED:
        item.processed_at = datetime.now(timezone.utc)


async def _storno_item(db, item, manifest_id, client_factory, collect_type):
    invoice = await load_invoice_for_update(db, item.invoice_id)
    if invoice.status == InvoiceStatus.CANCELLED or invoice.cancelled_at is not None:
        raise _ItemSkipped("Invoice already cancelled", ManifestItemStatus.PROCESSED)

    client = ledger_client(invoice, client_factory)
    storno = await client.storno(invoice.series, invoice.number)
    if not storno.success:
        raise _ItemFailed(storno.error or "Ledger storno failed")

    await record_cancellation(
        db, invoice, OperationSource.MANIFEST, manifest_id,
        f"Return manifest {manifest_id}", storno,
    )
    return AuditAction.INVOICE_CANCELLED_BULK, BulkItemProcessedMeta(
        manifest_id=manifest_id,
        awb_number=item.awb_number,
        invoice_series=invoice.series,
        invoice_number=invoice.number,
        storno_series=storno.new_series,
        storno_number=storno.new_number,
    )


async def _collect_item(db, item, manifest_id, client_factory, collect_type):
    invoice = await load_invoice_for_update(db, item.invoice_id)
    if invoice.payment_status == PaymentStatus.PAID or invoice.paid_at is not None:
        raise _ItemSkipped("Invoice already paid", ManifestItemStatus.PROCESSED)
    if invoice.status == InvoiceStatus.CANCELLED:
        raise _ItemSkipped("Invoice is cancelled", ManifestItemStatus.ERROR)

    client = ledger_client(invoice, client_factory)
    collected = await client.collect(invoice.series, invoice.number, collect_type)
    if not collected.success:
        raise _ItemFailed(collected.error or "Ledger collect failed")

    await record_collection(db, invoice, OperationSource.MANIFEST, manifest_id)
    return AuditAction.INVOICE_PAID_BULK, BulkItemProcessedMeta(
        manifest_id=manifest_id,
        awb_number=item.awb_number,
        invoice_series=invoice.series,
        invoice_number=invoice.number,
        collect_type=collect_type,
    )


_HANDLERS = {
    ManifestType.RETURN: _storno_item,
    ManifestType.DELIVERY: _collect_item,
}


async def _process(
    db: AsyncSession,
    manifest_id: str,
    manifest_type: ManifestType,
    user_id: str,
    client_factory: InvoicingClientFactory,
    collect_type: Optional[str] = None,
) -> BulkProcessResponse:
    manifest = await get_manifest(db, manifest_id, for_update=True)
    if manifest.type != manifest_type:
        raise ValidationFailureError(f"Manifest {manifest.id} is not a {manifest_type.value} manifest")
    if manifest.status != ManifestStatus.CONFIRMED:
        raise ConflictError(
            f"Manifest must be CONFIRMED before processing (current: {manifest.status.value})"
        )

    handler = _HANDLERS[manifest.type]
    collect_type = collect_type or settings.DEFAULT_COLLECT_TYPE
    result = BulkProcessResponse(success=True)
    pending = [item.id for item in manifest.items if item.status == ManifestItemStatus.PENDING]

    for item_id in pending:
        item = await db.get(ManifestItem, item_id)
        awb_number, invoice_id = item.awb_number, item.invoice_id
        result.total_processed += 1

        if not invoice_id:
            result.skipped_count += 1
            _finish_item(item, ManifestItemStatus.ERROR, "No invoice linked to this AWB")
            await db.commit()
            continue

        try:
            action, metadata = await handler(db, item, manifest_id, client_factory, collect_type)
        except _ItemSkipped as e:
            result.skipped_count += 1
            _finish_item(item, e.item_status, str(e))
        except (_ItemFailed, AppException) as e:
            _record_item_error(result, item_id, awb_number, str(e))
            _finish_item(item, ManifestItemStatus.ERROR, str(e))
            logger.warning(
                f"Manifest item {awb_number} failed: {e}",
                extra={"manifest_id": manifest_id, "invoice_id": invoice_id},
            )
        except Exception as e:
            # Only this item is rolled back and marked ERROR; later items still run
            logger.exception(
                f"Manifest item {awb_number} failed unexpectedly",
                extra={"manifest_id": manifest_id, "invoice_id": invoice_id},
            )
            await db.rollback()
            item = await db.get(ManifestItem, item_id)
            message = f"Unexpected error: {type(e).__name__}"
            _record_item_error(result, item_id, awb_number, message)
            _finish_item(item, ManifestItemStatus.ERROR, message)
        else:
            result.success_count += 1
            _finish_item(item, ManifestItemStatus.PROCESSED)
            await AuditService.record(
                db,
                user_id=user_id,
                action=action,
                entity_type="Invoice",
                entity_id=invoice_id,
                metadata=metadata,
            )
        await db.commit()

    manifest = await get_manifest(db, manifest_id, for_update=True)
    await apply_transition(db, manifest, ManifestStatus.PROCESSED, user_id)
    await db.commit()

    result.success = result.success_count > 0 or result.error_count == 0
    logger.info(
        f"Manifest processed: {result.success_count} ok, {result.error_count} errors, "
        f"{result.skipped_count} skipped",
        extra={"manifest_id": manifest_id, "user_id": user_id},
    )
    return result


async def process_return_manifest(
    db: AsyncSession,
    manifest_id: str,
    user_id: str,
    client_factory: InvoicingClientFactory,
) -> BulkProcessResponse:
    """Storno every invoice of a CONFIRMED return manifest."""
    return await _process(db, manifest_id, ManifestType.RETURN, user_id, client_factory)


async def process_delivery_manifest(
    db: AsyncSession,
    manifest_id: str,
    user_id: str,
    client_factory: InvoicingClientFactory,
    collect_type: Optional[str] = None,
) -> BulkProcessResponse:
    """Collect every invoice of a CONFIRMED delivery manifest."""
    return await _process(db, manifest_id, ManifestType.DELIVERY, user_id, client_factory, collect_type)


async def process_manifest(
    db: AsyncSession,
    manifest_id: str,
    user_id: str,
    client_factory: InvoicingClientFactory,
    collect_type: Optional[str] = None,
) -> BulkProcessResponse:
    """Dispatch on the manifest's own type."""
    manifest = await get_manifest(db, manifest_id)
    if manifest.type == ManifestType.RETURN:
        return await process_return_manifest(db, manifest_id, user_id, client_factory)
    return await process_delivery_manifest(db, manifest_id, user_id, client_factory, collect_type)
