"""Guarded invoice operation endpoints."""
from typing import Optional, Union

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from manifest_guard.core.dependencies import CurrentUser, DbSession, InvoicingFactory
from manifest_guard.schemas.invoice import (
    CancelInvoiceRequest, CollectInvoiceRequest, OperationSuccessResponse,
    OperationBlockedResponse, OperationStatusResponse, InvoiceStateSnapshot,
)
from manifest_guard.services import operation_guard
from manifest_guard.services.invoice_operations import (
    cancel_invoice, mark_invoice_paid, OperationBlocked, OperationOutcome,
)


router = APIRouter()

_BLOCKED = {status.HTTP_403_FORBIDDEN: {"model": OperationBlockedResponse}}


def _to_response(outcome: OperationOutcome) -> Union[OperationSuccessResponse, JSONResponse]:
    if isinstance(outcome, OperationBlocked):
        body = OperationBlockedResponse(reason=outcome.reason, manifest_id=outcome.manifest_id)
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content=body.model_dump(mode="json", by_alias=True),
        )
    return OperationSuccessResponse(
        source=outcome.source,
        manifest_id=outcome.manifest_id,
        storno_series=outcome.storno_series,
        storno_number=outcome.storno_number,
    )


@router.post("/{invoice_id}/cancel", response_model=OperationSuccessResponse, responses=_BLOCKED)
async def cancel(
    invoice_id: str,
    user: CurrentUser,
    db: DbSession,
    client_factory: InvoicingFactory,
    request: Optional[CancelInvoiceRequest] = None,
):
    """Storno an invoice. Needs a confirmed return manifest or the override PIN."""
    request = request or CancelInvoiceRequest()
    outcome = await cancel_invoice(
        db, invoice_id, user.id, client_factory, pin=request.pin, reason=request.reason
    )
    return _to_response(outcome)


@router.post("/{invoice_id}/collect", response_model=OperationSuccessResponse, responses=_BLOCKED)
async def collect(
    invoice_id: str,
    user: CurrentUser,
    db: DbSession,
    client_factory: InvoicingFactory,
    request: Optional[CollectInvoiceRequest] = None,
):
    """Mark an invoice paid. Needs a confirmed delivery manifest or the override PIN."""
    request = request or CollectInvoiceRequest()
    outcome = await mark_invoice_paid(
        db,
        invoice_id,
        user.id,
        client_factory,
        pin=request.pin,
        reason=request.reason,
        collect_type=request.collect_type,
    )
    return _to_response(outcome)


@router.get("/{invoice_id}/operation-status", response_model=OperationStatusResponse)
async def get_operation_status(
    invoice_id: str,
    user: CurrentUser,
    db: DbSession,
):
    """Which operations the invoice currently allows without an override."""
    invoice, can_cancel, can_mark_paid = await operation_guard.operation_status(db, invoice_id)
    return OperationStatusResponse(
        can_cancel=can_cancel,
        can_mark_paid=can_mark_paid,
        invoice=InvoiceStateSnapshot.model_validate(invoice),
    )
