"""Invoice operation API tests."""
import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from manifest_guard.core.enums import InvoiceStatus, OperationSource, AuditAction
from manifest_guard.models import AuditLog
from manifest_guard.services.pin_service import PinService

PIN = "123456"


@pytest.mark.asyncio
async def test_cancel_blocked_then_allowed_with_override(
    client: AsyncClient,
    auth_headers: dict,
    db_session: AsyncSession,
    test_user,
    make_invoice,
):
    """No manifest evidence: 403 without PIN, cancelled with the configured PIN."""
    await PinService(db_session).set_pin(PIN, test_user.id)
    invoice = await make_invoice()

    blocked = await client.post(f"/api/v1/invoices/{invoice.id}/cancel", headers=auth_headers, json={})

    assert blocked.status_code == 403
    data = blocked.json()
    assert data["success"] is False
    assert data["blocked"] is True
    assert data["requiresOverride"] is True
    assert "return manifest" in data["reason"]

    response = await client.post(
        f"/api/v1/invoices/{invoice.id}/cancel",
        headers=auth_headers,
        json={"pin": PIN, "reason": "Refused at delivery"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["source"] == "pin-override"
    await db_session.refresh(invoice)
    assert invoice.status == InvoiceStatus.CANCELLED
    assert invoice.cancellation_source == OperationSource.PIN_OVERRIDE
    entries = (
        await db_session.execute(
            select(AuditLog).where(AuditLog.entity_id == invoice.id).order_by(AuditLog.created_at)
        )
    ).scalars().all()
    assert [entry.action for entry in entries] == [
        AuditAction.INVOICE_CANCEL_BLOCKED.value,
        AuditAction.INVOICE_CANCELLED.value,
    ]


@pytest.mark.asyncio
async def test_cancel_without_body(client: AsyncClient, auth_headers: dict, make_invoice):
    invoice = await make_invoice()

    response = await client.post(f"/api/v1/invoices/{invoice.id}/cancel", headers=auth_headers)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_cancel_wrong_pin(client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_user, make_invoice):
    await PinService(db_session).set_pin(PIN, test_user.id)
    invoice = await make_invoice()

    response = await client.post(
        f"/api/v1/invoices/{invoice.id}/cancel", headers=auth_headers, json={"pin": "654321"}
    )

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Invalid PIN"}


@pytest.mark.asyncio
async def test_cancel_already_cancelled(
    client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_user, make_invoice
):
    await PinService(db_session).set_pin(PIN, test_user.id)
    invoice = await make_invoice()
    await client.post(f"/api/v1/invoices/{invoice.id}/cancel", headers=auth_headers, json={"pin": PIN})

    response = await client.post(f"/api/v1/invoices/{invoice.id}/cancel", headers=auth_headers, json={"pin": PIN})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Invoice is already cancelled"}


@pytest.mark.asyncio
async def test_ledger_error_maps_to_bad_request(
    client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_user, make_invoice, ledger
):
    await PinService(db_session).set_pin(PIN, test_user.id)
    invoice = await make_invoice()
    ledger.error = "Provider unavailable"

    response = await client.post(
        f"/api/v1/invoices/{invoice.id}/collect", headers=auth_headers, json={"pin": PIN}
    )

    assert response.status_code == 400
    assert "Provider unavailable" in response.json()["error"]


@pytest.mark.asyncio
async def test_collect_with_override_uses_collect_type(
    client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_user, make_invoice, ledger
):
    await PinService(db_session).set_pin(PIN, test_user.id)
    invoice = await make_invoice()

    response = await client.post(
        f"/api/v1/invoices/{invoice.id}/collect",
        headers=auth_headers,
        json={"pin": PIN, "collectType": "Ordin de plata"},
    )

    assert response.status_code == 200
    assert response.json()["source"] == "pin-override"
    assert ledger.collect_calls[0][2] == "Ordin de plata"


@pytest.mark.asyncio
async def test_operation_status(client: AsyncClient, operator_headers: dict, make_invoice):
    invoice = await make_invoice()

    response = await client.get(f"/api/v1/invoices/{invoice.id}/operation-status", headers=operator_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["canCancel"]["allowed"] is False
    assert data["canCancel"]["requiresOverride"] is True
    assert data["canMarkPaid"]["allowed"] is False
    assert data["invoice"]["status"] == "issued"
    assert data["invoice"]["paymentStatus"] == "unpaid"


@pytest.mark.asyncio
async def test_unknown_invoice(client: AsyncClient, auth_headers: dict):
    response = await client.post("/api/v1/invoices/missing/cancel", headers=auth_headers, json={})

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Invoice not found"}


@pytest.mark.asyncio
async def test_requires_authentication(client: AsyncClient, make_invoice):
    invoice = await make_invoice()

    response = await client.post(f"/api/v1/invoices/{invoice.id}/cancel", json={})

    assert response.status_code in (401, 403)
