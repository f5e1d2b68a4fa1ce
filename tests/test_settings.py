"""Override PIN settings and audit log API tests."""
import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_pin_status_and_set(client: AsyncClient, auth_headers: dict):
    status = await client.get("/api/v1/settings/pin", headers=auth_headers)
    assert status.status_code == 200
    assert status.json()["configured"] is False

    response = await client.post("/api/v1/settings/pin", headers=auth_headers, json={"newPin": "112233"})
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "PIN set successfully"}

    status = await client.get("/api/v1/settings/pin", headers=auth_headers)
    data = status.json()
    assert data["configured"] is True
    assert data["changed_at"] is not None
    assert "pin_hash" not in data


@pytest.mark.asyncio
async def test_change_pin(client: AsyncClient, auth_headers: dict):
    await client.post("/api/v1/settings/pin", headers=auth_headers, json={"newPin": "112233"})

    missing = await client.post("/api/v1/settings/pin", headers=auth_headers, json={"newPin": "445566"})
    assert missing.status_code == 400
    assert missing.json()["error"] == "Current PIN is required to change PIN"

    wrong = await client.post(
        "/api/v1/settings/pin", headers=auth_headers, json={"newPin": "445566", "currentPin": "000000"}
    )
    assert wrong.status_code == 400
    assert wrong.json()["error"] == "Current PIN is incorrect"

    changed = await client.post(
        "/api/v1/settings/pin", headers=auth_headers, json={"newPin": "445566", "currentPin": "112233"}
    )
    assert changed.status_code == 200
    assert changed.json()["message"] == "PIN changed successfully"


@pytest.mark.asyncio
async def test_invalid_pin_format(client: AsyncClient, auth_headers: dict):
    response = await client.post("/api/v1/settings/pin", headers=auth_headers, json={"newPin": "12345"})

    assert response.status_code == 400
    assert response.json()["error"] == "PIN must be exactly 6 digits"


@pytest.mark.asyncio
async def test_operator_cannot_manage_pin(client: AsyncClient, operator_headers: dict):
    response = await client.post("/api/v1/settings/pin", headers=operator_headers, json={"newPin": "112233"})

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_audit_log_listing(client: AsyncClient, auth_headers: dict, test_user):
    await client.post("/api/v1/settings/pin", headers=auth_headers, json={"newPin": "112233"})
    await client.post(
        "/api/v1/settings/pin", headers=auth_headers, json={"newPin": "445566", "currentPin": "000000"}
    )

    response = await client.get("/api/v1/audit-logs?entity_type=Settings", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    actions = {entry["action"] for entry in data["entries"]}
    assert actions == {"pin.changed", "pin.failed_attempt"}
    assert all(entry["user_id"] == test_user.id for entry in data["entries"])

    filtered = await client.get("/api/v1/audit-logs?action=pin.changed", headers=auth_headers)
    assert filtered.json()["total"] == 1
    assert filtered.json()["entries"][0]["details"]["kind"] == "pin-changed"
