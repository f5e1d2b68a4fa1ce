"""Bearer token and user provisioning tests."""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from manifest_guard.core.config import settings
from manifest_guard.core.enums import UserRole
from manifest_guard.core.security import create_access_token, decode_token
from manifest_guard.models import User


@pytest.mark.asyncio
async def test_invalid_token(client: AsyncClient):
    response = await client.get("/api/v1/manifests", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired token"


@pytest.mark.asyncio
async def test_unknown_user_is_provisioned(client: AsyncClient, db_session: AsyncSession):
    user_id = str(uuid.uuid4())
    token = create_access_token(user_id=user_id, role="manager", email="new@example.com")

    response = await client.get("/api/v1/manifests", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    user = await db_session.get(User, user_id)
    assert user is not None
    assert user.email == "new@example.com"
    assert user.role == UserRole.MANAGER


@pytest.mark.asyncio
async def test_unknown_role_defaults_to_operator(client: AsyncClient, db_session: AsyncSession):
    user_id = str(uuid.uuid4())
    token = create_access_token(user_id=user_id, role="authenticated")

    response = await client.get("/api/v1/settings/pin", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 403
    user = await db_session.get(User, user_id)
    assert user.role == UserRole.OPERATOR


@pytest.mark.asyncio
async def test_inactive_user(client: AsyncClient, db_session: AsyncSession, operator_user, operator_headers):
    operator_user.is_active = False
    await db_session.commit()

    response = await client.get("/api/v1/manifests", headers=operator_headers)

    assert response.status_code == 403


def test_role_falls_back_to_app_metadata():
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {"sub": "u1", "exp": now + timedelta(minutes=5), "iat": now, "app_metadata": {"role": "ADMIN"}},
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )

    assert decode_token(token).role == "ADMIN"


def test_garbage_token():
    assert decode_token("garbage") is None


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Request-ID" in response.headers
