"""Override PIN service tests."""
import pytest

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from manifest_guard.core.config import settings
from manifest_guard.core.enums import AuditAction
from manifest_guard.core.exceptions import ValidationFailureError, OverrideRejectedError
from manifest_guard.models import AuditLog, OverrideCredential
from manifest_guard.services.pin_service import PinService, is_valid_pin_format


async def _count(db: AsyncSession, action: AuditAction) -> int:
    return (
        await db.execute(select(func.count(AuditLog.id)).where(AuditLog.action == action.value))
    ).scalar()


@pytest.mark.parametrize("pin,expected", [
    ("123456", True),
    ("000000", True),
    ("12345", False),
    ("1234567", False),
    ("12a456", False),
    ("", False),
    (None, False),
])
def test_pin_format(pin, expected):
    assert is_valid_pin_format(pin) is expected


@pytest.mark.asyncio
async def test_set_pin_stores_only_a_hash(db_session: AsyncSession, test_user):
    service = PinService(db_session)

    replaced = await service.set_pin("246810", test_user.id)

    assert replaced is False
    assert await service.is_configured() is True
    credential = await db_session.get(OverrideCredential, "default")
    assert credential.pin_hash != "246810"
    assert credential.pin_hash.startswith("$2")
    assert credential.changed_by == test_user.id
    assert await _count(db_session, AuditAction.PIN_CHANGED) == 1


@pytest.mark.asyncio
async def test_set_pin_rejects_bad_format(db_session: AsyncSession, test_user):
    with pytest.raises(ValidationFailureError):
        await PinService(db_session).set_pin("12ab56", test_user.id)


@pytest.mark.asyncio
async def test_change_pin_requires_current_pin(db_session: AsyncSession, test_user):
    service = PinService(db_session)
    await service.set_pin("111111", test_user.id)

    with pytest.raises(ValidationFailureError):
        await service.set_pin("222222", test_user.id)

    with pytest.raises(OverrideRejectedError, match="Current PIN is incorrect"):
        await service.set_pin("222222", test_user.id, current_pin="999999")

    assert await service.set_pin("222222", test_user.id, current_pin="111111") is True
    assert (await service.verify("222222", test_user.id)).valid is True
    assert (await service.verify("111111", test_user.id)).valid is False


@pytest.mark.asyncio
async def test_verify_without_configured_pin(db_session: AsyncSession, test_user):
    verification = await PinService(db_session).verify("123456", test_user.id)

    assert verification.valid is False
    assert verification.error == "Override PIN is not configured"


@pytest.mark.asyncio
async def test_verify_records_outcomes(db_session: AsyncSession, test_user):
    service = PinService(db_session)
    await service.set_pin("135790", test_user.id)

    assert (await service.verify("135790", test_user.id)).valid is True
    wrong = await service.verify("000000", test_user.id, invoice_id="inv-1")
    await db_session.commit()

    assert wrong.valid is False
    assert wrong.error == "Invalid PIN"
    assert await _count(db_session, AuditAction.PIN_VERIFIED) == 1
    assert await _count(db_session, AuditAction.PIN_FAILED_ATTEMPT) == 1


@pytest.mark.asyncio
async def test_repeated_failures_lock_the_user_out(db_session: AsyncSession, test_user, operator_user):
    service = PinService(db_session)
    await service.set_pin("864200", test_user.id)

    for _ in range(settings.PIN_MAX_FAILED_ATTEMPTS):
        assert (await service.verify("000000", operator_user.id)).valid is False
    await db_session.commit()

    # Even the correct PIN is refused while locked out
    locked = await service.verify("864200", operator_user.id)
    assert locked.valid is False
    assert "Too many failed PIN attempts" in locked.error

    # The lockout is per user
    assert (await service.verify("864200", test_user.id)).valid is True
