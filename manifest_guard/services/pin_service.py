"""Override PIN approval service.

A single organization-wide six-digit PIN lets a supervisor unblock an invoice
operation that has no manifest evidence. Only a bcrypt hash is stored.
Repeated failures lock the acting user out for ``PIN_LOCKOUT_MINUTES``; the
counter is read back from the audit trail so every worker sees it.
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from manifest_guard.core.config import settings
from manifest_guard.core.enums import AuditAction
from manifest_guard.core.exceptions import ValidationFailureError, OverrideRejectedError
from manifest_guard.core.logging import get_logger
from manifest_guard.core.security import hash_pin, verify_pin_hash
from manifest_guard.models.override_credential import OverrideCredential, DEFAULT_CREDENTIAL_ID
from manifest_guard.schemas.audit import PinChangedMeta, PinVerifiedMeta, PinFailedAttemptMeta
from manifest_guard.services.audit import AuditService

logger = get_logger(__name__)

PIN_PATTERN = re.compile(r"[0-9]{6}")
SETTINGS_ENTITY = "Settings"


class PinVerification(BaseModel):
    valid: bool
    error: Optional[str] = None


def is_valid_pin_format(pin: Optional[str]) -> bool:
    return bool(pin) and PIN_PATTERN.fullmatch(pin) is not None


class PinService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _credential(self) -> Optional[OverrideCredential]:
        return await self.db.get(OverrideCredential, DEFAULT_CREDENTIAL_ID)

    async def is_configured(self) -> bool:
        return await self._credential() is not None

    async def changed_at(self) -> Optional[datetime]:
        credential = await self._credential()
        return credential.changed_at if credential else None

    async def _is_locked_out(self, user_id: str) -> bool:
        since = datetime.now(timezone.utc) - timedelta(minutes=settings.PIN_LOCKOUT_MINUTES)
        failures = await AuditService.count_since(
            self.db,
            action=AuditAction.PIN_FAILED_ATTEMPT,
            since=since,
            user_id=user_id,
        )
        return failures >= settings.PIN_MAX_FAILED_ATTEMPTS

    async def _record_failure(self, user_id: str, reason: str, invoice_id: Optional[str]) -> None:
        await AuditService.record(
            self.db,
            user_id=user_id,
            action=AuditAction.PIN_FAILED_ATTEMPT,
            entity_type=SETTINGS_ENTITY,
            entity_id=DEFAULT_CREDENTIAL_ID,
            metadata=PinFailedAttemptMeta(reason=reason, invoice_id=invoice_id),
        )

    async def verify(
        self,
        pin: str,
        user_id: str,
        invoice_id: Optional[str] = None,
        record_success: bool = True,
    ) -> PinVerification:
        """Check ``pin`` against the stored hash. Never raises on mismatch.

        Failures always write a ``pin.failed_attempt`` entry. Successes write
        ``pin.verified`` unless the caller records the approved operation
        itself. The caller owns the commit.
        """
        credential = await self._credential()
        if credential is None:
            return PinVerification(valid=False, error="Override PIN is not configured")

        if await self._is_locked_out(user_id):
            logger.warning("Override PIN locked out", extra={"user_id": user_id})
            await self._record_failure(user_id, "locked out", invoice_id)
            return PinVerification(
                valid=False,
                error=f"Too many failed PIN attempts. Try again in {settings.PIN_LOCKOUT_MINUTES} minutes.",
            )

        if not is_valid_pin_format(pin) or not verify_pin_hash(pin, credential.pin_hash):
            logger.info("Override PIN mismatch", extra={"user_id": user_id})
            await self._record_failure(user_id, "Invalid PIN entered", invoice_id)
            return PinVerification(valid=False, error="Invalid PIN")

        if record_success:
            await AuditService.record(
                self.db,
                user_id=user_id,
                action=AuditAction.PIN_VERIFIED,
                entity_type=SETTINGS_ENTITY,
                entity_id=DEFAULT_CREDENTIAL_ID,
                metadata=PinVerifiedMeta(invoice_id=invoice_id),
            )
        return PinVerification(valid=True)

    async def set_pin(self, new_pin: str, user_id: str, current_pin: Optional[str] = None) -> bool:
        """Set or replace the PIN and commit. Returns whether one was replaced."""
        if not is_valid_pin_format(new_pin):
            raise ValidationFailureError("PIN must be exactly 6 digits")

        credential = await self._credential()
        if credential is not None:
            if not current_pin:
                raise ValidationFailureError("Current PIN is required to change PIN")
            verification = await self.verify(current_pin, user_id)
            if not verification.valid:
                await self.db.commit()
                raise OverrideRejectedError(
                    "Current PIN is incorrect" if verification.error == "Invalid PIN" else verification.error
                )

        now = datetime.now(timezone.utc)
        replaced = credential is not None
        if credential is None:
            credential = OverrideCredential(id=DEFAULT_CREDENTIAL_ID, pin_hash=hash_pin(new_pin), changed_at=now, changed_by=user_id)
            self.db.add(credential)
        else:
            credential.pin_hash = hash_pin(new_pin)
            credential.changed_at = now
            credential.changed_by = user_id

        await AuditService.record(
            self.db,
            user_id=user_id,
            action=AuditAction.PIN_CHANGED,
            entity_type=SETTINGS_ENTITY,
            entity_id=DEFAULT_CREDENTIAL_ID,
            metadata=PinChangedMeta(replaced_existing=replaced),
        )
        await self.db.commit()
        logger.info("Override PIN %s", "changed" if replaced else "set", extra={"user_id": user_id})
        return replaced
