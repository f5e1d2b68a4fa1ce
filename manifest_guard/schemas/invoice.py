"""Guarded invoice operation schemas.

Request/response keys follow the back office's camelCase JSON contract.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from manifest_guard.core.enums import (
    InvoiceStatus, PaymentStatus, ManifestType, OperationSource
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CancelInvoiceRequest(_CamelModel):
    pin: Optional[str] = Field(None, max_length=32)
    reason: Optional[str] = Field(None, max_length=500)


class CollectInvoiceRequest(_CamelModel):
    pin: Optional[str] = Field(None, max_length=32)
    reason: Optional[str] = Field(None, max_length=500)
    collect_type: Optional[str] = Field(None, max_length=50)


class OperationSuccessResponse(_CamelModel):
    success: bool = True
    source: OperationSource
    manifest_id: Optional[str] = None
    storno_series: Optional[str] = None
    storno_number: Optional[str] = None


class OperationBlockedResponse(_CamelModel):
    success: bool = False
    blocked: bool = True
    requires_override: bool = True
    reason: str
    manifest_id: Optional[str] = None


class GuardDecision(_CamelModel):
    """Outcome of an operation guard check."""
    allowed: bool
    requires_override: bool
    source: Optional[OperationSource] = None
    reason: Optional[str] = None
    manifest_id: Optional[str] = None
    manifest_type: Optional[ManifestType] = None


class InvoiceStateSnapshot(_CamelModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    status: InvoiceStatus
    payment_status: PaymentStatus
    cancelled_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None


class OperationStatusResponse(_CamelModel):
    can_cancel: GuardDecision
    can_mark_paid: GuardDecision
    invoice: InvoiceStateSnapshot
