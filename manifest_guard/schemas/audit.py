"""Audit trail schemas.

Metadata is a tagged variant: one shape per action kind, discriminated on
``kind``, so every field written to ``audit_logs.metadata`` is declared here.
"""
from datetime import datetime, date
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from manifest_guard.core.enums import ManifestStatus, ManifestType


class _InvoiceOperationMeta(BaseModel):
    invoice_series: Optional[str] = None
    invoice_number: Optional[str] = None
    order_id: Optional[str] = None
    reason: Optional[str] = None


class CancelViaManifestMeta(_InvoiceOperationMeta):
    kind: Literal["cancel-via-manifest"] = "cancel-via-manifest"
    source: Literal["manifest"] = "manifest"
    manifest_id: str
    storno_series: Optional[str] = None
    storno_number: Optional[str] = None


class CancelViaOverrideMeta(_InvoiceOperationMeta):
    kind: Literal["cancel-via-override"] = "cancel-via-override"
    source: Literal["pin-override"] = "pin-override"
    storno_series: Optional[str] = None
    storno_number: Optional[str] = None


class CollectViaManifestMeta(_InvoiceOperationMeta):
    kind: Literal["collect-via-manifest"] = "collect-via-manifest"
    source: Literal["manifest"] = "manifest"
    manifest_id: str
    collect_type: str
    amount: Optional[str] = None


class CollectViaOverrideMeta(_InvoiceOperationMeta):
    kind: Literal["collect-via-override"] = "collect-via-override"
    source: Literal["pin-override"] = "pin-override"
    collect_type: str
    amount: Optional[str] = None


class OperationBlockedMeta(_InvoiceOperationMeta):
    """Guard denial with no override supplied; the invoice is unchanged."""
    kind: Literal["operation-blocked"] = "operation-blocked"
    operation: Literal["cancel", "collect"]
    blocked_reason: str
    manifest_id: Optional[str] = None


class PinChangedMeta(BaseModel):
    kind: Literal["pin-changed"] = "pin-changed"
    replaced_existing: bool


class PinVerifiedMeta(BaseModel):
    kind: Literal["pin-verified"] = "pin-verified"
    invoice_id: Optional[str] = None


class PinFailedAttemptMeta(BaseModel):
    kind: Literal["pin-failed-attempt"] = "pin-failed-attempt"
    reason: str
    invoice_id: Optional[str] = None


class ManifestGeneratedMeta(BaseModel):
    kind: Literal["manifest-generated"] = "manifest-generated"
    manifest_type: ManifestType
    document_date: date
    item_count: int
    skipped_count: int = 0


class ManifestStatusChangedMeta(BaseModel):
    kind: Literal["manifest-status-changed"] = "manifest-status-changed"
    from_status: ManifestStatus
    to_status: ManifestStatus


class BulkItemProcessedMeta(BaseModel):
    kind: Literal["bulk-item-processed"] = "bulk-item-processed"
    manifest_id: str
    awb_number: str
    invoice_series: Optional[str] = None
    invoice_number: Optional[str] = None
    storno_series: Optional[str] = None
    storno_number: Optional[str] = None
    collect_type: Optional[str] = None


AuditMetadata = Annotated[
    Union[
        CancelViaManifestMeta,
        CancelViaOverrideMeta,
        CollectViaManifestMeta,
        CollectViaOverrideMeta,
        OperationBlockedMeta,
        PinChangedMeta,
        PinVerifiedMeta,
        PinFailedAttemptMeta,
        ManifestGeneratedMeta,
        ManifestStatusChangedMeta,
        BulkItemProcessedMeta,
    ],
    Field(discriminator="kind"),
]


class AuditLogResponse(BaseModel):
    """Audit entry response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: Optional[str] = None
    action: str
    entity_type: str
    entity_id: str
    details: AuditMetadata
    created_at: datetime


class AuditLogListResponse(BaseModel):
    """Paginated audit entries."""
    entries: List[AuditLogResponse]
    total: int
    limit: int
    offset: int
