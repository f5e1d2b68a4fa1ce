"""Pydantic schemas."""
from manifest_guard.schemas.audit import AuditMetadata, AuditLogResponse, AuditLogListResponse
from manifest_guard.schemas.invoice import (
    CancelInvoiceRequest, CollectInvoiceRequest, GuardDecision,
    OperationSuccessResponse, OperationBlockedResponse, OperationStatusResponse
)
from manifest_guard.schemas.manifest import (
    ManifestResponse, ManifestListResponse, ManifestGenerateResponse,
    ReturnManifestGenerateRequest, DeliveryManifestGenerateRequest,
    BulkProcessResponse
)
from manifest_guard.schemas.settings import PinStatusResponse, SetPinRequest, SetPinResponse

__all__ = [
    "AuditMetadata", "AuditLogResponse", "AuditLogListResponse",
    "CancelInvoiceRequest", "CollectInvoiceRequest", "GuardDecision",
    "OperationSuccessResponse", "OperationBlockedResponse", "OperationStatusResponse",
    "ManifestResponse", "ManifestListResponse", "ManifestGenerateResponse",
    "ReturnManifestGenerateRequest", "DeliveryManifestGenerateRequest",
    "BulkProcessResponse",
    "PinStatusResponse", "SetPinRequest", "SetPinResponse",
]
