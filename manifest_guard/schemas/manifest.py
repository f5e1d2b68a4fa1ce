"""Manifest schemas."""
from datetime import datetime, date
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, model_validator

from manifest_guard.core.enums import ManifestType, ManifestStatus, ManifestItemStatus


class ManifestItemResponse(BaseModel):
    """Manifest item response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    awb_number: str
    original_awb_number: Optional[str] = None
    order_id: Optional[str] = None
    invoice_id: Optional[str] = None
    status: ManifestItemStatus
    error_message: Optional[str] = None
    processed_at: Optional[datetime] = None


class ManifestResponse(BaseModel):
    """Manifest with its items."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: ManifestType
    status: ManifestStatus
    document_date: date
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    confirmed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    items: List[ManifestItemResponse] = []


class ManifestSummary(BaseModel):
    """Manifest row in a listing, with item counters."""
    id: str
    type: ManifestType
    status: ManifestStatus
    document_date: date
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    confirmed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    item_count: int
    processed_count: int
    error_count: int


class ManifestListResponse(BaseModel):
    """List of manifests response."""
    manifests: List[ManifestSummary]
    total: int
    limit: int
    offset: int


class ReturnManifestGenerateRequest(BaseModel):
    """Generate a return manifest from scanned returns."""
    document_date: Optional[date] = None
    return_shipment_ids: Optional[List[str]] = None


class DeliveryManifestGenerateRequest(BaseModel):
    """Generate a delivery manifest from the courier's delivered AWBs."""
    document_date: date
    awb_numbers: Optional[List[str]] = Field(None, max_length=5000)
    csv_content: Optional[str] = None

    @model_validator(mode="after")
    def require_source(self):
        if not self.awb_numbers and not self.csv_content:
            raise ValueError("Provide awb_numbers or csv_content")
        return self


class ManifestGenerateResponse(BaseModel):
    """Result of a generation run."""
    success: bool = True
    manifest_id: str
    item_count: int
    skipped_count: int = 0


class ProcessManifestRequest(BaseModel):
    """Options for bulk processing a confirmed manifest."""
    collect_type: Optional[str] = None


class BulkItemError(BaseModel):
    item_id: str
    awb_number: str
    invoice_number: Optional[str] = None
    error: str


class BulkProcessResponse(BaseModel):
    """Outcome of bulk storno / collect over a manifest."""
    success: bool
    total_processed: int = 0
    success_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    errors: List[BulkItemError] = []
