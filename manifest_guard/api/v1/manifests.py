"""Manifest API endpoints."""
from typing import Optional

from fastapi import APIRouter, Query, status

from manifest_guard.core.dependencies import CurrentUser, DbSession, InvoicingFactory, Supervisor
from manifest_guard.core.enums import ManifestType, ManifestStatus
from manifest_guard.core.logging import get_logger
from manifest_guard.schemas.manifest import (
    ManifestResponse, ManifestListResponse, ManifestSummary,
    ReturnManifestGenerateRequest, DeliveryManifestGenerateRequest,
    ManifestGenerateResponse, ProcessManifestRequest, BulkProcessResponse,
)
from manifest_guard.services import bulk_processing, manifest_generator, manifest_store


router = APIRouter()
logger = get_logger(__name__)


@router.get("", response_model=ManifestListResponse)
async def list_manifests(
    user: CurrentUser,
    db: DbSession,
    manifest_type: Optional[ManifestType] = Query(None, alias="type"),
    manifest_status: Optional[ManifestStatus] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """List manifests, newest first, with item counters."""
    rows, total = await manifest_store.list_manifests(db, manifest_type, manifest_status, limit, offset)
    return ManifestListResponse(
        manifests=[ManifestSummary(**row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/returns", response_model=ManifestGenerateResponse, status_code=status.HTTP_201_CREATED)
async def generate_return_manifest(
    user: CurrentUser,
    db: DbSession,
    request: Optional[ReturnManifestGenerateRequest] = None,
):
    """Build a DRAFT return manifest from received returns."""
    request = request or ReturnManifestGenerateRequest()
    result = await manifest_generator.generate_return_manifest(
        db,
        user_id=user.id,
        document_date=request.document_date,
        return_shipment_ids=request.return_shipment_ids,
    )
    return ManifestGenerateResponse(
        manifest_id=result.manifest_id,
        item_count=result.item_count,
        skipped_count=result.skipped_count,
    )


@router.post("/deliveries", response_model=ManifestGenerateResponse, status_code=status.HTTP_201_CREATED)
async def generate_delivery_manifest(
    request: DeliveryManifestGenerateRequest,
    user: CurrentUser,
    db: DbSession,
):
    """Build a DRAFT delivery manifest from an AWB list or a courier CSV export."""
    awb_numbers = list(request.awb_numbers or [])
    if request.csv_content:
        awb_numbers.extend(manifest_generator.parse_delivery_csv(request.csv_content))

    result = await manifest_generator.generate_delivery_manifest(
        db, awb_numbers, request.document_date, user_id=user.id
    )
    return ManifestGenerateResponse(
        manifest_id=result.manifest_id,
        item_count=result.item_count,
        skipped_count=result.skipped_count,
    )


@router.get("/{manifest_id}", response_model=ManifestResponse)
async def get_manifest(
    manifest_id: str,
    user: CurrentUser,
    db: DbSession,
):
    """Get a manifest with its items."""
    manifest = await manifest_store.get_manifest(db, manifest_id)
    return ManifestResponse.model_validate(manifest)


@router.post("/{manifest_id}/confirm", response_model=ManifestResponse)
async def confirm_manifest(
    manifest_id: str,
    user: Supervisor,
    db: DbSession,
):
    """Confirm a DRAFT manifest; its items become operation evidence."""
    manifest = await manifest_store.transition_manifest(db, manifest_id, ManifestStatus.CONFIRMED, user.id)
    return ManifestResponse.model_validate(manifest)


@router.post("/{manifest_id}/process", response_model=BulkProcessResponse)
async def process_manifest(
    manifest_id: str,
    user: Supervisor,
    db: DbSession,
    client_factory: InvoicingFactory,
    request: Optional[ProcessManifestRequest] = None,
):
    """Storno (returns) or collect (deliveries) every item, then mark PROCESSED."""
    request = request or ProcessManifestRequest()
    return await bulk_processing.process_manifest(
        db, manifest_id, user.id, client_factory, collect_type=request.collect_type
    )
