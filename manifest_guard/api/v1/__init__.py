"""API v1 router."""
from fastapi import APIRouter

from manifest_guard.api.v1.invoices import router as invoices_router
from manifest_guard.api.v1.manifests import router as manifests_router
from manifest_guard.api.v1.settings import router as settings_router
from manifest_guard.api.v1.audit import router as audit_router


router = APIRouter(prefix="/v1")

router.include_router(invoices_router, prefix="/invoices", tags=["Invoices"])
router.include_router(manifests_router, prefix="/manifests", tags=["Manifests"])
router.include_router(settings_router, prefix="/settings", tags=["Settings"])
router.include_router(audit_router, prefix="/audit-logs", tags=["Audit"])
