"""Override PIN settings endpoints."""
from fastapi import APIRouter

from manifest_guard.core.dependencies import DbSession, Supervisor
from manifest_guard.schemas.settings import PinStatusResponse, SetPinRequest, SetPinResponse
from manifest_guard.services.pin_service import PinService


router = APIRouter()


@router.get("/pin", response_model=PinStatusResponse)
async def get_pin_status(user: Supervisor, db: DbSession):
    """Whether an override PIN is configured. The PIN itself is never returned."""
    service = PinService(db)
    changed_at = await service.changed_at()
    return PinStatusResponse(configured=changed_at is not None, changed_at=changed_at)


@router.post("/pin", response_model=SetPinResponse)
async def set_pin(request: SetPinRequest, user: Supervisor, db: DbSession):
    """Set the override PIN, or change it given the current one."""
    replaced = await PinService(db).set_pin(request.new_pin, user.id, current_pin=request.current_pin)
    return SetPinResponse(message="PIN changed successfully" if replaced else "PIN set successfully")
