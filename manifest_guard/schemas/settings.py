"""Override PIN settings schemas."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PinStatusResponse(BaseModel):
    success: bool = True
    configured: bool
    changed_at: Optional[datetime] = None


class SetPinRequest(BaseModel):
    """Body of ``POST /settings/pin``; format is checked by the PIN service."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    new_pin: str = Field(..., max_length=32)
    current_pin: Optional[str] = Field(None, max_length=32)


class SetPinResponse(BaseModel):
    success: bool = True
    message: str
