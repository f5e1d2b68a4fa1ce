"""Organization-wide override PIN."""
from datetime import datetime
from typing import Optional
from sqlalchemy import String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from manifest_guard.core.database import Base


DEFAULT_CREDENTIAL_ID = "default"


class OverrideCredential(Base):
    """Single-row table holding the supervisor override PIN hash."""
    
    __tablename__ = "override_credentials"
    
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=DEFAULT_CREDENTIAL_ID)
    pin_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    changed_by: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
