"""Billing entity and store models (owned by the back office)."""
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
import uuid

from manifest_guard.core.database import Base


class Company(Base):
    """Legal entity that issues invoices; holds the ledger credentials."""
    
    __tablename__ = "companies"
    
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    vat_code: Mapped[str] = mapped_column(String(50), nullable=False)
    invoicing_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    invoicing_token: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    
    # Relationships
    stores = relationship("Store", back_populates="company")
    invoices = relationship("Invoice", back_populates="company")

    @property
    def has_invoicing_credentials(self) -> bool:
        return bool((self.invoicing_email or "").strip() and (self.invoicing_token or "").strip())


class Store(Base):
    """Sales channel an order came through."""
    
    __tablename__ = "stores"
    
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    company_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True
    )
    
    # Relationships
    company = relationship("Company", back_populates="stores")
    orders = relationship("Order", back_populates="store")
