"""Invoice model (owned by the invoicing module, mutated by guarded operations)."""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, DateTime, ForeignKey, Numeric, Text, Index, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
import uuid

from manifest_guard.core.database import Base
from manifest_guard.core.enums import InvoiceStatus, PaymentStatus, OperationSource, enum_values


def _value_enum(enum_cls, name: str) -> SQLEnum:
    return SQLEnum(enum_cls, name=name, values_callable=enum_values, native_enum=False, length=20)


class Invoice(Base):
    """Fiscal invoice mirrored from the external ledger."""
    
    __tablename__ = "invoices"
    
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    order_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False
    )
    company_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True
    )
    series: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    status: Mapped[InvoiceStatus] = mapped_column(
        _value_enum(InvoiceStatus, "invoicestatus"),
        default=InvoiceStatus.ISSUED,
        nullable=False
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        _value_enum(PaymentStatus, "paymentstatus"),
        default=PaymentStatus.UNPAID,
        nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Cancellation (storno)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancellation_source: Mapped[Optional[OperationSource]] = mapped_column(
        _value_enum(OperationSource, "operationsource"),
        nullable=True
    )
    cancelled_from_manifest_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("manifests.id", ondelete="SET NULL"),
        nullable=True
    )
    storno_series: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    storno_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Collection
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    payment_source: Mapped[Optional[OperationSource]] = mapped_column(
        _value_enum(OperationSource, "operationsource"),
        nullable=True
    )
    paid_from_manifest_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("manifests.id", ondelete="SET NULL"),
        nullable=True
    )
    
    # Relationships
    order = relationship("Order", back_populates="invoices")
    company = relationship("Company", back_populates="invoices")

    @property
    def display_number(self) -> str:
        return f"{self.series or ''}{self.number or ''}"
    
    __table_args__ = (
        Index("ix_invoice_order_status_created", "order_id", "status", "created_at"),
    )
