"""Order and shipment models (owned by the back office)."""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, DateTime, ForeignKey, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
import uuid

from manifest_guard.core.database import Base


class Order(Base):
    """Customer order."""
    
    __tablename__ = "orders"
    
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    order_number: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="INVOICED", nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    store_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("stores.id", ondelete="SET NULL"),
        nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    
    # Relationships
    store = relationship("Store", back_populates="orders")
    invoices = relationship("Invoice", back_populates="order")
    shipments = relationship("Shipment", back_populates="order")


class Shipment(Base):
    """Outbound courier shipment (AWB)."""
    
    __tablename__ = "shipments"
    
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    awb_number: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    order_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    
    # Relationships
    order = relationship("Order", back_populates="shipments")


class ReturnShipment(Base):
    """A return parcel scanned at the warehouse."""
    
    __tablename__ = "return_shipments"
    
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    return_awb_number: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="received", nullable=False)
    scanned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    original_shipment_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("shipments.id", ondelete="SET NULL"),
        nullable=True
    )
    # Direct link, set when the return was matched to an order at scan time
    order_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True
    )
    
    # Relationships
    original_shipment = relationship("Shipment")
    order = relationship("Order")
    
    __table_args__ = (
        Index("ix_return_shipment_status_scanned", "status", "scanned_at"),
        Index("ix_return_shipment_awb", "return_awb_number"),
    )
