"""Manifest and ManifestItem models."""
from datetime import datetime, timezone, date
from typing import Optional
from sqlalchemy import (
    String, DateTime, Date, ForeignKey, Text,
    Enum as SQLEnum, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
import uuid

from manifest_guard.core.database import Base
from manifest_guard.core.enums import ManifestType, ManifestStatus, ManifestItemStatus


def claim_key(manifest_type: ManifestType, awb_number: str) -> str:
    """Value of ``ManifestItem.active_claim`` while the owning manifest is open."""
    return f"{manifest_type.value}:{awb_number}"


class Manifest(Base):
    """Batch of shipment references used as physical evidence for invoice operations."""
    
    __tablename__ = "manifests"
    
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    type: Mapped[ManifestType] = mapped_column(SQLEnum(ManifestType), nullable=False)
    status: Mapped[ManifestStatus] = mapped_column(
        SQLEnum(ManifestStatus),
        default=ManifestStatus.DRAFT,
        nullable=False
    )
    document_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmed_by: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    
    # Relationships
    confirmed_by_user = relationship("User", back_populates="confirmed_manifests")
    items = relationship(
        "ManifestItem",
        back_populates="manifest",
        order_by="ManifestItem.awb_number",
        cascade="all, delete-orphan",
    )
    
    __table_args__ = (
        Index("ix_manifest_type_status", "type", "status"),
        Index("ix_manifest_created_at", "created_at"),
    )


class ManifestItem(Base):
    """One shipment's entry within a manifest."""
    
    __tablename__ = "manifest_items"
    
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    manifest_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("manifests.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    awb_number: Mapped[str] = mapped_column(String(100), nullable=False)
    original_awb_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    order_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True
    )
    invoice_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("invoices.id", ondelete="SET NULL"),
        nullable=True
    )
    status: Mapped[ManifestItemStatus] = mapped_column(
        SQLEnum(ManifestItemStatus),
        default=ManifestItemStatus.PENDING,
        nullable=False
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    # "<TYPE>:<awb>" while the manifest is open, NULL once PROCESSED.
    # The unique constraint keeps an AWB in at most one open manifest per type.
    active_claim: Mapped[Optional[str]] = mapped_column(String(120), nullable=True, unique=True)
    
    # Relationships
    manifest = relationship("Manifest", back_populates="items")
    order = relationship("Order")
    invoice = relationship("Invoice")
    
    __table_args__ = (
        Index("ix_manifest_item_awb", "awb_number"),
        Index("ix_manifest_item_invoice", "invoice_id"),
        Index("ix_manifest_item_order", "order_id"),
    )
