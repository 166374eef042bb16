from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class InventoryBatch(Base):
    """
    One FIFO lot per stock-receiving event. Rows are never deleted; a batch with
    quantity_remaining == 0 is exhausted but kept for valuation history.
    """
    __tablename__ = "inventory_batches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id"), nullable=False, index=True)
    warehouse_id: Mapped[str] = mapped_column(String(36), ForeignKey("warehouses.id"), nullable=False)

    batch_number: Mapped[str] = mapped_column(String(40), nullable=False)
    purchase_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    quantity_received: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_remaining: Mapped[int] = mapped_column(Integer, nullable=False)
    purchase_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    reference_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)  # e.g. purchase invoice id
    reference_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint("quantity_remaining >= 0", name="ck_inventory_batches_remaining_non_negative"),
        CheckConstraint(
            "quantity_remaining <= quantity_received",
            name="ck_inventory_batches_remaining_within_received",
        ),
        Index(
            "ix_inventory_batches_org_item_warehouse_purchase_date",
            "org_id",
            "item_id",
            "warehouse_id",
            "purchase_date",
        ),
    )


class StockTransaction(Base):
    """
    Append-only movement log. Positive quantity = stock in, negative = stock out.
    One row per logical movement, not per batch touched.
    """
    __tablename__ = "stock_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id"), nullable=False, index=True)
    warehouse_id: Mapped[str] = mapped_column(String(36), ForeignKey("warehouses.id"), nullable=False, index=True)

    type: Mapped[str] = mapped_column(String(30), nullable=False)  # "purchase", "sale", "grn", "damage", ...
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reference_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    reference_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("quantity <> 0", name="ck_stock_transactions_quantity_non_zero"),
        Index("ix_stock_transactions_org_item_created_at", "org_id", "item_id", "created_at"),
    )


class StockAlert(Base):
    __tablename__ = "stock_alerts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id"), nullable=False, index=True)

    alert_type: Mapped[str] = mapped_column(String(20), nullable=False)  # "low_stock" | "out_of_stock"
    current_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    threshold: Mapped[int] = mapped_column(Integer, nullable=False)
    is_resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_stock_alerts_org_resolved_created_at", "org_id", "is_resolved", "created_at"),
        # At most one open alert per item.
        Index(
            "ux_stock_alerts_org_item_open",
            "org_id",
            "item_id",
            unique=True,
            postgresql_where=is_resolved.is_(False),
            sqlite_where=is_resolved.is_(False),
        ),
    )
