from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class Item(Base):
    __tablename__ = "items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="PCS", server_default="PCS")

    # Denormalized sum of quantity_remaining over the item's batches.
    # Written only by app.services.inventory_service.
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    low_stock_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=10, server_default="10")
    default_warehouse_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("warehouses.id"),
        nullable=True,
    )
    is_service: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_items_stock_quantity_non_negative"),
        Index("ix_items_org_name", "org_id", "name"),
        Index(
            "ux_items_org_sku_lower",
            "org_id",
            func.lower(sku),
            unique=True,
            postgresql_where=sku.isnot(None),
            sqlite_where=sku.isnot(None),
        ),
    )
