from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class Organization(Base):
    """Tenant record. Read-only for this service; owned by organization CRUD."""

    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    fiscal_year_start: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=4,
        server_default="4",
    )  # 1-12, April = 4
    invoice_prefix: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        default="INV",
        server_default="INV",
    )
    notification_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "fiscal_year_start BETWEEN 1 AND 12",
            name="ck_organizations_fiscal_year_start_month",
        ),
    )
