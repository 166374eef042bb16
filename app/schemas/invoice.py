from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.common import PaginationMeta

ALLOWED_INVOICE_STATUSES = {"draft", "sent", "paid", "cancelled"}


class InvoiceCreate(BaseModel):
    invoice_number: Optional[str] = Field(
        default=None,
        max_length=40,
        description="Leave empty to assign the next available number for the current fiscal year.",
    )
    customer_name: Optional[str] = Field(default=None, max_length=255)
    total_amount: Decimal = Field(default=Decimal("0"), ge=0)
    issue_date: date | None = None
    status: str = "draft"

    @field_validator("invoice_number", "customer_name")
    @classmethod
    def _normalize_optional_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @field_validator("status")
    @classmethod
    def _validate_status(cls, value: str) -> str:
        normalized = (value or "").strip().lower()
        if normalized not in ALLOWED_INVOICE_STATUSES:
            allowed = ", ".join(sorted(ALLOWED_INVOICE_STATUSES))
            raise ValueError(f"Invalid invoice status. Allowed: {allowed}")
        return normalized

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "customer_name": "Sharma Traders",
                "total_amount": 11800.0,
                "issue_date": "2026-10-17",
                "status": "draft",
            }
        }
    )


class InvoiceOut(BaseModel):
    id: str
    invoice_number: str
    customer_name: str | None = None
    status: str
    total_amount: float
    issue_date: date
    created_by: str | None = None
    created_at: datetime


class InvoiceListOut(BaseModel):
    items: list[InvoiceOut]
    pagination: PaginationMeta


class NextInvoiceNumberOut(BaseModel):
    invoice_number: str

    model_config = ConfigDict(json_schema_extra={"example": {"invoice_number": "INV-26-27-00001"}})
