from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.common import PaginationMeta

ALLOWED_QUOTATION_STATUSES = {"draft", "sent", "accepted", "rejected", "expired"}


class QuotationCreate(BaseModel):
    quotation_number: Optional[str] = Field(default=None, max_length=40)
    customer_name: Optional[str] = Field(default=None, max_length=255)
    total_amount: Decimal = Field(default=Decimal("0"), ge=0)
    issue_date: date | None = None
    status: str = "draft"

    @field_validator("quotation_number", "customer_name")
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
        if normalized not in ALLOWED_QUOTATION_STATUSES:
            allowed = ", ".join(sorted(ALLOWED_QUOTATION_STATUSES))
            raise ValueError(f"Invalid quotation status. Allowed: {allowed}")
        return normalized

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "customer_name": "Sharma Traders",
                "total_amount": 25000.0,
                "status": "draft",
            }
        }
    )


class QuotationOut(BaseModel):
    id: str
    quotation_number: str
    customer_name: str | None = None
    status: str
    total_amount: float
    issue_date: date
    created_by: str | None = None
    created_at: datetime


class QuotationListOut(BaseModel):
    items: list[QuotationOut]
    pagination: PaginationMeta


class NextQuotationNumberOut(BaseModel):
    quotation_number: str

    model_config = ConfigDict(json_schema_extra={"example": {"quotation_number": "QT-26-27-00001"}})
