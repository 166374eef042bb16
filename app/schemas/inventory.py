from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.common import PaginationMeta

StockInType = Literal["purchase", "grn"]
AdjustmentType = Literal["adjustment_increase", "adjustment_decrease", "damage", "return"]


class StockIn(BaseModel):
    item_id: str
    warehouse_id: str
    quantity: int = Field(gt=0)
    purchase_price: Decimal = Field(ge=0)
    type: StockInType = "purchase"
    purchase_date: datetime | None = None
    reference_id: str | None = Field(default=None, max_length=36)
    reference_type: str | None = Field(default=None, max_length=50)
    notes: str | None = Field(default=None, max_length=255)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "item_id": "item-id-here",
                "warehouse_id": "warehouse-id-here",
                "quantity": 20,
                "purchase_price": 45.0,
                "type": "purchase",
                "reference_id": "purchase-invoice-id",
                "reference_type": "purchase_invoice",
            }
        }
    )


class StockDeductIn(BaseModel):
    item_id: str
    warehouse_id: str
    quantity: int = Field(gt=0)
    reference_id: str | None = Field(default=None, max_length=36)
    reference_type: str | None = Field(default=None, max_length=50)
    notes: str | None = Field(default=None, max_length=255)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "item_id": "item-id-here",
                "warehouse_id": "warehouse-id-here",
                "quantity": 7,
                "reference_id": "invoice-id",
                "reference_type": "invoice",
            }
        }
    )


class StockAdjustIn(BaseModel):
    item_id: str
    warehouse_id: str
    quantity: int = Field(gt=0)
    type: AdjustmentType
    reason: str = Field(..., min_length=3, max_length=255)
    purchase_price: Decimal | None = Field(default=None, ge=0)

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, value: str) -> str:
        cleaned = value.strip()
        if len(cleaned) < 3:
            raise ValueError("reason must be at least 3 characters")
        return cleaned

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "item_id": "item-id-here",
                "warehouse_id": "warehouse-id-here",
                "quantity": 2,
                "type": "damage",
                "reason": "2 pieces damaged during unloading",
            }
        }
    )


class BatchOut(BaseModel):
    id: str
    batch_number: str
    item_id: str
    warehouse_id: str
    purchase_price: float
    quantity_received: int
    quantity_remaining: int
    purchase_date: datetime


class StockInOut(BaseModel):
    batch: BatchOut
    stock_quantity: int


class BatchConsumptionOut(BaseModel):
    batch_id: str
    batch_number: str
    warehouse_id: str
    quantity: int
    purchase_price: float
    cost: float


class StockDeductOut(BaseModel):
    item_id: str
    quantity: int
    cost_of_goods_sold: float
    stock_quantity: int
    consumptions: list[BatchConsumptionOut]


class StockAdjustOut(BaseModel):
    item_id: str
    type: str
    quantity_delta: int
    stock_quantity: int
    batch: BatchOut | None = None
    consumptions: list[BatchConsumptionOut] = Field(default_factory=list)


class ValuationBatchOut(BaseModel):
    batch_id: str
    batch_number: str
    warehouse_id: str
    quantity: int
    purchase_price: float
    purchase_date: datetime
    value: float


class FIFOValuationOut(BaseModel):
    item_id: str
    warehouse_id: str | None = None
    total_quantity: int
    total_value: float
    average_cost: float
    batches: list[ValuationBatchOut]

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "item_id": "item-id",
                "warehouse_id": None,
                "total_quantity": 3,
                "total_value": 60.0,
                "average_cost": 20.0,
                "batches": [
                    {
                        "batch_id": "batch-id",
                        "batch_number": "BATCH-1729152000000-7KQ2",
                        "warehouse_id": "warehouse-id",
                        "quantity": 3,
                        "purchase_price": 20.0,
                        "purchase_date": "2026-10-01T10:00:00Z",
                        "value": 60.0,
                    }
                ],
            }
        }
    )


class StockMovementOut(BaseModel):
    id: str
    item_id: str
    warehouse_id: str
    type: str
    quantity: int
    reference_id: str | None = None
    reference_type: str | None = None
    notes: str | None = None
    created_by: str | None = None
    created_at: datetime


class StockMovementListOut(BaseModel):
    items: list[StockMovementOut]
    pagination: PaginationMeta


class LowStockItemOut(BaseModel):
    item_id: str
    name: str
    sku: str | None = None
    unit: str
    stock_quantity: int
    low_stock_threshold: int


class LowStockListOut(BaseModel):
    items: list[LowStockItemOut]
    pagination: PaginationMeta


class StockAlertOut(BaseModel):
    id: str
    item_id: str
    alert_type: str
    current_quantity: int
    threshold: int
    is_resolved: bool
    resolved_at: datetime | None = None
    created_at: datetime


class StockAlertListOut(BaseModel):
    items: list[StockAlertOut]


class InventoryReportRowOut(BaseModel):
    item_id: str
    item_name: str
    sku: str
    current_stock: int
    stock_value: float
    low_stock_threshold: int
    is_low_stock: bool
    warehouse_id: str
    warehouse_name: str


class InventoryReportOut(BaseModel):
    items: list[InventoryReportRowOut]
    total_value: float
    low_stock_count: int
