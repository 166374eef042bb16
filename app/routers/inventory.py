from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db
from app.core.tenancy import TenantContext, get_current_org, get_tenant_context
from app.models.inventory import InventoryBatch
from app.models.item import Item
from app.models.organization import Organization
from app.schemas.common import PaginationMeta
from app.schemas.inventory import (
    BatchConsumptionOut,
    BatchOut,
    FIFOValuationOut,
    InventoryReportOut,
    InventoryReportRowOut,
    LowStockItemOut,
    LowStockListOut,
    StockAdjustIn,
    StockAdjustOut,
    StockAlertListOut,
    StockAlertOut,
    StockDeductIn,
    StockDeductOut,
    StockIn,
    StockInOut,
    StockMovementListOut,
    StockMovementOut,
    ValuationBatchOut,
)
from app.services.inventory_service import (
    BatchConsumption,
    add_stock,
    adjust_stock,
    calculate_fifo_valuation,
    cost_of_goods_sold,
    deduct_stock,
    get_inventory_report,
    get_low_stock_items,
    get_stock_movements,
    get_total_inventory_value,
)
from app.services.stock_alert_service import list_stock_alerts

router = APIRouter(prefix="/inventory", tags=["inventory"])


def _batch_out(batch: InventoryBatch) -> BatchOut:
    return BatchOut(
        id=batch.id,
        batch_number=batch.batch_number,
        item_id=batch.item_id,
        warehouse_id=batch.warehouse_id,
        purchase_price=float(batch.purchase_price),
        quantity_received=batch.quantity_received,
        quantity_remaining=batch.quantity_remaining,
        purchase_date=batch.purchase_date,
    )


def _consumption_out(row: BatchConsumption) -> BatchConsumptionOut:
    return BatchConsumptionOut(
        batch_id=row.batch_id,
        batch_number=row.batch_number,
        warehouse_id=row.warehouse_id,
        quantity=row.quantity_taken,
        purchase_price=float(row.purchase_price),
        cost=float(row.cost),
    )


def _stock_quantity(db: Session, item_id: str) -> int:
    item = db.get(Item, item_id)
    return item.stock_quantity if item else 0


@router.post(
    "/stock-in",
    response_model=StockInOut,
    status_code=201,
    summary="Receive stock as a new FIFO batch",
    responses=error_responses(400, 404, 422, 500),
)
def stock_in(
    payload: StockIn,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
):
    batch = add_stock(
        db,
        org_id=tenant.org.id,
        item_id=payload.item_id,
        warehouse_id=payload.warehouse_id,
        quantity=payload.quantity,
        purchase_price=payload.purchase_price,
        reference_id=payload.reference_id,
        reference_type=payload.reference_type,
        transaction_type=payload.type,
        purchase_date=payload.purchase_date,
        notes=payload.notes,
        created_by=tenant.user_id,
    )
    db.commit()
    db.refresh(batch)
    return StockInOut(batch=_batch_out(batch), stock_quantity=_stock_quantity(db, payload.item_id))


@router.post(
    "/deduct",
    response_model=StockDeductOut,
    summary="Deduct stock oldest batch first",
    responses=error_responses(400, 404, 422, 500),
)
def deduct(
    payload: StockDeductIn,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
):
    consumptions = deduct_stock(
        db,
        org_id=tenant.org.id,
        item_id=payload.item_id,
        warehouse_id=payload.warehouse_id,
        quantity=payload.quantity,
        reference_id=payload.reference_id,
        reference_type=payload.reference_type,
        notes=payload.notes,
        created_by=tenant.user_id,
    )
    db.commit()
    return StockDeductOut(
        item_id=payload.item_id,
        quantity=payload.quantity,
        cost_of_goods_sold=float(cost_of_goods_sold(consumptions)),
        stock_quantity=_stock_quantity(db, payload.item_id),
        consumptions=[_consumption_out(row) for row in consumptions],
    )


@router.post(
    "/adjust",
    response_model=StockAdjustOut,
    summary="Manual stock adjustment",
    responses=error_responses(400, 404, 422, 500),
)
def adjust(
    payload: StockAdjustIn,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
):
    result = adjust_stock(
        db,
        org_id=tenant.org.id,
        item_id=payload.item_id,
        warehouse_id=payload.warehouse_id,
        quantity=payload.quantity,
        adjustment_type=payload.type,
        reason=payload.reason,
        user_id=tenant.user_id,
        purchase_price=payload.purchase_price,
    )
    db.commit()
    if result.batch is not None:
        db.refresh(result.batch)
    return StockAdjustOut(
        item_id=payload.item_id,
        type=result.adjustment_type,
        quantity_delta=result.quantity_delta,
        stock_quantity=_stock_quantity(db, payload.item_id),
        batch=_batch_out(result.batch) if result.batch is not None else None,
        consumptions=[_consumption_out(row) for row in result.consumptions],
    )


@router.get(
    "/items/{item_id}/valuation",
    response_model=FIFOValuationOut,
    summary="FIFO valuation of an item's remaining stock",
    responses=error_responses(404, 422, 500),
)
def item_valuation(
    item_id: str,
    warehouse_id: str | None = Query(default=None, description="Optional warehouse filter"),
    db: Session = Depends(get_db),
    org: Organization = Depends(get_current_org),
):
    valuation = calculate_fifo_valuation(db, org_id=org.id, item_id=item_id, warehouse_id=warehouse_id)
    return FIFOValuationOut(
        item_id=valuation.item_id,
        warehouse_id=valuation.warehouse_id,
        total_quantity=valuation.total_quantity,
        total_value=float(valuation.total_value),
        average_cost=float(valuation.average_cost),
        batches=[
            ValuationBatchOut(
                batch_id=row.batch_id,
                batch_number=row.batch_number,
                warehouse_id=row.warehouse_id,
                quantity=row.quantity,
                purchase_price=float(row.purchase_price),
                purchase_date=row.purchase_date,
                value=float(row.value),
            )
            for row in valuation.batches
        ],
    )


@router.get(
    "/items/{item_id}/movements",
    response_model=StockMovementListOut,
    summary="List stock movements for an item",
    responses={
        200: {
            "description": "Paginated stock movements, newest first",
            "content": {
                "application/json": {
                    "example": {
                        "items": [
                            {
                                "id": "transaction-id",
                                "item_id": "item-id",
                                "warehouse_id": "warehouse-id",
                                "type": "sale",
                                "quantity": -7,
                                "reference_id": "invoice-id",
                                "reference_type": "invoice",
                                "notes": "Deducted 7 units using FIFO method",
                                "created_by": None,
                                "created_at": "2026-10-17T10:00:00Z",
                            }
                        ],
                        "pagination": {
                            "total": 3,
                            "limit": 50,
                            "offset": 0,
                            "count": 1,
                            "has_next": False,
                        },
                    }
                }
            },
        },
        **error_responses(404, 422, 500),
    },
)
def list_item_movements(
    item_id: str,
    limit: int = Query(default=50, ge=1, le=200, description="Page size"),
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    db: Session = Depends(get_db),
    org: Organization = Depends(get_current_org),
):
    rows, total = get_stock_movements(db, org_id=org.id, item_id=item_id, limit=limit, offset=offset)
    items = [
        StockMovementOut(
            id=row.id,
            item_id=row.item_id,
            warehouse_id=row.warehouse_id,
            type=row.type,
            quantity=row.quantity,
            reference_id=row.reference_id,
            reference_type=row.reference_type,
            notes=row.notes,
            created_by=row.created_by,
            created_at=row.created_at,
        )
        for row in rows
    ]
    count = len(items)
    return StockMovementListOut(
        items=items,
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total,
        ),
    )


@router.get(
    "/low-stock",
    response_model=LowStockListOut,
    summary="List items at or below their low-stock threshold",
    responses=error_responses(404, 422, 500),
)
def list_low_stock_items(
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    org: Organization = Depends(get_current_org),
):
    result = [
        LowStockItemOut(
            item_id=item.id,
            name=item.name,
            sku=item.sku,
            unit=item.unit,
            stock_quantity=item.stock_quantity,
            low_stock_threshold=item.low_stock_threshold,
        )
        for item in get_low_stock_items(db, org_id=org.id)
    ]
    total = len(result)
    page_items = result[offset : offset + limit]
    count = len(page_items)
    return LowStockListOut(
        items=page_items,
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total,
        ),
    )


@router.get(
    "/alerts",
    response_model=StockAlertListOut,
    summary="List stock alerts",
    responses=error_responses(404, 422, 500),
)
def list_alerts(
    include_resolved: bool = Query(default=False),
    item_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    org: Organization = Depends(get_current_org),
):
    alerts = list_stock_alerts(db, org_id=org.id, include_resolved=include_resolved, item_id=item_id)
    return StockAlertListOut(
        items=[
            StockAlertOut(
                id=alert.id,
                item_id=alert.item_id,
                alert_type=alert.alert_type,
                current_quantity=alert.current_quantity,
                threshold=alert.threshold,
                is_resolved=alert.is_resolved,
                resolved_at=alert.resolved_at,
                created_at=alert.created_at,
            )
            for alert in alerts
        ]
    )


@router.get(
    "/report",
    response_model=InventoryReportOut,
    summary="Inventory report with FIFO stock values",
    responses=error_responses(404, 422, 500),
)
def inventory_report(
    db: Session = Depends(get_db),
    org: Organization = Depends(get_current_org),
):
    rows = get_inventory_report(db, org_id=org.id)
    return InventoryReportOut(
        items=[
            InventoryReportRowOut(
                item_id=row.item_id,
                item_name=row.item_name,
                sku=row.sku,
                current_stock=row.current_stock,
                stock_value=float(row.stock_value),
                low_stock_threshold=row.low_stock_threshold,
                is_low_stock=row.is_low_stock,
                warehouse_id=row.warehouse_id,
                warehouse_name=row.warehouse_name,
            )
            for row in rows
        ],
        total_value=float(get_total_inventory_value(db, org_id=org.id)),
        low_stock_count=sum(1 for row in rows if row.is_low_stock),
    )
