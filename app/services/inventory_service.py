"""FIFO inventory ledger.

Every function takes the caller's session and ``org_id`` and never commits:
the caller commits once per logical operation, or rolls back on any raised
error, so batch mutations, the cached ``Item.stock_quantity`` and the
transaction log row are applied together or not at all.

Concurrent deductions of the same item are serialized by the conditional
``UPDATE items ... WHERE stock_quantity >= :q`` (which also row-locks the item
on PostgreSQL) and by locking the batch rows for the FIFO walk.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.core.errors import (
    InconsistentLedgerError,
    InsufficientStockError,
    ItemNotFoundError,
    StockValidationError,
    WarehouseNotFoundError,
)
from app.core.id_utils import generate_batch_number
from app.core.money import ZERO_MONEY, average_unit_cost, extended_cost, to_money
from app.core.observability import log_event
from app.models.inventory import InventoryBatch, StockTransaction
from app.models.item import Item
from app.models.warehouse import Warehouse
from app.services.notification_service import LowStockNotifier
from app.services.stock_alert_service import check_low_stock, resolve_stock_alerts

logger = logging.getLogger("bahi.inventory")

TXN_PURCHASE = "purchase"
TXN_SALE = "sale"
TXN_ADJUSTMENT = "adjustment"
TXN_GRN = "grn"

ADJUSTMENT_INCREASE_TYPES = {"adjustment_increase", "return"}
ADJUSTMENT_DECREASE_TYPES = {"adjustment_decrease", "damage"}
ALLOWED_ADJUSTMENT_TYPES = ADJUSTMENT_INCREASE_TYPES | ADJUSTMENT_DECREASE_TYPES

STOCK_IN_TYPES = {TXN_PURCHASE, TXN_GRN, TXN_ADJUSTMENT} | ADJUSTMENT_INCREASE_TYPES
STOCK_OUT_TYPES = {TXN_SALE, TXN_ADJUSTMENT} | ADJUSTMENT_DECREASE_TYPES


@dataclass(frozen=True)
class BatchConsumption:
    batch_id: str
    batch_number: str
    warehouse_id: str
    purchase_price: Decimal
    purchase_date: datetime
    quantity_taken: int

    @property
    def cost(self) -> Decimal:
        return extended_cost(self.quantity_taken, self.purchase_price)


@dataclass(frozen=True)
class ValuationBatch:
    batch_id: str
    batch_number: str
    warehouse_id: str
    quantity: int
    purchase_price: Decimal
    purchase_date: datetime
    value: Decimal


@dataclass(frozen=True)
class FIFOValuation:
    item_id: str
    warehouse_id: str | None
    total_quantity: int
    total_value: Decimal
    average_cost: Decimal
    batches: list[ValuationBatch] = field(default_factory=list)


@dataclass(frozen=True)
class StockAdjustmentResult:
    adjustment_type: str
    quantity_delta: int
    batch: InventoryBatch | None = None
    consumptions: list[BatchConsumption] = field(default_factory=list)


@dataclass(frozen=True)
class InventoryReportRow:
    item_id: str
    item_name: str
    sku: str
    current_stock: int
    stock_value: Decimal
    low_stock_threshold: int
    is_low_stock: bool
    warehouse_id: str
    warehouse_name: str


def cost_of_goods_sold(consumptions: list[BatchConsumption]) -> Decimal:
    return to_money(sum((row.cost for row in consumptions), ZERO_MONEY))


def _validate_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise StockValidationError("Quantity must be a whole number")
    if quantity <= 0:
        raise StockValidationError("Quantity must be greater than zero")


def _get_item(db: Session, *, org_id: str, item_id: str) -> Item:
    item = db.execute(
        select(Item).where(Item.id == item_id, Item.org_id == org_id)
    ).scalar_one_or_none()
    if not item:
        raise ItemNotFoundError(item_id)
    return item


def _ensure_warehouse(db: Session, *, org_id: str, warehouse_id: str) -> None:
    row = db.execute(
        select(Warehouse.id).where(Warehouse.id == warehouse_id, Warehouse.org_id == org_id)
    ).scalar_one_or_none()
    if not row:
        raise WarehouseNotFoundError(warehouse_id)


def _append_transaction(
    db: Session,
    *,
    org_id: str,
    item_id: str,
    warehouse_id: str,
    transaction_type: str,
    quantity: int,
    reference_id: str | None,
    reference_type: str | None,
    notes: str | None,
    created_by: str | None,
) -> StockTransaction:
    entry = StockTransaction(
        id=str(uuid.uuid4()),
        org_id=org_id,
        item_id=item_id,
        warehouse_id=warehouse_id,
        type=transaction_type,
        quantity=quantity,
        reference_id=reference_id,
        reference_type=reference_type,
        notes=notes,
        created_by=created_by,
    )
    db.add(entry)
    return entry


def _batch_total(db: Session, *, org_id: str, item_id: str, warehouse_id: str | None = None) -> int:
    stmt = select(func.coalesce(func.sum(InventoryBatch.quantity_remaining), 0)).where(
        InventoryBatch.org_id == org_id,
        InventoryBatch.item_id == item_id,
    )
    if warehouse_id:
        stmt = stmt.where(InventoryBatch.warehouse_id == warehouse_id)
    return int(db.execute(stmt).scalar_one())


def add_stock(
    db: Session,
    *,
    org_id: str,
    item_id: str,
    warehouse_id: str,
    quantity: int,
    purchase_price: Decimal | int | float | str,
    reference_id: str | None = None,
    reference_type: str | None = None,
    transaction_type: str = TXN_PURCHASE,
    purchase_date: datetime | None = None,
    notes: str | None = None,
    created_by: str | None = None,
) -> InventoryBatch:
    """Receive stock as a new FIFO batch.

    Increases never replenish an existing batch. Open low-stock alerts are
    resolved once the item is back above its threshold.
    """
    _validate_quantity(quantity)
    if transaction_type not in STOCK_IN_TYPES:
        raise StockValidationError(f"Unsupported stock-in type: {transaction_type}")
    unit_cost = to_money(purchase_price)
    if unit_cost < ZERO_MONEY:
        raise StockValidationError("Purchase price cannot be negative")

    item = _get_item(db, org_id=org_id, item_id=item_id)
    _ensure_warehouse(db, org_id=org_id, warehouse_id=warehouse_id)

    batch = InventoryBatch(
        id=str(uuid.uuid4()),
        org_id=org_id,
        item_id=item.id,
        warehouse_id=warehouse_id,
        batch_number=generate_batch_number(),
        purchase_price=unit_cost,
        quantity_received=quantity,
        quantity_remaining=quantity,
        purchase_date=purchase_date or datetime.now(timezone.utc),
        reference_id=reference_id,
        reference_type=reference_type,
    )
    db.add(batch)

    db.execute(
        update(Item)
        .where(Item.id == item.id, Item.org_id == org_id)
        .values(stock_quantity=Item.stock_quantity + quantity, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )

    _append_transaction(
        db,
        org_id=org_id,
        item_id=item.id,
        warehouse_id=warehouse_id,
        transaction_type=transaction_type,
        quantity=quantity,
        reference_id=reference_id,
        reference_type=reference_type,
        notes=notes or f"Added {quantity} units at {unit_cost} per unit",
        created_by=created_by,
    )
    db.flush()
    db.refresh(item)

    log_event(
        logger,
        logging.INFO,
        "stock_added",
        org_id=org_id,
        item_id=item.id,
        warehouse_id=warehouse_id,
        batch_number=batch.batch_number,
        quantity=quantity,
        unit_cost=str(unit_cost),
        stock_quantity=item.stock_quantity,
    )
    resolve_stock_alerts(db, org_id=org_id, item=item)
    return batch


def deduct_stock(
    db: Session,
    *,
    org_id: str,
    item_id: str,
    warehouse_id: str,
    quantity: int,
    reference_id: str | None = None,
    reference_type: str | None = None,
    transaction_type: str = TXN_SALE,
    notes: str | None = None,
    created_by: str | None = None,
    notifier: LowStockNotifier | None = None,
) -> list[BatchConsumption]:
    """Remove stock oldest-batch-first and return what was taken from each batch.

    Every rejection is raised before the item row or any batch is written:
    InsufficientStockError when the item or the warehouse's batches cannot
    cover ``quantity``, InconsistentLedgerError when the cached stock claims
    more than the batch ledger holds.
    """
    _validate_quantity(quantity)
    if transaction_type not in STOCK_OUT_TYPES:
        raise StockValidationError(f"Unsupported stock-out type: {transaction_type}")

    item = _get_item(db, org_id=org_id, item_id=item_id)
    _ensure_warehouse(db, org_id=org_id, warehouse_id=warehouse_id)

    if item.stock_quantity < quantity:
        raise InsufficientStockError(
            item_name=item.name,
            available=item.stock_quantity,
            required=quantity,
        )
    cached_quantity = item.stock_quantity

    batches = db.execute(
        select(InventoryBatch)
        .where(
            InventoryBatch.org_id == org_id,
            InventoryBatch.item_id == item.id,
            InventoryBatch.warehouse_id == warehouse_id,
            InventoryBatch.quantity_remaining > 0,
        )
        .order_by(
            InventoryBatch.purchase_date.asc(),
            InventoryBatch.created_at.asc(),
            InventoryBatch.id.asc(),
        )
        .with_for_update()
    ).scalars().all()

    warehouse_available = sum(batch.quantity_remaining for batch in batches)
    if warehouse_available < quantity:
        ledger_total = _batch_total(db, org_id=org_id, item_id=item.id)
        if ledger_total != cached_quantity:
            log_event(
                logger,
                logging.ERROR,
                "inventory_ledger_inconsistent",
                org_id=org_id,
                item_id=item.id,
                warehouse_id=warehouse_id,
                cached_quantity=cached_quantity,
                batch_quantity=ledger_total,
                requested=quantity,
                shortfall=quantity - warehouse_available,
            )
            raise InconsistentLedgerError(
                item_id=item.id,
                cached_quantity=cached_quantity,
                batch_quantity=ledger_total,
                shortfall=quantity - warehouse_available,
            )
        raise InsufficientStockError(
            item_name=item.name,
            available=warehouse_available,
            required=quantity,
            warehouse_id=warehouse_id,
        )

    decremented = db.execute(
        update(Item)
        .where(
            Item.id == item.id,
            Item.org_id == org_id,
            Item.stock_quantity >= quantity,
        )
        .values(stock_quantity=Item.stock_quantity - quantity, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    if decremented.rowcount != 1:
        # Another writer consumed the stock between our read and the update.
        db.refresh(item)
        raise InsufficientStockError(
            item_name=item.name,
            available=item.stock_quantity,
            required=quantity,
        )

    # The locked batches cover the quantity, so this walk always completes.
    remaining_to_deduct = quantity
    consumptions: list[BatchConsumption] = []
    for batch in batches:
        if remaining_to_deduct <= 0:
            break
        taken = min(batch.quantity_remaining, remaining_to_deduct)
        batch.quantity_remaining = batch.quantity_remaining - taken
        remaining_to_deduct -= taken
        consumptions.append(
            BatchConsumption(
                batch_id=batch.id,
                batch_number=batch.batch_number,
                warehouse_id=batch.warehouse_id,
                purchase_price=to_money(batch.purchase_price),
                purchase_date=batch.purchase_date,
                quantity_taken=taken,
            )
        )

    _append_transaction(
        db,
        org_id=org_id,
        item_id=item.id,
        warehouse_id=warehouse_id,
        transaction_type=transaction_type,
        quantity=-quantity,
        reference_id=reference_id,
        reference_type=reference_type,
        notes=notes or f"Deducted {quantity} units using FIFO method",
        created_by=created_by,
    )
    db.flush()
    db.refresh(item)

    log_event(
        logger,
        logging.INFO,
        "stock_deducted",
        org_id=org_id,
        item_id=item.id,
        warehouse_id=warehouse_id,
        quantity=quantity,
        batches=[row.batch_number for row in consumptions],
        cost=str(cost_of_goods_sold(consumptions)),
        stock_quantity=item.stock_quantity,
    )
    check_low_stock(db, org_id=org_id, item=item, notifier=notifier)
    return consumptions


def adjust_stock(
    db: Session,
    *,
    org_id: str,
    item_id: str,
    warehouse_id: str,
    quantity: int,
    adjustment_type: str,
    reason: str,
    user_id: str | None,
    purchase_price: Decimal | int | float | str | None = None,
    notifier: LowStockNotifier | None = None,
) -> StockAdjustmentResult:
    """Manual correction. Writes a single log row typed with the adjustment
    kind and carrying the reason, rather than a generic row plus a reason row.
    """
    if adjustment_type not in ALLOWED_ADJUSTMENT_TYPES:
        allowed = ", ".join(sorted(ALLOWED_ADJUSTMENT_TYPES))
        raise StockValidationError(f"Invalid adjustment type '{adjustment_type}'. Allowed: {allowed}")
    cleaned_reason = (reason or "").strip()
    if not cleaned_reason:
        raise StockValidationError("Adjustment reason is required")

    if adjustment_type in ADJUSTMENT_INCREASE_TYPES:
        batch = add_stock(
            db,
            org_id=org_id,
            item_id=item_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            purchase_price=purchase_price if purchase_price is not None else ZERO_MONEY,
            reference_type=adjustment_type,
            transaction_type=adjustment_type,
            notes=cleaned_reason,
            created_by=user_id,
        )
        result = StockAdjustmentResult(adjustment_type=adjustment_type, quantity_delta=quantity, batch=batch)
    else:
        consumptions = deduct_stock(
            db,
            org_id=org_id,
            item_id=item_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            reference_type=adjustment_type,
            transaction_type=adjustment_type,
            notes=cleaned_reason,
            created_by=user_id,
            notifier=notifier,
        )
        result = StockAdjustmentResult(
            adjustment_type=adjustment_type,
            quantity_delta=-quantity,
            consumptions=consumptions,
        )

    log_event(
        logger,
        logging.INFO,
        "stock_adjusted",
        org_id=org_id,
        item_id=item_id,
        adjustment_type=adjustment_type,
        quantity_delta=result.quantity_delta,
        user_id=user_id,
    )
    return result


def calculate_fifo_valuation(
    db: Session,
    *,
    org_id: str,
    item_id: str,
    warehouse_id: str | None = None,
) -> FIFOValuation:
    item = _get_item(db, org_id=org_id, item_id=item_id)

    stmt = select(InventoryBatch).where(
        InventoryBatch.org_id == org_id,
        InventoryBatch.item_id == item.id,
        InventoryBatch.quantity_remaining > 0,
    )
    if warehouse_id:
        stmt = stmt.where(InventoryBatch.warehouse_id == warehouse_id)
    stmt = stmt.order_by(
        InventoryBatch.purchase_date.asc(),
        InventoryBatch.created_at.asc(),
        InventoryBatch.id.asc(),
    )
    rows = db.execute(stmt).scalars().all()

    total_quantity = 0
    total_value = ZERO_MONEY
    batches: list[ValuationBatch] = []
    for row in rows:
        value = extended_cost(row.quantity_remaining, row.purchase_price)
        total_quantity += row.quantity_remaining
        total_value += value
        batches.append(
            ValuationBatch(
                batch_id=row.id,
                batch_number=row.batch_number,
                warehouse_id=row.warehouse_id,
                quantity=row.quantity_remaining,
                purchase_price=to_money(row.purchase_price),
                purchase_date=row.purchase_date,
                value=value,
            )
        )

    total_value = to_money(total_value)
    return FIFOValuation(
        item_id=item.id,
        warehouse_id=warehouse_id,
        total_quantity=total_quantity,
        total_value=total_value,
        average_cost=average_unit_cost(total_value, total_quantity),
        batches=batches,
    )


def _stock_value_by_item(db: Session, *, org_id: str) -> dict[str, Decimal]:
    rows = db.execute(
        select(
            InventoryBatch.item_id,
            InventoryBatch.quantity_remaining,
            InventoryBatch.purchase_price,
        ).where(
            InventoryBatch.org_id == org_id,
            InventoryBatch.quantity_remaining > 0,
        )
    ).all()
    values: dict[str, Decimal] = {}
    for item_id, quantity_remaining, purchase_price in rows:
        values[item_id] = values.get(item_id, ZERO_MONEY) + extended_cost(quantity_remaining, purchase_price)
    return values


def get_inventory_report(db: Session, *, org_id: str) -> list[InventoryReportRow]:
    items = db.execute(
        select(Item).where(Item.org_id == org_id).order_by(Item.name.asc(), Item.id.asc())
    ).scalars().all()
    if not items:
        return []

    warehouse_names = {
        warehouse_id: name
        for warehouse_id, name in db.execute(
            select(Warehouse.id, Warehouse.name).where(Warehouse.org_id == org_id)
        ).all()
    }
    value_by_item = _stock_value_by_item(db, org_id=org_id)

    report: list[InventoryReportRow] = []
    for item in items:
        warehouse_name = "Default"
        if item.default_warehouse_id:
            warehouse_name = warehouse_names.get(item.default_warehouse_id) or "Default"
        report.append(
            InventoryReportRow(
                item_id=item.id,
                item_name=item.name,
                sku=item.sku or "",
                current_stock=item.stock_quantity,
                stock_value=to_money(value_by_item.get(item.id, ZERO_MONEY)),
                low_stock_threshold=item.low_stock_threshold,
                is_low_stock=item.stock_quantity <= item.low_stock_threshold,
                warehouse_id=item.default_warehouse_id or "",
                warehouse_name=warehouse_name,
            )
        )
    return report


def get_total_inventory_value(db: Session, *, org_id: str) -> Decimal:
    values = _stock_value_by_item(db, org_id=org_id)
    return to_money(sum(values.values(), ZERO_MONEY))


def get_low_stock_items(db: Session, *, org_id: str) -> list[Item]:
    return list(
        db.execute(
            select(Item)
            .where(
                Item.org_id == org_id,
                Item.is_service.is_(False),
                Item.stock_quantity <= Item.low_stock_threshold,
            )
            .order_by(Item.name.asc(), Item.id.asc())
        ).scalars().all()
    )


def get_stock_movements(
    db: Session,
    *,
    org_id: str,
    item_id: str,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[StockTransaction], int]:
    _get_item(db, org_id=org_id, item_id=item_id)

    filters = (StockTransaction.org_id == org_id, StockTransaction.item_id == item_id)
    total = int(db.execute(select(func.count(StockTransaction.id)).where(*filters)).scalar_one())
    rows = db.execute(
        select(StockTransaction)
        .where(*filters)
        .order_by(StockTransaction.created_at.desc(), StockTransaction.id.asc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    return list(rows), total
