import re
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from app.core.errors import (
    InconsistentLedgerError,
    InsufficientStockError,
    ItemNotFoundError,
    StockValidationError,
    WarehouseNotFoundError,
)
from app.models.inventory import InventoryBatch, StockTransaction
from app.models.item import Item
from app.services.inventory_service import (
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

BASE_DATE = datetime(2026, 4, 1, 9, 0, tzinfo=timezone.utc)


def _receive(db, tenant, quantity, price, *, day=0, warehouse_id=None, item_id=None):
    batch = add_stock(
        db,
        org_id=tenant.org_id,
        item_id=item_id or tenant.item_id,
        warehouse_id=warehouse_id or tenant.warehouse_id,
        quantity=quantity,
        purchase_price=price,
        purchase_date=BASE_DATE + timedelta(days=day),
    )
    db.commit()
    return batch


def _stock(db, item_id: str) -> int:
    db.expire_all()
    return db.get(Item, item_id).stock_quantity


def _batch_sum(db, item_id: str) -> int:
    return int(
        db.execute(
            select(func.coalesce(func.sum(InventoryBatch.quantity_remaining), 0)).where(
                InventoryBatch.item_id == item_id
            )
        ).scalar_one()
    )


def _transactions(db, item_id: str) -> list[StockTransaction]:
    return list(
        db.execute(select(StockTransaction).where(StockTransaction.item_id == item_id)).scalars().all()
    )


def test_add_stock_creates_batch_and_logs_one_transaction(db, tenant):
    batch = _receive(db, tenant, 10, "12.5")

    assert re.match(r"^BATCH-\d{13}-[0-9A-Z]{4}$", batch.batch_number)
    assert batch.quantity_received == 10
    assert batch.quantity_remaining == 10
    assert Decimal(batch.purchase_price) == Decimal("12.50")
    assert _stock(db, tenant.item_id) == 10

    rows = _transactions(db, tenant.item_id)
    assert len(rows) == 1
    assert rows[0].type == "purchase"
    assert rows[0].quantity == 10
    assert rows[0].warehouse_id == tenant.warehouse_id
    assert rows[0].notes == "Added 10 units at 12.50 per unit"


def test_each_receipt_is_a_separate_batch(db, tenant):
    first = _receive(db, tenant, 5, 10, day=0)
    second = _receive(db, tenant, 5, 10, day=0)

    assert first.id != second.id
    assert db.execute(select(func.count(InventoryBatch.id))).scalar_one() == 2
    assert _stock(db, tenant.item_id) == 10


def test_fifo_deduction_consumes_oldest_batch_first(db, tenant):
    older = _receive(db, tenant, 5, 10, day=0)
    newer = _receive(db, tenant, 5, 20, day=1)

    consumptions = deduct_stock(
        db,
        org_id=tenant.org_id,
        item_id=tenant.item_id,
        warehouse_id=tenant.warehouse_id,
        quantity=7,
        reference_id="invoice-1",
        reference_type="invoice",
    )
    db.commit()

    assert [(row.batch_id, row.quantity_taken) for row in consumptions] == [(older.id, 5), (newer.id, 2)]
    assert cost_of_goods_sold(consumptions) == Decimal("130.00")

    db.expire_all()
    assert db.get(InventoryBatch, older.id).quantity_remaining == 0
    assert db.get(InventoryBatch, newer.id).quantity_remaining == 3
    assert _stock(db, tenant.item_id) == 3

    sale = [row for row in _transactions(db, tenant.item_id) if row.type == "sale"]
    assert len(sale) == 1
    assert sale[0].quantity == -7
    assert sale[0].reference_id == "invoice-1"
    assert sale[0].notes == "Deducted 7 units using FIFO method"

    valuation = calculate_fifo_valuation(db, org_id=tenant.org_id, item_id=tenant.item_id)
    assert valuation.total_quantity == 3
    assert valuation.total_value == Decimal("60.00")
    assert valuation.average_cost == Decimal("20.00")
    assert [row.batch_id for row in valuation.batches] == [newer.id]


def test_backdated_receipt_is_consumed_first(db, tenant):
    received_later = _receive(db, tenant, 4, 30, day=10)
    backdated = _receive(db, tenant, 4, 15, day=2)

    consumptions = deduct_stock(
        db,
        org_id=tenant.org_id,
        item_id=tenant.item_id,
        warehouse_id=tenant.warehouse_id,
        quantity=4,
    )
    db.commit()

    assert [row.batch_id for row in consumptions] == [backdated.id]
    assert cost_of_goods_sold(consumptions) == Decimal("60.00")
    db.expire_all()
    assert db.get(InventoryBatch, received_later.id).quantity_remaining == 4


def test_insufficient_stock_leaves_everything_untouched(db, tenant):
    batch = _receive(db, tenant, 10, 10)

    with pytest.raises(InsufficientStockError) as exc_info:
        deduct_stock(
            db,
            org_id=tenant.org_id,
            item_id=tenant.item_id,
            warehouse_id=tenant.warehouse_id,
            quantity=100,
        )
    db.rollback()

    err = exc_info.value
    assert err.available == 10
    assert err.required == 100
    assert err.item_name == "Basmati Rice 5kg"
    assert "Available: 10, Required: 100" in err.message

    assert _stock(db, tenant.item_id) == 10
    assert db.get(InventoryBatch, batch.id).quantity_remaining == 10
    assert len(_transactions(db, tenant.item_id)) == 1


def test_deducting_entire_stock_is_allowed(db, tenant):
    _receive(db, tenant, 6, 10)

    deduct_stock(
        db,
        org_id=tenant.org_id,
        item_id=tenant.item_id,
        warehouse_id=tenant.warehouse_id,
        quantity=6,
    )
    db.commit()

    assert _stock(db, tenant.item_id) == 0
    assert _batch_sum(db, tenant.item_id) == 0
    # Exhausted batches are kept for history.
    assert db.execute(select(func.count(InventoryBatch.id))).scalar_one() == 1


@pytest.mark.parametrize("quantity", [0, -3])
def test_non_positive_quantities_are_rejected(db, tenant, quantity):
    with pytest.raises(StockValidationError):
        add_stock(
            db,
            org_id=tenant.org_id,
            item_id=tenant.item_id,
            warehouse_id=tenant.warehouse_id,
            quantity=quantity,
            purchase_price=10,
        )
    with pytest.raises(StockValidationError):
        deduct_stock(
            db,
            org_id=tenant.org_id,
            item_id=tenant.item_id,
            warehouse_id=tenant.warehouse_id,
            quantity=quantity,
        )
    db.rollback()
    assert _transactions(db, tenant.item_id) == []


def test_negative_purchase_price_is_rejected(db, tenant):
    with pytest.raises(StockValidationError):
        add_stock(
            db,
            org_id=tenant.org_id,
            item_id=tenant.item_id,
            warehouse_id=tenant.warehouse_id,
            quantity=5,
            purchase_price="-1.00",
        )


def test_zero_cost_receipt_is_allowed(db, tenant):
    batch = _receive(db, tenant, 3, 0)
    assert Decimal(batch.purchase_price) == Decimal("0.00")


def test_unknown_item_and_warehouse_are_not_found(db, tenant):
    with pytest.raises(ItemNotFoundError):
        add_stock(
            db,
            org_id=tenant.org_id,
            item_id=str(uuid.uuid4()),
            warehouse_id=tenant.warehouse_id,
            quantity=1,
            purchase_price=1,
        )
    with pytest.raises(WarehouseNotFoundError):
        add_stock(
            db,
            org_id=tenant.org_id,
            item_id=tenant.item_id,
            warehouse_id=str(uuid.uuid4()),
            quantity=1,
            purchase_price=1,
        )
    db.rollback()
    assert _stock(db, tenant.item_id) == 0


def test_operations_never_cross_organizations(db, tenant, make_tenant):
    other = make_tenant(name="Gupta Stores", item_name="Mustard Oil 1L")
    _receive(db, tenant, 10, 10)

    with pytest.raises(ItemNotFoundError):
        deduct_stock(
            db,
            org_id=other.org_id,
            item_id=tenant.item_id,
            warehouse_id=other.warehouse_id,
            quantity=1,
        )
    with pytest.raises(WarehouseNotFoundError):
        add_stock(
            db,
            org_id=other.org_id,
            item_id=other.item_id,
            warehouse_id=tenant.warehouse_id,
            quantity=1,
            purchase_price=1,
        )
    with pytest.raises(ItemNotFoundError):
        calculate_fifo_valuation(db, org_id=other.org_id, item_id=tenant.item_id)
    db.rollback()

    assert _stock(db, tenant.item_id) == 10
    assert get_inventory_report(db, org_id=other.org_id)[0].item_id == other.item_id
    assert get_total_inventory_value(db, org_id=other.org_id) == Decimal("0.00")


def test_shortfall_in_one_warehouse_is_insufficient_stock(db, tenant, make_warehouse):
    branch = make_warehouse(org_id=tenant.org_id, name="Branch Godown")
    main_batch = _receive(db, tenant, 5, 10, day=0)
    _receive(db, tenant, 5, 12, day=1, warehouse_id=branch)

    with pytest.raises(InsufficientStockError) as exc_info:
        deduct_stock(
            db,
            org_id=tenant.org_id,
            item_id=tenant.item_id,
            warehouse_id=tenant.warehouse_id,
            quantity=7,
        )
    db.rollback()

    assert exc_info.value.available == 5
    assert exc_info.value.required == 7
    assert exc_info.value.warehouse_id == tenant.warehouse_id
    assert _stock(db, tenant.item_id) == 10
    assert db.get(InventoryBatch, main_batch.id).quantity_remaining == 5


def test_warehouse_shortfall_commits_nothing(db, tenant, make_warehouse):
    branch = make_warehouse(org_id=tenant.org_id, name="Branch Godown")
    main_batch = _receive(db, tenant, 3, 10, day=0)
    _receive(db, tenant, 10, 12, day=1, warehouse_id=branch)

    with pytest.raises(InsufficientStockError):
        deduct_stock(
            db,
            org_id=tenant.org_id,
            item_id=tenant.item_id,
            warehouse_id=tenant.warehouse_id,
            quantity=5,
        )
    # A caller may handle the rejection and carry on in the same transaction.
    db.commit()

    assert _stock(db, tenant.item_id) == 13
    assert _batch_sum(db, tenant.item_id) == 13
    assert db.get(InventoryBatch, main_batch.id).quantity_remaining == 3
    assert len(_transactions(db, tenant.item_id)) == 2

    consumptions = deduct_stock(
        db,
        org_id=tenant.org_id,
        item_id=tenant.item_id,
        warehouse_id=branch,
        quantity=5,
    )
    db.commit()
    assert [row.quantity_taken for row in consumptions] == [5]
    assert _stock(db, tenant.item_id) == _batch_sum(db, tenant.item_id) == 8


def test_cached_stock_drift_is_reported_as_inconsistent_ledger(db, tenant, bahi_logs):
    batch = _receive(db, tenant, 5, 10)
    db.execute(update(Item).where(Item.id == tenant.item_id).values(stock_quantity=8))
    db.commit()

    with pytest.raises(InconsistentLedgerError) as exc_info:
        deduct_stock(
            db,
            org_id=tenant.org_id,
            item_id=tenant.item_id,
            warehouse_id=tenant.warehouse_id,
            quantity=7,
        )
    db.rollback()

    err = exc_info.value
    assert err.cached_quantity == 8
    assert err.batch_quantity == 5
    assert err.shortfall == 2
    assert err.status_code == 500

    assert _stock(db, tenant.item_id) == 8
    assert db.get(InventoryBatch, batch.id).quantity_remaining == 5
    assert any(
        record.levelname == "ERROR" and "inventory_ledger_inconsistent" in record.getMessage()
        for record in bahi_logs.records
    )


def test_ledger_stays_consistent_across_mixed_operations(db, tenant):
    _receive(db, tenant, 12, 10, day=0)
    _receive(db, tenant, 8, 11, day=1)
    deduct_stock(db, org_id=tenant.org_id, item_id=tenant.item_id, warehouse_id=tenant.warehouse_id, quantity=15)
    db.commit()
    adjust_stock(
        db,
        org_id=tenant.org_id,
        item_id=tenant.item_id,
        warehouse_id=tenant.warehouse_id,
        quantity=4,
        adjustment_type="return",
        reason="Customer returned unopened bags",
        user_id="user-1",
        purchase_price=10,
    )
    db.commit()
    adjust_stock(
        db,
        org_id=tenant.org_id,
        item_id=tenant.item_id,
        warehouse_id=tenant.warehouse_id,
        quantity=2,
        adjustment_type="damage",
        reason="Rats got into the godown",
        user_id="user-1",
    )
    db.commit()

    stock = _stock(db, tenant.item_id)
    assert stock == 12 + 8 - 15 + 4 - 2
    assert stock == _batch_sum(db, tenant.item_id)
    assert stock == sum(row.quantity for row in _transactions(db, tenant.item_id))


def test_increase_adjustment_writes_a_single_reasoned_row(db, tenant):
    result = adjust_stock(
        db,
        org_id=tenant.org_id,
        item_id=tenant.item_id,
        warehouse_id=tenant.warehouse_id,
        quantity=3,
        adjustment_type="adjustment_increase",
        reason="Found during stock count",
        user_id="user-7",
    )
    db.commit()

    assert result.quantity_delta == 3
    assert result.batch is not None
    assert Decimal(result.batch.purchase_price) == Decimal("0.00")

    rows = _transactions(db, tenant.item_id)
    assert len(rows) == 1
    assert rows[0].type == "adjustment_increase"
    assert rows[0].quantity == 3
    assert rows[0].notes == "Found during stock count"
    assert rows[0].created_by == "user-7"


def test_decrease_adjustment_uses_fifo_and_one_row(db, tenant):
    older = _receive(db, tenant, 2, 10, day=0)
    _receive(db, tenant, 5, 14, day=1)

    result = adjust_stock(
        db,
        org_id=tenant.org_id,
        item_id=tenant.item_id,
        warehouse_id=tenant.warehouse_id,
        quantity=3,
        adjustment_type="adjustment_decrease",
        reason="Count correction",
        user_id=None,
    )
    db.commit()

    assert result.quantity_delta == -3
    assert [(row.batch_id, row.quantity_taken) for row in result.consumptions][0] == (older.id, 2)
    adjustment_rows = [row for row in _transactions(db, tenant.item_id) if row.quantity < 0]
    assert len(adjustment_rows) == 1
    assert adjustment_rows[0].type == "adjustment_decrease"
    assert adjustment_rows[0].quantity == -3
    assert _stock(db, tenant.item_id) == 4


@pytest.mark.parametrize(
    ("adjustment_type", "reason"),
    [("transfer", "Moved to branch"), ("damage", "   ")],
)
def test_adjustment_validation(db, tenant, adjustment_type, reason):
    with pytest.raises(StockValidationError):
        adjust_stock(
            db,
            org_id=tenant.org_id,
            item_id=tenant.item_id,
            warehouse_id=tenant.warehouse_id,
            quantity=1,
            adjustment_type=adjustment_type,
            reason=reason,
            user_id=None,
        )


def test_valuation_of_item_without_stock_is_zero(db, tenant):
    valuation = calculate_fifo_valuation(db, org_id=tenant.org_id, item_id=tenant.item_id)

    assert valuation.total_quantity == 0
    assert valuation.total_value == Decimal("0.00")
    assert valuation.average_cost == Decimal("0.00")
    assert valuation.batches == []


def test_valuation_can_be_scoped_to_a_warehouse(db, tenant, make_warehouse):
    branch = make_warehouse(org_id=tenant.org_id, name="Branch Godown")
    _receive(db, tenant, 4, 10, day=0)
    _receive(db, tenant, 6, 25, day=1, warehouse_id=branch)

    overall = calculate_fifo_valuation(db, org_id=tenant.org_id, item_id=tenant.item_id)
    branch_only = calculate_fifo_valuation(db, org_id=tenant.org_id, item_id=tenant.item_id, warehouse_id=branch)

    assert overall.total_quantity == 10
    assert overall.total_value == Decimal("190.00")
    assert overall.average_cost == Decimal("19.00")
    assert branch_only.total_quantity == 6
    assert branch_only.total_value == Decimal("150.00")
    assert branch_only.warehouse_id == branch


def test_inventory_report_and_total_value(db, tenant, make_item):
    loose_item = make_item(org_id=tenant.org_id, name="Atta 10kg", low_stock_threshold=2)
    _receive(db, tenant, 5, 10, day=0)
    _receive(db, tenant, 5, 20, day=1)
    _receive(db, tenant, 3, "33.33", item_id=loose_item)

    rows = {row.item_id: row for row in get_inventory_report(db, org_id=tenant.org_id)}

    rice = rows[tenant.item_id]
    assert rice.current_stock == 10
    assert rice.stock_value == Decimal("150.00")
    assert rice.is_low_stock is True
    assert rice.warehouse_name == "Main Godown"

    atta = rows[loose_item]
    assert atta.stock_value == Decimal("99.99")
    assert atta.is_low_stock is False
    assert atta.warehouse_name == "Default"
    assert atta.warehouse_id == ""

    assert [row.item_name for row in get_inventory_report(db, org_id=tenant.org_id)] == [
        "Atta 10kg",
        "Basmati Rice 5kg",
    ]
    assert get_total_inventory_value(db, org_id=tenant.org_id) == Decimal("249.99")


def test_low_stock_items_skip_services(db, tenant, make_item):
    make_item(org_id=tenant.org_id, name="Delivery Charge", is_service=True)
    healthy = make_item(org_id=tenant.org_id, name="Sugar 1kg", low_stock_threshold=1)
    _receive(db, tenant, 5, 10, item_id=healthy)

    names = [item.name for item in get_low_stock_items(db, org_id=tenant.org_id)]

    assert names == ["Basmati Rice 5kg"]


def test_stock_movements_are_paginated(db, tenant):
    for day in range(3):
        _receive(db, tenant, 2, 10, day=day)
    deduct_stock(db, org_id=tenant.org_id, item_id=tenant.item_id, warehouse_id=tenant.warehouse_id, quantity=1)
    db.commit()

    rows, total = get_stock_movements(db, org_id=tenant.org_id, item_id=tenant.item_id, limit=2, offset=0)
    assert total == 4
    assert len(rows) == 2

    rest, _ = get_stock_movements(db, org_id=tenant.org_id, item_id=tenant.item_id, limit=2, offset=2)
    assert len(rest) == 2
    assert {row.id for row in rows}.isdisjoint({row.id for row in rest})
