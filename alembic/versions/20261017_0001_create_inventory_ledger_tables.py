"""create inventory ledger and document tables

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261017_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _index_exists(inspector: sa.Inspector, table_name: str, index_name: str) -> bool:
    return index_name in {index["name"] for index in inspector.get_indexes(table_name)}


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def _create_indexes(inspector: sa.Inspector, table_name: str, indexes: list[tuple[str, list[str]]]) -> None:
    for index_name, columns in indexes:
        if not _index_exists(inspector, table_name, index_name):
            op.create_index(index_name, table_name, columns, unique=False)


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "organizations"):
        op.create_table(
            "organizations",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("fiscal_year_start", sa.Integer(), nullable=False, server_default="4"),
            sa.Column("invoice_prefix", sa.String(length=20), nullable=True, server_default="INV"),
            sa.Column("notification_email", sa.String(length=255), nullable=True),
            _created_at(),
            sa.CheckConstraint(
                "fiscal_year_start BETWEEN 1 AND 12",
                name="ck_organizations_fiscal_year_start_month",
            ),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "warehouses"):
        op.create_table(
            "warehouses",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("org_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("code", sa.String(length=30), nullable=True),
            sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
            _created_at(),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "items"):
        op.create_table(
            "items",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("org_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("sku", sa.String(length=100), nullable=True),
            sa.Column("unit", sa.String(length=20), nullable=False, server_default="PCS"),
            sa.Column("stock_quantity", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("low_stock_threshold", sa.Integer(), nullable=False, server_default="10"),
            sa.Column("default_warehouse_id", sa.String(length=36), nullable=True),
            sa.Column("is_service", sa.Boolean(), nullable=False, server_default=sa.false()),
            _created_at(),
            _updated_at(),
            sa.CheckConstraint("stock_quantity >= 0", name="ck_items_stock_quantity_non_negative"),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
            sa.ForeignKeyConstraint(["default_warehouse_id"], ["warehouses.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "inventory_batches"):
        op.create_table(
            "inventory_batches",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("org_id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("warehouse_id", sa.String(length=36), nullable=False),
            sa.Column("batch_number", sa.String(length=40), nullable=False),
            sa.Column("purchase_price", sa.Numeric(12, 2), nullable=False),
            sa.Column("quantity_received", sa.Integer(), nullable=False),
            sa.Column("quantity_remaining", sa.Integer(), nullable=False),
            sa.Column("purchase_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("reference_id", sa.String(length=36), nullable=True),
            sa.Column("reference_type", sa.String(length=50), nullable=True),
            _created_at(),
            _updated_at(),
            sa.CheckConstraint(
                "quantity_remaining >= 0",
                name="ck_inventory_batches_remaining_non_negative",
            ),
            sa.CheckConstraint(
                "quantity_remaining <= quantity_received",
                name="ck_inventory_batches_remaining_within_received",
            ),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "stock_transactions"):
        op.create_table(
            "stock_transactions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("org_id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("warehouse_id", sa.String(length=36), nullable=False),
            sa.Column("type", sa.String(length=30), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("reference_id", sa.String(length=36), nullable=True),
            sa.Column("reference_type", sa.String(length=50), nullable=True),
            sa.Column("notes", sa.String(length=255), nullable=True),
            sa.Column("created_by", sa.String(length=36), nullable=True),
            _created_at(),
            sa.CheckConstraint("quantity <> 0", name="ck_stock_transactions_quantity_non_zero"),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "stock_alerts"):
        op.create_table(
            "stock_alerts",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("org_id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("alert_type", sa.String(length=20), nullable=False),
            sa.Column("current_quantity", sa.Integer(), nullable=False),
            sa.Column("threshold", sa.Integer(), nullable=False),
            sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
            _created_at(),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    for table_name, number_column in (("invoices", "invoice_number"), ("quotations", "quotation_number")):
        if not _table_exists(inspector, table_name):
            op.create_table(
                table_name,
                sa.Column("id", sa.String(length=36), nullable=False),
                sa.Column("org_id", sa.String(length=36), nullable=False),
                sa.Column(number_column, sa.String(length=40), nullable=False),
                sa.Column("customer_name", sa.String(length=255), nullable=True),
                sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
                sa.Column("total_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
                sa.Column("issue_date", sa.Date(), nullable=False),
                sa.Column("created_by", sa.String(length=36), nullable=True),
                _created_at(),
                sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
                sa.PrimaryKeyConstraint("id"),
                sa.UniqueConstraint("org_id", number_column, name=f"uq_{table_name}_org_{number_column}"),
            )

    inspector = sa.inspect(bind)
    _create_indexes(
        inspector,
        "warehouses",
        [
            ("ix_warehouses_org_id", ["org_id"]),
            ("ix_warehouses_org_default", ["org_id", "is_default"]),
        ],
    )
    _create_indexes(
        inspector,
        "items",
        [
            ("ix_items_org_id", ["org_id"]),
            ("ix_items_org_name", ["org_id", "name"]),
        ],
    )
    _create_indexes(
        inspector,
        "inventory_batches",
        [
            ("ix_inventory_batches_org_id", ["org_id"]),
            ("ix_inventory_batches_item_id", ["item_id"]),
            (
                "ix_inventory_batches_org_item_warehouse_purchase_date",
                ["org_id", "item_id", "warehouse_id", "purchase_date"],
            ),
        ],
    )
    _create_indexes(
        inspector,
        "stock_transactions",
        [
            ("ix_stock_transactions_org_id", ["org_id"]),
            ("ix_stock_transactions_item_id", ["item_id"]),
            ("ix_stock_transactions_warehouse_id", ["warehouse_id"]),
            ("ix_stock_transactions_org_item_created_at", ["org_id", "item_id", "created_at"]),
        ],
    )
    _create_indexes(
        inspector,
        "stock_alerts",
        [
            ("ix_stock_alerts_org_id", ["org_id"]),
            ("ix_stock_alerts_item_id", ["item_id"]),
            ("ix_stock_alerts_org_resolved_created_at", ["org_id", "is_resolved", "created_at"]),
        ],
    )
    _create_indexes(
        inspector,
        "invoices",
        [
            ("ix_invoices_org_id", ["org_id"]),
            ("ix_invoices_org_created_at", ["org_id", "created_at"]),
        ],
    )
    _create_indexes(
        inspector,
        "quotations",
        [
            ("ix_quotations_org_id", ["org_id"]),
            ("ix_quotations_org_created_at", ["org_id", "created_at"]),
        ],
    )

    op.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS ux_items_org_sku_lower
        ON items (org_id, lower(sku))
        WHERE sku IS NOT NULL
        """
    )
    op.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS ux_stock_alerts_org_item_open
        ON stock_alerts (org_id, item_id)
        WHERE is_resolved = false
        """
    )


def downgrade() -> None:
    bind = op.get_bind()

    op.execute("DROP INDEX IF EXISTS ux_stock_alerts_org_item_open")
    op.execute("DROP INDEX IF EXISTS ux_items_org_sku_lower")

    # Reverse dependency order; indexes go with their tables.
    for table_name in (
        "quotations",
        "invoices",
        "stock_alerts",
        "stock_transactions",
        "inventory_batches",
        "items",
        "warehouses",
        "organizations",
    ):
        inspector = sa.inspect(bind)
        if _table_exists(inspector, table_name):
            op.drop_table(table_name)
