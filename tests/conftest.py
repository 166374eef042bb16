import logging
import os
import uuid
from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOW_STOCK_NOTIFIER", "log")

import app.models  # noqa: F401
from app.core.deps import get_db
from app.db.base import Base
from app.main import app
from app.models.item import Item
from app.models.organization import Organization
from app.models.warehouse import Warehouse


@dataclass(frozen=True)
class Tenant:
    org_id: str
    warehouse_id: str
    item_id: str


@pytest.fixture()
def test_context():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as client:
        yield client, session_local

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db(test_context):
    _, session_local = test_context
    session = session_local()
    try:
        yield session
    finally:
        session.close()


def create_tenant(
    session: Session,
    *,
    name: str = "Sharma Traders",
    item_name: str = "Basmati Rice 5kg",
    low_stock_threshold: int = 10,
    invoice_prefix: str | None = "INV",
    fiscal_year_start: int = 4,
) -> Tenant:
    org = Organization(
        id=str(uuid.uuid4()),
        name=name,
        fiscal_year_start=fiscal_year_start,
        invoice_prefix=invoice_prefix,
    )
    warehouse = Warehouse(
        id=str(uuid.uuid4()),
        org_id=org.id,
        name="Main Godown",
        code="MAIN",
        is_default=True,
    )
    item = Item(
        id=str(uuid.uuid4()),
        org_id=org.id,
        name=item_name,
        sku=f"SKU-{uuid.uuid4().hex[:8]}",
        low_stock_threshold=low_stock_threshold,
        default_warehouse_id=warehouse.id,
    )
    session.add(org)
    session.flush()
    session.add(warehouse)
    session.flush()
    session.add(item)
    session.commit()
    return Tenant(org_id=org.id, warehouse_id=warehouse.id, item_id=item.id)


def create_item(session: Session, *, org_id: str, name: str, **fields) -> str:
    item = Item(id=str(uuid.uuid4()), org_id=org_id, name=name, **fields)
    session.add(item)
    session.commit()
    return item.id


def create_warehouse(session: Session, *, org_id: str, name: str) -> str:
    warehouse = Warehouse(id=str(uuid.uuid4()), org_id=org_id, name=name)
    session.add(warehouse)
    session.commit()
    return warehouse.id


@pytest.fixture()
def tenant(db) -> Tenant:
    return create_tenant(db)


@pytest.fixture()
def bahi_logs(caplog):
    """The ``bahi`` logger does not propagate, so attach caplog to it directly."""
    bahi_logger = logging.getLogger("bahi")
    bahi_logger.addHandler(caplog.handler)
    caplog.set_level(logging.DEBUG, logger="bahi")
    try:
        yield caplog
    finally:
        bahi_logger.removeHandler(caplog.handler)


@pytest.fixture()
def make_tenant(db):
    def _make(**fields) -> Tenant:
        return create_tenant(db, **fields)

    return _make


@pytest.fixture()
def make_item(db):
    def _make(*, org_id: str, name: str, **fields) -> str:
        return create_item(db, org_id=org_id, name=name, **fields)

    return _make


@pytest.fixture()
def make_warehouse(db):
    def _make(*, org_id: str, name: str) -> str:
        return create_warehouse(db, org_id=org_id, name=name)

    return _make
