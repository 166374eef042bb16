import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import event, select, update
from sqlalchemy.orm import Session, SessionTransaction

from app.core.observability import log_event
from app.models.inventory import StockAlert
from app.models.item import Item
from app.models.organization import Organization
from app.services.notification_service import (
    LowStockNotification,
    LowStockNotifier,
    get_low_stock_notifier,
)

logger = logging.getLogger("bahi.alerts")

ALERT_LOW_STOCK = "low_stock"
ALERT_OUT_OF_STOCK = "out_of_stock"

_PENDING_NOTIFICATIONS = "pending_low_stock_notifications"


@event.listens_for(Session, "after_commit")
def _send_pending_notifications(session: Session) -> None:
    # Savepoint releases also fire after_commit; wait for the outer commit.
    if session.in_nested_transaction():
        return
    for notifier, org_id, item_id, notification in session.info.pop(_PENDING_NOTIFICATIONS, []):
        try:
            (notifier or get_low_stock_notifier()).send_low_stock_alert(org_id, notification)
        except Exception as exc:  # noqa: BLE001 - stock correctness must not depend on notifications
            log_event(
                logger,
                logging.WARNING,
                "stock_alert_notification_failed",
                org_id=org_id,
                item_id=item_id,
                error=str(exc),
            )


@event.listens_for(Session, "after_transaction_end")
def _discard_pending_notifications(session: Session, transaction: SessionTransaction) -> None:
    # Anything still queued when the outer transaction ends belongs to a rollback.
    if transaction.parent is None:
        session.info.pop(_PENDING_NOTIFICATIONS, None)


def _open_alert(db: Session, *, org_id: str, item_id: str) -> StockAlert | None:
    return db.execute(
        select(StockAlert).where(
            StockAlert.org_id == org_id,
            StockAlert.item_id == item_id,
            StockAlert.is_resolved.is_(False),
        )
    ).scalar_one_or_none()


def check_low_stock(
    db: Session,
    *,
    org_id: str,
    item: Item,
    notifier: LowStockNotifier | None = None,
) -> StockAlert | None:
    """Open an alert when stock is at or below the threshold and none is open.

    Exactly at the threshold counts as low. The notification is queued on the
    session and delivered once the caller commits; a rollback drops it.
    Delivery failures are logged and never propagate.
    """
    if item.stock_quantity > item.low_stock_threshold:
        return None
    if _open_alert(db, org_id=org_id, item_id=item.id) is not None:
        return None

    is_out_of_stock = item.stock_quantity == 0
    alert = StockAlert(
        id=str(uuid.uuid4()),
        org_id=org_id,
        item_id=item.id,
        alert_type=ALERT_OUT_OF_STOCK if is_out_of_stock else ALERT_LOW_STOCK,
        current_quantity=item.stock_quantity,
        threshold=item.low_stock_threshold,
        is_resolved=False,
    )
    db.add(alert)
    db.flush()
    log_event(
        logger,
        logging.INFO,
        "stock_alert_opened",
        org_id=org_id,
        item_id=item.id,
        alert_type=alert.alert_type,
        current_quantity=alert.current_quantity,
        threshold=alert.threshold,
    )

    org = db.get(Organization, org_id)
    notification = LowStockNotification(
        item_name=item.name,
        sku=item.sku or "",
        current_stock=item.stock_quantity,
        threshold=item.low_stock_threshold,
        is_out_of_stock=is_out_of_stock,
        organization_name=org.name if org else "",
        recipient_email=org.notification_email if org else None,
    )
    db.info.setdefault(_PENDING_NOTIFICATIONS, []).append((notifier, org_id, item.id, notification))
    return alert


def resolve_stock_alerts(db: Session, *, org_id: str, item: Item) -> int:
    if item.stock_quantity <= item.low_stock_threshold:
        return 0

    result = db.execute(
        update(StockAlert)
        .where(
            StockAlert.org_id == org_id,
            StockAlert.item_id == item.id,
            StockAlert.is_resolved.is_(False),
        )
        .values(is_resolved=True, resolved_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session="fetch")
    )
    resolved = int(result.rowcount or 0)
    if resolved:
        log_event(
            logger,
            logging.INFO,
            "stock_alerts_resolved",
            org_id=org_id,
            item_id=item.id,
            resolved=resolved,
            current_quantity=item.stock_quantity,
        )
    return resolved


def list_stock_alerts(
    db: Session,
    *,
    org_id: str,
    include_resolved: bool = False,
    item_id: str | None = None,
) -> list[StockAlert]:
    stmt = select(StockAlert).where(StockAlert.org_id == org_id)
    if not include_resolved:
        stmt = stmt.where(StockAlert.is_resolved.is_(False))
    if item_id:
        stmt = stmt.where(StockAlert.item_id == item_id)
    stmt = stmt.order_by(StockAlert.created_at.desc(), StockAlert.id.asc())
    return list(db.execute(stmt).scalars().all())
