import logging
from dataclasses import asdict, dataclass
from typing import Protocol

from app.core.config import settings
from app.core.observability import log_event
from app.services.email_service import send_low_stock_email

logger = logging.getLogger("bahi.alerts")


@dataclass(frozen=True)
class LowStockNotification:
    item_name: str
    sku: str
    current_stock: int
    threshold: int
    is_out_of_stock: bool
    organization_name: str = ""
    recipient_email: str | None = None


@dataclass(frozen=True)
class NotificationResult:
    notifier: str
    status: str
    detail: str | None = None


class LowStockNotifier(Protocol):
    """Delivers a low-stock notice. Called only after the alert is committed."""

    name: str

    def send_low_stock_alert(self, org_id: str, notification: LowStockNotification) -> NotificationResult:
        ...


class LogLowStockNotifier:
    name = "log"

    def send_low_stock_alert(self, org_id: str, notification: LowStockNotification) -> NotificationResult:
        fields = asdict(notification)
        fields.pop("recipient_email")
        log_event(logger, logging.WARNING, "low_stock_alert", org_id=org_id, **fields)
        return NotificationResult(notifier=self.name, status="sent")


class EmailLowStockNotifier:
    name = "email"

    def send_low_stock_alert(self, org_id: str, notification: LowStockNotification) -> NotificationResult:
        if not notification.recipient_email:
            return NotificationResult(
                notifier=self.name,
                status="not_configured",
                detail="Organization has no notification email",
            )
        result = send_low_stock_email(
            recipient_email=notification.recipient_email,
            organization_name=notification.organization_name,
            item_name=notification.item_name,
            sku=notification.sku,
            current_stock=notification.current_stock,
            threshold=notification.threshold,
            is_out_of_stock=notification.is_out_of_stock,
        )
        return NotificationResult(notifier=self.name, status=result.status, detail=result.detail)


_LOW_STOCK_NOTIFIERS: dict[str, LowStockNotifier] = {
    "log": LogLowStockNotifier(),
    "email": EmailLowStockNotifier(),
}


def get_low_stock_notifier(name: str | None = None) -> LowStockNotifier:
    normalized = (name or settings.low_stock_notifier or "").strip().lower()
    notifier = _LOW_STOCK_NOTIFIERS.get(normalized)
    if not notifier:
        available = ", ".join(sorted(_LOW_STOCK_NOTIFIERS))
        raise ValueError(f"Unknown low stock notifier '{name}'. Available: {available}")
    return notifier
