from dataclasses import dataclass
from email.message import EmailMessage
import smtplib
from typing import Literal

from app.core.config import settings

EmailDeliveryStatus = Literal["sent", "not_configured", "failed"]


@dataclass(frozen=True)
class EmailDeliveryResult:
    status: EmailDeliveryStatus
    detail: str | None = None


def _smtp_configured() -> bool:
    return bool(settings.smtp_host and settings.smtp_sender_email)


def _build_low_stock_body(
    *,
    organization_name: str,
    item_name: str,
    sku: str,
    current_stock: int,
    threshold: int,
    is_out_of_stock: bool,
) -> str:
    headline = "is out of stock" if is_out_of_stock else "is running low"
    lines = [
        f"{item_name} {headline} at {organization_name}.",
        "",
        f"SKU: {sku or '-'}",
        f"Current stock: {current_stock}",
        f"Alert threshold: {threshold}",
        "",
        "Record a purchase or goods receipt to replenish stock; the alert resolves automatically.",
    ]
    return "\n".join(lines)


def send_low_stock_email(
    *,
    recipient_email: str,
    organization_name: str,
    item_name: str,
    sku: str,
    current_stock: int,
    threshold: int,
    is_out_of_stock: bool,
) -> EmailDeliveryResult:
    if not _smtp_configured():
        return EmailDeliveryResult(
            status="not_configured",
            detail="SMTP not configured",
        )

    message = EmailMessage()
    label = "Out of stock" if is_out_of_stock else "Low stock"
    message["Subject"] = f"{label}: {item_name}"
    message["From"] = settings.smtp_sender_email
    message["To"] = recipient_email
    if settings.smtp_reply_to_email:
        message["Reply-To"] = settings.smtp_reply_to_email
    message.set_content(
        _build_low_stock_body(
            organization_name=organization_name,
            item_name=item_name,
            sku=sku,
            current_stock=current_stock,
            threshold=threshold,
            is_out_of_stock=is_out_of_stock,
        )
    )

    try:
        if settings.smtp_use_ssl:
            with smtplib.SMTP_SSL(
                settings.smtp_host,
                settings.smtp_port,
                timeout=20,
            ) as server:
                if settings.smtp_username:
                    server.login(settings.smtp_username, settings.smtp_password or "")
                server.send_message(message)
        else:
            with smtplib.SMTP(
                settings.smtp_host,
                settings.smtp_port,
                timeout=20,
            ) as server:
                if settings.smtp_use_starttls:
                    server.starttls()
                if settings.smtp_username:
                    server.login(settings.smtp_username, settings.smtp_password or "")
                server.send_message(message)
    except Exception as exc:  # noqa: BLE001 - expose short status back to caller
        return EmailDeliveryResult(status="failed", detail=str(exc))

    return EmailDeliveryResult(status="sent", detail=None)
