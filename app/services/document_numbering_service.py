"""Invoice and quotation numbering.

Numbers look like ``INV-24-25-00001``: prefix, fiscal-year label and a
zero-padded sequence. The sequence is derived from a live scan of the
document table and reuses gaps left by deleted documents, so generating and
previewing a number are the same read. Uniqueness is enforced by the
``(org_id, <number>)`` unique constraints; ``create_with_document_number``
retries a bounded number of times when a concurrent writer takes the slot.
"""

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import InstrumentedAttribute, Session

from app.core.config import settings
from app.core.errors import DocumentNumberConflictError, OrganizationNotFoundError
from app.core.observability import log_event
from app.models.invoice import Invoice
from app.models.organization import Organization
from app.models.quotation import Quotation

logger = logging.getLogger("bahi.numbering")

DOCUMENT_INVOICE = "invoice"
DOCUMENT_QUOTATION = "quotation"

_NUMERIC_SUFFIX = re.compile(r"^[0-9]+$")


@dataclass(frozen=True)
class _DocumentTable:
    org_column: InstrumentedAttribute
    number_column: InstrumentedAttribute
    unique_constraint: str

    def is_number_clash(self, exc: IntegrityError) -> bool:
        """True when ``exc`` is the per-org number uniqueness violation.

        Postgres names the constraint; SQLite names the constrained columns.
        """
        message = str(exc.orig)
        column = f"{self.number_column.class_.__tablename__}.{self.number_column.key}"
        return self.unique_constraint in message or column in message


_DOCUMENT_TABLES: dict[str, _DocumentTable] = {
    DOCUMENT_INVOICE: _DocumentTable(Invoice.org_id, Invoice.invoice_number, "uq_invoices_org_invoice_number"),
    DOCUMENT_QUOTATION: _DocumentTable(
        Quotation.org_id, Quotation.quotation_number, "uq_quotations_org_quotation_number"
    ),
}


def current_fiscal_year(fiscal_year_start: int, today: date | None = None) -> str:
    """Two-digit label of the fiscal year containing ``today``, e.g. ``"24-25"``."""
    if not 1 <= fiscal_year_start <= 12:
        raise ValueError("fiscal_year_start must be a month between 1 and 12")
    today = today or date.today()
    start_year = today.year if today.month >= fiscal_year_start else today.year - 1
    return f"{start_year % 100:02d}-{(start_year + 1) % 100:02d}"


def find_first_available_sequence_number(sequence_numbers: Iterable[int]) -> int:
    """Smallest positive integer not already used.

    With N distinct numbers in use, the answer is the first gap in ``1..N``,
    or ``N + 1`` when that range is fully taken.
    """
    used = {value for value in sequence_numbers if value > 0}
    for candidate in range(1, len(used) + 1):
        if candidate not in used:
            return candidate
    return len(used) + 1


def format_document_number(prefix: str, fiscal_year: str, value: int) -> str:
    return f"{prefix}-{fiscal_year}-{value:0{settings.document_sequence_padding}d}"


def _document_table(document_type: str) -> _DocumentTable:
    table = _DOCUMENT_TABLES.get(document_type)
    if not table:
        allowed = ", ".join(sorted(_DOCUMENT_TABLES))
        raise ValueError(f"Unknown document type '{document_type}'. Allowed: {allowed}")
    return table


def is_document_number_clash(document_type: str, exc: IntegrityError) -> bool:
    return _document_table(document_type).is_number_clash(exc)


def _document_prefix(org: Organization, document_type: str) -> str:
    if document_type == DOCUMENT_QUOTATION:
        return settings.quotation_prefix
    return (org.invoice_prefix or "").strip() or settings.default_invoice_prefix


def _used_sequence_numbers(db: Session, *, table: _DocumentTable, org_id: str, stem: str) -> list[int]:
    rows = db.execute(
        select(table.number_column).where(
            table.org_column == org_id,
            table.number_column.startswith(stem, autoescape=True),
        )
    ).scalars().all()
    values: list[int] = []
    for number in rows:
        # LIKE ignores case on SQLite; only the exact stem counts.
        if not number.startswith(stem):
            continue
        suffix = number[len(stem):]
        if _NUMERIC_SUFFIX.match(suffix):
            values.append(int(suffix))
    return values


def next_document_number(
    db: Session,
    *,
    org_id: str,
    document_type: str,
    today: date | None = None,
) -> str:
    table = _document_table(document_type)
    org = db.execute(select(Organization).where(Organization.id == org_id)).scalar_one_or_none()
    if not org:
        raise OrganizationNotFoundError(org_id)

    fiscal_year = current_fiscal_year(org.fiscal_year_start or settings.default_fiscal_year_start, today)
    prefix = _document_prefix(org, document_type)
    stem = f"{prefix}-{fiscal_year}-"
    used = _used_sequence_numbers(db, table=table, org_id=org_id, stem=stem)
    return format_document_number(prefix, fiscal_year, find_first_available_sequence_number(used))


def generate_invoice_number(db: Session, *, org_id: str, today: date | None = None) -> str:
    return next_document_number(db, org_id=org_id, document_type=DOCUMENT_INVOICE, today=today)


def preview_next_invoice_number(db: Session, *, org_id: str, today: date | None = None) -> str:
    return next_document_number(db, org_id=org_id, document_type=DOCUMENT_INVOICE, today=today)


def generate_quotation_number(db: Session, *, org_id: str, today: date | None = None) -> str:
    return next_document_number(db, org_id=org_id, document_type=DOCUMENT_QUOTATION, today=today)


def preview_next_quotation_number(db: Session, *, org_id: str, today: date | None = None) -> str:
    return next_document_number(db, org_id=org_id, document_type=DOCUMENT_QUOTATION, today=today)


def create_with_document_number(
    db: Session,
    *,
    org_id: str,
    document_type: str,
    build: Callable[[str], Any],
    today: date | None = None,
    max_attempts: int | None = None,
):
    """Insert a document under the next free number, committing the session.

    ``build(number)`` returns the unsaved ORM row. A clash on the per-org
    number constraint rolls back and recomputes the number; after
    ``max_attempts`` clashes DocumentNumberConflictError is raised. Any other
    integrity error is rolled back and re-raised.
    """
    table = _document_table(document_type)
    attempts = max_attempts or settings.document_number_max_attempts
    for attempt in range(1, attempts + 1):
        number = next_document_number(db, org_id=org_id, document_type=document_type, today=today)
        row = build(number)
        db.add(row)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if not table.is_number_clash(exc):
                raise
            log_event(
                logger,
                logging.WARNING,
                "document_number_conflict",
                org_id=org_id,
                document_type=document_type,
                number=number,
                attempt=attempt,
                max_attempts=attempts,
            )
            continue
        db.refresh(row)
        log_event(
            logger,
            logging.INFO,
            "document_number_assigned",
            org_id=org_id,
            document_type=document_type,
            number=number,
            attempt=attempt,
        )
        return row

    raise DocumentNumberConflictError(
        f"Failed to generate unique {document_type} number after {attempts} attempts"
    )
