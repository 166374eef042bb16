import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db
from app.core.errors import DocumentNotFoundError, DocumentNumberConflictError
from app.core.money import to_money
from app.core.tenancy import TenantContext, get_current_org, get_tenant_context
from app.models.invoice import Invoice
from app.models.organization import Organization
from app.schemas.common import PaginationMeta
from app.schemas.invoice import InvoiceCreate, InvoiceListOut, InvoiceOut, NextInvoiceNumberOut
from app.services.document_numbering_service import (
    DOCUMENT_INVOICE,
    create_with_document_number,
    is_document_number_clash,
    preview_next_invoice_number,
)

router = APIRouter(prefix="/invoices", tags=["invoices"])


def _invoice_out(row: Invoice) -> InvoiceOut:
    return InvoiceOut(
        id=row.id,
        invoice_number=row.invoice_number,
        customer_name=row.customer_name,
        status=row.status,
        total_amount=float(to_money(row.total_amount)),
        issue_date=row.issue_date,
        created_by=row.created_by,
        created_at=row.created_at,
    )


@router.get(
    "/next-number",
    response_model=NextInvoiceNumberOut,
    summary="Preview the next available invoice number",
    responses=error_responses(404, 422, 500, path="/invoices"),
)
def next_invoice_number(
    db: Session = Depends(get_db),
    org: Organization = Depends(get_current_org),
):
    return NextInvoiceNumberOut(invoice_number=preview_next_invoice_number(db, org_id=org.id))


@router.post(
    "",
    response_model=InvoiceOut,
    status_code=201,
    summary="Create an invoice",
    responses=error_responses(404, 409, 422, 500, path="/invoices"),
)
def create_invoice(
    payload: InvoiceCreate,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
):
    org_id = tenant.org.id

    def build(number: str) -> Invoice:
        return Invoice(
            id=str(uuid.uuid4()),
            org_id=org_id,
            invoice_number=number,
            customer_name=payload.customer_name,
            status=payload.status,
            total_amount=to_money(payload.total_amount),
            issue_date=payload.issue_date or date.today(),
            created_by=tenant.user_id,
        )

    if payload.invoice_number:
        invoice = build(payload.invoice_number)
        db.add(invoice)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if not is_document_number_clash(DOCUMENT_INVOICE, exc):
                raise
            raise DocumentNumberConflictError(
                f"Invoice number {payload.invoice_number} already exists"
            ) from None
        db.refresh(invoice)
        return _invoice_out(invoice)

    invoice = create_with_document_number(db, org_id=org_id, document_type=DOCUMENT_INVOICE, build=build)
    return _invoice_out(invoice)


@router.get(
    "",
    response_model=InvoiceListOut,
    summary="List invoices",
    responses=error_responses(404, 422, 500, path="/invoices"),
)
def list_invoices(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    org: Organization = Depends(get_current_org),
):
    total = int(db.execute(select(func.count(Invoice.id)).where(Invoice.org_id == org.id)).scalar_one())
    rows = db.execute(
        select(Invoice)
        .where(Invoice.org_id == org.id)
        .order_by(Invoice.created_at.desc(), Invoice.invoice_number.desc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    items = [_invoice_out(row) for row in rows]
    count = len(items)
    return InvoiceListOut(
        items=items,
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total,
        ),
    )


@router.delete(
    "/{invoice_id}",
    status_code=204,
    summary="Delete an invoice; its number becomes available again",
    responses=error_responses(404, 422, 500, path="/invoices"),
)
def delete_invoice(
    invoice_id: str,
    db: Session = Depends(get_db),
    org: Organization = Depends(get_current_org),
):
    row = db.execute(
        select(Invoice).where(Invoice.id == invoice_id, Invoice.org_id == org.id)
    ).scalar_one_or_none()
    if not row:
        raise DocumentNotFoundError("Invoice not found")
    db.delete(row)
    db.commit()
    return Response(status_code=204)
