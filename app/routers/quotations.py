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
from app.models.organization import Organization
from app.models.quotation import Quotation
from app.schemas.common import PaginationMeta
from app.schemas.quotation import NextQuotationNumberOut, QuotationCreate, QuotationListOut, QuotationOut
from app.services.document_numbering_service import (
    DOCUMENT_QUOTATION,
    create_with_document_number,
    is_document_number_clash,
    preview_next_quotation_number,
)

router = APIRouter(prefix="/quotations", tags=["quotations"])


def _quotation_out(row: Quotation) -> QuotationOut:
    return QuotationOut(
        id=row.id,
        quotation_number=row.quotation_number,
        customer_name=row.customer_name,
        status=row.status,
        total_amount=float(to_money(row.total_amount)),
        issue_date=row.issue_date,
        created_by=row.created_by,
        created_at=row.created_at,
    )


@router.get(
    "/next-number",
    response_model=NextQuotationNumberOut,
    summary="Preview the next available quotation number",
    responses=error_responses(404, 422, 500, path="/quotations"),
)
def next_quotation_number(
    db: Session = Depends(get_db),
    org: Organization = Depends(get_current_org),
):
    return NextQuotationNumberOut(quotation_number=preview_next_quotation_number(db, org_id=org.id))


@router.post(
    "",
    response_model=QuotationOut,
    status_code=201,
    summary="Create a quotation",
    responses=error_responses(404, 409, 422, 500, path="/quotations"),
)
def create_quotation(
    payload: QuotationCreate,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
):
    org_id = tenant.org.id

    def build(number: str) -> Quotation:
        return Quotation(
            id=str(uuid.uuid4()),
            org_id=org_id,
            quotation_number=number,
            customer_name=payload.customer_name,
            status=payload.status,
            total_amount=to_money(payload.total_amount),
            issue_date=payload.issue_date or date.today(),
            created_by=tenant.user_id,
        )

    if payload.quotation_number:
        quotation = build(payload.quotation_number)
        db.add(quotation)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if not is_document_number_clash(DOCUMENT_QUOTATION, exc):
                raise
            raise DocumentNumberConflictError(
                f"Quotation number {payload.quotation_number} already exists"
            ) from None
        db.refresh(quotation)
        return _quotation_out(quotation)

    quotation = create_with_document_number(db, org_id=org_id, document_type=DOCUMENT_QUOTATION, build=build)
    return _quotation_out(quotation)


@router.get(
    "",
    response_model=QuotationListOut,
    summary="List quotations",
    responses=error_responses(404, 422, 500, path="/quotations"),
)
def list_quotations(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    org: Organization = Depends(get_current_org),
):
    total = int(db.execute(select(func.count(Quotation.id)).where(Quotation.org_id == org.id)).scalar_one())
    rows = db.execute(
        select(Quotation)
        .where(Quotation.org_id == org.id)
        .order_by(Quotation.created_at.desc(), Quotation.quotation_number.desc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    items = [_quotation_out(row) for row in rows]
    count = len(items)
    return QuotationListOut(
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
    "/{quotation_id}",
    status_code=204,
    summary="Delete a quotation; its number becomes available again",
    responses=error_responses(404, 422, 500, path="/quotations"),
)
def delete_quotation(
    quotation_id: str,
    db: Session = Depends(get_db),
    org: Organization = Depends(get_current_org),
):
    row = db.execute(
        select(Quotation).where(Quotation.id == quotation_id, Quotation.org_id == org.id)
    ).scalar_one_or_none()
    if not row:
        raise DocumentNotFoundError("Quotation not found")
    db.delete(row)
    db.commit()
    return Response(status_code=204)
