from dataclasses import dataclass

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.deps import get_db
from app.core.errors import OrganizationNotFoundError
from app.models.organization import Organization


@dataclass(frozen=True)
class TenantContext:
    org: Organization
    user_id: str | None


def get_current_org(
    x_org_id: str = Header(..., alias="X-Org-ID", min_length=1, max_length=36),
    db: Session = Depends(get_db),
) -> Organization:
    org_id = x_org_id.strip()
    org = db.execute(select(Organization).where(Organization.id == org_id)).scalar_one_or_none()
    if not org:
        raise OrganizationNotFoundError(org_id)
    return org


def get_tenant_context(
    org: Organization = Depends(get_current_org),
    x_user_id: str | None = Header(default=None, alias="X-User-ID", max_length=36),
) -> TenantContext:
    user_id = x_user_id.strip() if x_user_id else None
    return TenantContext(org=org, user_id=user_id or None)
