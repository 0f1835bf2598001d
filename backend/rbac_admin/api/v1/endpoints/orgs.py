from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rbac_admin.audit.context import AuditContext, get_audit_context
from rbac_admin.core.security import MANAGE_ORGANIZATIONS, get_current_user, require_permission
from rbac_admin.core.slug import slugify
from rbac_admin.db.session import get_db
from rbac_admin.models.org import Org
from rbac_admin.models.user import User
from rbac_admin.schemas.org import OrgCreate, OrgOut, OrgUpdate, org_snapshot

router = APIRouter()


def _get_org_or_404(db: Session, org_id: str) -> Org:
    org = db.get(Org, org_id)
    if not org:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")
    return org


def _unique_slug(db: Session, name: str, exclude_id: Optional[str] = None) -> str:
    base = slugify(name)
    slug = base
    suffix = 2
    while True:
        query = db.query(Org).filter(Org.slug == slug)
        if exclude_id:
            query = query.filter(Org.id != exclude_id)
        if not query.first():
            return slug
        slug = f"{base[:60]}-{suffix}"
        suffix += 1


def _check_parent(db: Session, parent_org_id: Optional[str], org_id: Optional[str] = None) -> None:
    if not parent_org_id:
        return
    if parent_org_id == org_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Organization cannot be its own parent",
        )
    parent = db.get(Org, parent_org_id)
    if not parent:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Parent organization not found",
        )
    # walk up to reject cycles
    seen = set()
    while parent is not None and parent.id not in seen:
        if org_id and parent.parent_org_id == org_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Parent organization would create a cycle",
            )
        seen.add(parent.id)
        parent = db.get(Org, parent.parent_org_id) if parent.parent_org_id else None


def _check_manager(db: Session, managed_by: Optional[str]) -> None:
    if managed_by and not db.get(User, managed_by):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Managing user not found",
        )


@router.get("/current", response_model=OrgOut)
def get_org_current(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> OrgOut:
    if not user.org_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User has no organization")
    return OrgOut.model_validate(_get_org_or_404(db, user.org_id))


@router.get("", response_model=List[OrgOut])
def list_orgs(
    db: Session = Depends(get_db),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    _user: User = Depends(require_permission(MANAGE_ORGANIZATIONS)),
) -> List[OrgOut]:
    orgs = (
        db.query(Org)
        .order_by(Org.created_at.desc(), Org.name.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return [OrgOut.model_validate(org) for org in orgs]


@router.get("/{org_id}", response_model=OrgOut)
def get_org(
    org_id: str,
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission(MANAGE_ORGANIZATIONS)),
) -> OrgOut:
    return OrgOut.model_validate(_get_org_or_404(db, org_id))


@router.post("", response_model=OrgOut, status_code=status.HTTP_201_CREATED)
def create_org(
    payload: OrgCreate,
    db: Session = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context),
    _user: User = Depends(require_permission(MANAGE_ORGANIZATIONS)),
) -> OrgOut:
    _check_parent(db, payload.parent_org_id)
    _check_manager(db, payload.managed_by)

    name = payload.name.strip()
    org = Org(
        name=name,
        slug=_unique_slug(db, name),
        description=payload.description,
        domain=payload.domain,
        parent_org_id=payload.parent_org_id,
        managed_by=payload.managed_by,
    )
    db.add(org)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Organization already exists",
        )
    db.refresh(org)

    audit.record_change("ORGANIZATION_CREATED", "organization", before=None, after=org_snapshot(org))
    return OrgOut.model_validate(org)


@router.put("/{org_id}", response_model=OrgOut)
def update_org(
    org_id: str,
    payload: OrgUpdate,
    db: Session = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context),
    _user: User = Depends(require_permission(MANAGE_ORGANIZATIONS)),
) -> OrgOut:
    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )
    org = _get_org_or_404(db, org_id)
    before = org_snapshot(org)

    if data.get("name"):
        org.name = data["name"].strip()
        org.slug = _unique_slug(db, org.name, exclude_id=org.id)
    if "description" in data:
        org.description = data["description"]
    if "domain" in data:
        org.domain = data["domain"]
    if "parent_org_id" in data:
        _check_parent(db, data["parent_org_id"], org.id)
        org.parent_org_id = data["parent_org_id"]
    if "managed_by" in data:
        _check_manager(db, data["managed_by"])
        org.managed_by = data["managed_by"]
    db.commit()
    db.refresh(org)

    audit.record_change("ORGANIZATION_UPDATED", "organization", before=before, after=org_snapshot(org))
    return OrgOut.model_validate(org)


@router.delete("/{org_id}")
def delete_org(
    org_id: str,
    db: Session = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context),
    _user: User = Depends(require_permission(MANAGE_ORGANIZATIONS)),
) -> dict:
    org = _get_org_or_404(db, org_id)
    if db.query(User).filter(User.org_id == org_id).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Organization still has users",
        )
    if db.query(Org).filter(Org.parent_org_id == org_id).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Organization still has child organizations",
        )
    before = org_snapshot(org)
    db.delete(org)
    db.commit()

    audit.record_change("ORGANIZATION_DELETED", "organization", before=before, after=None)
    return {"message": "Organization deleted successfully", "org_id": org_id}
