import math

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from rbac_admin.core.security import VIEW_AUDIT_LOGS, require_permission
from rbac_admin.db.session import get_db
from rbac_admin.models.audit_log import AuditLog
from rbac_admin.models.user import User
from rbac_admin.schemas.audit_log import AuditLogOut, AuditLogPage, Pagination

router = APIRouter()

MAX_PAGE_SIZE = 100


@router.get("", response_model=AuditLogPage)
def list_audit_logs(
    db: Session = Depends(get_db),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1),
    _user: User = Depends(require_permission(VIEW_AUDIT_LOGS)),
) -> AuditLogPage:
    limit = min(limit, MAX_PAGE_SIZE)
    total = db.query(AuditLog).count()
    rows = (
        db.query(AuditLog)
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return AuditLogPage(
        audit_logs=[AuditLogOut.model_validate(row) for row in rows],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if total else 0,
        ),
    )


@router.get("/{log_id}", response_model=AuditLogOut)
def get_audit_log(
    log_id: str,
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission(VIEW_AUDIT_LOGS)),
) -> AuditLogOut:
    row = db.get(AuditLog, log_id)
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Audit log not found")
    return AuditLogOut.model_validate(row)
