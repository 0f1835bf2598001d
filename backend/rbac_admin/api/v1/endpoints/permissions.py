from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rbac_admin.audit.context import AuditContext, get_audit_context
from rbac_admin.core.security import MANAGE_PERMISSIONS, require_permission
from rbac_admin.db.session import get_db
from rbac_admin.models.permission import Permission
from rbac_admin.models.user import User
from rbac_admin.schemas.permission import (
    SCOPE_LEVELS,
    PermissionCreate,
    PermissionOut,
    PermissionUpdate,
    permission_snapshot,
)
from rbac_admin.schemas.role import RoleOut

router = APIRouter()


def _get_permission_or_404(db: Session, permission_id: str) -> Permission:
    permission = db.get(Permission, permission_id)
    if not permission:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Permission not found")
    return permission


def _check_scope(scope_level: str) -> None:
    if scope_level not in SCOPE_LEVELS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid scope_level (expected one of: {', '.join(SCOPE_LEVELS)})",
        )


def _commit_or_conflict(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Permission name already exists",
        )


@router.get("", response_model=List[PermissionOut])
def list_permissions(
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission(MANAGE_PERMISSIONS)),
):
    return db.query(Permission).order_by(Permission.name.asc()).all()


@router.get("/{permission_id}", response_model=PermissionOut)
def get_permission(
    permission_id: str,
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission(MANAGE_PERMISSIONS)),
):
    return _get_permission_or_404(db, permission_id)


@router.get("/{permission_id}/roles", response_model=List[RoleOut])
def list_permission_roles(
    permission_id: str,
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission(MANAGE_PERMISSIONS)),
):
    permission = _get_permission_or_404(db, permission_id)
    return sorted(permission.roles, key=lambda r: r.name)


@router.post("", response_model=PermissionOut, status_code=status.HTTP_201_CREATED)
def create_permission(
    payload: PermissionCreate,
    db: Session = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context),
    _user: User = Depends(require_permission(MANAGE_PERMISSIONS)),
):
    name = payload.name.strip().lower()
    _check_scope(payload.scope_level)
    if db.query(Permission).filter(Permission.name == name).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Permission name already exists",
        )
    permission = Permission(
        name=name,
        description=payload.description,
        scope_level=payload.scope_level,
    )
    db.add(permission)
    _commit_or_conflict(db)
    db.refresh(permission)

    audit.record_change(
        "PERMISSION_CREATED", "permission", before=None, after=permission_snapshot(permission)
    )
    return permission


@router.put("/{permission_id}", response_model=PermissionOut)
def update_permission(
    permission_id: str,
    payload: PermissionUpdate,
    db: Session = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context),
    _user: User = Depends(require_permission(MANAGE_PERMISSIONS)),
):
    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )
    permission = _get_permission_or_404(db, permission_id)
    before = permission_snapshot(permission)

    if data.get("name"):
        permission.name = data["name"].strip().lower()
    if "description" in data:
        permission.description = data["description"]
    if data.get("scope_level"):
        _check_scope(data["scope_level"])
        permission.scope_level = data["scope_level"]
    _commit_or_conflict(db)
    db.refresh(permission)

    audit.record_change(
        "PERMISSION_UPDATED", "permission", before=before, after=permission_snapshot(permission)
    )
    return permission


@router.delete("/{permission_id}")
def delete_permission(
    permission_id: str,
    db: Session = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context),
    _user: User = Depends(require_permission(MANAGE_PERMISSIONS)),
) -> dict:
    permission = _get_permission_or_404(db, permission_id)
    before = permission_snapshot(permission)
    permission.roles = []
    db.delete(permission)
    db.commit()

    audit.record_change("PERMISSION_DELETED", "permission", before=before, after=None)
    return {"message": "Permission deleted successfully", "permission_id": permission_id}
