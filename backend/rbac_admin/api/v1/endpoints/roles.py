from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rbac_admin.audit.context import AuditContext, get_audit_context
from rbac_admin.core.security import MANAGE_ROLES, require_permission
from rbac_admin.db.session import get_db
from rbac_admin.models.permission import Permission
from rbac_admin.models.role import Role
from rbac_admin.models.user import User
from rbac_admin.schemas.permission import PermissionOut
from rbac_admin.schemas.role import (
    RoleCreate,
    RolePermissionAssign,
    RoleUpdate,
    RoleWithPermissionsOut,
    role_snapshot,
)

router = APIRouter()


def _get_role_or_404(db: Session, role_id: str) -> Role:
    role = db.get(Role, role_id)
    if not role:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    return role


def _commit_or_conflict(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Role name already exists",
        )


@router.get("", response_model=List[RoleWithPermissionsOut])
def list_roles(
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission(MANAGE_ROLES)),
):
    return db.query(Role).order_by(Role.name.asc()).all()


@router.get("/{role_id}", response_model=RoleWithPermissionsOut)
def get_role(
    role_id: str,
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission(MANAGE_ROLES)),
):
    return _get_role_or_404(db, role_id)


@router.post("", response_model=RoleWithPermissionsOut, status_code=status.HTTP_201_CREATED)
def create_role(
    payload: RoleCreate,
    db: Session = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context),
    _user: User = Depends(require_permission(MANAGE_ROLES)),
):
    name = payload.name.strip().upper()
    if db.query(Role).filter(Role.name == name).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Role name already exists",
        )
    role = Role(name=name, description=payload.description)
    db.add(role)
    _commit_or_conflict(db)
    db.refresh(role)

    audit.record_change("ROLE_CREATED", "role", before=None, after=role_snapshot(role))
    return role


@router.put("/{role_id}", response_model=RoleWithPermissionsOut)
def update_role(
    role_id: str,
    payload: RoleUpdate,
    db: Session = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context),
    _user: User = Depends(require_permission(MANAGE_ROLES)),
):
    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )
    role = _get_role_or_404(db, role_id)
    before = role_snapshot(role)

    if data.get("name"):
        role.name = data["name"].strip().upper()
    if "description" in data:
        role.description = data["description"]
    _commit_or_conflict(db)
    db.refresh(role)

    audit.record_change("ROLE_UPDATED", "role", before=before, after=role_snapshot(role))
    return role


@router.delete("/{role_id}")
def delete_role(
    role_id: str,
    db: Session = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context),
    _user: User = Depends(require_permission(MANAGE_ROLES)),
) -> dict:
    role = _get_role_or_404(db, role_id)
    if role.users:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Role is still assigned to users",
        )
    before = role_snapshot(role)
    role.permissions = []
    db.delete(role)
    db.commit()

    audit.record_change("ROLE_DELETED", "role", before=before, after=None)
    return {"message": "Role deleted successfully", "role_id": role_id}


@router.get("/{role_id}/permissions", response_model=List[PermissionOut])
def list_role_permissions(
    role_id: str,
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission(MANAGE_ROLES)),
):
    role = _get_role_or_404(db, role_id)
    return sorted(role.permissions, key=lambda p: p.name)


@router.post(
    "/{role_id}/permissions",
    response_model=RoleWithPermissionsOut,
    status_code=status.HTTP_201_CREATED,
)
def assign_role_permission(
    role_id: str,
    payload: RolePermissionAssign,
    db: Session = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context),
    _user: User = Depends(require_permission(MANAGE_ROLES)),
):
    role = _get_role_or_404(db, role_id)
    permission = db.get(Permission, payload.permission_id)
    if not permission:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Permission not found")
    if permission in role.permissions:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Permission already assigned to role",
        )
    before = role_snapshot(role)
    role.permissions.append(permission)
    db.commit()
    db.refresh(role)

    audit.record_change("ROLE_PERMISSION_ASSIGNED", "role", before=before, after=role_snapshot(role))
    return role


@router.delete("/{role_id}/permissions/{permission_id}", response_model=RoleWithPermissionsOut)
def remove_role_permission(
    role_id: str,
    permission_id: str,
    db: Session = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context),
    _user: User = Depends(require_permission(MANAGE_ROLES)),
):
    role = _get_role_or_404(db, role_id)
    permission = next((p for p in role.permissions if p.id == permission_id), None)
    if permission is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Permission not assigned to role",
        )
    before = role_snapshot(role)
    role.permissions.remove(permission)
    db.commit()
    db.refresh(role)

    audit.record_change("ROLE_PERMISSION_REMOVED", "role", before=before, after=role_snapshot(role))
    return role
