from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rbac_admin.audit.context import AuditContext, get_audit_context
from rbac_admin.core.security import (
    MANAGE_USERS,
    get_current_user,
    has_permission,
    hash_password,
    require_permission,
)
from rbac_admin.db.session import get_db
from rbac_admin.models.custom_field import CustomField, UserCustomFieldValue
from rbac_admin.models.org import Org
from rbac_admin.models.role import Role
from rbac_admin.models.user import User
from rbac_admin.schemas.admin_users import AdminUserCreate, AdminUserUpdate
from rbac_admin.schemas.custom_field import CustomFieldWithValueOut, UserCustomFieldValuesUpdate
from rbac_admin.schemas.user import UserOut, user_snapshot, user_to_out
from rbac_admin.services.custom_fields import (
    FieldValidationError,
    stringify_value,
    validate_field_value,
)

router = APIRouter()


def _get_roles(db: Session, names: List[str]) -> List[Role]:
    norm = [n.strip().upper() for n in names if n and n.strip()]
    if not norm:
        return []

    found = db.query(Role).filter(Role.name.in_(norm)).all()
    found_names = {r.name for r in found}
    missing = [n for n in norm if n not in found_names]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown roles: {', '.join(missing)}",
        )
    return found


def _ensure_org(db: Session, org_id: Optional[str]) -> None:
    if org_id and not db.get(Org, org_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Organization not found",
        )


def _get_user_or_404(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def _ensure_self_or_admin(current_user: User, user_id: str) -> None:
    if current_user.id != user_id and not has_permission(current_user, MANAGE_USERS):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")


@router.get("", response_model=List[UserOut])
def list_users(
    db: Session = Depends(get_db),
    q: Optional[str] = Query(default=None, description="Filter by username or email (contains)"),
    is_active: Optional[bool] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    _user: User = Depends(require_permission(MANAGE_USERS)),
):
    query = db.query(User)
    if q:
        pattern = f"%{q.strip()}%"
        query = query.filter(or_(User.email.ilike(pattern), User.username.ilike(pattern)))
    if is_active is not None:
        query = query.filter(User.is_active == is_active)

    users = query.order_by(User.username.asc()).offset(offset).limit(limit).all()
    return [user_to_out(u) for u in users]


@router.get("/profile", response_model=UserOut)
def get_profile(current_user: User = Depends(get_current_user)):
    return user_to_out(current_user)


@router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _ensure_self_or_admin(current_user, user_id)
    return user_to_out(_get_user_or_404(db, user_id))


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: AdminUserCreate,
    db: Session = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context),
    _user: User = Depends(require_permission(MANAGE_USERS)),
):
    email = payload.email.strip().lower()
    username = payload.username.strip()

    exists = (
        db.query(User)
        .filter(or_(User.email == email, User.username == username))
        .first()
    )
    if exists:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username or email already exists",
        )

    _ensure_org(db, payload.org_id)
    user = User(
        username=username,
        email=email,
        hashed_password=hash_password(payload.password),
        is_active=True if payload.is_active is None else payload.is_active,
        org_id=payload.org_id,
        roles=_get_roles(db, payload.roles),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username or email already exists",
        )
    db.refresh(user)

    audit.record_change("USER_CREATED", "user", before=None, after=user_snapshot(user))
    return user_to_out(user)


@router.put("/{user_id}", response_model=UserOut)
def update_user(
    user_id: str,
    payload: AdminUserUpdate,
    db: Session = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context),
    current_user: User = Depends(require_permission(MANAGE_USERS)),
):
    data = payload.model_dump(exclude_unset=True)
    data = {key: value for key, value in data.items() if value is not None or key == "org_id"}
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )

    user = _get_user_or_404(db, user_id)
    before = user_snapshot(user)

    if data.get("is_active") is False and user_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot deactivate your own account",
        )
    if "username" in data:
        user.username = data["username"].strip()
    if "email" in data:
        user.email = data["email"].strip().lower()
    if "is_active" in data:
        user.is_active = data["is_active"]
    if "org_id" in data:
        _ensure_org(db, data["org_id"])
        user.org_id = data["org_id"]
    if "roles" in data:
        user.roles = _get_roles(db, data["roles"])

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username or email already exists",
        )
    db.refresh(user)

    audit.record_change("USER_UPDATED", "user", before=before, after=user_snapshot(user))
    return user_to_out(user)


@router.delete("/{user_id}")
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context),
    current_user: User = Depends(require_permission(MANAGE_USERS)),
) -> dict:
    user = db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found or already deactivated",
        )
    if user.id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot deactivate your own account",
        )
    before = user_snapshot(user)
    user.is_active = False
    db.commit()
    db.refresh(user)

    audit.record_change("USER_DELETED", "user", before=before, after=user_snapshot(user))
    return {"message": "User deleted successfully", "user_id": user_id}


@router.get("/{user_id}/custom-field-values", response_model=List[CustomFieldWithValueOut])
def get_user_custom_field_values(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _ensure_self_or_admin(current_user, user_id)
    _get_user_or_404(db, user_id)

    fields = (
        db.query(CustomField)
        .filter(CustomField.is_active.is_(True))
        .order_by(CustomField.order_index.asc())
        .all()
    )
    values = {
        v.field_id: v.value
        for v in db.query(UserCustomFieldValue).filter(UserCustomFieldValue.user_id == user_id)
    }
    result = []
    for field in fields:
        item = CustomFieldWithValueOut.model_validate(field)
        item.value = values.get(field.id)
        result.append(item)
    return result


@router.put("/{user_id}/custom-field-values")
def update_user_custom_field_values(
    user_id: str,
    payload: UserCustomFieldValuesUpdate,
    db: Session = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context),
    current_user: User = Depends(get_current_user),
) -> dict:
    _ensure_self_or_admin(current_user, user_id)
    _get_user_or_404(db, user_id)

    existing = {
        v.field_id: v
        for v in db.query(UserCustomFieldValue).filter(UserCustomFieldValue.user_id == user_id)
    }
    before = {field_id: v.value for field_id, v in existing.items() if field_id in payload.field_values}
    after = {}

    for field_id, value in payload.field_values.items():
        field = (
            db.query(CustomField)
            .filter(CustomField.id == field_id, CustomField.is_active.is_(True))
            .first()
        )
        if not field:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Field not found: {field_id}",
            )
        try:
            validate_field_value(field, value)
        except FieldValidationError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{field.name}: {exc.message}",
            )

        stored = stringify_value(value)
        row = existing.get(field_id)
        if row:
            row.value = stored
        else:
            db.add(UserCustomFieldValue(user_id=user_id, field_id=field_id, value=stored))
        after[field_id] = stored

    db.commit()

    audit.record_change("USER_CUSTOM_FIELDS_UPDATED", "custom_field_values", before=before, after=after)
    return {"message": "Custom field values updated successfully"}
