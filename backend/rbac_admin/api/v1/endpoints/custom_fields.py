from __future__ import annotations

import logging
import os
import uuid
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rbac_admin.audit.context import AuditContext, get_audit_context
from rbac_admin.core.config import settings
from rbac_admin.core.security import MANAGE_CUSTOM_FIELDS, require_permission
from rbac_admin.db.session import get_db
from rbac_admin.models.custom_field import CustomField
from rbac_admin.models.user import User
from rbac_admin.schemas.custom_field import (
    CustomFieldCreate,
    CustomFieldOut,
    CustomFieldUpdate,
    UploadOut,
    custom_field_snapshot,
)
from rbac_admin.services.custom_fields import FieldValidationError, validate_field_definition

logger = logging.getLogger(__name__)

router = APIRouter()

_CHUNK_SIZE = 64 * 1024


def _get_field_or_404(db: Session, field_id: str) -> CustomField:
    field = (
        db.query(CustomField)
        .filter(CustomField.id == field_id, CustomField.is_active.is_(True))
        .first()
    )
    if not field:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Custom field not found")
    return field


def _validation_dict(validation) -> dict | None:
    if validation is None:
        return None
    return validation.model_dump(exclude_none=True)


@router.get("/global-custom-fields", response_model=List[CustomFieldOut])
def list_custom_fields(
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission(MANAGE_CUSTOM_FIELDS)),
):
    return (
        db.query(CustomField)
        .filter(CustomField.is_active.is_(True))
        .order_by(CustomField.order_index.asc())
        .all()
    )


@router.post(
    "/global-custom-fields",
    response_model=CustomFieldOut,
    status_code=status.HTTP_201_CREATED,
)
def create_custom_field(
    payload: CustomFieldCreate,
    db: Session = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context),
    _user: User = Depends(require_permission(MANAGE_CUSTOM_FIELDS)),
):
    try:
        validate_field_definition(payload.name, payload.label, payload.type, payload.options)
    except FieldValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    if db.query(CustomField).filter(CustomField.name == payload.name).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Field name already exists",
        )

    max_order = db.query(func.max(CustomField.order_index)).scalar()
    field = CustomField(
        name=payload.name,
        label=payload.label.strip(),
        type=payload.type,
        required=payload.required,
        options=payload.options,
        validation=_validation_dict(payload.validation),
        order_index=(max_order or 0) + 1,
    )
    db.add(field)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Field name already exists",
        )
    db.refresh(field)

    audit.record_change(
        "CUSTOM_FIELD_CREATED", "custom_field", before=None, after=custom_field_snapshot(field)
    )
    return field


@router.put("/global-custom-fields/{field_id}", response_model=CustomFieldOut)
def update_custom_field(
    field_id: str,
    payload: CustomFieldUpdate,
    db: Session = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context),
    _user: User = Depends(require_permission(MANAGE_CUSTOM_FIELDS)),
):
    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )
    field = _get_field_or_404(db, field_id)
    before = custom_field_snapshot(field)

    label = data.get("label") or field.label
    field_type = data.get("type") or field.type
    options = data["options"] if "options" in data else field.options
    try:
        validate_field_definition(field.name, label, field_type, options)
    except FieldValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    field.label = label.strip()
    field.type = field_type
    field.options = options
    if data.get("required") is not None:
        field.required = data["required"]
    if "validation" in data:
        field.validation = _validation_dict(payload.validation)
    if data.get("is_active") is not None:
        field.is_active = data["is_active"]
    db.commit()
    db.refresh(field)

    audit.record_change(
        "CUSTOM_FIELD_UPDATED", "custom_field", before=before, after=custom_field_snapshot(field)
    )
    return field


@router.delete("/global-custom-fields/{field_id}")
def delete_custom_field(
    field_id: str,
    db: Session = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context),
    _user: User = Depends(require_permission(MANAGE_CUSTOM_FIELDS)),
) -> dict:
    field = _get_field_or_404(db, field_id)
    before = custom_field_snapshot(field)
    field.is_active = False
    db.commit()
    db.refresh(field)

    audit.record_change(
        "CUSTOM_FIELD_DELETED", "custom_field", before=before, after=custom_field_snapshot(field)
    )
    return {"message": "Custom field deleted successfully", "field_id": field_id}


@router.post("/upload", response_model=UploadOut, status_code=status.HTTP_201_CREATED)
def upload_file(
    file: UploadFile = File(...),
    audit: AuditContext = Depends(get_audit_context),
    _user: User = Depends(require_permission(MANAGE_CUSTOM_FIELDS)),
) -> UploadOut:
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")

    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    file_id = str(uuid.uuid4())
    _, ext = os.path.splitext(file.filename)
    stored_name = f"{file_id}{ext.lower()}"
    path = os.path.join(settings.UPLOAD_DIR, stored_name)

    size = 0
    try:
        with open(path, "wb") as out:
            while True:
                chunk = file.file.read(_CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > settings.UPLOAD_MAX_BYTES:
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail="File too large",
                    )
                out.write(chunk)
    except BaseException:
        # no partial files left behind
        if os.path.exists(path):
            os.remove(path)
        raise

    logger.info("stored upload %s (%d bytes) as %s", file.filename, size, stored_name)
    result = UploadOut(
        id=file_id,
        name=file.filename,
        size=size,
        type=file.content_type,
        path=stored_name,
        url=f"/uploads/{stored_name}",
    )
    audit.record_change(
        "FILE_UPLOADED",
        "file",
        before=None,
        after={"id": file_id, "name": file.filename, "size": size, "type": file.content_type},
    )
    return result
