from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

FIELD_TYPES = (
    "text",
    "textarea",
    "number",
    "email",
    "phone",
    "date",
    "boolean",
    "select",
    "multiselect",
    "file",
)


class FieldValidation(BaseModel):
    min_length: Optional[int] = Field(default=None, ge=0)
    max_length: Optional[int] = Field(default=None, ge=0)
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None


class CustomFieldCreate(BaseModel):
    name: str
    label: str
    type: str
    required: bool = False
    options: Optional[List[str]] = None
    validation: Optional[FieldValidation] = None


class CustomFieldUpdate(BaseModel):
    label: Optional[str] = None
    type: Optional[str] = None
    required: Optional[bool] = None
    options: Optional[List[str]] = None
    validation: Optional[FieldValidation] = None
    is_active: Optional[bool] = None


class CustomFieldOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    label: str
    type: str
    required: bool
    options: Optional[List[str]] = None
    validation: Optional[Dict[str, Any]] = None
    order_index: int
    is_active: bool
    created_at: datetime
    updated_at: datetime


class CustomFieldWithValueOut(CustomFieldOut):
    value: Optional[str] = None


class UserCustomFieldValuesUpdate(BaseModel):
    field_values: Dict[str, Any]


class UploadOut(BaseModel):
    id: str
    name: str
    size: int
    type: Optional[str] = None
    path: str
    url: str


def custom_field_snapshot(field) -> dict:
    return CustomFieldOut.model_validate(field).model_dump(mode="json")
