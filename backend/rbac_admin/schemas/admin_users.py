from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class AdminUserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=64)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    roles: List[str] = Field(default_factory=list)
    org_id: Optional[str] = None
    is_active: Optional[bool] = None


class AdminUserUpdate(BaseModel):
    username: Optional[str] = Field(default=None, min_length=3, max_length=64)
    email: Optional[EmailStr] = None
    is_active: Optional[bool] = None
    roles: Optional[List[str]] = None
    org_id: Optional[str] = None
