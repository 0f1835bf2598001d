from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from rbac_admin.schemas.permission import PermissionOut


class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    description: Optional[str] = Field(default=None, max_length=500)


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=64)
    description: Optional[str] = Field(default=None, max_length=500)


class RoleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class RoleWithPermissionsOut(RoleOut):
    permissions: List[PermissionOut] = []


class RolePermissionAssign(BaseModel):
    permission_id: str


def role_snapshot(role) -> dict:
    return {
        "id": role.id,
        "name": role.name,
        "description": role.description,
        "permissions": sorted(p.name for p in role.permissions),
    }

