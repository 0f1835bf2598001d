from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

SCOPE_LEVELS = ("global", "organization", "self")


class PermissionCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    scope_level: str = "global"


class PermissionUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    scope_level: Optional[str] = None


class PermissionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    scope_level: str


def permission_snapshot(permission) -> dict:
    return {
        "id": permission.id,
        "name": permission.name,
        "description": permission.description,
        "scope_level": permission.scope_level,
    }
