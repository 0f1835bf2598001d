from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    email: str
    org_id: Optional[str] = None
    is_active: bool
    roles: List[str]
    permissions: List[str] = []
    created_at: datetime
    updated_at: datetime


def user_to_out(user) -> UserOut:
    return UserOut(
        id=user.id,
        username=user.username,
        email=user.email,
        org_id=user.org_id,
        is_active=user.is_active,
        roles=sorted(role.name for role in user.roles),
        permissions=sorted(user.permission_names),
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def user_snapshot(user) -> dict:
    """Audit-friendly view of a user (no credentials)."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "is_active": user.is_active,
        "org_id": user.org_id,
        "roles": sorted(role.name for role in user.roles),
        "created_at": user.created_at,
    }
