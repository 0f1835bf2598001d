from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class OrgCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    domain: Optional[str] = Field(default=None, max_length=255)
    parent_org_id: Optional[str] = None
    managed_by: Optional[str] = None


class OrgUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    domain: Optional[str] = Field(default=None, max_length=255)
    parent_org_id: Optional[str] = None
    managed_by: Optional[str] = None


class OrgOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: Optional[str] = None
    description: Optional[str] = None
    domain: Optional[str] = None
    parent_org_id: Optional[str] = None
    managed_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime


def org_snapshot(org) -> dict:
    return OrgOut.model_validate(org).model_dump(mode="json")
