from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AuditLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: Optional[str] = None
    action: str
    details: Optional[str] = None
    timestamp: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int = Field(serialization_alias="totalPages")


class AuditLogPage(BaseModel):
    audit_logs: List[AuditLogOut]
    pagination: Pagination
