import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from rbac_admin.db.base import Base


class Org(Base):
    __tablename__ = "orgs"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    domain: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    parent_org_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("orgs.id"), nullable=True
    )
    # use_alter breaks the orgs <-> users FK cycle for create_all/drop_all
    managed_by: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("users.id", use_alter=True, name="fk_orgs_managed_by_users"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
