from __future__ import annotations

import logging

from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from rbac_admin.core.config import settings
from rbac_admin.core.security import ALL_PERMISSIONS, hash_password, verify_password
from rbac_admin.core.slug import slugify
from rbac_admin.models.org import Org
from rbac_admin.models.permission import Permission
from rbac_admin.models.role import Role
from rbac_admin.models.user import User

logger = logging.getLogger(__name__)

PERMISSION_DESCRIPTIONS = {
    "manage_users": "Create, update and deactivate users",
    "manage_roles": "Manage roles and their permissions",
    "manage_permissions": "Manage the permission catalogue",
    "manage_organizations": "Manage organizations",
    "manage_custom_fields": "Manage global custom fields and uploads",
    "view_audit_logs": "Read the audit trail",
}


def ensure_seed_data(db: Session) -> None:
    """
    Idempotent DEV seed: permission catalogue, ADMIN/VIEW roles, default org
    and the master admin user. No-op when SEED_ENABLED is false.
    """
    if not settings.SEED_ENABLED:
        return

    # schema may not exist yet (fresh database before migrations)
    try:
        db.query(Role).limit(1).all()
    except (OperationalError, ProgrammingError):
        db.rollback()
        logger.warning("seed skipped: schema not ready")
        return

    permissions: dict[str, Permission] = {}
    for name in ALL_PERMISSIONS:
        perm = db.query(Permission).filter(Permission.name == name).first()
        if not perm:
            perm = Permission(name=name, description=PERMISSION_DESCRIPTIONS.get(name))
            db.add(perm)
            db.flush()
        permissions[name] = perm

    admin_role = db.query(Role).filter(Role.name == "ADMIN").first()
    if not admin_role:
        admin_role = Role(name="ADMIN", description="Full administrative access")
        db.add(admin_role)
        db.flush()
    existing = {p.name for p in admin_role.permissions}
    for name, perm in permissions.items():
        if name not in existing:
            admin_role.permissions.append(perm)

    if not db.query(Role).filter(Role.name == "VIEW").first():
        db.add(Role(name="VIEW", description="Read-only access"))
        db.flush()

    org = db.query(Org).filter(Org.name == settings.SEED_ORG_NAME).first()
    if not org:
        org = Org(name=settings.SEED_ORG_NAME, slug=slugify(settings.SEED_ORG_NAME))
        db.add(org)
        db.flush()

    user = db.query(User).filter(User.email == settings.MASTER_EMAIL).first()
    if not user:
        user = User(
            email=settings.MASTER_EMAIL,
            username=settings.MASTER_USERNAME,
            hashed_password=hash_password(settings.MASTER_PASSWORD),
            org_id=org.id,
            is_active=True,
        )
        db.add(user)
        db.flush()
    elif not verify_password(settings.MASTER_PASSWORD, user.hashed_password):
        user.hashed_password = hash_password(settings.MASTER_PASSWORD)

    if admin_role not in user.roles:
        user.roles.append(admin_role)

    db.commit()
    logger.info("seed data ensured (org=%s, admin=%s)", org.slug, user.email)
