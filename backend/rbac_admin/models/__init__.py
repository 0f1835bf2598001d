from rbac_admin.db.base import Base
from rbac_admin.models.audit_log import AuditLog
from rbac_admin.models.custom_field import CustomField, UserCustomFieldValue
from rbac_admin.models.org import Org
from rbac_admin.models.permission import Permission
from rbac_admin.models.refresh_token import RefreshToken
from rbac_admin.models.role import Role, role_permissions
from rbac_admin.models.user import User, user_roles

__all__ = [
    "Base",
    "AuditLog",
    "CustomField",
    "UserCustomFieldValue",
    "Org",
    "Permission",
    "Role",
    "User",
    "RefreshToken",
    "role_permissions",
    "user_roles",
]
