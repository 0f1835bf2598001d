from fastapi import APIRouter

from rbac_admin.api.v1.endpoints import audit_logs, auth, custom_fields, orgs, permissions, roles, users

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(roles.router, prefix="/roles", tags=["roles"])
api_router.include_router(permissions.router, prefix="/permissions", tags=["permissions"])
api_router.include_router(orgs.router, prefix="/organizations", tags=["organizations"])
api_router.include_router(custom_fields.router, tags=["custom-fields"])
api_router.include_router(audit_logs.router, prefix="/audit-logs", tags=["audit"])
