from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from rbac_admin.audit.context import get_audit_context
from rbac_admin.core.config import settings
from rbac_admin.db.session import get_db
from rbac_admin.models.user import User

ALGORITHM = "HS256"
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login")

MANAGE_USERS = "manage_users"
MANAGE_ROLES = "manage_roles"
MANAGE_PERMISSIONS = "manage_permissions"
MANAGE_ORGANIZATIONS = "manage_organizations"
MANAGE_CUSTOM_FIELDS = "manage_custom_fields"
VIEW_AUDIT_LOGS = "view_audit_logs"

ALL_PERMISSIONS = (
    MANAGE_USERS,
    MANAGE_ROLES,
    MANAGE_PERMISSIONS,
    MANAGE_ORGANIZATIONS,
    MANAGE_CUSTOM_FIELDS,
    VIEW_AUDIT_LOGS,
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone=True columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _create_token(payload: Dict[str, Any], token_type: str, expires_delta: timedelta) -> str:
    now = utcnow()
    to_encode = payload.copy()
    to_encode.update({"type": token_type, "iat": now, "exp": now + expires_delta})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def create_access_token(payload: Dict[str, Any]) -> str:
    return _create_token(
        payload, "access", timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )


def create_refresh_token(payload: Dict[str, Any]) -> str:
    return _create_token(
        payload, "refresh", timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    )


def generate_jti() -> str:
    return uuid4().hex


def verify_token(token: str, token_type: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from exc
    if payload.get("type") != token_type:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
        )
    return payload


def get_subject(payload: Dict[str, Any]) -> Optional[str]:
    return payload.get("sub")


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    token: str = Depends(oauth2_scheme),
) -> User:
    payload = verify_token(token, "access")
    user_id = get_subject(payload)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Inactive or missing user",
        )
    get_audit_context(request).bind_actor(user.id)
    return user


def has_permission(user: User, *permissions: str) -> bool:
    return bool(user.permission_names.intersection(permissions))


def require_permission(*permissions: str):
    def _dependency(user: User = Depends(get_current_user)) -> User:
        if not has_permission(user, *permissions):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return _dependency
