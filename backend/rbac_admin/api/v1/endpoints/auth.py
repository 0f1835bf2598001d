from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rbac_admin.core.config import settings
from rbac_admin.core.security import (
    as_utc,
    create_access_token,
    create_refresh_token,
    generate_jti,
    get_current_user,
    hash_password,
    utcnow,
    verify_password,
    verify_token,
)
from rbac_admin.db.session import get_db
from rbac_admin.models.refresh_token import RefreshToken
from rbac_admin.models.user import User
from rbac_admin.schemas.auth import LoginRequest, LogoutRequest, RefreshRequest, RegisterRequest
from rbac_admin.schemas.token import TokenResponse
from rbac_admin.schemas.user import UserOut, user_to_out

router = APIRouter()


def _issue_tokens(db: Session, user_id: str) -> TokenResponse:
    jti = generate_jti()
    now = utcnow()
    db.add(
        RefreshToken(
            user_id=user_id,
            jti=jti,
            issued_at=now,
            expires_at=now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        )
    )
    db.commit()
    return TokenResponse(
        access_token=create_access_token({"sub": user_id}),
        refresh_token=create_refresh_token({"sub": user_id, "jti": jti}),
    )


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> UserOut:
    email = payload.email.strip().lower()
    username = payload.username.strip()
    exists = (
        db.query(User)
        .filter(or_(User.email == email, User.username == username))
        .first()
    )
    if exists:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username or email already exists",
        )
    user = User(
        username=username,
        email=email,
        hashed_password=hash_password(payload.password),
        is_active=True,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username or email already exists",
        )
    db.refresh(user)
    return user_to_out(user)


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> TokenResponse:
    query = db.query(User)
    if payload.email:
        user = query.filter(User.email == payload.email.strip().lower()).first()
    else:
        user = query.filter(User.username == payload.username.strip()).first()
    if not user or not verify_password(payload.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user",
        )
    return _issue_tokens(db, user.id)


@router.post("/refresh", response_model=TokenResponse)
def refresh(payload: RefreshRequest, db: Session = Depends(get_db)) -> TokenResponse:
    token_payload = verify_token(payload.refresh_token, "refresh")
    user_id = token_payload.get("sub")
    jti = token_payload.get("jti")
    if not user_id or not jti:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token",
        )

    stored = db.query(RefreshToken).filter(RefreshToken.jti == jti).first()
    if not stored or stored.is_revoked:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token revoked",
        )
    if as_utc(stored.expires_at) <= utcnow():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token expired",
        )

    new_jti = generate_jti()
    now = utcnow()
    stored.revoked_at = now
    stored.replaced_by_jti = new_jti
    db.add(
        RefreshToken(
            user_id=user_id,
            jti=new_jti,
            issued_at=now,
            expires_at=now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        )
    )
    db.commit()

    access_token = create_access_token({"sub": user_id})
    refresh_token = create_refresh_token({"sub": user_id, "jti": new_jti})

    return TokenResponse(access_token=access_token, refresh_token=refresh_token)


@router.post("/logout")
def logout(payload: LogoutRequest, db: Session = Depends(get_db)) -> dict:
    token_payload = verify_token(payload.refresh_token, "refresh")
    jti = token_payload.get("jti")
    if not jti:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token",
        )

    stored = db.query(RefreshToken).filter(RefreshToken.jti == jti).first()
    if not stored or stored.is_revoked:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token revoked",
        )
    stored.revoked_at = utcnow()
    db.commit()

    return {"status": "ok"}


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)) -> UserOut:
    return user_to_out(user)
