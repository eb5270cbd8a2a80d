# app/routes/auth.py
"""Authentication endpoints: login, token refresh and registration."""

import hashlib
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession
from app.auth import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    authenticate_user,
    get_current_user,
)
from app.acl import ROLE_ADMIN, ROLE_STUDENT
from app.database import get_session
from app.models import User
from app.crud import (
    get_settings,
    create_user,
    count_users,
    get_user_by_email,
    save_user,
)
from app.schemas.user import (
    UserCreate,
    UserResponse,
    UserLogin,
    TokenPair,
    RefreshRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["auth"])


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


async def _issue_tokens(db: AsyncSession, user: User) -> TokenPair:
    """Create a fresh token pair and remember the refresh token's hash."""
    access_token = create_access_token(data={"sub": user.email})
    refresh_token = create_refresh_token(data={"sub": user.email})
    user.refresh_token_hash = _hash_token(refresh_token)
    await save_user(db, user)
    return TokenPair(access_token=access_token, refresh_token=refresh_token)


def _check_active(user: User) -> None:
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "code": "auth_account_inactive",
                "message": "Account has been deactivated",
            },
        )


def _invalid_credentials() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "code": "auth_invalid_credentials",
            "message": "Invalid email or password",
        },
    )


@router.post("/token", response_model=TokenPair)
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_session),
):
    """OAuth2 password flow used by interactive docs and external clients."""

    user = await authenticate_user(db, form_data.username, form_data.password)
    if not user:
        logger.warning("Failed OAuth login for %s", form_data.username)
        raise _invalid_credentials()
    _check_active(user)
    logger.info("User %s logged in via OAuth form", user.email)
    return await _issue_tokens(db, user)


@router.post("/login", response_model=TokenPair)
async def login(user_in: UserLogin, db: AsyncSession = Depends(get_session)):
    """JSON-based login used by the frontend."""

    user = await authenticate_user(
        db=db, email=user_in.email, password=user_in.password
    )
    if not user:
        logger.warning("Failed login for %s", user_in.email)
        raise _invalid_credentials()
    _check_active(user)
    logger.info("User %s logged in", user.email)
    return await _issue_tokens(db, user)


@router.post("/refresh", response_model=TokenPair)
async def refresh(data: RefreshRequest, db: AsyncSession = Depends(get_session)):
    """Exchange a refresh token for a new pair; the old one stops working."""

    invalid = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "auth_invalid_refresh", "message": "Invalid refresh token"},
    )
    email = decode_refresh_token(data.refresh_token)
    if email is None:
        raise invalid
    user = await get_user_by_email(db, email)
    if not user or user.refresh_token_hash != _hash_token(data.refresh_token):
        raise invalid
    _check_active(user)
    return await _issue_tokens(db, user)


@router.post("/logout")
async def logout(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    current_user.refresh_token_hash = None
    await save_user(db, current_user)
    logger.info("User %s logged out", current_user.email)
    return {"message": "Logged out"}


@router.post("/register", response_model=UserResponse)
async def register(user_in: UserCreate, db: AsyncSession = Depends(get_session)):
    """Register a learner account, or the initial admin on an empty site."""

    is_first_user = await count_users(db) == 0

    if not is_first_user:
        settings = await get_settings(db)
        if settings.public_registration_disabled:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Registration disabled",
            )

    if await get_user_by_email(db, user_in.email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "auth_email_registered",
                "message": "Email is already registered.",
            },
        )

    new_user = User(
        name=user_in.name,
        email=user_in.email,
        password_hash=user_in.password,
        role=ROLE_ADMIN if is_first_user else ROLE_STUDENT,
    )
    new_user = await create_user(db, new_user)
    logger.info(
        "User %s registered%s",
        new_user.email,
        " as initial admin" if is_first_user else "",
    )
    return new_user
