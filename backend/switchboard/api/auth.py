# backend/switchboard/api/auth.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
import logging

from switchboard.db.database import get_db
from switchboard.models.models import User, UserRole
from switchboard.schemas.schemas import (
    UserLogin,
    UserCreate,
    TokenResponse,
    UserResponse,
    UserMutationResponse,
    MessageResponse
)
from switchboard.auth.auth import AuthService, get_current_user
from switchboard.core.exceptions import Forbidden
from switchboard.core.presence_hub import PresenceHub, get_presence_hub
from switchboard.api.users import create_user_record

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/auth/login", response_model=TokenResponse, tags=["auth"])
async def login(
    user_data: UserLogin,
    db: AsyncSession = Depends(get_db)
):
    """Exchange email and password for a bearer token."""
    token, user = await AuthService.authenticate(db, user_data.email, user_data.password)
    logger.info(f"✅ User {user.id} logged in")
    return TokenResponse(token=token, user=UserResponse.model_validate(user))


@router.post("/auth/logout", response_model=MessageResponse, tags=["auth"])
async def logout(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    hub: PresenceHub = Depends(get_presence_hub)
):
    """Log out everywhere: every session of the caller is revoked and their realtime connections dropped."""
    await AuthService.revoke(db, current_user.id)
    await hub.unregister_user(current_user.id)
    return MessageResponse(message="Logged out successfully")


@router.get("/auth/me", response_model=UserResponse, tags=["auth"])
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information."""
    return current_user


@router.post(
    "/auth/create-admin",
    response_model=UserMutationResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["auth"]
)
async def create_admin(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db)
):
    """
    Bootstrap the first administrator.

    Unauthenticated, and only usable while no admin account exists.
    """
    result = await db.execute(select(User.id).where(User.role == UserRole.ADMIN.value).limit(1))
    if result.scalar_one_or_none() is not None:
        raise Forbidden("An admin account already exists")

    user = await create_user_record(db, user_data, role=UserRole.ADMIN.value)
    logger.info(f"👑 Bootstrap admin {user.id} created")
    return UserMutationResponse(message="Admin user created successfully", user=UserResponse.model_validate(user))
