# backend/switchboard/api/users.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.exc import IntegrityError
from typing import List, Optional
import logging

from switchboard.db.database import get_db
from switchboard.models.models import User
from switchboard.schemas.schemas import (
    UserCreate,
    UserUpdate,
    UserResponse,
    UserWithCallResponse,
    UserMutationResponse,
    MessageResponse,
    CallStatusUpdate,
    CallStatusResponse,
    CallPresenceResponse
)
from switchboard.auth.auth import AuthService, get_current_user, require_admin_user, require_staff_user
from switchboard.core import events
from switchboard.core.exceptions import Conflict, Forbidden, NotFound, ValidationError
from switchboard.core.presence_hub import PresenceHub, get_presence_hub
from switchboard.security.audit_logger import audit_logger
from switchboard.services.call_tracker import call_tracker

logger = logging.getLogger(__name__)

router = APIRouter()


async def ensure_unique(
    db: AsyncSession,
    email: Optional[str] = None,
    extension: Optional[str] = None,
    exclude_user_id: Optional[int] = None
):
    """Reject an email or extension already held by any user, active or not."""
    if email is not None:
        query = select(User.id).where(User.email == email)
        if exclude_user_id is not None:
            query = query.where(User.id != exclude_user_id)
        if (await db.execute(query)).first() is not None:
            raise Conflict("Email already exists")

    if extension is not None:
        query = select(User.id).where(User.extension == extension)
        if exclude_user_id is not None:
            query = query.where(User.id != exclude_user_id)
        if (await db.execute(query)).first() is not None:
            raise Conflict("Extension already exists")


async def create_user_record(db: AsyncSession, user_data: UserCreate, role: Optional[str] = None) -> User:
    """Insert a user after the uniqueness checks. Nothing is written on conflict."""
    await ensure_unique(db, email=user_data.email, extension=user_data.extension)

    user = User(
        full_name=user_data.full_name,
        email=user_data.email,
        phone=user_data.phone,
        extension=user_data.extension,
        role=role or user_data.role.value,
        hashed_password=AuthService.get_password_hash(user_data.password),
        is_active=True
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent insert
        await db.rollback()
        raise Conflict("Email or extension already exists")

    await db.refresh(user)
    return user


async def get_user_or_404(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFound("User not found")
    return user


@router.get("/users", response_model=List[UserWithCallResponse], tags=["users"])
async def list_users(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_staff_user)
):
    """Active users, each with the call they are currently on."""
    result = await db.execute(
        select(User).where(User.is_active == True).order_by(User.full_name)
    )
    users = result.scalars().all()
    presence = await call_tracker.presence_by_user(db)

    response = []
    for user in users:
        item = UserWithCallResponse.model_validate(user)
        if user.id in presence:
            item.current_call = CallPresenceResponse.model_validate(presence[user.id])
        response.append(item)
    return response


@router.post(
    "/users",
    response_model=UserMutationResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["users"]
)
async def create_user(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin_user),
    hub: PresenceHub = Depends(get_presence_hub)
):
    """Create a user (admin only)."""
    user = await create_user_record(db, user_data)

    audit_logger.log_admin_action(current_user.id, "user_created", target_user_id=user.id)
    await hub.broadcast_to_roles(events.user_event(events.USER_CREATED, user), events.STAFF_ROLES)

    return UserMutationResponse(message="User created successfully", user=UserResponse.model_validate(user))


@router.put("/users/{user_id}", response_model=UserMutationResponse, tags=["users"])
async def update_user(
    user_id: int,
    user_data: UserUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin_user),
    hub: PresenceHub = Depends(get_presence_hub)
):
    """Partially update a user (admin only)."""
    user = await get_user_or_404(db, user_id)
    changes = user_data.model_dump(exclude_unset=True)

    if not changes:
        raise ValidationError("No fields to update")
    if user.id == current_user.id and changes.get("is_active") is False:
        raise Forbidden("Cannot deactivate your own account")

    await ensure_unique(
        db,
        email=changes.get("email"),
        extension=changes.get("extension"),
        exclude_user_id=user.id
    )

    password = changes.pop("password", None)
    if password:
        user.hashed_password = AuthService.get_password_hash(password)
    if "role" in changes and changes["role"] is not None:
        changes["role"] = changes["role"].value

    for field, value in changes.items():
        if value is None:
            continue
        setattr(user, field, value)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Email or extension already exists")
    await db.refresh(user)

    if not user.is_active:
        await AuthService.revoke(db, user.id)
        await hub.unregister_user(user.id)

    audit_logger.log_admin_action(
        current_user.id, "user_updated", target_user_id=user.id,
        details={"fields": sorted(changes.keys()) + (["password"] if password else [])}
    )
    await hub.broadcast_to_roles(events.user_event(events.USER_UPDATED, user), events.STAFF_ROLES)

    return UserMutationResponse(message="User updated successfully", user=UserResponse.model_validate(user))


@router.delete("/users/{user_id}", response_model=MessageResponse, tags=["users"])
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin_user),
    hub: PresenceHub = Depends(get_presence_hub)
):
    """Deactivate a user (admin only). The row is kept; sessions are revoked."""
    if current_user.id == user_id:
        raise Forbidden("Cannot delete your own account")

    user = await get_user_or_404(db, user_id)
    user.is_active = False
    await db.commit()
    await db.refresh(user)
    await AuthService.revoke(db, user.id)
    await hub.unregister_user(user.id)

    audit_logger.log_admin_action(current_user.id, "user_deleted", target_user_id=user.id)
    await hub.broadcast_to_roles(events.user_event(events.USER_DELETED, user), events.STAFF_ROLES)

    return MessageResponse(message="User deleted successfully")


@router.put("/users/{user_id}/call-status", response_model=CallStatusResponse, tags=["calls"])
async def update_call_status(
    user_id: int,
    call_status: CallStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    hub: PresenceHub = Depends(get_presence_hub)
):
    """
    Record that the caller started or ended a call.

    ``{"endCall": true}`` clears the presence; anything else must carry
    ``callSid`` and ``callerNumber``. Each write is followed by a broadcast.
    """
    if current_user.id != user_id:
        raise Forbidden("Cannot change another user's call status")

    if call_status.end_call:
        presence = await call_tracker.get_presence(db, user_id)
        call_sid = presence.call_sid if presence else None
        await call_tracker.end_call(db, user_id)
        await hub.broadcast_to_all(events.call_ended_event(current_user, call_sid))
        return CallStatusResponse(message="Call ended")

    errors = []
    if not call_status.call_sid:
        errors.append({"field": "callSid", "message": "This field is required"})
    if not call_status.caller_number:
        errors.append({"field": "callerNumber", "message": "This field is required"})
    if errors:
        raise ValidationError(errors=errors)

    presence = await call_tracker.start_call(
        db,
        user_id,
        call_sid=call_status.call_sid,
        caller_number=call_status.caller_number,
        direction=call_status.direction.value,
        started_at=call_status.start_time
    )
    # start_call may have rolled back to recover from a concurrent insert
    await db.refresh(current_user)

    await hub.broadcast_to_all(events.call_started_event(current_user, presence))
    await hub.broadcast_to_all(events.call_answered_event(current_user, presence.call_sid))

    return CallStatusResponse(
        message="Call started",
        current_call=CallPresenceResponse.model_validate(presence)
    )
