# backend/switchboard/core/events.py
"""Realtime event payloads sent through the presence hub."""

from typing import Dict, Any, Optional

from switchboard.models.models import User, CallPresence
from switchboard.schemas.schemas import UserResponse, CallPresenceResponse

USER_CREATED = "user_created"
USER_UPDATED = "user_updated"
USER_DELETED = "user_deleted"
USER_CALL_STARTED = "user_call_started"
USER_CALL_ENDED = "user_call_ended"
CALL_ANSWERED = "call_answered"
AUTH_SUCCESS = "auth_success"
AUTH_ERROR = "auth_error"

# User directory changes only reach staff consoles
STAFF_ROLES = ("admin", "manager")

_USER_MESSAGES = {
    USER_CREATED: "User {name} was created",
    USER_UPDATED: "User {name} was updated",
    USER_DELETED: "User {name} was deleted",
}


def serialize_user(user: User) -> Dict[str, Any]:
    return UserResponse.model_validate(user).model_dump(mode="json", by_alias=True)


def user_event(event_type: str, user: User) -> Dict[str, Any]:
    return {
        "type": event_type,
        "user": serialize_user(user),
        "message": _USER_MESSAGES[event_type].format(name=user.full_name),
    }


def call_started_event(user: User, presence: CallPresence) -> Dict[str, Any]:
    return {
        "type": USER_CALL_STARTED,
        "userId": user.id,
        "userName": user.full_name,
        "currentCall": CallPresenceResponse.model_validate(presence).model_dump(mode="json", by_alias=True),
        "message": f"{user.full_name} is on a call with {presence.caller_number}",
    }


def call_ended_event(user: User, call_sid: Optional[str] = None) -> Dict[str, Any]:
    return {
        "type": USER_CALL_ENDED,
        "userId": user.id,
        "userName": user.full_name,
        "callSid": call_sid,
        "message": f"{user.full_name} ended their call",
    }


def call_answered_event(user: User, call_sid: str) -> Dict[str, Any]:
    return {
        "type": CALL_ANSWERED,
        "callSid": call_sid,
        "answeredByUserId": user.id,
        "answeredByName": user.full_name,
    }


def auth_success_event(user: User) -> Dict[str, Any]:
    return {"type": AUTH_SUCCESS, "user": serialize_user(user)}


def auth_error_event(message: str = "Invalid token") -> Dict[str, Any]:
    return {"type": AUTH_ERROR, "message": message}
