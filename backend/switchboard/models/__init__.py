# backend/switchboard/models/__init__.py
from .models import (
    Base,
    UserRole,
    CallDirection,
    CallLogStatus,
    User,
    UserSession,
    TelephonyCredentials,
    CallPresence,
    CallLog,
    Contact
)

__all__ = [
    "Base",
    "UserRole",
    "CallDirection",
    "CallLogStatus",
    "User",
    "UserSession",
    "TelephonyCredentials",
    "CallPresence",
    "CallLog",
    "Contact"
]
