# backend/switchboard/schemas/__init__.py
from .schemas import (
    # Enums
    UserRole,
    CallDirection,

    # Auth
    UserLogin,
    TokenPayload,
    TokenResponse,

    # User
    UserCreate,
    UserUpdate,
    UserResponse,
    UserWithCallResponse,
    UserMutationResponse,
    MessageResponse,

    # Calls
    CallStatusUpdate,
    CallStatusResponse,
    CallPresenceResponse,
    CallLogResponse,

    # Telephony
    TelephonyCredentialsUpdate,
    TelephonyCredentialsResponse,
    VoiceTokenRequest,
    VoiceTokenResponse,

    # Contacts
    ContactCreate,
    ContactUpdate,
    ContactResponse,
)
