# backend/switchboard/schemas/schemas.py
from pydantic import BaseModel, EmailStr, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime
from enum import Enum

# Enums
class UserRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"

class CallDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class CamelModel(BaseModel):
    """Wire models speak camelCase and also accept snake_case on input."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True
    )


# Auth Schemas
class UserLogin(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

class TokenPayload(BaseModel):
    sub: str
    sid: int
    role: Optional[str] = None
    exp: Optional[int] = None

# User Schemas
class UserCreate(CamelModel):
    full_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=10)
    extension: str = Field(..., min_length=3)
    role: UserRole = UserRole.USER
    password: str = Field(..., min_length=8)

class UserUpdate(CamelModel):
    full_name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=10)
    extension: Optional[str] = Field(None, min_length=3)
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
    password: Optional[str] = Field(None, min_length=8)

class UserResponse(CamelModel):
    id: int
    full_name: str
    email: str
    phone: str
    extension: str
    role: str
    is_active: bool
    created_at: Optional[datetime] = None

class CallPresenceResponse(CamelModel):
    call_sid: str
    caller_number: str
    direction: str
    started_at: datetime

class UserWithCallResponse(UserResponse):
    current_call: Optional[CallPresenceResponse] = None

class TokenResponse(CamelModel):
    token: str
    user: UserResponse

class UserMutationResponse(CamelModel):
    message: str
    user: UserResponse

class MessageResponse(CamelModel):
    message: str

# Call status
class CallStatusUpdate(CamelModel):
    """Either a started call (call_sid, caller_number, ...) or ``end_call=True``."""
    call_sid: Optional[str] = None
    caller_number: Optional[str] = None
    direction: CallDirection = CallDirection.INBOUND
    start_time: Optional[datetime] = None
    end_call: bool = False

class CallStatusResponse(CamelModel):
    message: str
    current_call: Optional[CallPresenceResponse] = None

class CallLogResponse(CamelModel):
    id: int
    user_id: Optional[int]
    call_sid: Optional[str]
    phone_number: str
    direction: str
    status: str
    duration_seconds: Optional[int]
    started_at: datetime
    ended_at: Optional[datetime]

# Telephony Schemas
class TelephonyCredentialsUpdate(CamelModel):
    account_sid: str = Field(..., min_length=1)
    api_key: str = Field(..., min_length=1)
    api_secret: str = Field(..., min_length=1)
    app_sid: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=1)

class TelephonyCredentialsResponse(CamelModel):
    account_sid: str
    api_key: str
    api_secret: str
    app_sid: str
    phone_number: str
    updated_at: Optional[datetime] = None

class VoiceTokenRequest(CamelModel):
    identity: Optional[str] = None

class VoiceTokenResponse(CamelModel):
    token: str
    identity: str

# Contact Schemas
class ContactCreate(CamelModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=3)
    email: Optional[EmailStr] = None
    company: Optional[str] = None
    notes: Optional[str] = None

class ContactUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = Field(None, min_length=3)
    email: Optional[EmailStr] = None
    company: Optional[str] = None
    notes: Optional[str] = None

class ContactResponse(CamelModel):
    id: int
    name: str
    phone: str
    email: Optional[str]
    company: Optional[str]
    notes: Optional[str]
    created_by: Optional[int]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

