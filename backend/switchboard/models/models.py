# backend/switchboard/models/models.py
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.sql import func
import enum

Base = declarative_base()

class UserRole(str, enum.Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"

class CallDirection(str, enum.Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"

class CallLogStatus(str, enum.Enum):
    COMPLETED = "completed"
    MISSED = "missed"
    FAILED = "failed"

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    full_name = Column(String, nullable=False)
    # Unique across active and inactive rows; a deactivated user keeps blocking reuse
    email = Column(String, nullable=False, unique=True)
    phone = Column(String, nullable=False)
    extension = Column(String, nullable=False, unique=True)
    role = Column(String, nullable=False, default=UserRole.USER.value)
    hashed_password = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")
    call_presence = relationship("CallPresence", back_populates="user", uselist=False, cascade="all, delete-orphan")
    call_logs = relationship("CallLog", back_populates="user")
    contacts = relationship("Contact", back_populates="created_by_user")

class UserSession(Base):
    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="sessions")

# ============================================================================
# TELEPHONY MODELS
# ============================================================================

class TelephonyCredentials(Base):
    """Singleton row holding the voice API credentials."""
    __tablename__ = "telephony_credentials"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_sid = Column(String, nullable=False)
    api_key = Column(String, nullable=False)
    api_secret = Column(String, nullable=False)
    app_sid = Column(String, nullable=False)
    phone_number = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class CallPresence(Base):
    """The call a user is currently on. No row means no active call."""
    __tablename__ = "call_presence"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    call_sid = Column(String, nullable=False)
    caller_number = Column(String, nullable=False)
    direction = Column(String, nullable=False, default=CallDirection.INBOUND.value)
    started_at = Column(DateTime(timezone=True), nullable=False)

    user = relationship("User", back_populates="call_presence")

class CallLog(Base):
    __tablename__ = "call_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    call_sid = Column(String, nullable=True)
    phone_number = Column(String, nullable=False)
    direction = Column(String, nullable=False)
    status = Column(String, nullable=False, default=CallLogStatus.COMPLETED.value)
    duration_seconds = Column(Integer, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="call_logs")

# ============================================================================
# CRM MODELS
# ============================================================================

class Contact(Base):
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False, index=True)
    email = Column(String, nullable=True)
    company = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    created_by_user = relationship("User", back_populates="contacts")
