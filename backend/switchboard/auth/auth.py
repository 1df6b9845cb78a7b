# backend/switchboard/auth/auth.py
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
import hashlib
import logging

from switchboard.core.config import settings
from switchboard.core.exceptions import Unauthorized, InvalidCredentials, Forbidden
from switchboard.db.database import get_db
from switchboard.models.models import User, UserSession
from switchboard.schemas.schemas import TokenPayload

logger = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Security
security = HTTPBearer(auto_error=False)


class AuthService:
    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Verify a password against a hash."""
        return pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    def get_password_hash(password: str) -> str:
        """Generate password hash."""
        return pwd_context.hash(password)

    @staticmethod
    def hash_token(token: str) -> str:
        """Digest stored in the sessions table instead of the bearer token."""
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Create an access token."""
        to_encode = data.copy()
        if expires_delta:
            expire = datetime.now(timezone.utc) + expires_delta
        else:
            expire = datetime.now(timezone.utc) + timedelta(days=settings.SESSION_EXPIRE_DAYS)

        to_encode.update({"exp": expire})
        encoded_jwt = jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
        return encoded_jwt

    @staticmethod
    def decode_token(token: str) -> TokenPayload:
        """Decode and validate a JWT token."""
        try:
            payload = jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM]
            )
            return TokenPayload(**payload)
        except (JWTError, ValueError, TypeError):
            raise Unauthorized()

    @staticmethod
    async def authenticate(db: AsyncSession, email: str, password: str) -> Tuple[str, User]:
        """
        Check credentials and open a session.

        Unknown email, inactive user and wrong password all raise the same
        InvalidCredentials error. On success one UserSession row is written.
        """
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if user is None or not user.is_active:
            raise InvalidCredentials()
        if not AuthService.verify_password(password, user.hashed_password):
            raise InvalidCredentials()

        expires_at = datetime.now(timezone.utc) + timedelta(days=settings.SESSION_EXPIRE_DAYS)
        session = UserSession(user_id=user.id, token_hash="", expires_at=expires_at)
        db.add(session)
        # Flush to learn the session id the token refers to
        await db.flush()

        token = AuthService.create_access_token(
            {"sub": str(user.id), "sid": session.id, "role": user.role},
            expires_delta=expires_at - datetime.now(timezone.utc)
        )
        session.token_hash = AuthService.hash_token(token)
        await db.commit()
        await db.refresh(user)

        logger.info(f"🔑 Session {session.id} opened for user {user.id}")
        return token, user

    @staticmethod
    async def validate(db: AsyncSession, token: str) -> User:
        """Resolve a bearer token to its active user or raise Unauthorized."""
        token_data = AuthService.decode_token(token)

        now = datetime.now(timezone.utc)
        result = await db.execute(
            select(UserSession).where(
                UserSession.id == token_data.sid,
                UserSession.expires_at > now
            )
        )
        session = result.scalar_one_or_none()
        if session is None or session.token_hash != AuthService.hash_token(token):
            raise Unauthorized()
        if str(session.user_id) != token_data.sub:
            raise Unauthorized()

        result = await db.execute(select(User).where(User.id == session.user_id))
        user = result.scalar_one_or_none()
        if user is None or not user.is_active:
            raise Unauthorized()

        return user

    @staticmethod
    async def revoke(db: AsyncSession, user_id: int) -> int:
        """Delete every session of a user. Returns the number removed."""
        result = await db.execute(delete(UserSession).where(UserSession.user_id == user_id))
        await db.commit()
        revoked = result.rowcount or 0
        logger.info(f"🔒 Revoked {revoked} session(s) for user {user_id}")
        return revoked


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Get current user from the bearer token."""
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Not authenticated")

    return await AuthService.validate(db, credentials.credentials)


def require_roles(*roles: str):
    """Dependency to require one of the given roles."""
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise Forbidden()
        return current_user
    return role_checker


require_admin_user = require_roles("admin")
require_staff_user = require_roles("admin", "manager")
