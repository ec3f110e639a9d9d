"""
Authentication

Password hashing (bcrypt) and bearer access tokens (PyJWT), plus the FastAPI
dependencies that resolve the calling user and enforce roles.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from qrtruck.core.config import get_settings
from qrtruck.database import get_db
from qrtruck.models import User, UserRole, FoodTruck

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    try:
        return bcrypt.checkpw(plain_password.encode(), hashed_password.encode())
    except ValueError:
        # Malformed stored hash
        return False


def create_access_token(user: User) -> str:
    """Create a signed token carrying the user id and role."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user.id,
        "email": user.email,
        "role": user.role.value,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_expire_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[dict]:
    """Decode and verify a token. Returns None when invalid or expired."""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        logger.debug("Access token expired")
        return None
    except jwt.PyJWTError:
        return None


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Resolve the caller if a valid bearer token was sent."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        return None

    payload = decode_access_token(credentials.credentials)
    if not payload or "sub" not in payload:
        return None

    return await db.get(User, payload["sub"])


async def get_current_user(
    user: Optional[User] = Depends(get_optional_user),
) -> User:
    """Require an authenticated caller."""
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Require the ADMIN role."""
    if user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden - Admin access required",
        )
    return user


async def get_owned_truck(db: AsyncSession, truck_id: str, user: User) -> FoodTruck:
    """
    Load a truck the caller may manage.

    Admins may manage any truck. Raises 404 for unknown trucks and 403 when
    the caller does not own it.
    """
    truck = await db.get(FoodTruck, truck_id)
    if truck is None:
        raise HTTPException(status_code=404, detail="Food truck not found")
    if truck.owner_id != user.id and user.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Not the owner of this food truck")
    return truck
