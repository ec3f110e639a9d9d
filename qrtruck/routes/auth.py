"""
Account Endpoints

    - POST /api/auth/signup: Register a truck owner
    - POST /api/auth/login: Exchange credentials for a bearer token
    - GET /api/auth/me: Current account
    - GET /api/user/truck: The caller's active truck
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from qrtruck.core.security import (
    create_access_token,
    get_current_user,
    hash_password,
    verify_password,
)
from qrtruck.database import get_db
from qrtruck.models import FoodTruck, User, UserRole
from qrtruck.schemas import (
    ErrorResponse,
    LoginRequest,
    SignupRequest,
    TokenResponse,
    TruckResponse,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])


@router.post(
    "/api/auth/signup",
    response_model=TokenResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Register a truck owner",
)
async def signup(
    data: SignupRequest,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    existing = await db.execute(select(User.id).where(User.email == data.email))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=400, detail="User already exists")

    user = User(
        email=data.email,
        password_hash=hash_password(data.password),
        name=data.name,
        role=UserRole.TRUCK_OWNER,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=400, detail="User already exists")
    await db.refresh(user)

    logger.info(f"Truck owner registered: {user.email}")
    return TokenResponse(
        access_token=create_access_token(user),
        user=UserResponse.model_validate(user),
    )


@router.post(
    "/api/auth/login",
    response_model=TokenResponse,
    responses={401: {"model": ErrorResponse}},
)
async def login(
    data: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    result = await db.execute(select(User).where(User.email == data.email))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(data.password, user.password_hash):
        logger.info(f"Failed login for {data.email}")
        raise HTTPException(status_code=401, detail="Invalid email or password")

    return TokenResponse(
        access_token=create_access_token(user),
        user=UserResponse.model_validate(user),
    )


@router.get("/api/auth/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)


@router.get(
    "/api/user/truck",
    response_model=TruckResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Caller's truck",
)
async def get_user_truck(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TruckResponse:
    """The most recently created active truck owned by the caller."""
    result = await db.execute(
        select(FoodTruck)
        .where(FoodTruck.owner_id == user.id, FoodTruck.is_active.is_(True))
        .order_by(FoodTruck.created_at.desc())
        .limit(1)
    )
    truck = result.scalar_one_or_none()
    if truck is None:
        raise HTTPException(status_code=404, detail="No truck found")
    return TruckResponse.model_validate(truck)
