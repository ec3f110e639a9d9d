"""
Order Endpoints

    - GET /api/orders: Look up by number, or list a truck's orders
    - GET /api/orders/{id}: Single order with truck summary
    - PATCH /api/orders/{id}: Merchant status change
    - POST /api/orders/create-from-payment: Fallback creation after payment
    - POST /api/pickup/confirm: Hand an order over at the window
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from qrtruck.core.security import get_optional_user, get_owned_truck, get_current_user
from qrtruck.database import get_db
from qrtruck.models import FoodTruck, Order, OrderStatus, User, UserRole
from qrtruck.schemas import (
    CreateFromPaymentRequest,
    CreateFromPaymentResponse,
    ErrorResponse,
    OrderDetailResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    PickupConfirmRequest,
    PickupConfirmResponse,
    TruckSummary,
)
from qrtruck.services.orders import (
    OrderAlreadyExists,
    create_order_from_payment,
    get_order_by_number,
)
from qrtruck.services.payment import get_payment_service
from qrtruck.services.pickup import PickupError, confirm_pickup

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Orders"])

COMPLETING_STATUSES = (OrderStatus.COMPLETED, OrderStatus.PICKED_UP)


def _parse_statuses(raw: str) -> list[OrderStatus]:
    try:
        return [OrderStatus(s.strip().upper()) for s in raw.split(",") if s.strip()]
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid status. Options: {[s.value for s in OrderStatus]}",
        )


@router.get(
    "/api/orders",
    response_model=OrderListResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
    summary="List Orders",
)
async def list_orders(
    order_number: Optional[str] = Query(None),
    truck_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None, description="One status or a comma-separated list"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    """
    Newest first.

    Looking up a single order by number is public (the customer's success
    page polls it). Listing requires the truck owner, or an admin for the
    unfiltered list.
    """
    if order_number:
        order = await get_order_by_number(db, order_number)
        orders = [order] if order is not None else []
        return OrderListResponse(
            total=len(orders),
            orders=[OrderResponse.model_validate(o) for o in orders],
        )

    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    query = select(Order).order_by(Order.created_at.desc())
    count_query = select(func.count(Order.id))

    if truck_id:
        await get_owned_truck(db, truck_id, user)
        query = query.where(Order.truck_id == truck_id)
        count_query = count_query.where(Order.truck_id == truck_id)
    elif user.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Forbidden - Admin access required")

    if status:
        statuses = _parse_statuses(status)
        query = query.where(Order.status.in_(statuses))
        count_query = count_query.where(Order.status.in_(statuses))

    total_result = await db.execute(count_query)
    total = total_result.scalar() or 0

    result = await db.execute(query.offset(skip).limit(limit))
    return OrderListResponse(
        total=total,
        orders=[OrderResponse.model_validate(o) for o in result.scalars().all()],
    )


@router.get(
    "/api/orders/{order_id}",
    response_model=OrderDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
) -> OrderDetailResponse:
    order = await db.get(Order, order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")

    truck = await db.get(FoodTruck, order.truck_id)
    detail = OrderDetailResponse.model_validate(order)
    detail.truck = TruckSummary.model_validate(truck) if truck else None
    return detail


@router.patch(
    "/api/orders/{order_id}",
    response_model=OrderResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Update order status",
)
async def update_order_status(
    order_id: str,
    data: OrderStatusUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    order = await db.get(Order, order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    await get_owned_truck(db, order.truck_id, user)

    previous = order.status
    order.status = data.status
    if data.status in COMPLETING_STATUSES and order.completed_at is None:
        order.completed_at = datetime.now(timezone.utc)

    await db.commit()
    await db.refresh(order)
    logger.info(f"Order {order.order_number}: {previous.value} -> {order.status.value}")
    return OrderResponse.model_validate(order)


@router.post(
    "/api/orders/create-from-payment",
    response_model=CreateFromPaymentResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Create order from a succeeded payment",
)
async def create_from_payment(
    data: CreateFromPaymentRequest,
    db: AsyncSession = Depends(get_db),
) -> CreateFromPaymentResponse:
    """
    Fallback for when the webhook has not created the order yet.

    Returns the existing order when there is one. A concurrent insert by
    the webhook surfaces as 409.
    """
    existing = await get_order_by_number(db, data.order_number)
    if existing is not None:
        return CreateFromPaymentResponse(
            success=True,
            order=OrderResponse.model_validate(existing),
            message="Order already exists",
        )

    intent = await get_payment_service().retrieve_payment_intent(data.payment_intent_id)
    if intent is None:
        raise HTTPException(status_code=404, detail="Payment intent not found")

    if not intent.succeeded:
        raise HTTPException(
            status_code=400,
            detail=f"Payment not succeeded. Status: {intent.status}",
        )

    metadata_number = intent.metadata.get("order_number")
    if metadata_number and metadata_number != data.order_number:
        raise HTTPException(status_code=400, detail="Order number does not match payment")

    try:
        order = await create_order_from_payment(db, intent, order_number=data.order_number)
    except OrderAlreadyExists:
        raise HTTPException(status_code=409, detail="Order already exists")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Order {order.order_number} created from payment {intent.id} (fallback)")
    return CreateFromPaymentResponse(
        success=True,
        order=OrderResponse.model_validate(order),
        message="Order created from payment intent",
    )


@router.post(
    "/api/pickup/confirm",
    response_model=PickupConfirmResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    tags=["Pickup"],
    summary="Confirm order pickup",
)
async def pickup_confirm(
    data: PickupConfirmRequest,
    db: AsyncSession = Depends(get_db),
) -> PickupConfirmResponse:
    try:
        event = await confirm_pickup(
            db,
            order_id=data.order_id,
            pickup_code=data.pickup_code,
            staff_name=data.staff_name,
            notes=data.notes,
        )
    except PickupError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    order = await db.get(Order, data.order_id)
    return PickupConfirmResponse(
        success=True,
        message="Order picked up",
        order_id=order.id,
        order_number=order.order_number,
        picked_at=event.picked_at,
    )
