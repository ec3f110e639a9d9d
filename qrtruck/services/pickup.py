"""
Pickup Codes

Customers get a 4-digit code with their order and read it out at the truck
window. Staff confirm the handover once; the pickup event row is unique per
order, so a second confirmation fails whatever code is supplied.
"""

import logging
import re
import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from qrtruck.models import Order, OrderStatus, PickupEvent

logger = logging.getLogger(__name__)

_CODE_PATTERN = re.compile(r"\d{4}", re.ASCII)


class PickupError(Exception):
    """Base class for pickup confirmation failures."""
    status_code = 400


class InvalidPickupCodeFormat(PickupError):
    status_code = 400


class OrderNotFound(PickupError):
    status_code = 404


class AlreadyPickedUp(PickupError):
    status_code = 400


class OrderCancelled(PickupError):
    status_code = 400


class PickupCodeMismatch(PickupError):
    status_code = 403


def generate_pickup_code() -> str:
    """Uniformly random code in 0000-9999 from the OS CSPRNG."""
    return f"{secrets.randbelow(10_000):04d}"


def validate_pickup_code_format(code: object) -> bool:
    return isinstance(code, str) and _CODE_PATTERN.fullmatch(code) is not None


async def confirm_pickup(
    db: AsyncSession,
    order_id: str,
    pickup_code: str,
    staff_name: Optional[str] = None,
    notes: Optional[str] = None,
) -> PickupEvent:
    """
    Record that an order was collected.

    Raises:
        InvalidPickupCodeFormat: code is not exactly four digits
        OrderNotFound: no such order
        OrderCancelled: the order was cancelled
        AlreadyPickedUp: a pickup event exists (checked before the code)
        PickupCodeMismatch: wrong code
    """
    if not validate_pickup_code_format(pickup_code):
        raise InvalidPickupCodeFormat("Invalid pickup code format. Must be 4 digits.")

    order = await db.get(Order, order_id)
    if order is None:
        raise OrderNotFound("Order not found")

    existing = await db.execute(
        select(PickupEvent.id).where(PickupEvent.order_id == order_id)
    )
    if existing.scalar_one_or_none() is not None:
        raise AlreadyPickedUp("Order already picked up")

    if order.status == OrderStatus.CANCELLED:
        raise OrderCancelled("Order was cancelled")

    if not secrets.compare_digest(order.pickup_code, pickup_code):
        logger.info(f"Pickup code mismatch for order {order.order_number}")
        raise PickupCodeMismatch("Invalid pickup code")

    now = datetime.now(timezone.utc)
    event = PickupEvent(
        order_id=order.id,
        staff_name=staff_name or None,
        notes=notes or None,
        picked_at=now,
    )
    db.add(event)
    order.status = OrderStatus.PICKED_UP
    order.completed_at = now

    try:
        await db.commit()
    except IntegrityError:
        # A concurrent confirmation inserted its event first
        await db.rollback()
        raise AlreadyPickedUp("Order already picked up")

    await db.refresh(event)
    logger.info(f"Order {order.order_number} picked up")
    return event
