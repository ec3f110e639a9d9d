"""
Order Creation

Orders are written only after the payment processor reports success. Two
paths can do it: the payment webhook and the client's fallback call. Both
go through ``create_order_from_payment``; the unique ``order_number``
decides which insert wins.
"""

import logging
import secrets
import string
import time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from qrtruck.models import MenuItem, Order, OrderStatus
from qrtruck.services.payment.base import PaymentIntentInfo
from qrtruck.services.payment.metadata import unpack_items
from qrtruck.services.pickup import generate_pickup_code
from qrtruck.services.pricing import from_cents

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_uppercase


class OrderAlreadyExists(Exception):
    """Another request already inserted an order with this number."""

    def __init__(self, order_number: str):
        super().__init__(f"Order {order_number} already exists")
        self.order_number = order_number


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_order_number(now_ms: Optional[int] = None) -> str:
    """
    Human-readable order number: ``ORD-<base36 ms timestamp>-<4 base36>``.

    Uniqueness is enforced by the database, not by this function.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"ORD-{_to_base36(now_ms)}-{suffix}"


async def get_order_by_number(db: AsyncSession, order_number: str) -> Optional[Order]:
    result = await db.execute(select(Order).where(Order.order_number == order_number))
    return result.scalar_one_or_none()


async def _fill_item_names(db: AsyncSession, items: list[dict]) -> list[dict]:
    """Replace placeholder names (dropped from metadata) with menu names."""
    missing = [
        item["menu_item_id"]
        for item in items
        if item["menu_item_id"] and item["name"] == f"Item {item['menu_item_id']}"
    ]
    if not missing:
        return items

    result = await db.execute(
        select(MenuItem.id, MenuItem.name).where(MenuItem.id.in_(missing))
    )
    names = dict(result.all())
    for item in items:
        if item["menu_item_id"] in names:
            item["name"] = names[item["menu_item_id"]]
    return items


async def create_order_from_payment(
    db: AsyncSession,
    intent: PaymentIntentInfo,
    order_number: Optional[str] = None,
) -> Order:
    """
    Insert the PENDING order described by a succeeded payment intent.

    Args:
        db: Database session
        intent: The retrieved (or webhook-delivered) payment intent
        order_number: Fallback when the metadata does not carry one

    Returns:
        Order: The new order with a fresh pickup code

    Raises:
        OrderAlreadyExists: The order number is already taken
        IntegrityError: Any other constraint failure; nothing was stored
        ValueError: The metadata does not describe an order
    """
    metadata = intent.metadata
    number = metadata.get("order_number") or order_number
    truck_id = metadata.get("truck_id")
    if not number or not truck_id:
        raise ValueError(f"Payment {intent.id} carries no order data")

    items = await _fill_item_names(db, unpack_items(metadata))

    order = Order(
        order_number=number,
        truck_id=truck_id,
        user_id=metadata.get("user_id") or None,
        customer_name=metadata.get("customer_name") or None,
        customer_email=metadata.get("customer_email") or None,
        customer_phone=metadata.get("customer_phone") or None,
        items=items,
        subtotal=float(metadata.get("subtotal", 0)),
        tax=float(metadata.get("tax", 0)),
        platform_fee=float(metadata.get("platform_fee", 0)),
        total=float(from_cents(intent.amount_cents)),
        stripe_payment_id=intent.id,
        stripe_status=intent.status,
        pickup_code=generate_pickup_code(),
        status=OrderStatus.PENDING,
    )
    db.add(order)

    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        if await get_order_by_number(db, number) is None:
            # Some other constraint, e.g. the truck was deleted while the payment was in flight
            logger.error(f"Order {number} for payment {intent.id} could not be stored: {e.orig}")
            raise
        logger.info(f"Order {number} was created concurrently")
        raise OrderAlreadyExists(number)

    await db.refresh(order)
    logger.info(f"Order created: {order.order_number} ({order.id}) - ${order.total:.2f}")
    return order
