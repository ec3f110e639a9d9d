"""
Payment Webhook Events

Applies verified payment-provider events to the database. Deliveries may
repeat, so every handler is idempotent.
"""

import logging
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from qrtruck.models import Order, User
from qrtruck.services.orders import (
    OrderAlreadyExists,
    create_order_from_payment,
    get_order_by_number,
)
from qrtruck.services.payment.base import PaymentIntentInfo

logger = logging.getLogger(__name__)


def intent_from_event_object(obj: dict[str, Any]) -> PaymentIntentInfo:
    return PaymentIntentInfo(
        id=obj["id"],
        status=obj.get("status", ""),
        amount_cents=int(obj.get("amount") or 0),
        currency=obj.get("currency", "cad"),
        metadata={k: str(v) for k, v in (obj.get("metadata") or {}).items()},
    )


async def _handle_payment_succeeded(db: AsyncSession, obj: dict[str, Any]) -> Optional[Order]:
    intent = intent_from_event_object(obj)
    order_number = intent.metadata.get("order_number")
    if not order_number:
        logger.warning(f"[WEBHOOK] Payment {intent.id} has no order number, ignoring")
        return None

    existing = await get_order_by_number(db, order_number)
    if existing is not None:
        logger.info(f"[WEBHOOK] Order {order_number} already exists, skipping")
        return existing

    try:
        order = await create_order_from_payment(db, intent)
    except OrderAlreadyExists:
        return await get_order_by_number(db, order_number)

    logger.info(f"[WEBHOOK] Payment succeeded - Order created: {order.order_number} ({order.id})")
    return order


async def _handle_account_updated(db: AsyncSession, obj: dict[str, Any]) -> None:
    if obj.get("charges_enabled") and obj.get("payouts_enabled"):
        await db.execute(
            update(User)
            .where(User.stripe_connect_id == obj["id"])
            .values(stripe_onboarded=True)
        )
        await db.commit()
        logger.info(f"[WEBHOOK] Connected account {obj['id']} onboarded")


async def handle_payment_event(db: AsyncSession, event: dict[str, Any]) -> Optional[Order]:
    """
    Dispatch one event.

    Returns:
        The order for ``payment_intent.succeeded`` events, else None
    """
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}

    if event_type == "payment_intent.succeeded":
        return await _handle_payment_succeeded(db, obj)

    if event_type == "payment_intent.payment_failed":
        order_number = (obj.get("metadata") or {}).get("order_number")
        logger.info(f"[WEBHOOK] Payment failed for {obj.get('id')} (Order: {order_number})")
        return None

    if event_type == "account.updated":
        await _handle_account_updated(db, obj)
        return None

    logger.info(f"[WEBHOOK] Unhandled event type: {event_type}")
    return None
