"""
Payment Endpoints

    - POST /api/payment/create-intent: Price a cart and open a payment
    - POST /api/webhooks/stripe: Payment provider webhook
    - POST /webhook/simulation/payment-succeeded: Development only
    - POST/GET /api/connect: Merchant payout onboarding
    - POST /api/stripe-dashboard: Merchant payout dashboard link
"""

import logging
from decimal import Decimal
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from qrtruck.core.config import get_settings
from qrtruck.core.security import get_current_user, get_optional_user
from qrtruck.database import get_db
from qrtruck.models import FoodTruck, MenuItem, ShopStatus, User, UserRole
from qrtruck.schemas import (
    ConnectLinkResponse,
    ConnectStatusResponse,
    CreateIntentRequest,
    CreateIntentResponse,
    DashboardLinkResponse,
    ErrorResponse,
    OrderResponse,
    SimulatePaymentRequest,
)
from qrtruck.services.orders import generate_order_number
from qrtruck.services.payment import (
    MockPaymentService,
    PaymentServiceError,
    get_payment_service,
    pack_order_metadata,
)
from qrtruck.services.pricing import calculate_order_totals, round2
from qrtruck.services.webhooks import handle_payment_event

settings = get_settings()
logger = logging.getLogger(__name__)

router = APIRouter(tags=["Payments"])


# =============================================================================
# CHECKOUT
# =============================================================================

@router.post(
    "/api/payment/create-intent",
    response_model=CreateIntentResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Create a payment intent for a cart",
)
async def create_payment_intent(
    data: CreateIntentRequest,
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
) -> CreateIntentResponse:
    """
    Price the cart from the menu and open a payment intent.

    No order is written here: the order data travels in the intent
    metadata and the order is created once the payment succeeds.
    """
    truck = await db.get(FoodTruck, data.truck_id)
    if truck is None or not truck.is_active:
        raise HTTPException(status_code=404, detail="Food truck not found")

    if truck.shop_status != ShopStatus.OPEN:
        raise HTTPException(
            status_code=400,
            detail=f"This truck is not accepting orders right now ({truck.shop_status.value})",
        )

    quantities: dict[str, int] = {}
    for line in data.items:
        quantities[line.menu_item_id] = quantities.get(line.menu_item_id, 0) + line.quantity

    result = await db.execute(
        select(MenuItem).where(
            MenuItem.id.in_(list(quantities)),
            MenuItem.truck_id == truck.id,
            MenuItem.is_available.is_(True),
        )
    )
    menu = {item.id: item for item in result.scalars().all()}
    missing = [item_id for item_id in quantities if item_id not in menu]
    if missing:
        raise HTTPException(
            status_code=400,
            detail=f"Menu items not available: {', '.join(missing)}",
        )

    items = [
        {
            "menu_item_id": item_id,
            "name": menu[item_id].name,
            "price": menu[item_id].price,
            "quantity": quantity,
        }
        for item_id, quantity in quantities.items()
    ]
    subtotal = sum((round2(i["price"]) * i["quantity"] for i in items), Decimal("0"))
    breakdown = calculate_order_totals(subtotal, tax_rate=truck.tax_rate)

    owner = await db.get(User, truck.owner_id)
    destination = (
        owner.stripe_connect_id
        if owner is not None and owner.stripe_connect_id and owner.stripe_onboarded
        else None
    )

    customer = data.customer.model_dump() if data.customer else {}
    customer["user_id"] = user.id if user else None

    order_number = generate_order_number()
    metadata = pack_order_metadata(
        order_number=order_number,
        truck_id=truck.id,
        truck_name=truck.name,
        items=items,
        breakdown=breakdown.to_dict(),
        customer=customer,
    )

    payment_service = get_payment_service()
    payment_result = await payment_service.create_payment_intent(
        amount=float(breakdown.total),
        currency=settings.stripe_currency,
        metadata=metadata,
        application_fee=float(breakdown.platform_fee) if destination else None,
        destination_account=destination,
    )

    if not payment_result.success:
        logger.error(
            f"Payment intent failed for {order_number}: "
            f"{payment_result.error_code} - {payment_result.error_message}"
        )
        raise HTTPException(
            status_code=500,
            detail=payment_result.error_message or "Failed to create payment intent",
        )

    logger.info(
        f"Payment intent {payment_result.payment_intent_id} for {order_number}: "
        f"subtotal={breakdown.subtotal} tax={breakdown.tax} "
        f"fee={breakdown.platform_fee} total={breakdown.total} "
        f"connect={'yes' if destination else 'no'}"
    )

    return CreateIntentResponse(
        client_secret=payment_result.client_secret,
        payment_intent_id=payment_result.payment_intent_id,
        order_number=order_number,
        breakdown=breakdown.to_dict(),
    )


# =============================================================================
# WEBHOOKS
# =============================================================================

@router.post(
    "/api/webhooks/stripe",
    responses={400: {"model": ErrorResponse}},
    summary="Stripe webhook",
)
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
) -> dict[str, Any]:
    if not stripe_signature:
        raise HTTPException(status_code=400, detail="Missing stripe-signature header")

    payload = await request.body()
    event = await get_payment_service().verify_webhook(payload, stripe_signature)
    if event is None:
        raise HTTPException(status_code=400, detail="Webhook signature verification failed")

    try:
        await handle_payment_event(db, event)
    except Exception as e:
        logger.exception(f"Webhook handling failed: {e}")
        raise HTTPException(status_code=500, detail="Webhook handling failed")

    return {"received": True}


@router.post(
    "/webhook/simulation/payment-succeeded",
    tags=["Simulation"],
    summary="Simulate a successful payment (Development)",
)
async def simulate_payment_succeeded(
    data: SimulatePaymentRequest,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """
    Mark a mock payment intent as paid and deliver the webhook event.

    Stands in for the browser confirming the card with Stripe.js.
    """
    payment_service = get_payment_service()
    if not settings.is_development or not isinstance(payment_service, MockPaymentService):
        raise HTTPException(
            status_code=403,
            detail="Simulation endpoint only available in development mode",
        )

    try:
        payment_service.mark_succeeded(data.payment_intent_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Payment intent not found")

    # Lost webhook: the client falls back to create-from-payment
    if not data.deliver_webhook:
        return {"received": False, "order": None}

    event = payment_service.build_event("payment_intent.succeeded", data.payment_intent_id)
    order = await handle_payment_event(db, event)

    return {
        "received": True,
        "order": OrderResponse.model_validate(order).model_dump(mode="json") if order else None,
    }


# =============================================================================
# MERCHANT PAYOUT ACCOUNTS
# =============================================================================

def _require_merchant(user: User) -> None:
    if user.role not in (UserRole.TRUCK_OWNER, UserRole.ADMIN):
        raise HTTPException(status_code=403, detail="Only truck owners can receive payouts")


@router.post(
    "/api/connect",
    response_model=ConnectLinkResponse,
    tags=["Payouts"],
    summary="Start payout onboarding",
)
async def create_connect_link(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ConnectLinkResponse:
    _require_merchant(user)
    payment_service = get_payment_service()
    base_url = settings.app_base_url.rstrip("/")

    try:
        if not user.stripe_connect_id:
            user.stripe_connect_id = await payment_service.create_connected_account(user.email)
            await db.commit()
            logger.info(f"Connected account {user.stripe_connect_id} linked to {user.email}")

        url = await payment_service.create_onboarding_link(
            user.stripe_connect_id,
            refresh_url=f"{base_url}/dashboard/merchant/connect/refresh",
            return_url=f"{base_url}/dashboard/merchant/connect/success",
        )
    except PaymentServiceError as e:
        raise HTTPException(status_code=500, detail=f"Payout onboarding failed: {e}")

    return ConnectLinkResponse(url=url, account_id=user.stripe_connect_id)


@router.get(
    "/api/connect",
    response_model=ConnectStatusResponse,
    tags=["Payouts"],
    summary="Payout onboarding status",
)
async def get_connect_status(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ConnectStatusResponse:
    if not user.stripe_connect_id:
        return ConnectStatusResponse(account_id=None, onboarded=False)

    try:
        account = await get_payment_service().retrieve_account(user.stripe_connect_id)
    except PaymentServiceError as e:
        raise HTTPException(status_code=500, detail=f"Could not load payout account: {e}")

    if account.onboarded != user.stripe_onboarded:
        user.stripe_onboarded = account.onboarded
        await db.commit()

    return ConnectStatusResponse(
        account_id=account.account_id,
        onboarded=account.onboarded,
        charges_enabled=account.charges_enabled,
        payouts_enabled=account.payouts_enabled,
    )


@router.post(
    "/api/stripe-dashboard",
    response_model=DashboardLinkResponse,
    tags=["Payouts"],
    summary="Payout dashboard login link",
)
async def create_dashboard_link(
    user: User = Depends(get_current_user),
) -> DashboardLinkResponse:
    if not user.stripe_connect_id:
        raise HTTPException(status_code=400, detail="No payout account connected")

    try:
        url = await get_payment_service().create_login_link(user.stripe_connect_id)
    except PaymentServiceError as e:
        raise HTTPException(status_code=500, detail=f"Could not open payout dashboard: {e}")

    return DashboardLinkResponse(url=url)
