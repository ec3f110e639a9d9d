"""
Order Success Reconciliation Client

After the browser confirms a payment, the order row appears once the
payment webhook has been processed. The success page polls for it:

    1. Look the order up by number once per second, up to 20 times.
    2. After the 3rd failed lookup, ask the server once to create the order
       straight from the payment intent (in case the webhook never arrives).
    3. A 409 from that call means the webhook won the race; keep polling.

Polling is a plain coroutine, so cancelling its task stops it at once.

Usage:
    async with OrderSuccessPoller("http://localhost:8001") as poller:
        result = await poller.wait_for_order(order_number, payment_intent_id)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 1.0
DEFAULT_MAX_ATTEMPTS = 20
DEFAULT_FALLBACK_AFTER = 3


@dataclass
class PollResult:
    """
    Outcome of waiting for an order.

    Attributes:
        order: The order as returned by the API, None on timeout
        attempts: Lookups performed
        fallback_used: Whether the create-from-payment call was made
        fallback_conflict: Whether that call hit an existing order (409)
    """
    order: Optional[dict[str, Any]]
    attempts: int
    fallback_used: bool = False
    fallback_conflict: bool = False

    @property
    def found(self) -> bool:
        return self.order is not None


class OrderSuccessPoller:
    """
    Polls the order API until a paid order exists.

    Args:
        base_url: API root (ignored when ``client`` is given)
        client: Pre-configured httpx.AsyncClient
        interval: Seconds between lookups
        max_attempts: Lookups before giving up
        fallback_after: Failed lookups before the one-time fallback call
        sleep: Coroutine used between lookups
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8001",
        client: Optional[httpx.AsyncClient] = None,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        fallback_after: int = DEFAULT_FALLBACK_AFTER,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=10.0)
        self.interval = interval
        self.max_attempts = max_attempts
        self.fallback_after = fallback_after
        self._sleep = sleep

    async def __aenter__(self) -> "OrderSuccessPoller":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def lookup(self, order_number: str) -> Optional[dict[str, Any]]:
        """Fetch an order by number. None when it does not exist yet."""
        try:
            response = await self._client.get(
                "/api/orders", params={"order_number": order_number}
            )
        except httpx.HTTPError as e:
            logger.warning(f"Order lookup for {order_number} failed - {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"Order lookup for {order_number} returned {response.status_code}")
            return None

        orders = response.json().get("orders", [])
        return orders[0] if orders else None

    async def create_from_payment(
        self,
        order_number: str,
        payment_intent_id: str,
    ) -> tuple[Optional[dict[str, Any]], bool]:
        """
        Ask the server to create the order from the payment intent.

        Returns:
            (order, conflict): the created or existing order if the server
            returned one, and whether the server reported a duplicate
        """
        try:
            response = await self._client.post(
                "/api/orders/create-from-payment",
                json={"payment_intent_id": payment_intent_id, "order_number": order_number},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Fallback order creation for {order_number} failed - {e}")
            return None, False

        if response.status_code == 409:
            logger.info(f"Order {order_number} already created by webhook")
            return None, True

        if response.status_code != 200:
            logger.warning(
                f"Fallback order creation for {order_number} returned "
                f"{response.status_code}: {response.text}"
            )
            return None, False

        return response.json().get("order"), False

    async def wait_for_order(
        self,
        order_number: str,
        payment_intent_id: Optional[str] = None,
    ) -> PollResult:
        """Poll until the order exists or attempts run out."""
        fallback_used = False
        fallback_conflict = False

        for attempt in range(1, self.max_attempts + 1):
            order = await self.lookup(order_number)
            if order is not None:
                logger.info(f"Order {order_number} found after {attempt} attempt(s)")
                return PollResult(order, attempt, fallback_used, fallback_conflict)

            if payment_intent_id and not fallback_used and attempt >= self.fallback_after:
                fallback_used = True
                order, fallback_conflict = await self.create_from_payment(
                    order_number, payment_intent_id
                )
                if order is not None:
                    return PollResult(order, attempt, fallback_used, fallback_conflict)

            if attempt < self.max_attempts:
                await self._sleep(self.interval)

        logger.warning(f"Order {order_number} not found after {self.max_attempts} attempts")
        return PollResult(None, self.max_attempts, fallback_used, fallback_conflict)
