"""
In-memory stand-in for Stripe, active when ENV_MODE=development.

Intents and Connect accounts live in dictionaries on the instance. The
development simulation endpoint flips an intent to ``succeeded`` and
replays the webhook Stripe would have sent, so checkout, order creation and
pickup can all be exercised offline. Ids look like Stripe's (``pi_mock_...``)
but client secrets are useless to Stripe.js.
"""

import asyncio
import json
import logging
import random
import uuid
from typing import Optional

from qrtruck.services.pricing import to_cents
from qrtruck.services.payment.base import (
    BasePaymentService,
    ConnectedAccountStatus,
    PaymentIntentInfo,
    PaymentResult,
    PaymentServiceError,
)

logger = logging.getLogger(__name__)


class MockPaymentService(BasePaymentService):
    """
    Simulated gateway.

    ``failure_rate`` is the share of intent creations that come back as a
    gateway error. Every call sleeps somewhere between ``min_latency`` and
    ``max_latency`` seconds; the test suite sets both to zero.
    """

    GATEWAY_ERRORS = [
        ("processing_error", "An error occurred while processing your card."),
        ("rate_limit", "Too many requests hit the API too quickly."),
    ]

    def __init__(self, failure_rate: float = 0.0, min_latency: float = 0.0, max_latency: float = 0.0):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max(max_latency, min_latency)

        self._intents: dict[str, PaymentIntentInfo] = {}
        self._accounts: dict[str, ConnectedAccountStatus] = {}

        logger.info(
            f"Simulated gateway ready: {failure_rate:.0%} errors, "
            f"{min_latency}-{self.max_latency}s latency"
        )

    @property
    def provider_name(self) -> str:
        return "mock"

    @staticmethod
    def _new_id(prefix: str) -> str:
        return f"{prefix}_mock_{uuid.uuid4().hex[:24]}"

    async def _pause(self) -> float:
        seconds = random.uniform(self.min_latency, self.max_latency)
        if seconds > 0:
            await asyncio.sleep(seconds)
        return seconds * 1000

    async def create_payment_intent(
        self,
        amount: float,
        currency: str = "cad",
        metadata: Optional[dict[str, str]] = None,
        application_fee: Optional[float] = None,
        destination_account: Optional[str] = None,
    ) -> PaymentResult:
        latency_ms = await self._pause()

        if amount <= 0:
            return PaymentResult(
                success=False,
                error_message="Amount must be greater than 0",
                error_code="invalid_amount",
                response_time_ms=latency_ms,
            )

        if random.random() < self.failure_rate:
            error_code, error_message = random.choice(self.GATEWAY_ERRORS)
            logger.debug(f"Simulated intent failure: {error_code}")
            return PaymentResult(
                success=False,
                error_message=error_message,
                error_code=error_code,
                response_time_ms=latency_ms,
            )

        intent_id = self._new_id("pi")
        self._intents[intent_id] = PaymentIntentInfo(
            id=intent_id,
            status="requires_payment_method",
            amount_cents=to_cents(amount),
            currency=currency,
            metadata=dict(metadata or {}),
        )
        logger.debug(f"Simulated intent {intent_id}: ${amount} to {destination_account} (fee {application_fee})")

        return PaymentResult(
            success=True,
            payment_intent_id=intent_id,
            client_secret=f"{intent_id}_secret_mock",
            amount=amount,
            currency=currency,
            status="requires_payment_method",
            response_time_ms=latency_ms,
        )

    def mark_succeeded(self, payment_intent_id: str) -> PaymentIntentInfo:
        """Act as if the customer finished paying. KeyError for unknown ids."""
        intent = self._intents.get(payment_intent_id)
        if intent is None:
            raise KeyError(payment_intent_id)
        intent.status = "succeeded"
        logger.info(f"Simulated payment {payment_intent_id} succeeded")
        return intent

    def build_event(self, event_type: str, payment_intent_id: str) -> dict:
        intent = self._intents[payment_intent_id]
        return {
            "id": self._new_id("evt"),
            "type": event_type,
            "data": {
                "object": {
                    "id": intent.id,
                    "object": "payment_intent",
                    "status": intent.status,
                    "amount": intent.amount_cents,
                    "currency": intent.currency,
                    "metadata": dict(intent.metadata),
                }
            },
        }

    async def retrieve_payment_intent(self, payment_intent_id: str) -> Optional[PaymentIntentInfo]:
        await self._pause()
        return self._intents.get(payment_intent_id)

    async def verify_webhook(self, payload: bytes, signature: str) -> Optional[dict]:
        # No signing secret here; any JSON body is accepted.
        try:
            return json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Simulated webhook body is not JSON")
            return None

    async def create_connected_account(self, email: str) -> str:
        await self._pause()
        account_id = self._new_id("acct")
        self._accounts[account_id] = ConnectedAccountStatus(account_id=account_id)
        logger.info(f"Simulated Connect account {account_id} for {email}")
        return account_id

    async def create_onboarding_link(self, account_id: str, refresh_url: str, return_url: str) -> str:
        # Onboarding finishes the moment the link is issued.
        account = self._accounts.setdefault(account_id, ConnectedAccountStatus(account_id=account_id))
        account.charges_enabled = account.payouts_enabled = True
        return return_url

    async def retrieve_account(self, account_id: str) -> ConnectedAccountStatus:
        account = self._accounts.get(account_id)
        if account is None:
            raise PaymentServiceError(f"No such account: {account_id}")
        return account

    async def create_login_link(self, account_id: str) -> str:
        if account_id not in self._accounts:
            raise PaymentServiceError(f"No such account: {account_id}")
        return f"https://connect.mock.local/express/{account_id}"

    async def health_check(self) -> bool:
        return True
