"""
Gateway interface shared by the simulated and the Stripe-backed payment
services.

Checkout, the webhook handler and merchant payout onboarding only ever talk
to ``BasePaymentService``; ``get_payment_service()`` decides which concrete
gateway sits behind it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class PaymentResult:
    """Outcome of creating a payment intent. Amounts are in dollars."""
    success: bool
    payment_intent_id: Optional[str] = None
    client_secret: Optional[str] = None
    amount: Optional[float] = None
    currency: str = "cad"
    status: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    response_time_ms: float = 0.0

    def to_dict(self) -> dict:
        # client_secret stays out of logs and reports
        return {
            "success": self.success,
            "payment_intent_id": self.payment_intent_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "error_message": self.error_message,
            "error_code": self.error_code,
            "response_time_ms": self.response_time_ms,
        }


@dataclass
class PaymentIntentInfo:
    """Server-side view of an intent: status, charged cents and order metadata."""
    id: str
    status: str
    amount_cents: int
    currency: str = "cad"
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@dataclass
class ConnectedAccountStatus:
    account_id: str
    charges_enabled: bool = False
    payouts_enabled: bool = False

    @property
    def onboarded(self) -> bool:
        return self.charges_enabled and self.payouts_enabled


class PaymentServiceError(Exception):
    """The gateway refused a connected-account call."""


class BasePaymentService(ABC):
    """
    A payment gateway.

    The browser confirms a payment with the intent's client secret. The
    server only trusts an intent once the gateway reports it as
    ``succeeded``, either through a webhook or a direct lookup.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Short gateway name shown in /health ("mock", "stripe")."""

    @abstractmethod
    async def create_payment_intent(
        self,
        amount: float,
        currency: str = "cad",
        metadata: Optional[dict[str, str]] = None,
        application_fee: Optional[float] = None,
        destination_account: Optional[str] = None,
    ) -> PaymentResult:
        """
        Open an intent for ``amount`` dollars.

        ``metadata`` carries the packed order until payment succeeds. With a
        ``destination_account`` the money goes to the merchant and the
        platform keeps ``application_fee``.
        """

    @abstractmethod
    async def retrieve_payment_intent(self, payment_intent_id: str) -> Optional[PaymentIntentInfo]:
        """None when the gateway has never heard of the id."""

    @abstractmethod
    async def verify_webhook(self, payload: bytes, signature: str) -> Optional[dict]:
        """Return the decoded event, or None when the signature does not check out."""

    @abstractmethod
    async def create_connected_account(self, email: str) -> str:
        ...

    @abstractmethod
    async def create_onboarding_link(self, account_id: str, refresh_url: str, return_url: str) -> str:
        ...

    @abstractmethod
    async def retrieve_account(self, account_id: str) -> ConnectedAccountStatus:
        ...

    @abstractmethod
    async def create_login_link(self, account_id: str) -> str:
        """One-time URL into the merchant's payout dashboard."""

    @abstractmethod
    async def health_check(self) -> bool:
        ...
