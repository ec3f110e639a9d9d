"""
Stripe gateway for staging and production.

Customer payments are destination charges into the truck owner's Connect
Express account; the platform fee rides along as ``application_fee_amount``.
Needs ``STRIPE_SECRET_KEY``, plus ``STRIPE_WEBHOOK_SECRET`` before any webhook
is accepted. Client secrets and card details are never logged.
"""

import json
import logging
import time
from typing import Optional

import stripe

from qrtruck.core.config import get_settings
from qrtruck.services.pricing import to_cents, from_cents
from qrtruck.services.payment.base import (
    BasePaymentService,
    ConnectedAccountStatus,
    PaymentIntentInfo,
    PaymentResult,
    PaymentServiceError,
)

logger = logging.getLogger(__name__)

# Stripe exception -> (customer-facing message, error code)
_INTENT_FAILURES = (
    (stripe.AuthenticationError, "Payment service configuration error", "authentication_error"),
    (stripe.APIConnectionError, "Payment service temporarily unavailable", "connection_error"),
)


class StripePaymentService(BasePaymentService):

    def __init__(self):
        settings = get_settings()
        if not settings.stripe_secret_key:
            raise ValueError(
                f"STRIPE_SECRET_KEY must be set when ENV_MODE={settings.env_mode.value}"
            )

        stripe.api_key = settings.stripe_secret_key
        self._webhook_secret = settings.stripe_webhook_secret
        self._currency = settings.stripe_currency
        self._country = settings.stripe_connect_country

    @property
    def provider_name(self) -> str:
        return "stripe"

    async def create_payment_intent(
        self,
        amount: float,
        currency: str = "cad",
        metadata: Optional[dict[str, str]] = None,
        application_fee: Optional[float] = None,
        destination_account: Optional[str] = None,
    ) -> PaymentResult:
        params = {
            "amount": to_cents(amount),
            "currency": currency or self._currency,
            "metadata": metadata or {},
            "automatic_payment_methods": {"enabled": True},
        }
        if destination_account:
            params["transfer_data"] = {"destination": destination_account}
            if application_fee is not None:
                params["application_fee_amount"] = to_cents(application_fee)

        started = time.perf_counter()
        try:
            intent = stripe.PaymentIntent.create(**params)
        except stripe.StripeError as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            message, code = str(e), "stripe_error"
            for error_type, friendly, error_code in _INTENT_FAILURES:
                if isinstance(e, error_type):
                    message, code = friendly, error_code
                    break

            if code == "authentication_error":
                logger.critical(f"Stripe rejected our API key: {e}")
            else:
                logger.error(f"Stripe intent for ${amount:.2f} failed ({code}): {e}")
            return PaymentResult(
                success=False,
                error_message=message,
                error_code=code,
                response_time_ms=elapsed_ms,
            )

        logger.info(f"Stripe intent {intent.id} opened for {intent.amount} cents ({intent.status})")
        return PaymentResult(
            success=True,
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            amount=float(from_cents(intent.amount)),
            currency=intent.currency,
            status=intent.status,
            response_time_ms=(time.perf_counter() - started) * 1000,
        )

    async def retrieve_payment_intent(self, payment_intent_id: str) -> Optional[PaymentIntentInfo]:
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.InvalidRequestError as e:
            logger.warning(f"Stripe has no intent {payment_intent_id}: {e}")
            return None

        return PaymentIntentInfo(
            id=intent.id,
            status=intent.status,
            amount_cents=intent.amount,
            currency=intent.currency,
            metadata={k: str(v) for k, v in dict(intent.metadata or {}).items()},
        )

    async def verify_webhook(self, payload: bytes, signature: str) -> Optional[dict]:
        if not self._webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET is unset; dropping webhook")
            return None

        try:
            event = stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook signature mismatch: {e}")
            return None
        except ValueError as e:
            logger.warning(f"Webhook body is not a Stripe event: {e}")
            return None

        logger.debug(f"Webhook {event['id']} verified ({event['type']})")
        # Handlers expect plain dicts, not StripeObject
        return json.loads(payload)

    async def create_connected_account(self, email: str) -> str:
        try:
            account = stripe.Account.create(
                type="express",
                email=email,
                country=self._country,
                capabilities={
                    "card_payments": {"requested": True},
                    "transfers": {"requested": True},
                },
            )
        except stripe.StripeError as e:
            logger.error(f"Could not open a Connect account for {email}: {e}")
            raise PaymentServiceError(str(e)) from e

        logger.info(f"Connect account {account.id} opened for {email}")
        return account.id

    async def create_onboarding_link(self, account_id: str, refresh_url: str, return_url: str) -> str:
        try:
            link = stripe.AccountLink.create(
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type="account_onboarding",
            )
        except stripe.StripeError as e:
            logger.error(f"Onboarding link for {account_id} failed: {e}")
            raise PaymentServiceError(str(e)) from e
        return link.url

    async def retrieve_account(self, account_id: str) -> ConnectedAccountStatus:
        try:
            account = stripe.Account.retrieve(account_id)
        except stripe.StripeError as e:
            logger.error(f"Lookup of Connect account {account_id} failed: {e}")
            raise PaymentServiceError(str(e)) from e

        return ConnectedAccountStatus(
            account_id=account.id,
            charges_enabled=bool(account.charges_enabled),
            payouts_enabled=bool(account.payouts_enabled),
        )

    async def create_login_link(self, account_id: str) -> str:
        try:
            link = stripe.Account.create_login_link(account_id)
        except stripe.StripeError as e:
            logger.error(f"Dashboard login link for {account_id} failed: {e}")
            raise PaymentServiceError(str(e)) from e
        return link.url

    async def health_check(self) -> bool:
        """Fetch the platform account; any Stripe error counts as down."""
        try:
            stripe.Account.retrieve()
        except stripe.StripeError as e:
            logger.error(f"Stripe health check failed: {e}")
            return False
        return True
