"""
Payment gateway selection.

``ENV_MODE=development`` gets the in-memory ``MockPaymentService``; staging
and production get ``StripePaymentService`` with whatever keys are set.
"""

import logging
from functools import lru_cache

from qrtruck.core.config import get_settings
from qrtruck.services.payment.base import (
    BasePaymentService,
    ConnectedAccountStatus,
    PaymentIntentInfo,
    PaymentResult,
    PaymentServiceError,
)
from qrtruck.services.payment.metadata import pack_order_metadata, unpack_items
from qrtruck.services.payment.mock import MockPaymentService
from qrtruck.services.payment.stripe import StripePaymentService

logger = logging.getLogger(__name__)


@lru_cache()
def get_payment_service() -> BasePaymentService:
    """One gateway per process, so simulated intents survive between requests."""
    settings = get_settings()

    if settings.use_real_services:
        logger.info(f"Payments go through Stripe ({settings.env_mode.value})")
        return StripePaymentService()

    logger.info("Payments are simulated in memory")
    return MockPaymentService(
        failure_rate=settings.mock_failure_rate,
        min_latency=settings.mock_min_latency,
        max_latency=settings.mock_max_latency,
    )


def reset_payment_service() -> None:
    get_payment_service.cache_clear()


__all__ = [
    "get_payment_service",
    "reset_payment_service",
    "pack_order_metadata",
    "unpack_items",
    "BasePaymentService",
    "ConnectedAccountStatus",
    "PaymentIntentInfo",
    "PaymentResult",
    "PaymentServiceError",
    "MockPaymentService",
    "StripePaymentService",
]
