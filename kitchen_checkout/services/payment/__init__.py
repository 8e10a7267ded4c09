"""
Payment Processor Factory

Provides a single entry point for obtaining a payment processor. The
checkout flow only depends on BasePaymentProcessor, so the processor can
be replaced without touching checkout code.

Usage:
    from kitchen_checkout.services.payment import get_payment_processor

    processor = get_payment_processor(security)
    result = await processor.process(request, on_progress=print)

Only the simulated gateway exists; real gateway integration is out of
scope for the storefront.
"""

import logging
from typing import Optional

from kitchen_checkout.core.clock import Clock
from kitchen_checkout.core.config import get_settings
from kitchen_checkout.services.payment.base import (
    BasePaymentProcessor,
    ProcessorResult,
    Stage,
    StageEvent,
    StagePhase,
)
from kitchen_checkout.services.payment.simulated import SimulatedPaymentProcessor
from kitchen_checkout.services.payment_security import PaymentSecurity

logger = logging.getLogger(__name__)


def get_payment_processor(
    security: PaymentSecurity,
    clock: Optional[Clock] = None,
) -> BasePaymentProcessor:
    """
    Build the configured payment processor.

    Args:
        security: Security layer whose clearances the processor honors
        clock: Time source (defaults to the security layer's clock)

    Returns:
        BasePaymentProcessor: Configured processor instance
    """
    settings = get_settings()

    logger.info(
        f"Payment Processor: Using SimulatedPaymentProcessor "
        f"({settings.env_mode.value} mode)"
    )
    return SimulatedPaymentProcessor(
        security=security,
        clock=clock or security.clock,
        failure_rate=settings.payment_failure_rate,
        min_latency=settings.stage_delay_seconds,
        max_latency=settings.stage_delay_seconds,
    )


__all__ = [
    "get_payment_processor",
    "BasePaymentProcessor",
    "ProcessorResult",
    "SimulatedPaymentProcessor",
    "Stage",
    "StageEvent",
    "StagePhase",
]
