"""
Simulated Payment Processor

Stands in for a remote payment gateway. A payment runs through five fixed
stages, strictly in order:

    encrypt → validate → charge → tokenize → finalize

Each stage is preceded by a simulated latency (through the injected clock,
so tests run without real delays) and reports its progress before and
after execution. The first failing stage aborts the run; nothing is
committed anywhere, the checkout flow decides what happens next.

Behavior:
    - Refuses payloads that PaymentSecurity has not validated
    - Optionally declines a share of charges (failure_rate) with
      realistic decline codes
    - Generates TXN-style transaction ids and opaque payment tokens
"""

import logging
import random
import secrets
import uuid
from typing import Any, Optional

from kitchen_checkout.core.clock import Clock, SystemClock
from kitchen_checkout.core.exceptions import (
    PaymentError,
    PreconditionFailed,
    ProcessingError,
    ValidationFailed,
)
from kitchen_checkout.schemas import PaymentMethod, PaymentRequest
from kitchen_checkout.services.payment.base import (
    BasePaymentProcessor,
    ProcessorResult,
    ProgressCallback,
    Stage,
    StageEvent,
    StagePhase,
)
from kitchen_checkout.services.payment_security import PaymentSecurity
from kitchen_checkout.services.validators import validate_card_number

logger = logging.getLogger(__name__)


class SimulatedPaymentProcessor(BasePaymentProcessor):
    """
    Staged gateway simulation.

    Attributes:
        security: Security layer that cleared the payload
        failure_rate: Probability of a simulated decline (0.0-1.0)
        min_latency: Minimum simulated stage latency in seconds
        max_latency: Maximum simulated stage latency in seconds

    Example:
        >>> processor = SimulatedPaymentProcessor(security, min_latency=0, max_latency=0)
        >>> result = await processor.process(request)
        >>> result.status
        'completed'
    """

    # Simulated decline reasons (mimic real gateway decline codes)
    DECLINE_REASONS = [
        ("card_declined", "Your card was declined."),
        ("insufficient_funds", "Your card has insufficient funds."),
        ("expired_card", "Your card has expired."),
        ("incorrect_cvc", "Your card's security code is incorrect."),
        ("processing_error", "An error occurred while processing your card."),
    ]

    STAGE_MESSAGES = {
        Stage.ENCRYPT: ("Encrypting payment data...", "Data encrypted"),
        Stage.VALIDATE: ("Validating card information...", "Card validated"),
        Stage.CHARGE: ("Processing payment...", "Payment processed"),
        Stage.TOKENIZE: ("Generating secure token...", "Token generated"),
        Stage.FINALIZE: ("Finalizing transaction...", "Transaction completed"),
    }

    def __init__(
        self,
        security: PaymentSecurity,
        clock: Optional[Clock] = None,
        failure_rate: float = 0.0,
        min_latency: float = 1.5,
        max_latency: float = 1.5,
        rng: Optional[random.Random] = None,
    ):
        self.security = security
        self.clock = clock or SystemClock()
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self._rng = rng or random.Random()

        self._pipeline = (
            (Stage.ENCRYPT, self._encrypt),
            (Stage.VALIDATE, self._validate_card),
            (Stage.CHARGE, self._charge),
            (Stage.TOKENIZE, self._tokenize),
            (Stage.FINALIZE, self._finalize),
        )

        logger.info(
            f"SimulatedPaymentProcessor initialized "
            f"(failure_rate={failure_rate:.0%}, "
            f"latency={min_latency}-{max_latency}s)"
        )

    @property
    def provider_name(self) -> str:
        return "simulated"

    @property
    def stages(self) -> list[Stage]:
        return [stage for stage, _ in self._pipeline]

    def _stage_latency(self) -> float:
        return self._rng.uniform(self.min_latency, self.max_latency)

    @staticmethod
    def _emit(on_progress: Optional[ProgressCallback], event: StageEvent) -> None:
        logger.debug(f"[{event.stage.value}] {event.phase.value}: {event.message}")
        if on_progress is not None:
            on_progress(event)

    # =========================================================================
    # PIPELINE
    # =========================================================================

    async def process(
        self,
        request: PaymentRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProcessorResult:
        if not self.security.consume_clearance(request):
            logger.error("Payment processor invoked with an unvalidated payload")
            raise PreconditionFailed("Payment data must be validated before processing")

        run: dict[str, Any] = {}

        for stage, handler in self._pipeline:
            started, completed = self.STAGE_MESSAGES[stage]
            self._emit(on_progress, StageEvent(stage, StagePhase.STARTED, started))

            await self.clock.sleep(self._stage_latency())

            try:
                handler(request, run)
            except PaymentError as e:
                e.stage = e.stage or stage.value
                self._emit(on_progress, StageEvent(stage, StagePhase.FAILED, f"Payment failed: {e}"))
                logger.warning(f"Payment aborted at {stage.value} stage: {e.code}")
                raise
            except Exception as e:
                self._emit(on_progress, StageEvent(stage, StagePhase.FAILED, "Payment failed"))
                logger.exception(f"Unexpected failure in {stage.value} stage")
                raise ProcessingError(
                    "An error occurred while processing your payment.",
                    stage=stage.value,
                ) from e

            self._emit(on_progress, StageEvent(stage, StagePhase.COMPLETED, completed))

        logger.info(
            f"Simulated payment completed - {run['transaction_id']} - ${request.total:.2f}"
        )

        return ProcessorResult(
            transaction_id=run["transaction_id"],
            timestamp=run["timestamp"],
            token=run["token"],
        )

    # =========================================================================
    # STAGES
    # =========================================================================

    def _encrypt(self, request: PaymentRequest, run: dict) -> None:
        # Held in memory for the duration of the run only
        run["envelope"] = self.security.obscure(request.model_dump(mode="json"))

    def _validate_card(self, request: PaymentRequest, run: dict) -> None:
        if request.payment.method != PaymentMethod.CREDIT:
            return
        check = validate_card_number(request.payment.card_number)
        if not check.valid:
            raise ValidationFailed(check.error or "Invalid card number")
        run["card_type"] = check.card_type

    def _charge(self, request: PaymentRequest, run: dict) -> None:
        if request.total <= 0:
            raise ProcessingError("Amount must be greater than 0", code="invalid_amount")

        if self._rng.random() < self.failure_rate:
            code, message = self._rng.choice(self.DECLINE_REASONS)
            raise ProcessingError(message, code=code)

        run["charge_id"] = f"ch_sim_{uuid.uuid4().hex[:24]}"

    def _tokenize(self, request: PaymentRequest, run: dict) -> None:
        run["token"] = self.security.generate_payment_token(request)

    def _finalize(self, request: PaymentRequest, run: dict) -> None:
        now = self.clock.now()
        millis = int(now.timestamp() * 1000)
        run["transaction_id"] = f"TXN-{millis}-{secrets.token_hex(3).upper()}"
        run["timestamp"] = now.isoformat()
        run.pop("envelope", None)

    async def health_check(self) -> bool:
        """The simulated gateway is always reachable."""
        logger.debug("Simulated gateway health check passed")
        return True
