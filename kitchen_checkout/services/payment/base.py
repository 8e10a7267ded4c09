"""
Payment Processor Abstract Base Class

Defines the interface contract for payment processor implementations.
The storefront only ships a simulated gateway, but checkout code depends on
this interface so a real gateway can be slotted in without touching the
checkout flow.

Design Pattern: Strategy Pattern
    - The checkout flow receives a processor instance
    - Tests inject a processor with a manual clock
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from kitchen_checkout.schemas import PaymentRequest


class Stage(str, Enum):
    """Pipeline stages, in execution order."""
    ENCRYPT = "encrypt"
    VALIDATE = "validate"
    CHARGE = "charge"
    TOKENIZE = "tokenize"
    FINALIZE = "finalize"


class StagePhase(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class StageEvent:
    """
    Progress notification emitted around every stage.

    Attributes:
        stage: Stage the event belongs to
        phase: started / completed / failed
        message: Human-readable step log line
    """
    stage: Stage
    phase: StagePhase
    message: str


ProgressCallback = Callable[[StageEvent], None]


@dataclass
class ProcessorResult:
    """
    Result of a successful payment run.

    Attributes:
        transaction_id: Gateway transaction reference (TXN-...)
        status: Always "completed" for a successful run
        timestamp: Completion time, ISO-8601
        token: Opaque payment token labelling the transaction
    """
    transaction_id: str
    timestamp: str
    status: str = "completed"
    token: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "transactionId": self.transaction_id,
            "status": self.status,
            "timestamp": self.timestamp,
        }


class BasePaymentProcessor(ABC):
    """
    Abstract base class for payment processors.

    Implementations run the whole payment for one validated request and
    either return a ProcessorResult or raise a PaymentError subclass.
    They must not touch persistent order state: creating the order is the
    caller's job.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """
        Return the name of the payment provider.

        Returns:
            str: Provider name (e.g., "simulated")
        """
        pass

    @abstractmethod
    async def process(
        self,
        request: PaymentRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProcessorResult:
        """
        Run the payment.

        Args:
            request: Payload previously cleared by PaymentSecurity
            on_progress: Receives a StageEvent before and after every stage

        Returns:
            ProcessorResult: Transaction reference on success

        Raises:
            PreconditionFailed: The payload was never validated
            ValidationFailed: Card rejected inside the pipeline
            ProcessingError: Any other stage failure
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Verify the processor is operational.

        Returns:
            bool: True if payments can be processed
        """
        pass
