"""
Checkout Error Taxonomy

Validators never raise; they return structured results. The exceptions
below are raised by the payment pipeline and the stores, and are what the
HTTP layer maps onto status codes.

    CheckoutError
    ├── InputValidationError   per-field, user corrects and resubmits
    ├── RateLimitError         recoverable after the lockout window
    ├── SessionExpiredError    recoverable by restarting checkout
    ├── PaymentError
    │   ├── ValidationFailed   card rejected inside the pipeline
    │   └── ProcessingError    stage failure (decline, bad amount, fault)
    ├── StorageError
    │   └── RecordNotFoundError
    │       └── OrderNotFoundError
    └── ConfigurationError

PreconditionFailed is a programming-contract violation (the processor was
invoked without a prior successful validation). It deliberately does not
derive from CheckoutError so callers that recover from checkout errors do
not swallow it.
"""

from typing import Optional


class CheckoutError(Exception):
    """Base class for recoverable checkout failures."""


class InputValidationError(CheckoutError):
    """One or more customer/payment fields failed validation."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid input")


class RateLimitError(CheckoutError):
    """Too many payment attempts inside the lockout window."""

    def __init__(self, remaining_minutes: int):
        self.remaining_minutes = remaining_minutes
        super().__init__(
            f"Too many attempts. Please wait {remaining_minutes} minutes."
        )


class SessionExpiredError(CheckoutError):
    """The checkout session outlived its timeout."""

    def __init__(self, message: str = "Session expired. Please refresh the page."):
        super().__init__(message)


class PaymentError(CheckoutError):
    """Failure raised by a payment pipeline stage."""

    def __init__(
        self,
        message: str,
        code: str = "processing_error",
        stage: Optional[str] = None,
    ):
        self.code = code
        self.stage = stage
        super().__init__(message)


class ValidationFailed(PaymentError):
    """Card data was rejected by the pipeline's own validation stage."""

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message, code="validation_failed", stage=stage)


class ProcessingError(PaymentError):
    """Charge declined or a stage failed unexpectedly."""


class StorageError(CheckoutError):
    """The durable store could not be read or written."""


class RecordNotFoundError(StorageError):
    """No record with the requested id exists."""

    def __init__(self, kind: str, record_id: str):
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} not found")


class OrderNotFoundError(RecordNotFoundError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Order", order_id)


class ConfigurationError(CheckoutError):
    """Raised when configuration is invalid or missing."""


class PreconditionFailed(Exception):
    """Processor invoked for a payload that was never validated."""
