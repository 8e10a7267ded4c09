"""
Payment Security Layer

Single gate every payment passes before it reaches the gateway:

    1. Attempt lockout (RateLimiter)
    2. Checkout session age
    3. Card number / expiry / CVV (credit payments only)
    4. Customer email and phone

Errors from steps 3-4 are accumulated so the customer sees everything that
is wrong at once; lockout and session failures short-circuit.

Also provides masking for anything echoed to the UI or written to logs,
reversible obscuring for values kept in local storage, and opaque payment
tokens.

NOTE: obscure()/reveal() use a key derived from a passphrase that ships
with the application. Anyone holding the code can reveal the values. This
keeps data unreadable at a glance in the local store and is NOT a security
control; real card handling belongs to a server-side, PCI-scoped service.
"""

import base64
import hashlib
import json
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from functools import cached_property
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from kitchen_checkout.core.clock import Clock, SystemClock
from kitchen_checkout.core.exceptions import (
    CheckoutError,
    ConfigurationError,
    InputValidationError,
    RateLimitError,
    SessionExpiredError,
)
from kitchen_checkout.schemas import PaymentMethod, PaymentRequest
from kitchen_checkout.services import validators
from kitchen_checkout.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


SESSION_EXPIRED_MESSAGE = "Session expired. Please refresh the page."


class FailureKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    SESSION_EXPIRED = "session_expired"
    INVALID_INPUT = "invalid_input"


@dataclass
class ValidationReport:
    """
    Verdict of validate_payment_data.

    Attributes:
        valid: True when no errors were found
        errors: User-facing messages (order not guaranteed)
        kind: Which kind of failure produced the errors
        remaining_minutes: Lockout time left when rate limited
        masked: Masked copy of the payload, safe to log
    """
    valid: bool
    errors: list[str] = field(default_factory=list)
    kind: Optional[FailureKind] = None
    remaining_minutes: Optional[int] = None
    masked: Optional[dict] = None

    def to_dict(self) -> dict:
        return {"valid": self.valid, "errors": list(self.errors)}

    def to_exception(self) -> CheckoutError:
        """Map a failed report onto the checkout error taxonomy."""
        if self.kind == FailureKind.RATE_LIMITED:
            return RateLimitError(self.remaining_minutes or 1)
        if self.kind == FailureKind.SESSION_EXPIRED:
            return SessionExpiredError(self.errors[0] if self.errors else SESSION_EXPIRED_MESSAGE)
        return InputValidationError(self.errors)


def mask_email(email: str) -> str:
    """Keep the first two characters of the local part: jo******@example.com."""
    local, sep, domain = (email or "").partition("@")
    if len(local) <= 2:
        return email
    return f"{local[:2]}{'*' * (len(local) - 2)}{sep}{domain}"


class PaymentSecurity:
    """
    Validation, masking and tokenization for checkout payments.

    Attributes:
        rate_limiter: Persisted attempt guard
        session_timeout: Maximum checkout session age
        clock: Time source (system clock unless injected)
    """

    KDF_ITERATIONS = 100_000

    def __init__(
        self,
        rate_limiter: RateLimiter,
        session_timeout: timedelta = timedelta(minutes=30),
        clock: Optional[Clock] = None,
        passphrase: str = "kitchen-checkout-local-store",
        salt: str = "kitchen-checkout-salt",
    ):
        if not passphrase:
            raise ConfigurationError("An obscuring passphrase is required")

        self.rate_limiter = rate_limiter
        self.session_timeout = session_timeout
        self.clock = clock or SystemClock()
        self._passphrase = passphrase
        self._salt = salt
        self._clearances: set[str] = set()
        self.session_started_at = self.clock.now()

    # =========================================================================
    # SESSION
    # =========================================================================

    def start_session(self, now: Optional[datetime] = None) -> None:
        self.session_started_at = now or self.clock.now()

    def is_session_valid(self, now: Optional[datetime] = None) -> bool:
        now = now or self.clock.now()
        return now - self.session_started_at < self.session_timeout

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate_payment_data(
        self,
        request: PaymentRequest,
        now: Optional[datetime] = None,
    ) -> ValidationReport:
        """
        Run every payment check and record the attempt.

        A valid report clears this exact payload for one run of the
        payment processor.

        Args:
            request: Customer, payment, delivery and amounts
            now: Evaluation time (defaults to the clock)

        Returns:
            ValidationReport: valid flag plus every error found
        """
        now = now or self.clock.now()

        lockout = self.rate_limiter.check_lockout(now)
        if lockout.limited:
            return ValidationReport(
                valid=False,
                errors=[f"Too many attempts. Please wait {lockout.remaining_minutes} minutes."],
                kind=FailureKind.RATE_LIMITED,
                remaining_minutes=lockout.remaining_minutes,
            )

        if not self.is_session_valid(now):
            return ValidationReport(
                valid=False,
                errors=[SESSION_EXPIRED_MESSAGE],
                kind=FailureKind.SESSION_EXPIRED,
            )

        errors: list[str] = []
        payment = request.payment

        if payment.method == PaymentMethod.CREDIT:
            card = validators.validate_card_number(payment.card_number)
            expiry = validators.validate_expiry(payment.expiry_date, now)
            cvv = validators.validate_cvv(payment.cvv, card.card_type)
            errors.extend(check.error for check in (card, expiry, cvv) if not check.valid)

        email = validators.validate_email(request.customer.email)
        phone = validators.validate_phone(request.customer.phone)
        errors.extend(check.error for check in (email, phone) if not check.valid)

        self.rate_limiter.record_attempt(now)

        masked = self.mask_payment_request(request)
        if errors:
            logger.warning(
                f"Payment validation failed ({len(errors)} error(s)) "
                f"for {masked['customer']['email']}"
            )
            return ValidationReport(
                valid=False,
                errors=errors,
                kind=FailureKind.INVALID_INPUT,
                masked=masked,
            )

        self._clearances.add(self.fingerprint(request))
        logger.info(f"Payment data validated for {masked['customer']['email']}")
        return ValidationReport(valid=True, masked=masked)

    # =========================================================================
    # PROCESSING CLEARANCE
    # =========================================================================

    @staticmethod
    def fingerprint(request: PaymentRequest) -> str:
        canonical = json.dumps(request.model_dump(mode="json"), sort_keys=True)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def is_cleared(self, request: PaymentRequest) -> bool:
        return self.fingerprint(request) in self._clearances

    def consume_clearance(self, request: PaymentRequest) -> bool:
        """Use up the clearance for this payload; False if there was none."""
        key = self.fingerprint(request)
        if key not in self._clearances:
            return False
        self._clearances.discard(key)
        return True

    # =========================================================================
    # MASKING
    # =========================================================================

    mask_card_number = staticmethod(validators.mask_card_number)
    mask_email = staticmethod(mask_email)

    def mask_payment_request(self, request: PaymentRequest) -> dict:
        """camelCase copy of the payload with card, CVV and email masked."""
        masked = request.model_dump(mode="json", by_alias=True)
        payment = masked["payment"]
        if request.payment.method == PaymentMethod.CREDIT:
            payment["cardNumber"] = self.mask_card_number(request.payment.card_number)
            payment["cvv"] = "***"
        else:
            payment["cardNumber"] = ""
            payment["cvv"] = ""
        masked["customer"]["email"] = self.mask_email(request.customer.email)
        return masked

    # =========================================================================
    # OBSCURING & TOKENS
    # =========================================================================

    @cached_property
    def _fernet(self) -> Fernet:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=self._salt.encode("utf-8"),
            iterations=self.KDF_ITERATIONS,
        )
        key = base64.urlsafe_b64encode(kdf.derive(self._passphrase.encode("utf-8")))
        return Fernet(key)

    def obscure(self, data: Any) -> str:
        """Reversibly encode a JSON-serializable value for local storage."""
        payload = json.dumps(data, sort_keys=True, default=str).encode("utf-8")
        return self._fernet.encrypt(payload).decode("ascii")

    def reveal(self, token: str) -> Any:
        try:
            payload = self._fernet.decrypt(token.encode("ascii"))
        except (InvalidToken, UnicodeEncodeError) as e:
            raise ValueError("Failed to reveal obscured data") from e
        return json.loads(payload)

    def generate_payment_token(self, request: PaymentRequest) -> str:
        """
        Opaque token labelling a transaction.

        Combines the masked payload with a timestamp and a random nonce, so
        every call yields a different token.
        """
        token_data = {
            "payload": self.mask_payment_request(request),
            "timestamp": self.clock.now().isoformat(),
            "nonce": secrets.token_urlsafe(16),
        }
        return self.obscure(token_data)

    # =========================================================================
    # CLEANUP
    # =========================================================================

    def cleanup(self) -> None:
        """Forget clearances and reset the attempt counter after a payment."""
        self._clearances.clear()
        self.rate_limiter.reset()
        logger.debug("Payment security state cleared")
