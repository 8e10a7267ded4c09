"""
Checkout Flow

Three-step checkout state machine sitting between the storefront form and
the payment pipeline:

    CUSTOMER_INFO (1) → PAYMENT_AND_DELIVERY (2) → REVIEW (3)
        → PROCESSING → COMPLETE
                     ↘ FAILED → REVIEW

Each forward step is gated by a local check of the fields it collected.
Submitting from REVIEW runs the full security validation, then the payment
processor, and only a successful payment produces an Order in the store.
A rejected payment lands back in REVIEW with input and cart untouched.

Totals use exact decimal arithmetic; values are rounded to cents only when
the Order is built.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Union

from kitchen_checkout.core.clock import Clock
from kitchen_checkout.core.exceptions import (
    CheckoutError,
    InputValidationError,
    PaymentError,
    StorageError,
)
from kitchen_checkout.schemas import (
    CartLine,
    CustomerInfo,
    DeliveryInfo,
    DeliveryMethod,
    DeliveryType,
    Order,
    OrderLineItem,
    OrderPaymentMethod,
    PaymentInfo,
    PaymentMethod,
    PaymentRequest,
    PaymentStatus,
    OrderStatus,
    quantize_money,
)
from kitchen_checkout.services import validators
from kitchen_checkout.services.cart import Cart
from kitchen_checkout.services.order_store import OrderStore
from kitchen_checkout.services.payment.base import (
    BasePaymentProcessor,
    ProcessorResult,
    ProgressCallback,
    StageEvent,
)
from kitchen_checkout.services.payment_security import PaymentSecurity

logger = logging.getLogger(__name__)


DEFAULT_TAX_RATE = Decimal("0.08")
DEFAULT_DELIVERY_FEE = Decimal("3.99")

EMPTY_CART_MESSAGE = "Your cart is empty"


class CheckoutStep(Enum):
    CUSTOMER_INFO = 1
    PAYMENT_AND_DELIVERY = 2
    REVIEW = 3
    PROCESSING = 4
    COMPLETE = 5
    FAILED = 6


EDITABLE_STEPS = (
    CheckoutStep.CUSTOMER_INFO,
    CheckoutStep.PAYMENT_AND_DELIVERY,
    CheckoutStep.REVIEW,
)


# =============================================================================
# PURE HELPERS
# =============================================================================

def _as_decimal(value: Union[Decimal, float, str]) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass(frozen=True)
class OrderTotals:
    """Exact (unrounded) amounts for a cart."""
    subtotal: Decimal
    tax: Decimal
    delivery_fee: Decimal
    total: Decimal

    def rounded(self) -> "OrderTotals":
        """
        Cent-rounded amounts.

        The total is the sum of the rounded parts, so the persisted record
        always satisfies total == subtotal + tax + deliveryFee.
        """
        subtotal = quantize_money(self.subtotal)
        tax = quantize_money(self.tax)
        delivery_fee = quantize_money(self.delivery_fee)
        return OrderTotals(subtotal, tax, delivery_fee, subtotal + tax + delivery_fee)


def compute_totals(
    lines: Iterable[CartLine],
    delivery_method: DeliveryMethod,
    tax_rate: Union[Decimal, float, str] = DEFAULT_TAX_RATE,
    delivery_fee: Union[Decimal, float, str] = DEFAULT_DELIVERY_FEE,
) -> OrderTotals:
    """
    Subtotal, tax, delivery fee and total for a set of cart lines.

    The fee only applies to delivery orders. Nothing is rounded here.
    """
    subtotal = sum((line.price * line.quantity for line in lines), Decimal("0"))
    tax = subtotal * _as_decimal(tax_rate)
    fee = _as_decimal(delivery_fee) if delivery_method == DeliveryMethod.DELIVERY else Decimal("0")
    return OrderTotals(subtotal=subtotal, tax=tax, delivery_fee=fee, total=subtotal + tax + fee)


def _delivery_address(customer: CustomerInfo) -> str:
    locality = " ".join(part for part in (customer.city, customer.zip_code) if part)
    return ", ".join(part for part in (customer.address, locality) if part)


def build_order(
    customer: CustomerInfo,
    payment: PaymentInfo,
    delivery: DeliveryInfo,
    lines: Iterable[CartLine],
    totals: OrderTotals,
    result: ProcessorResult,
    now: Optional[datetime] = None,
) -> Order:
    """Assemble the Order record for a successful payment."""
    rounded = totals.rounded()
    is_delivery = delivery.method == DeliveryMethod.DELIVERY

    return Order(
        transaction_id=result.transaction_id,
        customer_name=customer.full_name,
        email=customer.email,
        phone=customer.phone,
        delivery_address=_delivery_address(customer) if is_delivery else None,
        delivery_type=DeliveryType(delivery.method.value.upper()),
        payment_method=OrderPaymentMethod(payment.method.value.upper()),
        payment_status=PaymentStatus.COMPLETED,
        order_status=OrderStatus.PENDING,
        subtotal=rounded.subtotal,
        tax=rounded.tax,
        delivery_fee=rounded.delivery_fee,
        total=rounded.total,
        special_instructions=delivery.special_instructions or None,
        line_items=[
            OrderLineItem(dish_name=line.name, dish_price=line.price, quantity=line.quantity)
            for line in lines
        ],
        created_at=now,
        updated_at=now,
    )


# Step guards: each returns the list of problems blocking the step

CUSTOMER_REQUIRED_FIELDS = (
    ("first_name", "First name is required"),
    ("last_name", "Last name is required"),
    ("email", "Email is required"),
    ("phone", "Phone number is required"),
)

DELIVERY_REQUIRED_FIELDS = (
    ("address", "Delivery address is required"),
    ("city", "City is required"),
    ("zip_code", "ZIP code is required"),
)


def customer_step_errors(customer: CustomerInfo) -> list[str]:
    return [
        message
        for attr, message in CUSTOMER_REQUIRED_FIELDS
        if not getattr(customer, attr).strip()
    ]


def payment_step_errors(
    customer: CustomerInfo,
    payment: PaymentInfo,
    delivery: DeliveryInfo,
    now: datetime,
) -> list[str]:
    errors: list[str] = []

    if payment.method == PaymentMethod.CREDIT:
        card = validators.validate_card_number(payment.card_number)
        expiry = validators.validate_expiry(payment.expiry_date, now)
        cvv = validators.validate_cvv(payment.cvv, card.card_type)
        errors.extend(check.error for check in (card, expiry, cvv) if not check.valid)
        if not payment.name_on_card.strip():
            errors.append("Name on card is required")

    if delivery.method == DeliveryMethod.DELIVERY:
        errors.extend(
            message
            for attr, message in DELIVERY_REQUIRED_FIELDS
            if not getattr(customer, attr).strip()
        )

    return errors


# =============================================================================
# STATE MACHINE
# =============================================================================

@dataclass
class CheckoutState:
    step: CheckoutStep = CheckoutStep.CUSTOMER_INFO
    customer: CustomerInfo = field(default_factory=CustomerInfo)
    payment: PaymentInfo = field(default_factory=PaymentInfo)
    delivery: DeliveryInfo = field(default_factory=DeliveryInfo)
    errors: list[str] = field(default_factory=list)
    step_log: list[str] = field(default_factory=list)
    history: list[CheckoutStep] = field(default_factory=lambda: [CheckoutStep.CUSTOMER_INFO])
    order: Optional[Order] = None
    failure: Optional[CheckoutError] = None


class CheckoutFlow:
    """
    One customer's checkout.

    Attributes:
        cart: Lines being purchased
        security: Validation gate, also owns the attempt counter
        processor: Payment pipeline
        order_store: Destination of completed orders
        state: Current step, collected input and last errors

    Example:
        >>> flow = CheckoutFlow(cart, security, processor, store)
        >>> flow.update_customer(first_name="Ada", last_name="Obi", ...)
        >>> flow.advance()
        >>> flow.update_payment(method="cash")
        >>> flow.advance()
        >>> order = await flow.submit()
    """

    def __init__(
        self,
        cart: Cart,
        security: PaymentSecurity,
        processor: BasePaymentProcessor,
        order_store: OrderStore,
        tax_rate: Union[Decimal, float, str] = DEFAULT_TAX_RATE,
        delivery_fee: Union[Decimal, float, str] = DEFAULT_DELIVERY_FEE,
        clock: Optional[Clock] = None,
    ):
        self.cart = cart
        self.security = security
        self.processor = processor
        self.order_store = order_store
        self.tax_rate = _as_decimal(tax_rate)
        self.delivery_fee = _as_decimal(delivery_fee)
        self.clock = clock or security.clock
        self.state = CheckoutState()

        self.security.start_session(self.clock.now())

    @property
    def step(self) -> CheckoutStep:
        return self.state.step

    @property
    def errors(self) -> list[str]:
        return list(self.state.errors)

    @property
    def totals(self) -> OrderTotals:
        return compute_totals(
            self.cart.lines,
            self.state.delivery.method,
            self.tax_rate,
            self.delivery_fee,
        )

    # =========================================================================
    # INPUT
    # =========================================================================

    @staticmethod
    def _merge(model, fields: dict, enum_fields: tuple = ()):
        """Copy of model with sanitized text fields; untouched fields are kept."""
        updates = {}
        for name, value in fields.items():
            if name not in type(model).model_fields:
                raise AttributeError(f"{type(model).__name__} has no field {name!r}")
            if name in enum_fields or value is None:
                updates[name] = value
            else:
                updates[name] = validators.sanitize_field(name, str(value))
        return type(model).model_validate({**model.model_dump(), **updates})

    def _check_editable(self) -> None:
        if self.state.step not in EDITABLE_STEPS:
            raise InputValidationError(
                [f"Checkout cannot be edited during step {self.state.step.name}"]
            )

    def update_customer(self, **fields) -> CustomerInfo:
        self._check_editable()
        self.state.customer = self._merge(self.state.customer, fields)
        return self.state.customer

    def update_payment(self, **fields) -> PaymentInfo:
        self._check_editable()
        self.state.payment = self._merge(self.state.payment, fields, enum_fields=("method",))
        return self.state.payment

    def update_delivery(self, **fields) -> DeliveryInfo:
        self._check_editable()
        self.state.delivery = self._merge(
            self.state.delivery, fields, enum_fields=("method", "delivery_time")
        )
        return self.state.delivery

    # =========================================================================
    # NAVIGATION
    # =========================================================================

    def advance(self) -> bool:
        """
        Move one step forward if the current step's fields pass.

        Returns:
            True when the step changed; otherwise errors explain why not
        """
        state = self.state

        if state.step == CheckoutStep.CUSTOMER_INFO:
            errors = customer_step_errors(state.customer)
            target = CheckoutStep.PAYMENT_AND_DELIVERY
        elif state.step == CheckoutStep.PAYMENT_AND_DELIVERY:
            errors = payment_step_errors(
                state.customer, state.payment, state.delivery, self.clock.now()
            )
            target = CheckoutStep.REVIEW
        else:
            return False

        state.errors = errors
        if errors:
            return False

        self._enter(target)
        logger.debug(f"Checkout advanced to {target.name}")
        return True

    def back(self) -> bool:
        """Return to the previous form step; collected input is kept."""
        previous = {
            CheckoutStep.PAYMENT_AND_DELIVERY: CheckoutStep.CUSTOMER_INFO,
            CheckoutStep.REVIEW: CheckoutStep.PAYMENT_AND_DELIVERY,
        }.get(self.state.step)
        if previous is None:
            return False
        self._enter(previous)
        self.state.errors = []
        return True

    def cancel(self) -> bool:
        """
        Abandon a pending submission.

        Before processing starts there is nothing to undo and the flow stays
        where it is. Once the payment is running it cannot be cancelled.
        """
        if self.state.step in (CheckoutStep.PROCESSING, CheckoutStep.COMPLETE):
            return False
        self.state.errors = []
        return True

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    def _enter(self, step: CheckoutStep) -> None:
        self.state.step = step
        self.state.history.append(step)

    def build_request(self, totals: Optional[OrderTotals] = None) -> PaymentRequest:
        totals = totals or self.totals
        return PaymentRequest(
            customer=self.state.customer,
            payment=self.state.payment,
            delivery=self.state.delivery,
            lines=self.cart.lines,
            subtotal=totals.subtotal,
            tax=totals.tax,
            delivery_fee=totals.delivery_fee,
            total=totals.total,
        )

    async def submit(self, on_progress: Optional[ProgressCallback] = None) -> Optional[Order]:
        """
        Validate, pay and store the order.

        Args:
            on_progress: Receives every StageEvent of the payment pipeline

        Returns:
            The stored Order, or None when the submission was rejected (the
            reasons are in errors, the matching exception in state.failure,
            and the flow is back in REVIEW)

        Raises:
            InputValidationError: submit() called outside the REVIEW step
        """
        state = self.state
        if state.step != CheckoutStep.REVIEW:
            raise InputValidationError([f"Cannot submit from step {state.step.name}"])

        state.failure = None
        if self.cart.is_empty:
            state.errors = [EMPTY_CART_MESSAGE]
            state.failure = InputValidationError(state.errors)
            return None

        # store and guard I/O is file-locked; keep it off the event loop
        loop = asyncio.get_running_loop()

        totals = self.totals
        request = self.build_request(totals)
        report = await loop.run_in_executor(
            None, self.security.validate_payment_data, request
        )
        if not report.valid:
            state.errors = list(report.errors)
            state.failure = report.to_exception()
            logger.info(f"Checkout submission rejected: {report.kind.value}")
            return None

        state.errors = []
        state.step_log = []
        self._enter(CheckoutStep.PROCESSING)

        def track(event: StageEvent) -> None:
            state.step_log.append(event.message)
            if on_progress is not None:
                on_progress(event)

        try:
            result = await self.processor.process(request, on_progress=track)
            # the cleared payload, not the live form
            placed = build_order(
                request.customer,
                request.payment,
                request.delivery,
                request.lines,
                totals,
                result,
                now=self.clock.now(),
            )
            order = await loop.run_in_executor(None, self.order_store.create, placed)
        except (PaymentError, StorageError) as e:
            self._enter(CheckoutStep.FAILED)
            state.errors = [str(e)]
            state.failure = e
            logger.warning(f"Checkout failed: {e}")
            self._enter(CheckoutStep.REVIEW)
            return None

        self.cart.clear()
        await loop.run_in_executor(None, self.security.cleanup)
        state.order = order
        self._enter(CheckoutStep.COMPLETE)

        logger.info(f"Checkout complete - order {order.id} ({result.transaction_id})")
        return order
