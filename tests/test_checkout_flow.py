"""Tests for the checkout state machine, totals and order assembly."""
import asyncio
import time
from decimal import Decimal

import pytest

from kitchen_checkout.core.exceptions import InputValidationError, ProcessingError
from kitchen_checkout.schemas import (
    CartLine,
    DeliveryInfo,
    DeliveryMethod,
    DeliveryType,
    OrderPaymentMethod,
    OrderStatus,
    PaymentStatus,
)
from kitchen_checkout.services.cart import Cart
from kitchen_checkout.services.checkout_flow import (
    CheckoutFlow,
    CheckoutStep,
    build_order,
    compute_totals,
)
from kitchen_checkout.services.order_store import OrderStore
from kitchen_checkout.services.payment.base import ProcessorResult
from kitchen_checkout.services.payment.simulated import SimulatedPaymentProcessor


def fill_customer(flow, **overrides):
    fields = dict(
        first_name="Ada",
        last_name="Okafor",
        email="ada@kitchenmail.com",
        phone="5551234567",
        address="123 Hollywood Blvd",
        city="Hollywood",
        zip_code="90028",
    )
    fields.update(overrides)
    flow.update_customer(**fields)


def fill_card(flow):
    flow.update_payment(
        method="credit",
        card_number="4242424242424242",
        expiry_date="1230",
        cvv="123",
        name_on_card="Ada Okafor",
    )


def to_review(flow, delivery="delivery", **customer):
    fill_customer(flow, **customer)
    assert flow.advance()
    fill_card(flow)
    flow.update_delivery(method=delivery)
    assert flow.advance(), flow.errors
    assert flow.step == CheckoutStep.REVIEW


class TestTotals:
    def test_delivery_order(self, cart):
        totals = compute_totals(cart.lines, DeliveryMethod.DELIVERY)
        assert totals.subtotal == Decimal("25.00")
        assert totals.tax == Decimal("2.00")
        assert totals.delivery_fee == Decimal("3.99")
        assert totals.total == Decimal("30.99")

    def test_pickup_has_no_fee(self, cart):
        totals = compute_totals(cart.lines, DeliveryMethod.PICKUP)
        assert totals.delivery_fee == 0
        assert totals.total == Decimal("27.00")

    def test_custom_rates(self, cart):
        totals = compute_totals(cart.lines, DeliveryMethod.DELIVERY, tax_rate="0.1", delivery_fee=5)
        assert totals.total == Decimal("32.5")

    def test_rounding_happens_on_the_order(self, customer, credit_payment):
        lines = [CartLine(id=1, name="Puff Puff", price=Decimal("0.99"), quantity=1)]
        totals = compute_totals(lines, DeliveryMethod.PICKUP)
        assert totals.tax == Decimal("0.0792")

        order = build_order(
            customer,
            credit_payment,
            DeliveryInfo(method=DeliveryMethod.PICKUP),
            lines,
            totals,
            ProcessorResult(transaction_id="TXN-1", timestamp="2024-06-15T12:00:00+00:00"),
        )
        assert order.tax == Decimal("0.08")
        assert order.total == Decimal("1.07")
        assert order.total == order.subtotal + order.tax + order.delivery_fee


class TestNavigation:
    def test_starts_at_customer_info(self, flow):
        assert flow.step == CheckoutStep.CUSTOMER_INFO

    def test_customer_step_requires_contact_fields(self, flow):
        assert not flow.advance()
        assert flow.errors == [
            "First name is required",
            "Last name is required",
            "Email is required",
            "Phone number is required",
        ]
        assert flow.step == CheckoutStep.CUSTOMER_INFO

    def test_whitespace_only_is_missing(self, flow):
        fill_customer(flow, last_name="   ")
        assert not flow.advance()
        assert flow.errors == ["Last name is required"]

    def test_payment_step_checks_card(self, flow):
        fill_customer(flow)
        flow.advance()
        flow.update_payment(method="credit", card_number="4242424242424241", expiry_date="0520", cvv="1")

        assert not flow.advance()
        assert "Invalid card number" in flow.errors
        assert "Card has expired" in flow.errors
        assert "CVV must be 3 digits" in flow.errors
        assert "Name on card is required" in flow.errors

    def test_cash_skips_card_checks(self, flow):
        fill_customer(flow)
        flow.advance()
        flow.update_payment(method="cash")
        assert flow.advance()

    def test_delivery_requires_address(self, flow):
        fill_customer(flow, address="", zip_code="")
        flow.advance()
        flow.update_payment(method="cash")
        flow.update_delivery(method="delivery")

        assert not flow.advance()
        assert flow.errors == ["Delivery address is required", "ZIP code is required"]

        flow.update_delivery(method="pickup")
        assert flow.advance()

    def test_back_keeps_input(self, flow):
        to_review(flow)
        assert flow.back()
        assert flow.step == CheckoutStep.PAYMENT_AND_DELIVERY
        assert flow.back()
        assert flow.step == CheckoutStep.CUSTOMER_INFO
        assert not flow.back()
        assert flow.state.customer.first_name == "Ada"
        assert flow.state.payment.card_number == "4242 4242 4242 4242"

    def test_cannot_advance_past_review(self, flow):
        to_review(flow)
        assert not flow.advance()


class TestInput:
    def test_updates_are_sanitized(self, flow):
        fill_card(flow)
        assert flow.state.payment.card_number == "4242 4242 4242 4242"
        assert flow.state.payment.expiry_date == "12/30"
        fill_customer(flow)
        assert flow.state.customer.phone == "(555) 123-4567"

    def test_update_keeps_other_fields(self, flow):
        fill_customer(flow)
        flow.update_customer(first_name="<Ngozi>")
        assert flow.state.customer.first_name == "Ngozi"
        assert flow.state.customer.last_name == "Okafor"

    def test_unknown_field_rejected(self, flow):
        with pytest.raises(AttributeError):
            flow.update_customer(nickname="Ace")


class TestSubmit:
    @pytest.mark.asyncio
    async def test_end_to_end(self, flow, order_store, rate_limiter, clock):
        to_review(flow)
        events = []

        order = await flow.submit(on_progress=events.append)

        assert flow.step == CheckoutStep.COMPLETE
        assert order.id == "ORD-1718452800000"
        assert order.transaction_id.startswith("TXN-")
        assert order.customer_name == "Ada Okafor"
        assert order.delivery_type == DeliveryType.DELIVERY
        assert order.delivery_address == "123 Hollywood Blvd, Hollywood 90028"
        assert order.payment_method == OrderPaymentMethod.CREDIT
        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.order_status == OrderStatus.PENDING
        assert (order.subtotal, order.tax, order.delivery_fee, order.total) == (
            Decimal("25.00"), Decimal("2.00"), Decimal("3.99"), Decimal("30.99"),
        )
        assert [(i.dish_name, i.quantity) for i in order.line_items] == [
            ("Jollof Rice", 2), ("Fried Plantain", 1),
        ]
        assert order.created_at == clock.now()

        stored = order_store.list()
        assert [o.id for o in stored] == [order.id]
        assert stored[0].total == Decimal("30.99")
        assert flow.cart.is_empty
        assert rate_limiter.counter.count == 0
        assert len(events) == 10
        assert flow.state.step_log[0] == "Encrypting payment data..."
        assert flow.state.step_log[-1] == "Transaction completed"

    @pytest.mark.asyncio
    async def test_pickup_order_has_no_address(self, flow):
        to_review(flow, delivery="pickup")
        order = await flow.submit()
        assert order.delivery_address is None
        assert order.delivery_fee == 0
        assert order.total == Decimal("27.00")

    @pytest.mark.asyncio
    async def test_validation_failure_stays_in_review(self, flow, order_store):
        to_review(flow, email="not-an-email")

        assert await flow.submit() is None
        assert flow.step == CheckoutStep.REVIEW
        assert flow.errors == ["Invalid email address"]
        assert isinstance(flow.state.failure, InputValidationError)
        assert CheckoutStep.PROCESSING not in flow.state.history
        assert order_store.list() == []

    @pytest.mark.asyncio
    async def test_declined_payment_returns_to_review(
        self, cart, security, order_store, clock, processor
    ):
        declining = SimulatedPaymentProcessor(
            security, clock=clock, failure_rate=1.0, min_latency=0, max_latency=0
        )
        flow = CheckoutFlow(cart, security, declining, order_store, clock=clock)
        to_review(flow)

        assert await flow.submit() is None
        assert flow.step == CheckoutStep.REVIEW
        assert flow.state.history[-3:] == [
            CheckoutStep.PROCESSING, CheckoutStep.FAILED, CheckoutStep.REVIEW,
        ]
        assert isinstance(flow.state.failure, ProcessingError)
        assert len(flow.errors) == 1
        assert order_store.list() == []
        assert flow.cart.item_count == 3
        assert flow.state.payment.card_number == "4242 4242 4242 4242"

        # retry goes through validation again
        flow.processor = processor
        order = await flow.submit()
        assert order is not None
        assert flow.step == CheckoutStep.COMPLETE

    @pytest.mark.asyncio
    async def test_lockout_reported_on_submit(self, flow, rate_limiter):
        to_review(flow)
        for _ in range(3):
            rate_limiter.record_attempt()

        assert await flow.submit() is None
        assert flow.errors == ["Too many attempts. Please wait 15 minutes."]
        assert flow.step == CheckoutStep.REVIEW

    @pytest.mark.asyncio
    async def test_empty_cart(self, security, processor, order_store, clock):
        flow = CheckoutFlow(Cart(), security, processor, order_store, clock=clock)
        to_review(flow)
        assert await flow.submit() is None
        assert flow.errors == ["Your cart is empty"]

    @pytest.mark.asyncio
    async def test_submit_outside_review(self, flow):
        with pytest.raises(InputValidationError):
            await flow.submit()

    @pytest.mark.asyncio
    async def test_cancel(self, flow):
        to_review(flow)
        assert flow.cancel()
        assert flow.step == CheckoutStep.REVIEW

        during = []
        await flow.submit(on_progress=lambda event: during.append(flow.cancel()))
        assert during and not any(during)
        assert not flow.cancel()


class TestEditingDuringPayment:
    @pytest.mark.asyncio
    async def test_edits_refused_while_processing(self, flow, order_store):
        to_review(flow, delivery="pickup")
        refused = []

        def edit(event):
            for update in (
                lambda: flow.update_delivery(method="delivery"),
                lambda: flow.update_customer(email="someone-else@kitchenmail.com"),
                lambda: flow.update_payment(method="cash"),
            ):
                try:
                    update()
                except InputValidationError:
                    refused.append(event.stage)

        order = await flow.submit(on_progress=edit)

        assert order is not None
        assert refused and len(refused) % 3 == 0
        assert flow.state.delivery.method == DeliveryMethod.PICKUP
        assert order.delivery_type == DeliveryType.PICKUP
        assert order.delivery_fee == 0
        assert order.email == "ada@kitchenmail.com"
        assert order_store.get(order.id).email == "ada@kitchenmail.com"

    @pytest.mark.asyncio
    async def test_order_built_from_the_charged_payload(self, flow):
        to_review(flow, delivery="pickup")

        def swap_form(event):
            flow.state.delivery = DeliveryInfo(method=DeliveryMethod.DELIVERY)
            flow.state.customer = flow.state.customer.model_copy(update={"email": "nope"})

        order = await flow.submit(on_progress=swap_form)

        assert order.delivery_type == DeliveryType.PICKUP
        assert order.delivery_address is None
        assert order.total == Decimal("27.00")
        assert order.email == "ada@kitchenmail.com"

    @pytest.mark.asyncio
    async def test_edits_refused_after_completion(self, flow):
        to_review(flow)
        await flow.submit()
        with pytest.raises(InputValidationError):
            flow.update_customer(first_name="Ngozi")

    def test_edits_allowed_in_review(self, flow):
        to_review(flow)
        flow.update_delivery(special_instructions="Leave at the door")
        assert flow.state.delivery.special_instructions == "Leave at the door"


class SlowOrderStore(OrderStore):
    """Order store whose writes hold the caller for a while, like a contended lock."""

    def create(self, order):
        time.sleep(0.3)
        return super().create(order)


@pytest.mark.asyncio
async def test_store_write_does_not_block_event_loop(cart, security, processor, clock, tmp_path):
    flow = CheckoutFlow(cart, security, processor, SlowOrderStore(tmp_path / "slow.json", clock=clock), clock=clock)
    to_review(flow)
    ticks = 0
    done = asyncio.Event()

    async def ticker():
        nonlocal ticks
        while not done.is_set():
            await asyncio.sleep(0.01)
            ticks += 1

    async def place():
        try:
            return await flow.submit()
        finally:
            done.set()

    order, _ = await asyncio.gather(place(), ticker())

    assert order is not None
    assert ticks >= 5
