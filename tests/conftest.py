"""Shared test fixtures."""
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from kitchen_checkout.schemas import (
    CustomerInfo,
    DeliveryInfo,
    DeliveryMethod,
    MenuItem,
    Order,
    OrderPaymentMethod,
    DeliveryType,
    OrderStatus,
    PaymentInfo,
    PaymentMethod,
    PaymentRequest,
)
from kitchen_checkout.services.cart import Cart
from kitchen_checkout.services.checkout_flow import CheckoutFlow, compute_totals
from kitchen_checkout.services.order_store import OrderStore
from kitchen_checkout.services.payment.simulated import SimulatedPaymentProcessor
from kitchen_checkout.services.payment_security import PaymentSecurity
from kitchen_checkout.services.rate_limiter import RateLimiter
from kitchen_checkout.services.records import MessageStore, ReservationStore


class ManualClock:
    """Clock that only moves when told to; sleeping advances it."""

    def __init__(self, start=datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)):
        self.current = start
        self.sleeps = []

    def now(self):
        return self.current

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.current += timedelta(seconds=seconds)

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def rate_limiter(tmp_path, clock):
    return RateLimiter(tmp_path / "payment_attempts.json", clock=clock)


@pytest.fixture
def security(rate_limiter, clock):
    return PaymentSecurity(rate_limiter, clock=clock)


@pytest.fixture
def processor(security, clock):
    return SimulatedPaymentProcessor(security, clock=clock, min_latency=0, max_latency=0)


@pytest.fixture
def order_store(tmp_path, clock):
    return OrderStore(tmp_path / "orders.json", clock=clock)


@pytest.fixture
def reservation_store(tmp_path, clock):
    return ReservationStore(tmp_path / "reservations.json", clock=clock)


@pytest.fixture
def message_store(tmp_path, clock):
    return MessageStore(tmp_path / "contact_messages.json", clock=clock)


@pytest.fixture
def customer():
    return CustomerInfo(
        first_name="Ada",
        last_name="Okafor",
        email="ada@kitchenmail.com",
        phone="(555) 123-4567",
        address="123 Hollywood Blvd",
        city="Hollywood",
        zip_code="90028",
    )


@pytest.fixture
def credit_payment():
    return PaymentInfo(
        method=PaymentMethod.CREDIT,
        card_number="4242 4242 4242 4242",
        expiry_date="12/30",
        cvv="123",
        name_on_card="Ada Okafor",
    )


@pytest.fixture
def jollof():
    return MenuItem(id=1, name="Jollof Rice", price=Decimal("10.00"), category="Mains")


@pytest.fixture
def plantain():
    return MenuItem(id=2, name="Fried Plantain", price=Decimal("5.00"), category="Sides")


@pytest.fixture
def cart(jollof, plantain):
    """$10 x2 + $5 x1."""
    c = Cart()
    c.add(jollof, 2)
    c.add(plantain)
    return c


def make_request(customer, payment, lines, delivery=None):
    delivery = delivery or DeliveryInfo(method=DeliveryMethod.DELIVERY)
    totals = compute_totals(lines, delivery.method)
    return PaymentRequest(
        customer=customer,
        payment=payment,
        delivery=delivery,
        lines=lines,
        subtotal=totals.subtotal,
        tax=totals.tax,
        delivery_fee=totals.delivery_fee,
        total=totals.total,
    )


@pytest.fixture
def payment_request(customer, credit_payment, cart):
    return make_request(customer, credit_payment, cart.lines)


@pytest.fixture
def flow(cart, security, processor, order_store, clock):
    return CheckoutFlow(cart, security, processor, order_store, clock=clock)


def make_order(
    subtotal="10.00",
    tax="0.80",
    delivery_fee="0.00",
    created_at=None,
    status=OrderStatus.PENDING,
    order_id=None,
):
    subtotal, tax, delivery_fee = Decimal(subtotal), Decimal(tax), Decimal(delivery_fee)
    return Order(
        id=order_id,
        transaction_id="TXN-1718452800000-ABC123",
        customer_name="Ada Okafor",
        email="ada@kitchenmail.com",
        phone="(555) 123-4567",
        delivery_type=DeliveryType.PICKUP if not delivery_fee else DeliveryType.DELIVERY,
        payment_method=OrderPaymentMethod.CREDIT,
        order_status=status,
        subtotal=subtotal,
        tax=tax,
        delivery_fee=delivery_fee,
        total=subtotal + tax + delivery_fee,
        created_at=created_at,
        updated_at=created_at,
    )
