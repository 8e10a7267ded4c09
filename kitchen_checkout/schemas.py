"""
Pydantic Schemas for the Checkout Domain

Covers:
- Checkout input (customer, payment, delivery, cart lines)
- The persisted Order record consumed by the back-office
- Collaborator records (reservations, contact messages)
- API request/response bodies and dashboard statistics

Persisted and API-facing models serialize with camelCase aliases; the
back-office filters on those exact field names and enum strings.

Version: 1.0.0
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Annotated, List, Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    model_validator,
)
from pydantic.alias_generators import to_camel


CENT = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents with standard (half-up) rounding."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


# Decimal in Python, number in JSON, always held in cents
Money = Annotated[
    Decimal,
    AfterValidator(quantize_money),
    PlainSerializer(float, return_type=float, when_used="json"),
]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# ENUMS
# =============================================================================

class PaymentMethod(str, Enum):
    CREDIT = "credit"
    PAYPAL = "paypal"
    CASH = "cash"


class DeliveryMethod(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class DeliveryType(str, Enum):
    """Delivery type as stored on the order."""
    PICKUP = "PICKUP"
    DELIVERY = "DELIVERY"


class OrderPaymentMethod(str, Enum):
    """Payment method as stored on the order."""
    CREDIT = "CREDIT"
    PAYPAL = "PAYPAL"
    CASH = "CASH"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class OrderStatus(str, Enum):
    """Order status workflow, owned by the back-office."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY = "READY"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class ReservationStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class MessageStatus(str, Enum):
    UNREAD = "UNREAD"
    READ = "READ"
    REPLIED = "REPLIED"


# =============================================================================
# CATALOG & CART
# =============================================================================

class MenuItem(CamelModel):
    """Dish supplied by the menu catalog."""
    id: Union[int, str]
    name: str = Field(..., min_length=1, max_length=100, examples=["Jollof Rice"])
    price: Money = Field(..., ge=0, examples=[12.99])
    category: str = ""
    image: Optional[str] = None


class CartLine(CamelModel):
    """Single dish in the cart; at most one line per dish id."""
    id: Union[int, str]
    name: str = Field(..., min_length=1, max_length=100)
    price: Money = Field(..., ge=0)
    quantity: int = Field(default=1, ge=1, le=99)
    image: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


# =============================================================================
# CHECKOUT INPUT
# =============================================================================

class CustomerInfo(CamelModel):
    """
    Customer details collected in the first checkout step.

    Fields are plain strings on purpose: malformed input must be
    representable so the validators can report on it.
    """
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    zip_code: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class PaymentInfo(CamelModel):
    """Payment details. Never persisted; log only masked copies."""
    method: PaymentMethod = PaymentMethod.CREDIT
    card_number: str = Field(default="", repr=False)
    expiry_date: str = ""
    cvv: str = Field(default="", repr=False)
    name_on_card: str = ""


class DeliveryInfo(CamelModel):
    method: DeliveryMethod = DeliveryMethod.PICKUP
    delivery_time: Optional[str] = None
    special_instructions: str = ""


class PaymentRequest(CamelModel):
    """Everything the security layer and the gateway see for one payment."""
    customer: CustomerInfo
    payment: PaymentInfo
    delivery: DeliveryInfo
    lines: List[CartLine]
    subtotal: Money
    tax: Money
    delivery_fee: Money
    total: Money


# =============================================================================
# ORDER RECORD
# =============================================================================

class OrderLineItem(CamelModel):
    """Dish captured at order time, decoupled from later catalog changes."""
    model_config = ConfigDict(frozen=True)

    dish_name: str
    dish_price: Money
    quantity: int = Field(..., ge=1)
    special_requests: Optional[str] = None


class Order(CamelModel):
    """
    Order record produced by a completed checkout.

    Immutable after creation except for order_status/updated_at, which the
    store changes by copying the record.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    transaction_id: str
    customer_name: str
    email: str
    phone: str
    delivery_address: Optional[str] = None
    delivery_type: DeliveryType
    payment_method: OrderPaymentMethod
    payment_status: PaymentStatus = PaymentStatus.COMPLETED
    order_status: OrderStatus = OrderStatus.PENDING
    subtotal: Money
    tax: Money
    delivery_fee: Money
    total: Money
    special_instructions: Optional[str] = None
    line_items: List[OrderLineItem] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_totals(self) -> "Order":
        if self.total != self.subtotal + self.tax + self.delivery_fee:
            raise ValueError("total must equal subtotal + tax + deliveryFee")
        if self.line_items:
            items_sum = sum(
                (item.dish_price * item.quantity for item in self.line_items),
                Decimal("0"),
            )
            if quantize_money(items_sum) != self.subtotal:
                raise ValueError("subtotal must equal the sum of line items")
        return self


# =============================================================================
# COLLABORATOR RECORDS
# =============================================================================

class Reservation(CamelModel):
    """Table reservation produced by the reservation form."""
    id: Optional[str] = None
    name: str
    email: str = ""
    phone: str = ""
    date: str = ""
    time: str = ""
    guests: int = Field(default=2, ge=1)
    special_requests: Optional[str] = None
    status: ReservationStatus = ReservationStatus.PENDING
    created_at: Optional[datetime] = None


class ContactMessage(CamelModel):
    """Message produced by the contact form."""
    id: Optional[str] = None
    name: str
    email: str = ""
    subject: str = ""
    message: str = ""
    status: MessageStatus = MessageStatus.UNREAD
    created_at: Optional[datetime] = None


# =============================================================================
# DASHBOARD
# =============================================================================

class DashboardStats(CamelModel):
    total_orders: int = 0
    today_orders: int = 0
    monthly_orders: int = 0
    total_revenue: Money = Decimal("0")
    today_revenue: Money = Decimal("0")
    pending_orders: int = 0
    completed_orders: int = 0
    total_reservations: int = 0
    pending_reservations: int = 0
    total_messages: int = 0
    unread_messages: int = 0


# =============================================================================
# API SCHEMAS
# =============================================================================

class CheckoutRequest(CamelModel):
    """One-shot checkout submitted to the API."""
    customer: CustomerInfo
    payment: PaymentInfo
    delivery: DeliveryInfo = Field(default_factory=DeliveryInfo)
    lines: List[CartLine] = Field(..., min_length=1)


class CheckoutResponse(CamelModel):
    success: bool
    message: str
    order: Optional[Order] = None
    steps: List[str] = Field(default_factory=list)


class OrderStatusUpdate(CamelModel):
    status: OrderStatus


class OrderListResponse(CamelModel):
    total: int
    orders: List[Order]


class ErrorResponse(CamelModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: List[str] = Field(default_factory=list)


class HealthResponse(CamelModel):
    status: str
    order_store: str
    payment_service: str
    timestamp: datetime
