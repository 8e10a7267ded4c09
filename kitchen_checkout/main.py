"""
FastAPI Application Entry Point

Kitchen Checkout - HTTP surface for the storefront and the back-office.

Endpoints:
    - POST /api/checkout: One-shot checkout (customer, payment, delivery, cart)
    - GET /api/orders: List orders (optional status filter)
    - GET /api/orders/{order_id}: Single order
    - PATCH /api/orders/{order_id}/status: Back-office status change
    - POST /api/orders/export: Excel export of the order store
    - GET /api/dashboard-data: Dashboard statistics
    - GET /health: System health check

Run with:
    uvicorn kitchen_checkout.main:app --port 8001
    python -m kitchen_checkout.main

Version: 1.0.0
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kitchen_checkout.core.clock import Clock, SystemClock
from kitchen_checkout.core.config import get_settings, setup_logging
from kitchen_checkout.core.exceptions import (
    CheckoutError,
    InputValidationError,
    PaymentError,
    RateLimitError,
    RecordNotFoundError,
    SessionExpiredError,
    StorageError,
)
from kitchen_checkout.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    DashboardStats,
    ErrorResponse,
    HealthResponse,
    MenuItem,
    Order,
    OrderListResponse,
    OrderStatus,
    OrderStatusUpdate,
)
from kitchen_checkout.services.cart import Cart
from kitchen_checkout.services.checkout_flow import CheckoutFlow
from kitchen_checkout.services.order_store import OrderStore
from kitchen_checkout.services.payment import get_payment_processor
from kitchen_checkout.services.payment_security import PaymentSecurity
from kitchen_checkout.services.rate_limiter import RateLimiter
from kitchen_checkout.services.records import MessageStore, ReservationStore
from kitchen_checkout.services.stats import StatsAggregator

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# DEPENDENCIES
# =============================================================================

@lru_cache()
def get_clock() -> Clock:
    return SystemClock()


@lru_cache()
def get_order_store() -> OrderStore:
    return OrderStore(
        settings.data_path / settings.orders_filename,
        clock=get_clock(),
        lock_timeout=settings.store_lock_timeout,
    )


@lru_cache()
def get_reservation_store() -> ReservationStore:
    return ReservationStore(
        settings.data_path / settings.reservations_filename,
        clock=get_clock(),
        lock_timeout=settings.store_lock_timeout,
    )


@lru_cache()
def get_message_store() -> MessageStore:
    return MessageStore(
        settings.data_path / settings.messages_filename,
        clock=get_clock(),
        lock_timeout=settings.store_lock_timeout,
    )


@lru_cache()
def get_rate_limiter() -> RateLimiter:
    return RateLimiter(
        settings.data_path / settings.attempts_filename,
        max_attempts=settings.max_payment_attempts,
        lockout=settings.lockout_window,
        clock=get_clock(),
        lock_timeout=settings.store_lock_timeout,
    )


def get_checkout_flow(
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    order_store: OrderStore = Depends(get_order_store),
    clock: Clock = Depends(get_clock),
) -> CheckoutFlow:
    """Fresh checkout (cart, session) for one request."""
    security = PaymentSecurity(
        rate_limiter,
        session_timeout=settings.session_timeout,
        clock=clock,
        passphrase=settings.obscure_passphrase,
        salt=settings.obscure_salt,
    )
    return CheckoutFlow(
        cart=Cart(),
        security=security,
        processor=get_payment_processor(security, clock),
        order_store=order_store,
        tax_rate=settings.tax_rate,
        delivery_fee=settings.delivery_fee,
        clock=clock,
    )


def get_stats(
    orders: OrderStore = Depends(get_order_store),
    reservations: ReservationStore = Depends(get_reservation_store),
    messages: MessageStore = Depends(get_message_store),
    clock: Clock = Depends(get_clock),
) -> StatsAggregator:
    return StatsAggregator(orders, reservations, messages, clock=clock)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info(f"   Data directory: {settings.data_path.resolve()}")
    logger.info("=" * 60)

    settings.data_path.mkdir(parents=True, exist_ok=True)
    if settings.payment_failure_rate and not settings.is_development:
        logger.warning(
            f"⚠️ Simulated decline rate {settings.payment_failure_rate:.0%} "
            f"active outside development"
        )

    logger.info("✅ Application ready!")

    yield

    logger.info("Shutting down...")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Restaurant checkout: payment validation, simulated staged payment "
        "processing, order persistence and dashboard statistics."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍽️ Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "currency": settings.currency.upper(),
        "documentation": app.docs_url or "disabled",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    order_store: OrderStore = Depends(get_order_store),
    flow: CheckoutFlow = Depends(get_checkout_flow),
    clock: Clock = Depends(get_clock),
) -> HealthResponse:
    """Verify the order store and the payment processor are usable."""

    store_status = "healthy"
    try:
        await run_in_threadpool(order_store.list)
    except StorageError as e:
        store_status = f"unhealthy: {e}"
        logger.error(f"Order store health check failed: {e}")

    payment_status = "healthy" if await flow.processor.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [store_status, payment_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        order_store=store_status,
        payment_service=payment_status,
        timestamp=clock.now(),
    )


# =============================================================================
# CHECKOUT ENDPOINT
# =============================================================================

@app.post(
    "/api/checkout",
    response_model=CheckoutResponse,
    responses={
        401: {"model": ErrorResponse},
        402: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
    tags=["Checkout"],
    summary="Place Order",
)
async def checkout(
    body: CheckoutRequest,
    flow: CheckoutFlow = Depends(get_checkout_flow),
) -> CheckoutResponse:
    """
    Run a complete checkout in one call.

    The request walks the same three steps as the storefront form, so the
    same per-step checks, security validation, rate limiting and payment
    stages apply.
    """
    logger.info(f"Checkout requested for {len(body.lines)} cart line(s)")

    for line in body.lines:
        flow.cart.add(
            MenuItem(id=line.id, name=line.name, price=line.price, image=line.image),
            quantity=line.quantity,
        )

    flow.update_customer(**body.customer.model_dump())
    flow.update_payment(**body.payment.model_dump())
    flow.update_delivery(**body.delivery.model_dump())

    for _ in range(2):
        if not flow.advance():
            raise InputValidationError(flow.errors)

    order = await flow.submit()
    if order is None:
        raise flow.state.failure or InputValidationError(flow.errors)

    return CheckoutResponse(
        success=True,
        message="Order placed successfully!",
        order=order,
        steps=flow.state.step_log,
    )


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List Orders",
)
def list_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    status: Optional[str] = Query(None),
    order_store: OrderStore = Depends(get_order_store),
) -> OrderListResponse:
    """Orders, newest first."""
    status_enum = None
    if status:
        try:
            status_enum = OrderStatus(status.upper())
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid status. Options: {[s.value for s in OrderStatus]}"
            )

    orders = order_store.list(status_enum)
    orders.sort(key=lambda o: o.created_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)

    return OrderListResponse(total=len(orders), orders=orders[skip:skip + limit])


@app.get(
    "/api/orders/{order_id}",
    response_model=Order,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
def get_order(
    order_id: str,
    order_store: OrderStore = Depends(get_order_store),
) -> Order:
    """Get a specific order by ID."""
    return order_store.get(order_id)


@app.patch(
    "/api/orders/{order_id}/status",
    response_model=Order,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
def update_order_status(
    order_id: str,
    update: OrderStatusUpdate,
    order_store: OrderStore = Depends(get_order_store),
) -> Order:
    return order_store.update_status(order_id, update.status)


@app.post(
    "/api/orders/export",
    tags=["Orders"],
    summary="Export Orders to Excel",
)
def export_orders(
    order_store: OrderStore = Depends(get_order_store),
) -> dict[str, Any]:
    path = order_store.export_excel(settings.data_path / settings.excel_filename)
    return {"success": True, "file": str(path)}


# =============================================================================
# DASHBOARD ENDPOINTS
# =============================================================================

@app.get(
    "/api/dashboard-data",
    response_model=DashboardStats,
    tags=["Dashboard"],
)
def dashboard_data(
    stats: StatsAggregator = Depends(get_stats),
) -> DashboardStats:
    """Get aggregated dashboard statistics."""
    return stats.dashboard_stats()


# =============================================================================
# ERROR HANDLERS
# =============================================================================

ERROR_STATUS_CODES = (
    (InputValidationError, 422),
    (RateLimitError, 429),
    (SessionExpiredError, 401),
    (PaymentError, 402),
    (RecordNotFoundError, 404),
    (StorageError, 503),
)


@app.exception_handler(CheckoutError)
async def checkout_exception_handler(request: Request, exc: CheckoutError) -> JSONResponse:
    """Map the checkout error taxonomy onto HTTP status codes."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES if isinstance(exc, error_type)),
        500,
    )
    detail = exc.errors if isinstance(exc, InputValidationError) else [str(exc)]

    if status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {status_code}: {exc}")

    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=str(exc), detail=detail).model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": [str(exc)] if settings.debug else ["An unexpected error occurred"],
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "kitchen_checkout.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )
