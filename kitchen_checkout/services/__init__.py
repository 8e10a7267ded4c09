"""
                        Services Module

Business logic behind the checkout, layered leaves first:

Services:
    - validators: Field checks and input sanitizers
    - rate_limiter: Persisted payment attempt lockout
    - payment_security: Aggregate validation, masking, tokens
    - payment: Staged (simulated) payment processor
    - checkout_flow: Checkout state machine, totals, order assembly
    - order_store / records: Durable JSON collections
    - stats: Dashboard aggregation with pandas
"""

from kitchen_checkout.services.cart import Cart
from kitchen_checkout.services.order_store import OrderStore

__all__ = ["Cart", "OrderStore"]
