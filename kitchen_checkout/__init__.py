"""
                Kitchen Checkout

Checkout payment-validation and order-finalization engine for a
restaurant storefront: three-step checkout, card validation, attempt
lockout, a simulated staged payment gateway and a local order store
feeding the back-office dashboard.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
