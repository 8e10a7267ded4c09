"""
Checkout Settings

Environment-driven checkout configuration. Business constants (tax rate,
delivery fee, lockout window, session timeout) are read here and passed to
components as constructor arguments.

Usage:
    from kitchen_checkout.core.config import get_settings

    settings = get_settings()
    limiter = RateLimiter(
        path=settings.data_path / settings.attempts_filename,
        max_attempts=settings.max_payment_attempts,
        lockout=settings.lockout_window,
    )

Version: 1.0.0
"""

import logging
import sys
from datetime import timedelta
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentMode(str, Enum):
    """
    Deployment environment of the checkout service.

    Attributes:
        DEVELOPMENT: Local testing, verbose simulated gateway
        PRODUCTION: Deployed storefront
        STAGING: Pre-production
    """
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    STAGING = "staging"


class Settings(BaseSettings):
    """
    Checkout settings loaded from environment variables.

    Every field may be set through the environment or a .env file.

    Attributes:
        env_mode: Current environment (development/production/staging)
        debug: Enable verbose logging and error details

        # Pricing
        tax_rate: Sales tax applied to the subtotal (decimal)
        delivery_fee: Flat fee charged for delivery orders

        # Payment guard
        max_payment_attempts: Validation attempts allowed before lockout
        lockout_minutes: Length of the lockout window
        session_timeout_minutes: Maximum age of a checkout session

        # Simulated gateway
        stage_delay_seconds: Pause inserted before every pipeline stage
        payment_failure_rate: Probability that the charge stage declines

        # Storage
        data_directory: Directory holding the JSON documents
        store_lock_timeout: Seconds to wait for a store file lock
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # ENVIRONMENT
    # ==========================================================================

    env_mode: EnvironmentMode = Field(
        default=EnvironmentMode.DEVELOPMENT,
        description="Application environment mode"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging"
    )

    # ==========================================================================
    # APPLICATION
    # ==========================================================================

    app_name: str = Field(
        default="Kitchen Checkout",
        description="Application display name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8001,
        description="API server port"
    )

    # ==========================================================================
    # PRICING
    # ==========================================================================

    tax_rate: Decimal = Field(
        default=Decimal("0.08"),
        ge=0,
        description="Tax rate as decimal (8%)"
    )
    delivery_fee: Decimal = Field(
        default=Decimal("3.99"),
        ge=0,
        description="Flat delivery fee"
    )
    currency: str = Field(
        default="usd",
        description="Currency code shown on receipts"
    )

    # ==========================================================================
    # PAYMENT GUARD
    # ==========================================================================

    max_payment_attempts: int = Field(
        default=3,
        ge=1,
        description="Validation attempts allowed before lockout"
    )
    lockout_minutes: int = Field(
        default=15,
        ge=1,
        description="Lockout window after too many attempts"
    )
    session_timeout_minutes: int = Field(
        default=30,
        ge=1,
        description="Checkout session lifetime"
    )

    # ==========================================================================
    # SIMULATED GATEWAY
    # ==========================================================================

    stage_delay_seconds: float = Field(
        default=1.5,
        ge=0,
        description="Simulated latency of every pipeline stage"
    )
    payment_failure_rate: float = Field(
        default=0.0,
        ge=0,
        le=1,
        description="Probability of a simulated card decline"
    )

    # ==========================================================================
    # AT-REST OBSCURING
    # ==========================================================================

    # Shipped with the app: this only keeps values unreadable at a glance
    obscure_passphrase: str = Field(
        default="kitchen-checkout-local-store",
        description="Passphrase the obscuring key is derived from"
    )
    obscure_salt: str = Field(
        default="kitchen-checkout-salt",
        description="Salt for the obscuring key derivation"
    )

    # ==========================================================================
    # FILE STORAGE
    # ==========================================================================

    data_directory: str = Field(
        default="data",
        description="Directory for data files"
    )
    orders_filename: str = Field(
        default="orders.json",
        description="Order collection document"
    )
    reservations_filename: str = Field(
        default="reservations.json",
        description="Reservation collection document"
    )
    messages_filename: str = Field(
        default="contact_messages.json",
        description="Contact message collection document"
    )
    attempts_filename: str = Field(
        default="payment_attempts.json",
        description="Persisted rate-limit counter"
    )
    excel_filename: str = Field(
        default="orders.xlsx",
        description="Excel export filename"
    )
    store_lock_timeout: int = Field(
        default=30,
        description="Seconds to wait for file lock"
    )

    # ==========================================================================
    # VALIDATORS
    # ==========================================================================

    @field_validator("env_mode", mode="before")
    @classmethod
    def validate_env_mode(cls, v: str) -> EnvironmentMode:
        """Convert string to EnvironmentMode enum."""
        if isinstance(v, EnvironmentMode):
            return v
        try:
            return EnvironmentMode(v.lower())
        except ValueError:
            valid = [e.value for e in EnvironmentMode]
            raise ValueError(f"Invalid env_mode. Must be one of: {valid}")

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def is_development(self) -> bool:
        """True for local runs against the simulated gateway."""
        return self.env_mode == EnvironmentMode.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """True when serving the live storefront (API docs disabled)."""
        return self.env_mode == EnvironmentMode.PRODUCTION

    @property
    def data_path(self) -> Path:
        return Path(self.data_directory)

    @property
    def lockout_window(self) -> timedelta:
        return timedelta(minutes=self.lockout_minutes)

    @property
    def session_timeout(self) -> timedelta:
        return timedelta(minutes=self.session_timeout_minutes)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache so the environment is read once and every component
    sees the same values for the lifetime of the process.

    Returns:
        Settings: Configured application settings

    Example:
        >>> settings = get_settings()
        >>> print(settings.tax_rate)
        0.08
    """
    return Settings()


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured package logger
    """
    settings = get_settings()

    if settings.debug:
        level = logging.DEBUG

    log_format = "%(asctime)s │ %(levelname)-8s │ %(name)-25s │ %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt=date_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("filelock").setLevel(logging.WARNING)

    return logging.getLogger("kitchen_checkout")
