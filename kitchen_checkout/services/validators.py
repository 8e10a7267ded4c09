"""
Payment and Customer Field Validators

Pure, deterministic checks for the checkout form. None of them raise for
malformed input: each returns a FieldCheck describing what is wrong, so the
security layer can collect every problem and show them together.

Also holds the input sanitizers applied while the customer types
(card grouping, MM/YY formatting, phone formatting, markup stripping).
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from email_validator import EmailNotValidError, validate_email as check_email_syntax


class CardBrand(str, Enum):
    VISA = "visa"
    MASTERCARD = "mastercard"
    AMEX = "amex"
    DISCOVER = "discover"


class ValidationCode(str, Enum):
    """Machine-readable reason attached to a failed check."""
    INVALID_LENGTH = "invalid_length"
    FAILED_LUHN_CHECK = "failed_luhn_check"
    UNSUPPORTED_BRAND = "unsupported_brand"
    INVALID_FORMAT = "invalid_format"
    INVALID_MONTH = "invalid_month"
    EXPIRED = "expired"
    INVALID_CVV_LENGTH = "invalid_cvv_length"
    INVALID_EMAIL = "invalid_email"
    INVALID_PHONE = "invalid_phone"


@dataclass(frozen=True)
class FieldCheck:
    """
    Outcome of a single field validation.

    Attributes:
        valid: Whether the value passed
        error: User-facing message when it did not
        code: Machine-readable reason when it did not
        card_type: Detected brand (card number checks only)
        masked: Masked card number (card number checks only)
    """
    valid: bool
    error: Optional[str] = None
    code: Optional[ValidationCode] = None
    card_type: Optional[CardBrand] = None
    masked: Optional[str] = None

    @classmethod
    def ok(cls, **extra) -> "FieldCheck":
        return cls(valid=True, **extra)

    @classmethod
    def fail(cls, code: ValidationCode, error: str) -> "FieldCheck":
        return cls(valid=False, error=error, code=code)


# Brand prefixes, checked in order
CARD_BRAND_PATTERNS = (
    (CardBrand.VISA, re.compile(r"^4")),
    (CardBrand.MASTERCARD, re.compile(r"^5[1-5]")),
    (CardBrand.AMEX, re.compile(r"^3[47]")),
    (CardBrand.DISCOVER, re.compile(r"^6(?:011|5)")),
)

CARD_MIN_DIGITS = 13
CARD_MAX_DIGITS = 19
PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 15
EMAIL_MAX_LENGTH = 254

_NON_DIGITS = re.compile(r"\D")
_EXPIRY_RE = re.compile(r"^(\d{2})/(\d{2})$")


def digits_only(value: Optional[str]) -> str:
    return _NON_DIGITS.sub("", value or "")


# =============================================================================
# CARD NUMBER
# =============================================================================

def luhn_checksum_valid(digits: str) -> bool:
    """
    Luhn mod-10 check.

    Every second digit from the right is doubled (minus 9 when the double
    exceeds 9); the number is valid when the total is divisible by 10.
    """
    if not digits.isdigit():
        return False

    checksum = 0
    for position, char in enumerate(reversed(digits)):
        digit = int(char)
        if position % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        checksum += digit

    return checksum % 10 == 0


def detect_card_brand(digits: str) -> Optional[CardBrand]:
    for brand, pattern in CARD_BRAND_PATTERNS:
        if pattern.match(digits):
            return brand
    return None


def mask_card_number(card_number: str) -> str:
    """
    Keep the first four and last four digits, star the rest.

    Separators are dropped first. Numbers shorter than eight digits are
    returned as bare digits. Not idempotent: masking an already masked
    value drops its stars along with the other separators.
    """
    digits = digits_only(card_number)
    if len(digits) < 8:
        return digits
    return digits[:4] + "*" * (len(digits) - 8) + digits[-4:]


def validate_card_number(raw: Optional[str]) -> FieldCheck:
    digits = digits_only(raw)

    if not CARD_MIN_DIGITS <= len(digits) <= CARD_MAX_DIGITS:
        return FieldCheck.fail(ValidationCode.INVALID_LENGTH, "Invalid card number length")

    if not luhn_checksum_valid(digits):
        return FieldCheck.fail(ValidationCode.FAILED_LUHN_CHECK, "Invalid card number")

    brand = detect_card_brand(digits)
    if brand is None:
        return FieldCheck.fail(ValidationCode.UNSUPPORTED_BRAND, "Unsupported card type")

    return FieldCheck.ok(card_type=brand, masked=mask_card_number(digits))


# =============================================================================
# EXPIRY & CVV
# =============================================================================

def validate_expiry(mm_yy: Optional[str], now: datetime) -> FieldCheck:
    """
    Validate an MM/YY expiry against the current month.

    A card stays valid through the whole of its expiry month.
    """
    match = _EXPIRY_RE.match((mm_yy or "").strip())
    if not match:
        return FieldCheck.fail(ValidationCode.INVALID_FORMAT, "Invalid date format (MM/YY)")

    month = int(match.group(1))
    year = 2000 + int(match.group(2))

    if not 1 <= month <= 12:
        return FieldCheck.fail(ValidationCode.INVALID_MONTH, "Invalid month")

    if (year, month) < (now.year, now.month):
        return FieldCheck.fail(ValidationCode.EXPIRED, "Card has expired")

    return FieldCheck.ok()


def validate_cvv(raw: Optional[str], card_type: Optional[CardBrand]) -> FieldCheck:
    digits = digits_only(raw)

    if card_type == CardBrand.AMEX:
        if len(digits) != 4:
            return FieldCheck.fail(
                ValidationCode.INVALID_CVV_LENGTH,
                "CVV must be 4 digits for American Express",
            )
    elif len(digits) != 3:
        return FieldCheck.fail(ValidationCode.INVALID_CVV_LENGTH, "CVV must be 3 digits")

    return FieldCheck.ok()


# =============================================================================
# CONTACT DETAILS
# =============================================================================

def validate_email(raw: Optional[str]) -> FieldCheck:
    email = (raw or "").strip()
    if not email or len(email) > EMAIL_MAX_LENGTH:
        return FieldCheck.fail(ValidationCode.INVALID_EMAIL, "Invalid email address")

    try:
        check_email_syntax(email, check_deliverability=False)
    except EmailNotValidError:
        return FieldCheck.fail(ValidationCode.INVALID_EMAIL, "Invalid email address")

    return FieldCheck.ok()


def validate_phone(raw: Optional[str]) -> FieldCheck:
    digits = digits_only(raw)
    if not PHONE_MIN_DIGITS <= len(digits) <= PHONE_MAX_DIGITS:
        return FieldCheck.fail(ValidationCode.INVALID_PHONE, "Invalid phone number")
    return FieldCheck.ok()


# =============================================================================
# INPUT SANITIZING
# =============================================================================

_MARKUP_CHARS = re.compile(r"[<>]")
_SCRIPT_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+=", re.IGNORECASE)


def sanitize_text(value: Optional[str]) -> str:
    """Strip markup characters, script URLs and inline event handlers."""
    if not value:
        return ""
    cleaned = _MARKUP_CHARS.sub("", value)
    cleaned = _SCRIPT_PROTOCOL.sub("", cleaned)
    cleaned = _EVENT_HANDLER.sub("", cleaned)
    return cleaned.strip()


def format_card_number(value: Optional[str]) -> str:
    """Digits grouped in fours: 4242 4242 4242 4242."""
    digits = digits_only(value)[:CARD_MAX_DIGITS]
    return " ".join(digits[i:i + 4] for i in range(0, len(digits), 4))


def format_expiry(value: Optional[str]) -> str:
    """Digits with a slash after the month: 1230 -> 12/30."""
    digits = digits_only(value)[:4]
    if len(digits) > 2:
        return f"{digits[:2]}/{digits[2:]}"
    return digits


def format_phone(value: Optional[str]) -> str:
    """(555) 123-4567 for ten-digit numbers, bare digits otherwise."""
    digits = digits_only(value)
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return digits


def sanitize_field(field: str, value: Optional[str]) -> str:
    """
    Normalize a form value as it is entered.

    Args:
        field: Form field name (snake_case or camelCase)
        value: Raw value

    Returns:
        Sanitized value safe to keep in the checkout state
    """
    key = field.replace("_", "").lower()

    if key == "cardnumber":
        return format_card_number(value)
    if key == "expirydate":
        return format_expiry(value)
    if key == "cvv":
        return digits_only(value)[:4]
    if key == "phone":
        return format_phone(value)
    if key == "zipcode":
        return re.sub(r"[^\d-]", "", value or "")

    return sanitize_text(value)
