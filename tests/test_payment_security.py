"""Tests for aggregate payment validation, masking and obscuring."""
import pytest

from kitchen_checkout.core.exceptions import (
    ConfigurationError,
    InputValidationError,
    RateLimitError,
    SessionExpiredError,
)
from kitchen_checkout.schemas import PaymentInfo, PaymentMethod
from kitchen_checkout.services.payment_security import FailureKind, PaymentSecurity, mask_email

from conftest import make_request


class TestValidatePaymentData:
    def test_valid_request_is_cleared(self, security, payment_request):
        report = security.validate_payment_data(payment_request)
        assert report.valid
        assert report.errors == []
        assert report.to_dict() == {"valid": True, "errors": []}
        assert security.is_cleared(payment_request)

    def test_errors_are_accumulated(self, security, customer, cart):
        payment = PaymentInfo(
            method=PaymentMethod.CREDIT,
            card_number="4242424242424241",
            expiry_date="01/20",
            cvv="12",
        )
        bad_customer = customer.model_copy(update={"email": "nope", "phone": "123"})
        report = security.validate_payment_data(make_request(bad_customer, payment, cart.lines))

        assert not report.valid
        assert report.kind == FailureKind.INVALID_INPUT
        assert set(report.errors) == {
            "Invalid card number",
            "Card has expired",
            "CVV must be 3 digits",
            "Invalid email address",
            "Invalid phone number",
        }
        assert isinstance(report.to_exception(), InputValidationError)

    def test_invalid_request_not_cleared(self, security, customer, cart):
        payment = PaymentInfo(card_number="4242424242424241", expiry_date="12/30", cvv="123")
        request = make_request(customer, payment, cart.lines)
        assert not security.validate_payment_data(request).valid
        assert not security.is_cleared(request)

    @pytest.mark.parametrize("method", [PaymentMethod.CASH, PaymentMethod.PAYPAL])
    def test_card_fields_ignored_for_other_methods(self, security, customer, cart, method):
        request = make_request(customer, PaymentInfo(method=method), cart.lines)
        assert security.validate_payment_data(request).valid

    def test_every_validation_counts_as_attempt(self, security, payment_request, rate_limiter):
        security.validate_payment_data(payment_request)
        security.validate_payment_data(payment_request)
        assert rate_limiter.counter.count == 2

    def test_lockout_short_circuits(self, security, customer, cart, rate_limiter):
        bad = make_request(customer.model_copy(update={"email": "nope"}), PaymentInfo(method=PaymentMethod.CASH), cart.lines)
        for _ in range(3):
            security.validate_payment_data(bad)

        report = security.validate_payment_data(bad)
        assert report.kind == FailureKind.RATE_LIMITED
        assert report.errors == ["Too many attempts. Please wait 15 minutes."]
        assert rate_limiter.counter.count == 3

        error = report.to_exception()
        assert isinstance(error, RateLimitError)
        assert error.remaining_minutes == 15

    def test_lockout_lifts_after_window(self, security, payment_request, clock, rate_limiter):
        for _ in range(3):
            rate_limiter.record_attempt()
        clock.advance(minutes=15)
        security.start_session()
        assert security.validate_payment_data(payment_request).valid
        assert rate_limiter.counter.count == 1

    def test_expired_session(self, security, payment_request, clock, rate_limiter):
        clock.advance(minutes=31)
        report = security.validate_payment_data(payment_request)
        assert report.kind == FailureKind.SESSION_EXPIRED
        assert report.errors == ["Session expired. Please refresh the page."]
        assert isinstance(report.to_exception(), SessionExpiredError)
        assert rate_limiter.counter.count == 0

    def test_restarted_session_is_valid(self, security, payment_request, clock):
        clock.advance(minutes=31)
        security.start_session()
        assert security.is_session_valid()
        assert security.validate_payment_data(payment_request).valid


class TestClearances:
    def test_consumed_once(self, security, payment_request):
        security.validate_payment_data(payment_request)
        assert security.consume_clearance(payment_request)
        assert not security.consume_clearance(payment_request)

    def test_changed_payload_not_cleared(self, security, payment_request):
        security.validate_payment_data(payment_request)
        tampered = payment_request.model_copy(update={"total": payment_request.total - 1})
        assert not security.is_cleared(tampered)

    def test_cleanup_drops_clearances_and_attempts(self, security, payment_request, rate_limiter):
        security.validate_payment_data(payment_request)
        security.cleanup()
        assert not security.is_cleared(payment_request)
        assert rate_limiter.counter.count == 0


class TestMasking:
    def test_mask_email(self):
        assert mask_email("ada@kitchenmail.com") == "ad*@kitchenmail.com"
        assert mask_email("jo@kitchenmail.com") == "jo@kitchenmail.com"

    def test_mask_payment_request(self, security, payment_request):
        masked = security.mask_payment_request(payment_request)
        assert masked["payment"]["cardNumber"] == "4242********4242"
        assert masked["payment"]["cvv"] == "***"
        assert masked["customer"]["email"] == "ad*@kitchenmail.com"
        assert masked["deliveryFee"] == 3.99

    def test_masking_leaves_request_untouched(self, security, payment_request):
        security.mask_payment_request(payment_request)
        assert payment_request.payment.card_number == "4242 4242 4242 4242"
        assert payment_request.payment.cvv == "123"
        assert payment_request.customer.email == "ada@kitchenmail.com"

    def test_non_credit_has_no_card_data(self, security, customer, cart):
        request = make_request(customer, PaymentInfo(method=PaymentMethod.CASH, card_number="4242"), cart.lines)
        masked = security.mask_payment_request(request)
        assert masked["payment"]["cardNumber"] == ""
        assert masked["payment"]["cvv"] == ""

    def test_card_details_hidden_from_repr(self, credit_payment):
        assert "4242" not in repr(credit_payment)


class TestObscuring:
    def test_reveal_returns_original(self, security):
        data = {"cardNumber": "4242424242424242", "amount": 30.99}
        token = security.obscure(data)
        assert "4242424242424242" not in token
        assert security.reveal(token) == data

    def test_tokens_differ_per_call(self, security):
        assert security.obscure({"a": 1}) != security.obscure({"a": 1})

    def test_other_passphrase_cannot_reveal(self, security, rate_limiter):
        token = security.obscure({"a": 1})
        other = PaymentSecurity(rate_limiter, passphrase="different")
        with pytest.raises(ValueError):
            other.reveal(token)

    def test_garbage_token(self, security):
        with pytest.raises(ValueError):
            security.reveal("not-a-token")

    def test_empty_passphrase_rejected(self, rate_limiter):
        with pytest.raises(ConfigurationError):
            PaymentSecurity(rate_limiter, passphrase="")

    def test_payment_token_is_masked_and_unique(self, security, payment_request):
        first = security.generate_payment_token(payment_request)
        second = security.generate_payment_token(payment_request)
        assert first != second

        revealed = security.reveal(first)
        assert revealed["payload"]["payment"]["cardNumber"] == "4242********4242"
        assert "4242 4242 4242 4242" not in str(revealed)
