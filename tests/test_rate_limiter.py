"""Tests for the persisted payment attempt limiter."""
import json
from datetime import timedelta

from kitchen_checkout.services.rate_limiter import AttemptCounter, RateLimiter


def test_below_threshold_not_limited(rate_limiter):
    rate_limiter.record_attempt()
    rate_limiter.record_attempt()
    assert not rate_limiter.check_lockout().limited


def test_threshold_reached_locks_out_for_full_window(rate_limiter):
    for _ in range(3):
        rate_limiter.record_attempt()
    status = rate_limiter.check_lockout()
    assert status.limited
    assert status.remaining_minutes == 15


def test_remaining_minutes_count_down(rate_limiter, clock):
    for _ in range(3):
        rate_limiter.record_attempt()
    clock.advance(minutes=10)
    assert rate_limiter.check_lockout().remaining_minutes == 5


def test_remaining_minutes_rounds_up(rate_limiter, clock):
    for _ in range(3):
        rate_limiter.record_attempt()
    clock.advance(minutes=14, seconds=30)
    assert rate_limiter.check_lockout().remaining_minutes == 1


def test_window_elapsed_resets_counter(rate_limiter, clock):
    for _ in range(3):
        rate_limiter.record_attempt()
    clock.advance(minutes=15)
    assert not rate_limiter.check_lockout().limited
    assert rate_limiter.counter.count == 0


def test_counter_survives_new_instance(tmp_path, clock):
    path = tmp_path / "attempts.json"
    first = RateLimiter(path, clock=clock)
    for _ in range(3):
        first.record_attempt()

    second = RateLimiter(path, clock=clock)
    assert second.counter.count == 3
    assert second.check_lockout().limited


def test_persisted_shape(rate_limiter, clock, tmp_path):
    rate_limiter.record_attempt()
    data = json.loads((tmp_path / "payment_attempts.json").read_text())
    assert data == {"count": 1, "lastAttempt": clock.now().isoformat()}


def test_reset(rate_limiter):
    for _ in range(3):
        rate_limiter.record_attempt()
    rate_limiter.reset()
    assert rate_limiter.counter == AttemptCounter()
    assert not rate_limiter.check_lockout().limited


def test_custom_threshold_and_window(tmp_path, clock):
    limiter = RateLimiter(
        tmp_path / "attempts.json",
        max_attempts=1,
        lockout=timedelta(minutes=2),
        clock=clock,
    )
    limiter.record_attempt()
    assert limiter.check_lockout().remaining_minutes == 2
