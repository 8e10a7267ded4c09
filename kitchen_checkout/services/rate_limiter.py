"""
Payment Attempt Rate Limiter

Fixed-window attempt counter guarding payment validation. The counter
(count + time of the last attempt) is persisted so it survives restarts,
and is owned exclusively by this class.

Known imprecision: this is not a sliding window. The counter only resets
when a lockout check runs after the window has elapsed, and that check both
reports "not limited" and zeroes the counter, so attempts right at the window
boundary can start a fresh window early.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from kitchen_checkout.core.clock import Clock, SystemClock
from kitchen_checkout.services.storage import JsonDocument

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockoutStatus:
    limited: bool
    remaining_minutes: Optional[int] = None


@dataclass(frozen=True)
class AttemptCounter:
    count: int = 0
    last_attempt: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "lastAttempt": self.last_attempt.isoformat() if self.last_attempt else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AttemptCounter":
        last = data.get("lastAttempt")
        return cls(
            count=max(int(data.get("count", 0)), 0),
            last_attempt=datetime.fromisoformat(last) if last else None,
        )


class RateLimiter:
    """
    Lock payments out after too many validation attempts.

    Attributes:
        max_attempts: Attempts allowed before the lockout applies
        lockout: How long the lockout lasts after the last attempt

    Example:
        >>> limiter = RateLimiter(Path("data/payment_attempts.json"))
        >>> limiter.record_attempt()
        >>> limiter.check_lockout().limited
        False
    """

    def __init__(
        self,
        path: Path,
        max_attempts: int = 3,
        lockout: timedelta = timedelta(minutes=15),
        clock: Optional[Clock] = None,
        lock_timeout: float = 30,
    ):
        self.max_attempts = max_attempts
        self.lockout = lockout
        self.clock = clock or SystemClock()
        self._document = JsonDocument(path, default=dict, lock_timeout=lock_timeout)

    @property
    def counter(self) -> AttemptCounter:
        return AttemptCounter.from_dict(self._document.read())

    def record_attempt(self, now: Optional[datetime] = None) -> AttemptCounter:
        """Count one validation attempt, successful or not."""
        now = now or self.clock.now()
        with self._document.transaction() as data:
            current = AttemptCounter.from_dict(data)
            updated = AttemptCounter(count=current.count + 1, last_attempt=now)
            data.clear()
            data.update(updated.to_dict())

        logger.debug(f"Payment attempt recorded ({updated.count}/{self.max_attempts})")
        return updated

    def check_lockout(self, now: Optional[datetime] = None) -> LockoutStatus:
        """
        Report whether attempts are currently blocked.

        Resets the counter when the threshold was reached but the lockout
        window has since elapsed.
        """
        now = now or self.clock.now()
        current = self.counter

        if current.count < self.max_attempts:
            return LockoutStatus(limited=False)

        elapsed = now - current.last_attempt if current.last_attempt else self.lockout
        if elapsed < self.lockout:
            remaining = (self.lockout - elapsed).total_seconds() / 60
            minutes = max(math.ceil(remaining), 1)
            logger.warning(f"Payment attempts locked out for {minutes} more minute(s)")
            return LockoutStatus(limited=True, remaining_minutes=minutes)

        logger.info("Lockout window elapsed, resetting payment attempts")
        self.reset()
        return LockoutStatus(limited=False)

    def reset(self) -> None:
        self._document.write(AttemptCounter().to_dict())
