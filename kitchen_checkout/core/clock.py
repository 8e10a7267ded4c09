"""
Clock abstraction.

Everything time-dependent in the checkout (expiry checks, lockout window,
session age, simulated gateway latency, order timestamps) reads time through
a Clock so tests can run the full pipeline without real delays.
"""

import asyncio
from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    """Source of the current time and of asynchronous pauses."""

    def now(self) -> datetime:
        ...

    async def sleep(self, seconds: float) -> None:
        ...


class SystemClock:
    """Wall clock in UTC backed by asyncio.sleep."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)
