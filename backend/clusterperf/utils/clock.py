"""
Wall-clock access for services that need "now", "today", or to wait.

Services take a clock argument so expiry, day counting, and pacing can be
driven from tests without sleeping.
"""

import time
from datetime import date, datetime, timezone


class SystemClock:
    """Real clock backed by the system time (UTC)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


system_clock = SystemClock()
