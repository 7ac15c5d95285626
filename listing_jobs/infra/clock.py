"""
Clock capability.

Everything that reads the time or waits goes through a Clock so tests can
substitute virtual time.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone


class Clock:
    """Wall clock backed by the running event loop."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def elapsed_ms(self, started: float) -> int:
        """Milliseconds since a ``monotonic()`` reading."""
        return int(round((self.monotonic() - started) * 1000))
