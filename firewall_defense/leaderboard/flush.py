"""Epoch policy: when the leaderboard is due for a reset.

Evaluated lazily on each score submission. Nothing here runs on a timer, so
an overdue flush waits for the next submission (or an admin flush).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from firewall_defense.errors import InvalidInterval
from firewall_defense.game.protocol import strict_int
from firewall_defense.storage import keys

logger = logging.getLogger(__name__)

MS_PER_MINUTE = 60_000


@dataclass(frozen=True)
class FlushState:
    last_flush: int | None
    interval_minutes: int

    @property
    def interval_ms(self) -> int:
        return self.interval_minutes * MS_PER_MINUTE

    @property
    def next_flush_at(self) -> int | None:
        if self.last_flush is None:
            return None
        return self.last_flush + self.interval_ms

    def is_due(self, now_ms: int) -> bool:
        if self.last_flush is None:
            return True
        return now_ms - self.last_flush >= self.interval_ms

    def to_dict(self) -> dict[str, Any]:
        return {"lastFlush": self.last_flush, "flushIntervalMinutes": self.interval_minutes}


class FlushScheduler:
    def __init__(self, store, default_interval_minutes: int = 60):
        self.store = store
        self.default_interval_minutes = default_interval_minutes

    async def get_state(self) -> FlushState:
        # Always read through; several instances share these values.
        last_raw = await self.store.get_value(keys.LAST_FLUSH)
        interval_raw = await self.store.get_value(keys.FLUSH_INTERVAL)

        last = None
        if last_raw is not None:
            try:
                last = int(last_raw)
            except ValueError:
                logger.warning("ignoring unparsable %s=%r", keys.LAST_FLUSH, last_raw)

        interval = self.default_interval_minutes
        if interval_raw is not None:
            try:
                interval = int(interval_raw)
            except ValueError:
                logger.warning("ignoring unparsable %s=%r", keys.FLUSH_INTERVAL, interval_raw)
            if interval < 1:
                interval = self.default_interval_minutes

        return FlushState(last_flush=last, interval_minutes=interval)

    async def should_flush(self, now_ms: int, state: FlushState | None = None) -> bool:
        if state is None:
            state = await self.get_state()
        return state.is_due(now_ms)

    async def set_interval(self, minutes) -> FlushState:
        m = strict_int(minutes)
        if m is None or m < 1:
            raise InvalidInterval("Invalid flushIntervalMinutes (must be at least 1 minute)")
        await self.store.set_value(keys.FLUSH_INTERVAL, m)
        logger.info("flush interval set to %d minutes", m)
        return await self.get_state()
