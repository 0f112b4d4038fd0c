"""Leaderboard lifecycle: lazy flush, score submission, change-gated broadcast.

Every call is request-scoped. There are no in-process locks: the per-player
increment is atomic in the store, and two submissions racing across a flush
boundary may both flush (harmless on an empty ranking) and both broadcast.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from firewall_defense.clock import now_ms
from firewall_defense.errors import InvalidInput, PlayerNotFound
from firewall_defense.game import protocol
from firewall_defense.game.players import PlayerDirectory
from firewall_defense.leaderboard.flush import FlushScheduler, FlushState
from firewall_defense.leaderboard.ledger import ScoreLedger
from firewall_defense.leaderboard.notifier import RankChangeNotifier, top_changed

logger = logging.getLogger(__name__)


@dataclass
class SubmitResult:
    total_score: int
    flushed: bool = False
    broadcast: bool = False


class LeaderboardService:
    def __init__(
        self,
        ledger: ScoreLedger,
        scheduler: FlushScheduler,
        notifier: RankChangeNotifier,
        players: PlayerDirectory,
        top_n: int = 3,
        clock: Callable[[], int] | None = None,
    ):
        self.ledger = ledger
        self.scheduler = scheduler
        self.notifier = notifier
        self.players = players
        self.top_n = top_n
        self.clock = clock or now_ms

    async def submit_score(self, player_id: str, delta: int) -> SubmitResult:
        if not player_id:
            raise InvalidInput("player id is required")
        delta = protocol.strict_int(delta)
        if delta is None:
            raise InvalidInput("score delta must be an integer")
        if not await self.players.exists(player_id):
            raise PlayerNotFound(player_id)

        now = self.clock()
        state = await self.scheduler.get_state()
        flushed = False
        if await self.scheduler.should_flush(now, state):
            # Must precede the increment, or the new score would be wiped.
            await self.ledger.flush_all(now)
            flushed = True

        before = [] if flushed else await self.ledger.top_k(self.top_n)
        total = await self.ledger.submit(player_id, delta)
        result = SubmitResult(total_score=total, flushed=flushed)

        # The score is committed; everything below is best-effort.
        try:
            after = await self.ledger.top_k(self.top_n)
            if not top_changed(before, after, flushed=flushed):
                return result
            state = await self.scheduler.get_state()
        except Exception:
            logger.exception("skipping leaderboard update after score for %s", player_id)
            return result
        result.broadcast = await self.notifier.notify(after, state, flushed=flushed)
        return result

    async def get_top_k(self, k: int | None = None) -> dict[str, Any]:
        entries = await self.ledger.top_k(self.top_n if k is None else k)
        state = await self.scheduler.get_state()
        return {"leaderboard": await self.notifier.enrich(entries), **state.to_dict()}

    async def get_full_leaderboard(self) -> list[dict[str, Any]]:
        return await self.notifier.enrich(await self.ledger.all_entries())

    async def force_flush(self) -> int:
        reset = await self.ledger.flush_all(self.clock())
        try:
            state = await self.scheduler.get_state()
        except Exception:
            logger.exception("flushed, but could not read flush state for broadcast")
            return reset
        await self.notifier.notify([], state, flushed=True)
        return reset

    async def get_flush_state(self) -> FlushState:
        return await self.scheduler.get_state()

    async def set_flush_interval(self, minutes) -> FlushState:
        return await self.scheduler.set_interval(minutes)

    async def remove_player(self, player_id: str) -> None:
        """Delete a player and their ranking entry, then tell live viewers."""
        await self.players.delete(player_id)
        await self.ledger.remove(player_id)
        await self.notifier.send(protocol.message(protocol.PLAYER_DELETED, uuid=player_id))
        try:
            entries = await self.ledger.top_k(self.top_n)
            state = await self.scheduler.get_state()
        except Exception:
            logger.exception("could not read leaderboard after deleting %s", player_id)
            return
        await self.notifier.notify(entries, state)

