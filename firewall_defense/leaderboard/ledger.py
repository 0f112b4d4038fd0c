"""Cumulative scores and the ranked leaderboard they feed."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from firewall_defense.errors import InvalidInput, PlayerNotFound, StorageUnavailable
from firewall_defense.game.protocol import strict_int
from firewall_defense.storage import keys

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankEntry:
    id: str
    score: int


class ScoreLedger:
    """Owns ``totalScore`` on player records and the ``leaderboard`` ranking.

    The ranking's score for a player always equals the player's persisted
    ``totalScore``; both are written by one atomic store call.
    """

    def __init__(self, store):
        self.store = store

    async def submit(self, player_id: str, delta: int) -> int:
        if not player_id:
            raise InvalidInput("player id is required")
        d = strict_int(delta)
        if d is None:
            raise InvalidInput("score delta must be an integer")
        total = await self.store.apply_score_delta(player_id, d)
        if total is None:
            raise PlayerNotFound(player_id)
        return total

    async def flush_all(self, now_ms: int) -> int:
        """Reset every ranked player to zero, empty the ranking, stamp the flush.

        Each player is zeroed and unranked in one store call, so a submission
        landing mid-flush either precedes the reset or survives it with its
        ranking and ``totalScore`` in step. Per-player resets are best-effort;
        a player whose reset failed is still unranked.
        """
        ranked = await self.store.rank_range(0, -1)
        failed = []
        for player_id, _ in ranked:
            try:
                await self.store.flush_player(player_id)
            except StorageUnavailable:
                logger.warning("flush: could not reset score for %s", player_id, exc_info=True)
                failed.append(player_id)
        for player_id in failed:
            await self.store.rank_remove(player_id)
        await self.store.set_value(keys.LAST_FLUSH, int(now_ms))
        logger.info("leaderboard flushed, reset %d player scores", len(ranked))
        return len(ranked)

    async def top_k(self, k: int) -> list[RankEntry]:
        if k <= 0:
            return []
        rows = await self.store.rank_range(0, k - 1)
        return [RankEntry(id=pid, score=int(score)) for pid, score in rows]

    async def all_entries(self) -> list[RankEntry]:
        rows = await self.store.rank_range(0, -1)
        return [RankEntry(id=pid, score=int(score)) for pid, score in rows]

    async def remove(self, player_id: str) -> None:
        await self.store.rank_remove(player_id)
