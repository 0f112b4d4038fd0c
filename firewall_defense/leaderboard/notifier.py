"""Top-N change detection and LEADERBOARD_UPDATE broadcasts."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from firewall_defense.game import protocol
from firewall_defense.game.players import PlayerDirectory
from firewall_defense.leaderboard.flush import FlushState
from firewall_defense.leaderboard.ledger import RankEntry

logger = logging.getLogger(__name__)


def top_changed(before: Sequence[RankEntry], after: Sequence[RankEntry], flushed: bool = False) -> bool:
    """Positional (id, score) comparison.

    A new score for an unchanged order still counts as a change, including
    the sole entrant raising their own score.
    """
    if flushed:
        return True
    if len(before) != len(after):
        return True
    return any((b.id, b.score) != (a.id, a.score) for b, a in zip(before, after))


class RankChangeNotifier:
    def __init__(self, players: PlayerDirectory, broadcaster, channel: str):
        self.players = players
        self.broadcaster = broadcaster
        self.channel = channel

    async def enrich(self, entries: Sequence[RankEntry]) -> list[dict[str, Any]]:
        out = []
        for e in entries:
            out.append({"uuid": e.id, **(await self.players.display(e.id)), "score": e.score})
        return out

    async def leaderboard_message(
        self, entries: Sequence[RankEntry], state: FlushState, flushed: bool = False
    ) -> dict[str, Any]:
        msg = protocol.message(
            protocol.LEADERBOARD_UPDATE,
            leaderboard=await self.enrich(entries),
            **state.to_dict(),
        )
        if flushed:
            msg["flushed"] = True
        return msg

    async def send(self, payload: dict[str, Any]) -> bool:
        """Best-effort publish; failures are logged, never raised."""
        try:
            await self.broadcaster.publish(self.channel, payload)
        except Exception:
            logger.exception("broadcast of %s failed", payload.get("type"))
            return False
        return True

    async def notify(self, entries: Sequence[RankEntry], state: FlushState, flushed: bool = False) -> bool:
        try:
            msg = await self.leaderboard_message(entries, state, flushed=flushed)
        except Exception:
            logger.exception("could not assemble leaderboard update")
            return False
        return await self.send(msg)
