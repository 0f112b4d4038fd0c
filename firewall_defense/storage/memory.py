"""In-memory store (single instance, tests)."""

from __future__ import annotations

from firewall_defense.storage import keys


class MemoryStore:
    def __init__(self):
        self._players: dict[str, dict[str, str]] = {}
        self._ranking: dict[str, float] = {}
        self._values: dict[str, str] = {}

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    # Players

    async def get_player(self, player_id: str) -> dict[str, str] | None:
        rec = self._players.get(player_id)
        return dict(rec) if rec else None

    async def player_exists(self, player_id: str) -> bool:
        return player_id in self._players

    async def put_player(self, player_id: str, fields: dict) -> None:
        cur = self._players.setdefault(player_id, {})
        cur.update({k: str(v) for k, v in fields.items()})

    async def delete_player(self, player_id: str) -> bool:
        return self._players.pop(player_id, None) is not None

    # Scores

    async def apply_score_delta(self, player_id: str, delta: int) -> int | None:
        rec = self._players.get(player_id)
        if rec is None:
            return None
        total = int(rec.get(keys.SCORE_FIELD) or 0) + int(delta)
        rec[keys.SCORE_FIELD] = str(total)
        self._ranking[player_id] = float(total)
        return total

    async def flush_player(self, player_id: str) -> bool:
        self._ranking.pop(player_id, None)
        rec = self._players.get(player_id)
        if rec is None:
            return False
        rec[keys.SCORE_FIELD] = "0"
        return True

    # Ranking

    async def rank_range(self, start: int = 0, stop: int = -1) -> list[tuple[str, float]]:
        # Same order as ZRANGE ... REV: score desc, then member desc.
        ordered = sorted(self._ranking.items(), key=lambda kv: (kv[1], kv[0]), reverse=True)
        n = len(ordered)
        if start < 0:
            start = max(n + start, 0)
        if stop < 0:
            stop = n + stop
        if stop < start:
            return []
        return ordered[start : stop + 1]

    async def rank_remove(self, player_id: str) -> None:
        self._ranking.pop(player_id, None)

    # Scalars

    async def get_value(self, key: str) -> str | None:
        return self._values.get(key)

    async def set_value(self, key: str, value) -> None:
        self._values[key] = str(value)
