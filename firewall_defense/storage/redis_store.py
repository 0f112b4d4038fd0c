"""Redis persistence for players, the leaderboard and shared settings."""

from __future__ import annotations

from contextlib import asynccontextmanager

import redis.asyncio as redis
from redis.exceptions import RedisError

from firewall_defense.errors import StorageUnavailable
from firewall_defense.storage import keys

# KEYS: player hash, leaderboard. ARGV: delta, player id, score field.
# Returns nil for an unknown player so no phantom entry is created.
_APPLY_DELTA = """
if redis.call('EXISTS', KEYS[1]) == 0 then
  return nil
end
local total = redis.call('HINCRBY', KEYS[1], ARGV[3], ARGV[1])
redis.call('ZADD', KEYS[2], total, ARGV[2])
return total
"""

# KEYS: player hash, leaderboard. ARGV: score field, player id.
# Unranks even when the hash is gone; never recreates a deleted player.
_FLUSH_PLAYER = """
redis.call('ZREM', KEYS[2], ARGV[2])
if redis.call('EXISTS', KEYS[1]) == 0 then
  return 0
end
redis.call('HSET', KEYS[1], ARGV[1], '0')
return 1
"""


@asynccontextmanager
async def _guard(op: str):
    try:
        yield
    except RedisError as e:
        raise StorageUnavailable(f"{op} failed: {e}") from e


class RedisStore:
    def __init__(self, url: str, client: redis.Redis | None = None):
        self.url = url
        self.client = client or redis.from_url(url, decode_responses=True)
        self._apply_delta = self.client.register_script(_APPLY_DELTA)
        self._flush_player = self.client.register_script(_FLUSH_PLAYER)

    async def ping(self) -> bool:
        async with _guard("ping"):
            return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.aclose()

    # Players

    async def get_player(self, player_id: str) -> dict[str, str] | None:
        async with _guard("get_player"):
            rec = await self.client.hgetall(keys.player_key(player_id))
        return rec or None

    async def player_exists(self, player_id: str) -> bool:
        async with _guard("player_exists"):
            return bool(await self.client.exists(keys.player_key(player_id)))

    async def put_player(self, player_id: str, fields: dict) -> None:
        mapping = {k: str(v) for k, v in fields.items()}
        async with _guard("put_player"):
            await self.client.hset(keys.player_key(player_id), mapping=mapping)

    async def delete_player(self, player_id: str) -> bool:
        async with _guard("delete_player"):
            return bool(await self.client.delete(keys.player_key(player_id)))

    # Scores

    async def apply_score_delta(self, player_id: str, delta: int) -> int | None:
        async with _guard("apply_score_delta"):
            total = await self._apply_delta(
                keys=[keys.player_key(player_id), keys.LEADERBOARD],
                args=[int(delta), player_id, keys.SCORE_FIELD],
            )
        return None if total is None else int(total)

    async def flush_player(self, player_id: str) -> bool:
        async with _guard("flush_player"):
            done = await self._flush_player(
                keys=[keys.player_key(player_id), keys.LEADERBOARD],
                args=[keys.SCORE_FIELD, player_id],
            )
        return bool(done)

    # Ranking

    async def rank_range(self, start: int = 0, stop: int = -1) -> list[tuple[str, float]]:
        async with _guard("rank_range"):
            rows = await self.client.zrange(keys.LEADERBOARD, start, stop, desc=True, withscores=True)
        return [(member, float(score)) for member, score in rows]

    async def rank_remove(self, player_id: str) -> None:
        async with _guard("rank_remove"):
            await self.client.zrem(keys.LEADERBOARD, player_id)

    # Scalars

    async def get_value(self, key: str) -> str | None:
        async with _guard("get_value"):
            return await self.client.get(key)

    async def set_value(self, key: str, value) -> None:
        async with _guard("set_value"):
            await self.client.set(key, str(value))
