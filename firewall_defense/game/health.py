"""Shared firewall health, moved by every completed match."""

from __future__ import annotations

from firewall_defense.game import protocol
from firewall_defense.storage import keys


def clamp(v: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, v))


class FirewallHealth:
    def __init__(self, store, default_max: int = 100):
        self.store = store
        self.default_max = default_max

    async def _read_int(self, key: str, default: int) -> int:
        raw = await self.store.get_value(key)
        try:
            return int(raw) if raw is not None else default
        except ValueError:
            return default

    async def max_health(self) -> int:
        return await self._read_int(keys.MAX_HEALTH, self.default_max)

    async def current(self) -> int:
        return await self._read_int(keys.GLOBAL_HEALTH, await self.max_health())

    async def values(self) -> dict[str, int]:
        return {"health": await self.current(), "maxHealth": await self.max_health()}

    async def apply_match(self, score: int) -> int:
        """Penalties drain the firewall, points repair it; stays within [0, max]."""
        hi = await self.max_health()
        health = clamp(await self.current() + score, 0, hi)
        await self.store.set_value(keys.GLOBAL_HEALTH, health)
        return health

    async def set_values(self, health=None, max_health=None) -> list[int]:
        """Admin override. Returns each health value that changed, in order.

        A lowered max caps the current health to it.
        """
        changed = []
        if health is not None:
            value = clamp(health, 0, await self.max_health())
            await self.store.set_value(keys.GLOBAL_HEALTH, value)
            changed.append(value)
        if max_health is not None:
            await self.store.set_value(keys.MAX_HEALTH, max_health)
            if await self.current() > max_health:
                await self.store.set_value(keys.GLOBAL_HEALTH, max_health)
                changed.append(max_health)
        return changed

    @staticmethod
    def update_message(health: int) -> dict:
        return protocol.message(protocol.HEALTH_UPDATE, health=health)
