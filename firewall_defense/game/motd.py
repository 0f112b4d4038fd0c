"""Message of the day: the last admin announcement, kept for late joiners."""

from __future__ import annotations

from firewall_defense.game import protocol
from firewall_defense.storage import keys

PREFIX = "MESSAGE FROM ADMIN: "


class Motd:
    def __init__(self, store):
        self.store = store

    async def get(self) -> str | None:
        return await self.store.get_value(keys.MOTD)

    async def set(self, text: str) -> dict:
        await self.store.set_value(keys.MOTD, text)
        return protocol.message(protocol.MOTD, message=PREFIX + text)
