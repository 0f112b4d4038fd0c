"""Player records: enrollment, profile edits, display metadata."""

from __future__ import annotations

import logging
import re
from typing import Any, Callable

from firewall_defense.clock import now_ms
from firewall_defense.errors import InvalidInput, PlayerNotFound
from firewall_defense.game.config import ProfileLimits
from firewall_defense.storage import keys

logger = logging.getLogger(__name__)

DEFAULT_TAGLINE = "Your tagline here!"
DEFAULT_COLOR = "#FFFFFF"

_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


def placeholder_tagline(player_id: str) -> str:
    return f"Defender-{player_id[:4]}"


def _player_number(player_id: str) -> int:
    tail = player_id.split("-")[-1] or player_id[:4]
    for candidate in (tail, tail[:4]):
        try:
            n = int(candidate, 16)
        except ValueError:
            continue
        if n:
            return n
    return 1


def display_fields(player_id: str, rec: dict[str, str] | None) -> dict[str, str]:
    rec = rec or {}
    return {
        "productName": rec.get("productName") or "",
        "tagline": rec.get("tagline") or placeholder_tagline(player_id),
        "color": rec.get("color") or DEFAULT_COLOR,
    }


class PlayerDirectory:
    def __init__(self, store, limits: ProfileLimits | None = None, clock: Callable[[], int] | None = None):
        self.store = store
        self.limits = limits or ProfileLimits()
        self.clock = clock or now_ms

    async def enroll(self, local_uuid: str) -> dict[str, Any]:
        if not local_uuid:
            raise InvalidInput("local_uuid is required")
        now = self.clock()
        rec = await self.store.get_player(local_uuid)
        if rec is None:
            rec = {
                "uuid": local_uuid,
                "productName": f"Generic Co. #{_player_number(local_uuid)}",
                "tagline": DEFAULT_TAGLINE,
                "color": DEFAULT_COLOR,
                keys.SCORE_FIELD: 0,
                "lastLogin": now,
            }
            await self.store.put_player(local_uuid, rec)
            logger.info("enrolled player %s", local_uuid)
        else:
            await self.store.put_player(local_uuid, {"lastLogin": now})
        return await self.get_profile(local_uuid)

    async def exists(self, player_id: str) -> bool:
        return await self.store.player_exists(player_id)

    async def get_profile(self, player_id: str) -> dict[str, Any]:
        rec = await self.store.get_player(player_id)
        if rec is None:
            raise PlayerNotFound(player_id)
        out: dict[str, Any] = dict(rec)
        out[keys.SCORE_FIELD] = _as_int(rec.get(keys.SCORE_FIELD))
        if "lastLogin" in rec:
            out["lastLogin"] = _as_int(rec.get("lastLogin"))
        return out

    async def display(self, player_id: str) -> dict[str, str]:
        return display_fields(player_id, await self.store.get_player(player_id))

    async def update_profile(self, player_id: str, product_name: str | None, tagline: str, color: str) -> dict[str, Any]:
        lim = self.limits
        update: dict[str, str] = {}

        name = (product_name or "").strip()
        if name and not (lim.name_min <= len(name) <= lim.name_max):
            raise InvalidInput(f"Corporation name must be {lim.name_min}-{lim.name_max} characters")
        update["productName"] = name

        tag = (tagline or "").strip()
        if not (lim.tagline_min <= len(tag) <= lim.tagline_max):
            raise InvalidInput(f"Tagline must be {lim.tagline_min}-{lim.tagline_max} characters")
        update["tagline"] = tag

        if not isinstance(color, str) or not _COLOR_RE.match(color):
            raise InvalidInput("Invalid color format. Must be hex format (e.g., #FF0000)")
        update["color"] = color.upper()

        if not await self.store.player_exists(player_id):
            raise PlayerNotFound(player_id)
        await self.store.put_player(player_id, update)
        return await self.get_profile(player_id)

    async def delete(self, player_id: str) -> None:
        if not await self.store.delete_player(player_id):
            raise PlayerNotFound(player_id)
        logger.info("deleted player %s", player_id)


def _as_int(v: str | None) -> int:
    try:
        return int(v or 0)
    except ValueError:
        return 0
