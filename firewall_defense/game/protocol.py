"""Message schemas + validation.

Wire format (flat, discriminated by ``type``):
  {"type": "LEADERBOARD_UPDATE", "leaderboard": [...], ...}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from firewall_defense.errors import InvalidInput

LEADERBOARD_UPDATE = "LEADERBOARD_UPDATE"
HEALTH_UPDATE = "HEALTH_UPDATE"
PLAYER_DELETED = "PLAYER_DELETED"
MOTD = "MOTD"
CONNECTED = "CONNECTED"
PONG = "pong"


class ProtocolError(InvalidInput):
    pass


def message(msg_type: str, **data: Any) -> dict[str, Any]:
    return {"type": msg_type, **data}


def dumps(payload: dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"))


def loads(text: str) -> tuple[str, dict[str, Any]]:
    try:
        obj = json.loads(text)
    except ValueError as e:
        raise ProtocolError(f"invalid json: {e}")

    if not isinstance(obj, dict):
        raise ProtocolError("message must be object")
    t = obj.get("type")
    if not isinstance(t, str):
        raise ProtocolError("missing type")
    return t, obj


def strict_int(v: Any) -> int | None:
    """Integers only; bools and floats with a fraction are rejected."""
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float) and v.is_integer():
        return int(v)
    return None


def _opt_str(v: Any) -> str | None:
    return v if isinstance(v, str) else None


@dataclass
class Enroll:
    localUuid: str

    @classmethod
    def parse(cls, data: dict[str, Any]) -> "Enroll":
        v = data.get("local_uuid")
        if not isinstance(v, str) or not v.strip():
            raise ProtocolError("local_uuid is required")
        return cls(localUuid=v.strip())


@dataclass
class ProfileSetup:
    productName: str | None
    tagline: str
    color: str

    @classmethod
    def parse(cls, data: dict[str, Any]) -> "ProfileSetup":
        tagline = data.get("tagline")
        color = data.get("color")
        if not isinstance(tagline, str) or not tagline or not isinstance(color, str) or not color:
            raise ProtocolError("Tagline and color are required")
        return cls(productName=_opt_str(data.get("productName")), tagline=tagline, color=color)


@dataclass
class MatchComplete:
    score: int
    difficulty: str | None = None

    @classmethod
    def parse(cls, data: dict[str, Any]) -> "MatchComplete":
        score = strict_int(data.get("score"))
        if score is None:
            raise ProtocolError("score must be an integer")
        return cls(score=score, difficulty=_opt_str(data.get("difficulty")))


@dataclass
class FlushIntervalUpdate:
    minutes: Any

    @classmethod
    def parse(cls, data: dict[str, Any]) -> "FlushIntervalUpdate":
        # Range checks belong to the scheduler.
        return cls(minutes=data.get("flushIntervalMinutes"))


@dataclass
class HealthUpdate:
    health: int | None = None
    maxHealth: int | None = None

    @classmethod
    def parse(cls, data: dict[str, Any]) -> "HealthUpdate":
        health = data.get("health")
        max_health = data.get("maxHealth")
        if health is None and max_health is None:
            raise ProtocolError("health or maxHealth is required")
        if health is not None:
            health = strict_int(health)
            if health is None:
                raise ProtocolError("health must be an integer")
        if max_health is not None:
            max_health = strict_int(max_health)
            if max_health is None or max_health < 1:
                raise ProtocolError("Invalid maxHealth value")
        return cls(health=health, maxHealth=max_health)


@dataclass
class MotdBroadcast:
    message: str

    @classmethod
    def parse(cls, data: dict[str, Any]) -> "MotdBroadcast":
        v = data.get("message")
        if not isinstance(v, str) or not v.strip():
            raise ProtocolError("Message is required.")
        return cls(message=v)


VALID_C2S = {"ping"}
