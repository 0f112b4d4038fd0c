"""Key names shared by every store backend."""

from __future__ import annotations

LEADERBOARD = "leaderboard"
LAST_FLUSH = "leaderboard_last_flush"
FLUSH_INTERVAL = "leaderboard_flush_interval_minutes"
GLOBAL_HEALTH = "global_health"
MAX_HEALTH = "global_max_health"
MOTD = "global_motd"

SCORE_FIELD = "totalScore"


def player_key(player_id: str) -> str:
    return f"player:{player_id}"
