"""Server settings, limits and defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ProfileLimits:
    name_min: int = 1
    name_max: int = 64
    tagline_min: int = 1
    tagline_max: int = 128


@dataclass
class ServerConfig:
    server_version: str = "0.1.0"

    # Network
    host: str = "0.0.0.0"
    port: int = 3000
    cors_allow_all: bool = True
    cors_allowed_origins: list[str] = field(default_factory=list)

    # Persistence
    store: str = "redis"  # redis | memory
    redis_url: str = "redis://localhost:6379"
    updates_channel: str = "global_updates"

    # Auth
    jwt_secret: str = "change-me"
    token_ttl_sec: int = 3600
    admin_api_key: str = "change-me-admin"

    # Leaderboard
    default_flush_interval_minutes: int = 60
    leaderboard_size: int = 3

    # Firewall
    max_health: int = 100

    profile: ProfileLimits = field(default_factory=ProfileLimits)

    log_level: str = "INFO"

    @staticmethod
    def _parse_bool(v: str | None, default: bool) -> bool:
        if v is None:
            return default
        return v.strip().lower() in ("1", "true", "yes", "on")

    @staticmethod
    def _parse_int(v: str | None, default: int) -> int:
        if v is None:
            return default
        try:
            return int(v)
        except ValueError:
            return default

    @classmethod
    def from_env(cls) -> "ServerConfig":
        cfg = cls()
        env = os.environ
        cfg.host = env.get("FWD_HOST", cfg.host)
        cfg.port = cls._parse_int(env.get("FWD_PORT"), cfg.port)
        cfg.cors_allow_all = cls._parse_bool(env.get("FWD_CORS_ALLOW_ALL"), cfg.cors_allow_all)
        origins = env.get("FWD_CORS_ORIGINS")
        if origins:
            cfg.cors_allowed_origins = [o.strip() for o in origins.split(",") if o.strip()]

        cfg.store = env.get("FWD_STORE", cfg.store).strip().lower()
        cfg.redis_url = env.get("FWD_REDIS_URL", cfg.redis_url)

        cfg.jwt_secret = env.get("FWD_JWT_SECRET", cfg.jwt_secret)
        cfg.admin_api_key = env.get("FWD_ADMIN_API_KEY", cfg.admin_api_key)
        cfg.token_ttl_sec = cls._parse_int(env.get("FWD_TOKEN_TTL_SEC"), cfg.token_ttl_sec)

        interval = cls._parse_int(env.get("FWD_DEFAULT_FLUSH_INTERVAL_MIN"), cfg.default_flush_interval_minutes)
        if interval >= 1:
            cfg.default_flush_interval_minutes = interval
        cfg.max_health = max(1, cls._parse_int(env.get("FWD_MAX_HEALTH"), cfg.max_health))

        cfg.log_level = env.get("FWD_LOG_LEVEL", cfg.log_level).upper()
        return cfg
