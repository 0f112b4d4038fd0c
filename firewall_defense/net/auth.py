"""Player bearer tokens and the admin API key."""

from __future__ import annotations

import functools
import hmac
import time

import jwt
from aiohttp import web

ALGORITHM = "HS256"


def issue_token(config, player_id: str, tagline: str | None = None, now: float | None = None) -> str:
    issued = int(now if now is not None else time.time())
    payload = {"uuid": player_id, "tagline": tagline, "iat": issued, "exp": issued + config.token_ttl_sec}
    return jwt.encode(payload, config.jwt_secret, algorithm=ALGORITHM)


def decode_token(config, token: str) -> dict:
    return jwt.decode(token, config.jwt_secret, algorithms=[ALGORITHM])


def _bearer(request: web.Request) -> str | None:
    header = request.headers.get("Authorization", "")
    parts = header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        return None
    return parts[1].strip()


def require_player(handler):
    """Resolve the caller's player id from the bearer token into request["player_id"]."""

    @functools.wraps(handler)
    async def wrapper(request: web.Request):
        token = _bearer(request)
        if token is None:
            raise web.HTTPUnauthorized(text="missing bearer token")
        try:
            claims = decode_token(request.app["config"], token)
        except jwt.InvalidTokenError:
            raise web.HTTPForbidden(text="invalid token")
        player_id = claims.get("uuid")
        if not isinstance(player_id, str) or not player_id:
            raise web.HTTPForbidden(text="invalid token")
        request["player_id"] = player_id
        return await handler(request)

    return wrapper


def require_admin(handler):
    @functools.wraps(handler)
    async def wrapper(request: web.Request):
        key = request.headers.get("X-Admin-Api-Key", "")
        expected = request.app["config"].admin_api_key
        if not key or not hmac.compare_digest(key.encode(), expected.encode()):
            raise web.HTTPUnauthorized(text="Unauthorized: Invalid or missing admin API key")
        return await handler(request)

    return wrapper
