"""HTTP + WebSocket entrypoint for the game API and the live-update push hub."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import redis.asyncio as redis
from aiohttp import web

from firewall_defense.clock import now_ms
from firewall_defense.errors import FirewallError
from firewall_defense.game import protocol
from firewall_defense.game.config import ServerConfig
from firewall_defense.game.health import FirewallHealth
from firewall_defense.game.motd import Motd
from firewall_defense.game.players import PlayerDirectory
from firewall_defense.leaderboard.flush import FlushScheduler
from firewall_defense.leaderboard.ledger import ScoreLedger
from firewall_defense.leaderboard.notifier import RankChangeNotifier
from firewall_defense.leaderboard.service import LeaderboardService
from firewall_defense.log import setup_logging
from firewall_defense.net.auth import issue_token, require_admin, require_player
from firewall_defense.net.broadcast import MemoryBroadcaster, RedisBroadcaster
from firewall_defense.net.ws import WsHub
from firewall_defense.storage.memory import MemoryStore
from firewall_defense.storage.redis_store import RedisStore

logger = logging.getLogger(__name__)


class GameService:
    def __init__(
        self,
        config: ServerConfig,
        store=None,
        broadcaster=None,
        clock: Callable[[], int] | None = None,
    ):
        self.config = config
        self.start_time = time.time()
        self.clock = clock or now_ms

        if store is None or broadcaster is None:
            store, broadcaster = self._backends(config, store, broadcaster)
        self.store = store
        self.broadcaster = broadcaster

        self.players = PlayerDirectory(store, limits=config.profile, clock=self.clock)
        self.health = FirewallHealth(store, default_max=config.max_health)
        self.motd = Motd(store)
        self.notifier = RankChangeNotifier(self.players, broadcaster, config.updates_channel)
        self.leaderboard = LeaderboardService(
            ScoreLedger(store),
            FlushScheduler(store, config.default_flush_interval_minutes),
            self.notifier,
            self.players,
            top_n=config.leaderboard_size,
            clock=self.clock,
        )
        self.hub = WsHub(broadcaster, config.updates_channel)

    @staticmethod
    def _backends(config: ServerConfig, store, broadcaster):
        if config.store == "memory":
            return store or MemoryStore(), broadcaster or MemoryBroadcaster()
        client = redis.from_url(config.redis_url, decode_responses=True)
        return store or RedisStore(config.redis_url, client=client), broadcaster or RedisBroadcaster(client)

    async def start(self) -> None:
        await self.hub.start()
        logger.info("service started (store=%s)", type(self.store).__name__)

    async def stop(self) -> None:
        await self.hub.stop()
        await self.store.close()

    async def complete_match(self, player_id: str, match: protocol.MatchComplete) -> int:
        result = await self.leaderboard.submit_score(player_id, match.score)
        try:
            health = await self.health.apply_match(match.score)
        except FirewallError:
            logger.exception("firewall health not updated for match by %s", player_id)
        else:
            await self.notifier.send(self.health.update_message(health))
        return result.total_score

    async def set_health(self, update: protocol.HealthUpdate) -> dict[str, int]:
        for health in await self.health.set_values(update.health, update.maxHealth):
            await self.notifier.send(self.health.update_message(health))
        return await self.health.values()

    async def broadcast_motd(self, text: str) -> bool:
        msg = await self.motd.set(text)
        logger.info("motd updated")
        return await self.notifier.send(msg)

    def version_payload(self) -> dict[str, Any]:
        return {"service": "firewall-defense", "serverVersion": self.config.server_version}


def _cors_headers(config: ServerConfig, origin: str | None) -> dict[str, str]:
    if not origin:
        return {}
    if config.cors_allow_all:
        return {"Access-Control-Allow-Origin": origin, "Vary": "Origin"}
    if origin in config.cors_allowed_origins:
        return {"Access-Control-Allow-Origin": origin, "Vary": "Origin"}
    return {}


@web.middleware
async def cors_middleware(request: web.Request, handler):
    if request.method == "OPTIONS":
        origin = request.headers.get("Origin")
        headers = {
            **_cors_headers(request.app["config"], origin),
            "Access-Control-Allow-Methods": "GET,POST,DELETE,OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type,Authorization,X-Admin-Api-Key",
            "Access-Control-Max-Age": "86400",
        }
        return web.Response(status=204, headers=headers)

    resp = await handler(request)

    # aiohttp finalizes WS headers during `prepare()`.
    if isinstance(resp, web.WebSocketResponse):
        return resp

    origin = request.headers.get("Origin")
    for k, v in _cors_headers(request.app["config"], origin).items():
        resp.headers[k] = v
    return resp


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except FirewallError as e:
        if e.status >= 500:
            logger.error("%s %s failed: %s", request.method, request.path, e)
        return web.json_response({"error": str(e)}, status=e.status)


async def _json_body(request: web.Request) -> dict[str, Any]:
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except ValueError:
        raise protocol.ProtocolError("invalid json body")
    if not isinstance(body, dict):
        raise protocol.ProtocolError("body must be an object")
    return body


def create_app(config: ServerConfig, store=None, broadcaster=None, clock=None) -> web.Application:
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    svc = GameService(config, store=store, broadcaster=broadcaster, clock=clock)

    app["config"] = config
    app["svc"] = svc

    async def on_startup(_: web.Application):
        await svc.start()

    async def on_cleanup(_: web.Application):
        await svc.stop()

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)

    async def health(_: web.Request):
        state = await svc.leaderboard.get_flush_state()
        return web.json_response(
            {
                "ok": await svc.store.ping(),
                "uptimeSec": time.time() - svc.start_time,
                "viewers": svc.hub.connection_count,
                **state.to_dict(),
                **svc.version_payload(),
            }
        )

    # Players

    async def enroll(request: web.Request):
        body = protocol.Enroll.parse(await _json_body(request))
        player = await svc.players.enroll(body.localUuid)
        token = issue_token(config, body.localUuid, player.get("tagline"))
        return web.json_response({"token": token, "player": player})

    @require_player
    async def profile(request: web.Request):
        return web.json_response(await svc.players.get_profile(request["player_id"]))

    @require_player
    async def setup_profile(request: web.Request):
        body = protocol.ProfileSetup.parse(await _json_body(request))
        await svc.players.update_profile(request["player_id"], body.productName, body.tagline, body.color)
        return web.json_response({"ok": True})

    # Matches + leaderboard

    @require_player
    async def match_complete(request: web.Request):
        match = protocol.MatchComplete.parse(await _json_body(request))
        total = await svc.complete_match(request["player_id"], match)
        return web.json_response({"totalScore": total})

    async def leaderboard(_: web.Request):
        return web.json_response(await svc.leaderboard.get_top_k())

    # Admin

    @require_admin
    async def admin_leaderboard(_: web.Request):
        return web.json_response(await svc.leaderboard.get_full_leaderboard())

    @require_admin
    async def admin_flush(_: web.Request):
        reset = await svc.leaderboard.force_flush()
        return web.json_response({"ok": True, "reset": reset})

    @require_admin
    async def admin_get_interval(_: web.Request):
        state = await svc.leaderboard.get_flush_state()
        return web.json_response({"flushIntervalMinutes": state.interval_minutes})

    @require_admin
    async def admin_set_interval(request: web.Request):
        body = protocol.FlushIntervalUpdate.parse(await _json_body(request))
        state = await svc.leaderboard.set_flush_interval(body.minutes)
        return web.json_response({"ok": True, **state.to_dict()})

    @require_admin
    async def admin_health(_: web.Request):
        return web.json_response(await svc.health.values())

    @require_admin
    async def admin_set_health(request: web.Request):
        update = protocol.HealthUpdate.parse(await _json_body(request))
        return web.json_response({"ok": True, **await svc.set_health(update)})

    async def firewall_status(_: web.Request):
        return web.json_response({"health": await svc.health.current()})

    async def motd(_: web.Request):
        return web.json_response({"motd": await svc.motd.get()})

    @require_admin
    async def admin_broadcast_motd(request: web.Request):
        body = protocol.MotdBroadcast.parse(await _json_body(request))
        delivered = await svc.broadcast_motd(body.message)
        return web.json_response({"ok": True, "delivered": delivered})

    @require_admin
    async def admin_delete_player(request: web.Request):
        await svc.leaderboard.remove_player(request.match_info["uuid"])
        return web.json_response({"ok": True})

    async def preflight(_: web.Request):
        # Answered by cors_middleware; the route only makes OPTIONS resolvable.
        return web.Response(status=204)

    async def ws_handler(request: web.Request):
        return await svc.hub.handle(request)

    app.router.add_get("/health", health)
    app.router.add_post("/api/auth/enroll", enroll)
    app.router.add_get("/api/player/profile", profile)
    app.router.add_post("/api/player/setup", setup_profile)
    app.router.add_post("/api/match/complete", match_complete)
    app.router.add_get("/api/leaderboard", leaderboard)
    app.router.add_get("/api/firewall/status", firewall_status)
    app.router.add_get("/api/motd", motd)
    app.router.add_get("/api/admin/leaderboard", admin_leaderboard)
    app.router.add_delete("/api/admin/leaderboard", admin_flush)
    app.router.add_get("/api/admin/leaderboard-flush-interval", admin_get_interval)
    app.router.add_post("/api/admin/leaderboard-flush-interval", admin_set_interval)
    app.router.add_get("/api/admin/health", admin_health)
    app.router.add_post("/api/admin/health", admin_set_health)
    app.router.add_post("/api/admin/broadcast-motd", admin_broadcast_motd)
    app.router.add_delete("/api/admin/players/{uuid}", admin_delete_player)
    app.router.add_get("/ws", ws_handler)
    app.router.add_route("OPTIONS", "/{tail:.*}", preflight)

    return app


def main() -> None:
    config = ServerConfig.from_env()
    setup_logging(config.log_level)
    app = create_app(config)
    web.run_app(app, host=config.host, port=config.port, print=None)


if __name__ == "__main__":
    main()
