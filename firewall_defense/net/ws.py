"""WebSocket push hub: relays the updates channel to every live viewer."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass

from aiohttp import WSMsgType, web

from firewall_defense.game import protocol

logger = logging.getLogger(__name__)

RELAY_RETRY_SEC = 1.0


@dataclass
class Connection:
    conn_id: str
    ws: web.WebSocketResponse
    created_at: float


class WsHub:
    def __init__(self, broadcaster, channel: str):
        self.broadcaster = broadcaster
        self.channel = channel
        self._conns: dict[str, Connection] = {}
        self._relay_task: asyncio.Task | None = None
        self._running = False

    @property
    def connection_count(self) -> int:
        return len(self._conns)

    async def start(self) -> None:
        self._running = True
        self._relay_task = asyncio.create_task(self._relay_loop())

    async def stop(self) -> None:
        self._running = False
        if self._relay_task:
            self._relay_task.cancel()
            try:
                await self._relay_task
            except asyncio.CancelledError:
                pass
        await self.close_all()

    async def _relay_loop(self) -> None:
        while self._running:
            try:
                async for text in self.broadcaster.subscribe(self.channel):
                    await self.fan_out(text)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("relay subscription to %s dropped, retrying", self.channel)
                await asyncio.sleep(RELAY_RETRY_SEC)

    async def fan_out(self, text: str) -> int:
        sent = 0
        for conn in list(self._conns.values()):
            if conn.ws.closed:
                self._conns.pop(conn.conn_id, None)
                continue
            try:
                await conn.ws.send_str(text)
                sent += 1
            except (ConnectionError, RuntimeError):
                logger.warning("dropping connection %s after failed send", conn.conn_id)
                self._conns.pop(conn.conn_id, None)
        return sent

    async def handle(self, request: web.Request) -> web.StreamResponse:
        ws = web.WebSocketResponse(heartbeat=30.0)
        await ws.prepare(request)

        conn = Connection(conn_id=uuid.uuid4().hex, ws=ws, created_at=time.time())
        self._conns[conn.conn_id] = conn
        logger.info("viewer connected (%d live)", len(self._conns))

        await ws.send_str(protocol.dumps(protocol.message(protocol.CONNECTED, message="Welcome to Firewall Defense")))

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    await self._on_text(conn, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    break
        finally:
            await self._disconnect(conn)
        return ws

    async def _on_text(self, conn: Connection, text: str) -> None:
        try:
            msg_type, _ = protocol.loads(text)
        except protocol.ProtocolError:
            return
        if msg_type not in protocol.VALID_C2S:
            logger.debug("ignoring %s from %s", msg_type, conn.conn_id)
            return
        if msg_type == "ping":
            await conn.ws.send_str(protocol.dumps(protocol.message(protocol.PONG)))

    async def _disconnect(self, conn: Connection) -> None:
        # Idempotent.
        if self._conns.pop(conn.conn_id, None) is None:
            return
        logger.info("viewer disconnected (%d live)", len(self._conns))
        if not conn.ws.closed:
            await conn.ws.close()

    async def close_all(self) -> None:
        for c in list(self._conns.values()):
            await self._disconnect(c)
