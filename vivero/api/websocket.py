"""WebSocket connection manager with optional Redis fan-out."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from contextlib import suppress
from typing import Any

import redis.asyncio as redis
from fastapi import WebSocket

from vivero.core.event_bus import Event

logger = logging.getLogger(__name__)

GENERAL_CHANNEL = "general"


class ConnectionManager:
    """Track live dashboard clients and push zone events to them.

    Clients join the ``general`` channel (every zone) or a channel named after
    a single zone id. When a Redis client is attached, events are also
    published to Redis so viewers connected to other instances receive them.
    """

    _REDIS_CHANNEL = "vivero:ws:events"
    _SEND_TIMEOUT = 2.0
    _RETRY_DELAY = 2.0

    def __init__(self, redis_client: redis.Redis | None = None) -> None:
        self._redis = redis_client
        self._pubsub: redis.client.PubSub | None = None
        self._listener_task: asyncio.Task[None] | None = None
        self._instance_id = uuid.uuid4().hex

        self._connections: dict[str, set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def connect(self, websocket: WebSocket, channel: str | None = None) -> None:
        """Accept a WebSocket connection and register it."""
        ch = channel or GENERAL_CHANNEL
        await websocket.accept()
        async with self._lock:
            self._connections.setdefault(ch, set()).add(websocket)
        logger.debug(
            "WebSocket connected to channel %s; %s clients active", ch, self.get_connection_count()
        )

    async def disconnect(self, websocket: WebSocket, channel: str | None = None) -> None:
        """Remove a WebSocket from a specific channel (or all channels) and close it."""
        async with self._lock:
            targets = (
                [self._connections.get(channel, set())]
                if channel is not None
                else list(self._connections.values())
            )
            for ch_set in targets:
                ch_set.discard(websocket)
        await self._safe_close(websocket)

    async def switch_channel(self, websocket: WebSocket, old: str, new: str) -> None:
        """Move an open connection to another channel without closing it."""
        async with self._lock:
            self._connections.get(old, set()).discard(websocket)
            self._connections.setdefault(new, set()).add(websocket)

    async def disconnect_all(self) -> None:
        async with self._lock:
            all_ws: list[WebSocket] = []
            for ch_set in self._connections.values():
                all_ws.extend(ch_set)
            self._connections.clear()
        for websocket in all_ws:
            await self._safe_close(websocket)

    async def shutdown(self) -> None:
        await self.disconnect_all()
        await self._stop_redis_listener()

    async def subscribe_redis(self) -> None:
        """Start relaying events published by other instances."""
        if self._redis is None:
            return
        if self._listener_task and not self._listener_task.done():
            return

        self._listener_task = asyncio.create_task(self._listen(), name="vivero-ws-redis")

    async def _listen(self) -> None:
        """Relay remote events until cancelled, re-subscribing after failures."""
        assert self._redis is not None
        while True:
            pubsub = self._redis.pubsub()
            self._pubsub = pubsub
            try:
                await pubsub.subscribe(self._REDIS_CHANNEL)
                async for message in pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    await self._relay(message.get("data"))
                logger.warning("Redis subscription ended; retrying in %.0fs", self._RETRY_DELAY)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Redis listener crashed; retrying in %.0fs", self._RETRY_DELAY)
            finally:
                with suppress(Exception):
                    await pubsub.aclose()
                self._pubsub = None
            await asyncio.sleep(self._RETRY_DELAY)

    async def _relay(self, raw: Any) -> None:
        try:
            envelope = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            logger.debug("Skipping malformed Redis payload: %s", raw)
            return
        if envelope.get("origin") == self._instance_id:
            return
        await self._send_local(envelope.get("message", {}), envelope.get("zone_id"))

    async def cleanup_stale(self) -> int:
        """Remove WebSocket connections that are no longer responsive."""
        async with self._lock:
            clients: set[WebSocket] = set()
            for ch_set in self._connections.values():
                clients.update(ch_set)

        stale: list[WebSocket] = []
        for ws in clients:
            try:
                await asyncio.wait_for(ws.send_json({"type": "ping"}), self._SEND_TIMEOUT)
            except Exception:
                stale.append(ws)

        for ws in stale:
            await self.disconnect(ws)
        return len(stale)

    def get_connection_count(self) -> int:
        return sum(len(ch_set) for ch_set in self._connections.values())

    # ------------------------------------------------------------------
    # Broadcasting
    # ------------------------------------------------------------------
    async def handle_event(self, event: Event) -> None:
        """EventBus subscriber: forward a zone event to viewers."""
        message = {"type": event.topic, "data": event.payload, "timestamp": event.timestamp}
        zone_id = event.payload.get("zone_id")
        await self._send_local(message, zone_id)
        await self._publish_redis(message, zone_id)

    async def broadcast(self, message: dict[str, Any]) -> None:
        await self._send_local(message)
        await self._publish_redis(message)

    async def _publish_redis(self, message: dict[str, Any], zone_id: str | None = None) -> None:
        if self._redis is None:
            return
        envelope = {"origin": self._instance_id, "zone_id": zone_id, "message": message}
        try:
            await self._redis.publish(self._REDIS_CHANNEL, json.dumps(envelope, default=str))
        except Exception:
            logger.exception("Failed to publish WebSocket payload to Redis")

    async def _send_local(self, message: dict[str, Any], zone_id: str | None = None) -> None:
        async with self._lock:
            clients = set(self._connections.get(GENERAL_CHANNEL, set()))
            if zone_id is None:
                for ch_set in self._connections.values():
                    clients.update(ch_set)
            else:
                clients.update(self._connections.get(zone_id, set()))
        if not clients:
            return
        payload = json.dumps(message, default=str)
        targets = list(clients)
        results = await asyncio.gather(
            *(asyncio.wait_for(ws.send_text(payload), self._SEND_TIMEOUT) for ws in targets),
            return_exceptions=True,
        )
        for websocket, result in zip(targets, results, strict=True):
            if isinstance(result, BaseException):
                logger.debug("WebSocket send failed (%r); dropping client", result)
                await self.disconnect(websocket)

    async def _stop_redis_listener(self) -> None:
        if self._listener_task:
            self._listener_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._listener_task
        self._listener_task = None

    async def _safe_close(self, websocket: WebSocket) -> None:
        with suppress(Exception):
            await asyncio.wait_for(websocket.close(), self._SEND_TIMEOUT)


__all__ = ["GENERAL_CHANNEL", "ConnectionManager"]
