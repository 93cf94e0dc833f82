import asyncio
import base64
import json
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from shared.config import settings
from shared.exceptions import RemoteBackendError

logger = logging.getLogger(__name__)

BroadcastHandler = Callable[[str, bytes], Awaitable[None]]
PresenceHandler = Callable[[dict[str, dict[str, Any]]], Awaitable[None]]


def _channel_name(note_id: UUID) -> str:
    return f"note:{note_id}"


def _presence_key(note_id: UUID) -> str:
    return f"note:{note_id}:presence"


class ChannelMessage(BaseModel):
    type: Literal["broadcast", "presence"]
    sender: str
    event: str = ""
    payload: str = ""

    @classmethod
    def broadcast(cls, event: str, sender: str, data: bytes) -> "ChannelMessage":
        return cls(
            type="broadcast",
            sender=sender,
            event=event,
            payload=base64.b64encode(data).decode("ascii"),
        )

    @property
    def data(self) -> bytes:
        return base64.b64decode(self.payload)


class RedisRealtimeChannel:
    """Per-note pub/sub channel with broadcast events and presence tracking.

    Every channel gets its own client id. Broadcasts are tagged with it and never
    delivered back to the channel that sent them, so two channels sharing a
    ``key`` still hear each other. Presence entries are stored per client id with
    ``key`` as the default ``id`` in their meta, and expire unless refreshed.
    """

    def __init__(self, redis: Redis, note_id: UUID, key: str, presence_ttl: float):
        self.note_id = note_id
        self.key = key
        self.client_id = uuid4().hex
        self._redis = redis
        self._presence_ttl = presence_ttl
        self._presence_meta: dict[str, Any] = {}
        self._heartbeat_task: asyncio.Task | None = None
        self._broadcast_handlers: dict[str, list[BroadcastHandler]] = {}
        self._presence_handlers: list[PresenceHandler] = []
        self._task: asyncio.Task | None = None
        self._tracked = False

    @property
    def subscribed(self) -> bool:
        return self._task is not None

    def on_broadcast(self, event: str, handler: BroadcastHandler) -> None:
        self._broadcast_handlers.setdefault(event, []).append(handler)

    def on_presence_sync(self, handler: PresenceHandler) -> None:
        self._presence_handlers.append(handler)

    async def subscribe(self) -> None:
        if self._task is not None:
            return
        pubsub = self._redis.pubsub()
        try:
            await pubsub.subscribe(_channel_name(self.note_id))
        except RedisError as exc:
            await pubsub.aclose()
            raise RemoteBackendError(f"Failed to subscribe to note {self.note_id}: {exc}") from exc
        self._task = asyncio.create_task(self._listen(pubsub))

    async def broadcast(self, event: str, data: bytes) -> None:
        message = ChannelMessage.broadcast(event, self.client_id, data)
        await self._publish(message)

    async def track(self, meta: dict[str, Any]) -> None:
        self._presence_meta = {"id": self.key, **meta}
        await self._write_presence()
        self._tracked = True
        if self._heartbeat_task is None:
            self._heartbeat_task = asyncio.create_task(self._heartbeat())
        await self._publish(ChannelMessage(type="presence", sender=self.client_id))

    async def untrack(self) -> None:
        if not self._tracked:
            return
        self._tracked = False
        await _cancel(self._heartbeat_task)
        self._heartbeat_task = None
        try:
            await self._redis.hdel(_presence_key(self.note_id), self.client_id)
        except RedisError as exc:
            raise RemoteBackendError(f"Failed to untrack presence on note {self.note_id}: {exc}") from exc
        await self._publish(ChannelMessage(type="presence", sender=self.client_id))

    async def presence_state(self) -> dict[str, dict[str, Any]]:
        """Live presence entries by client id. Expired entries are removed."""
        live, _ = await self._read_presence()
        return live

    async def unsubscribe(self) -> None:
        """Leave presence and stop listening. Safe to call more than once."""
        try:
            await self.untrack()
        finally:
            await _cancel(self._task)
            self._task = None

    async def _publish(self, message: ChannelMessage) -> None:
        try:
            await self._redis.publish(_channel_name(self.note_id), message.model_dump_json())
        except RedisError as exc:
            raise RemoteBackendError(f"Failed to publish to note {self.note_id}: {exc}") from exc

    async def _write_presence(self) -> None:
        entry = {"meta": self._presence_meta, "expires_at": time.time() + self._presence_ttl}
        try:
            await self._redis.hset(_presence_key(self.note_id), self.client_id, json.dumps(entry))
        except RedisError as exc:
            raise RemoteBackendError(f"Failed to track presence on note {self.note_id}: {exc}") from exc

    async def _read_presence(self) -> tuple[dict[str, dict[str, Any]], list[str]]:
        key = _presence_key(self.note_id)
        try:
            raw = await self._redis.hgetall(key)
            now = time.time()
            live, expired = {}, []
            for field, value in raw.items():
                entry = json.loads(value)
                if entry.get("expires_at", 0) > now:
                    live[_text(field)] = entry["meta"]
                else:
                    expired.append(_text(field))
            if expired:
                await self._redis.hdel(key, *expired)
        except RedisError as exc:
            raise RemoteBackendError(f"Failed to read presence on note {self.note_id}: {exc}") from exc
        return live, expired

    async def _heartbeat(self) -> None:
        """Refresh our entry and evict peers whose entries lapsed."""
        while True:
            await asyncio.sleep(self._presence_ttl / 3)
            try:
                await self._write_presence()
                _, expired = await self._read_presence()
                if expired:
                    logger.info(
                        "Evicted %d stale presence entries on note %s", len(expired), self.note_id
                    )
                    await self._publish(ChannelMessage(type="presence", sender=self.client_id))
            except RemoteBackendError as exc:
                logger.warning(
                    "Presence heartbeat failed on note %s: %s", self.note_id, exc.message
                )

    async def _listen(self, pubsub) -> None:
        try:
            async for message in pubsub.listen():
                if message["type"] == "message":
                    await self._dispatch(message["data"])
        except asyncio.CancelledError:
            pass
        finally:
            await pubsub.unsubscribe(_channel_name(self.note_id))
            await pubsub.aclose()

    async def _dispatch(self, raw: bytes | str) -> None:
        try:
            message = ChannelMessage.model_validate_json(raw)
        except ValidationError:
            logger.warning("Dropping malformed message on note %s", self.note_id)
            return

        try:
            if message.type == "presence":
                state = await self.presence_state()
                for handler in list(self._presence_handlers):
                    await handler(state)
            elif message.sender != self.client_id:
                for handler in list(self._broadcast_handlers.get(message.event, [])):
                    await handler(message.sender, message.data)
        except Exception:
            # One bad message must not stop the listener.
            logger.exception("Handler failed for %s message on note %s", message.type, self.note_id)


class RealtimeClient:
    def __init__(self, redis: Redis, presence_ttl: float | None = None):
        self._redis = redis
        self._presence_ttl = (
            presence_ttl if presence_ttl is not None else settings.PRESENCE_TTL_SECONDS
        )

    def channel(self, note_id: UUID, key: str) -> RedisRealtimeChannel:
        return RedisRealtimeChannel(self._redis, note_id, key, self._presence_ttl)


def _text(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value


async def _cancel(task: asyncio.Task | None) -> None:
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
