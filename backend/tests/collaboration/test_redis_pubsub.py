import asyncio
import json
import time
from uuid import uuid4

import pytest

from collaboration.infrastructure.redis_pubsub import ChannelMessage, RealtimeClient
from shared.infrastructure.redis import get_redis_pool


@pytest.fixture
def note():
    return uuid4()


def test_channel_message_encodes_binary_payload():
    message = ChannelMessage.broadcast("yjs-update", "client-1", b"\x01\x02\xff")
    decoded = ChannelMessage.model_validate_json(message.model_dump_json())
    assert decoded.type == "broadcast"
    assert decoded.sender == "client-1"
    assert decoded.data == b"\x01\x02\xff"


async def test_broadcast_reaches_other_subscribers_only(realtime, note, wait_until):
    alice = realtime.channel(note, "alice")
    bob = realtime.channel(note, "bob")
    heard = {"alice": [], "bob": []}

    async def on_alice(sender, data):
        heard["alice"].append(data)

    async def on_bob(sender, data):
        heard["bob"].append(data)

    alice.on_broadcast("yjs-update", on_alice)
    bob.on_broadcast("yjs-update", on_bob)
    await alice.subscribe()
    await bob.subscribe()
    try:
        await alice.broadcast("yjs-update", b"hello")
        await wait_until(lambda: heard["bob"] == [b"hello"])
        assert heard["alice"] == []
    finally:
        await alice.unsubscribe()
        await bob.unsubscribe()


async def test_same_key_on_two_channels_still_hear_each_other(realtime, note, wait_until):
    laptop = realtime.channel(note, "alice")
    phone = realtime.channel(note, "alice")
    heard = []

    async def on_phone(sender, data):
        heard.append(sender)

    phone.on_broadcast("yjs-update", on_phone)
    await laptop.subscribe()
    await phone.subscribe()
    try:
        await laptop.broadcast("yjs-update", b"x")
        await wait_until(lambda: heard == [laptop.client_id])
    finally:
        await laptop.unsubscribe()
        await phone.unsubscribe()


async def test_events_are_routed_by_name(realtime, note, wait_until):
    sender = realtime.channel(note, "alice")
    receiver = realtime.channel(note, "bob")
    heard = []

    async def on_cursor(sender_id, data):
        heard.append(("cursor", data))

    async def on_update(sender_id, data):
        heard.append(("update", data))

    receiver.on_broadcast("cursor", on_cursor)
    receiver.on_broadcast("yjs-update", on_update)
    await sender.subscribe()
    await receiver.subscribe()
    try:
        await sender.broadcast("cursor", b"1")
        await sender.broadcast("yjs-update", b"2")
        await wait_until(lambda: len(heard) == 2)
        assert heard == [("cursor", b"1"), ("update", b"2")]
    finally:
        await sender.unsubscribe()
        await receiver.unsubscribe()


def names(state):
    return {meta["name"] for meta in state.values()}


async def test_presence_sync_on_track_and_untrack(realtime, note, wait_until):
    alice = realtime.channel(note, "alice")
    bob = realtime.channel(note, "bob")
    seen = []

    async def on_sync(state):
        seen.append(state)

    alice.on_presence_sync(on_sync)
    await alice.subscribe()
    await bob.subscribe()
    try:
        await alice.track({"name": "Alice"})
        await bob.track({"name": "Bob"})
        await wait_until(lambda: seen and names(seen[-1]) == {"Alice", "Bob"})
        assert seen[-1][bob.client_id] == {"id": "bob", "name": "Bob"}

        await bob.unsubscribe()
        await wait_until(lambda: names(seen[-1]) == {"Alice"})
        assert set(await alice.presence_state()) == {alice.client_id}
    finally:
        await alice.unsubscribe()
        await bob.unsubscribe()


async def test_one_device_leaving_keeps_the_other_present(realtime, note):
    laptop = realtime.channel(note, "alice")
    phone = realtime.channel(note, "alice")
    await laptop.track({"name": "Alice"})
    await phone.track({"name": "Alice"})

    await laptop.unsubscribe()

    state = await phone.presence_state()
    assert set(state) == {phone.client_id}
    assert state[phone.client_id]["id"] == "alice"
    await phone.unsubscribe()


async def test_expired_presence_is_dropped(redis, realtime, note):
    stale = {"meta": {"id": "ghost", "name": "Ghost"}, "expires_at": time.time() - 1}
    await redis.hset(f"note:{note}:presence", "crashed-client", json.dumps(stale))

    channel = realtime.channel(note, "alice")
    assert await channel.presence_state() == {}
    assert not await redis.hexists(f"note:{note}:presence", "crashed-client")


async def test_heartbeat_keeps_own_entry_alive(redis, note):
    channel = RealtimeClient(redis, presence_ttl=0.15).channel(note, "alice")
    await channel.track({"name": "Alice"})
    try:
        await asyncio.sleep(0.4)
        assert set(await channel.presence_state()) == {channel.client_id}
    finally:
        await channel.unsubscribe()


async def test_heartbeat_evicts_lapsed_peers(redis, note, wait_until):
    channel = RealtimeClient(redis, presence_ttl=0.3).channel(note, "alice")
    seen = []

    async def on_sync(state):
        seen.append(state)

    channel.on_presence_sync(on_sync)
    lapsing = {"meta": {"id": "ghost", "name": "Ghost"}, "expires_at": time.time() + 0.5}
    await redis.hset(f"note:{note}:presence", "crashed-client", json.dumps(lapsing))
    await channel.subscribe()
    await channel.track({"name": "Alice"})
    try:
        await wait_until(lambda: seen and names(seen[-1]) == {"Alice", "Ghost"})
        await wait_until(lambda: names(seen[-1]) == {"Alice"})
    finally:
        await channel.unsubscribe()


async def test_malformed_messages_are_dropped(redis, realtime, note, wait_until):
    channel = realtime.channel(note, "bob")
    heard = []

    async def on_update(sender, data):
        heard.append(data)

    channel.on_broadcast("yjs-update", on_update)
    await channel.subscribe()
    try:
        await redis.publish(f"note:{note}", "not json")
        other = realtime.channel(note, "alice")
        await other.broadcast("yjs-update", b"after")
        await wait_until(lambda: heard == [b"after"])
    finally:
        await channel.unsubscribe()


async def test_unsubscribe_twice_is_safe(realtime, note):
    channel = realtime.channel(note, "alice")
    await channel.subscribe()
    await channel.track({"name": "Alice"})
    await channel.unsubscribe()
    await channel.unsubscribe()
    assert not channel.subscribed
    assert await channel.presence_state() == {}


def test_clients_for_same_url_share_a_pool():
    first = get_redis_pool("redis://realtime.test:6379")
    second = get_redis_pool("redis://realtime.test:6379")
    other = get_redis_pool("redis://elsewhere.test:6379")
    assert first.connection_pool is second.connection_pool
    assert other.connection_pool is not first.connection_pool
