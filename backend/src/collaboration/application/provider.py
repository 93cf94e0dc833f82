"""Replication of one note's CRDT document.

The provider keeps a single ``pycrdt`` document consistent between the local
store, collaborators connected to the note's realtime channel and the
snapshot column on the notes service.

Every document change is tagged with an :class:`UpdateOrigin`:

- ``LOCAL`` edits are written to the local store and, after a debounce
  window, broadcast to the channel and snapshotted remotely (or queued as
  offline document updates while disconnected).
- ``REMOTE`` updates (channel broadcasts, fetched snapshots) are written to
  the local store but never broadcast again.
- ``REPLAY`` updates (local hydration, offline queue replay) are already
  stored, so the observer ignores them.

Remote failures never escape the public methods; they land in
:class:`SyncState`. Local store failures are fatal for the note: ``connect()``
raises :class:`LocalPersistenceError`, and a failed background write is
re-raised from ``flush()``.

Every method except ``destroy()`` raises :class:`ProviderClosedError` once the
provider is destroyed.
"""

import asyncio
import dataclasses
import logging
import zlib
from collections.abc import Callable, Coroutine
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from pycrdt import Doc, TransactionEvent, XmlFragment

from collaboration.application.local_store import LocalDocumentStore
from collaboration.domain.entities import Collaborator, OfflineUpdate, SyncState, UpdateOrigin
from collaboration.infrastructure.redis_pubsub import RealtimeClient, RedisRealtimeChannel
from collaboration.infrastructure.yjs_adapter import (
    apply_update,
    create_doc,
    encode_state_as_update,
    get_content,
    is_empty_update,
    merge_updates,
)
from shared.config import settings
from shared.exceptions import LocalPersistenceError, ProviderClosedError, RemoteBackendError
from shared.infrastructure.api_client import RemoteBackendClient
from shared.infrastructure.network import NetworkMonitor

logger = logging.getLogger(__name__)

UPDATE_EVENT = "yjs-update"

COLLABORATOR_COLORS = (
    "#F44336", "#E91E63", "#9C27B0", "#673AB7",
    "#3F51B5", "#2196F3", "#03A9F4", "#00BCD4",
    "#009688", "#4CAF50", "#8BC34A", "#CDDC39",
    "#FFC107", "#FF9800", "#FF5722",
)

SyncStateCallback = Callable[[SyncState], None]
AwarenessCallback = Callable[[list[Collaborator]], None]


def collaborator_color(identity: str) -> str:
    return COLLABORATOR_COLORS[zlib.crc32(identity.encode()) % len(COLLABORATOR_COLORS)]


class NoteSyncProvider:
    def __init__(
        self,
        note_id: UUID,
        user_id: UUID,
        *,
        local_store: LocalDocumentStore,
        remote: RemoteBackendClient,
        realtime: RealtimeClient,
        network: NetworkMonitor,
        user_name: str | None = None,
        user_color: str | None = None,
        debounce_seconds: float | None = None,
    ):
        self.note_id = note_id
        self.user_id = user_id
        self._key = str(user_id)
        self._user_name = user_name or "Anonymous"
        self._user_color = user_color or collaborator_color(self._key)
        self._local = local_store
        self._remote = remote
        self._realtime = realtime
        self._network = network
        self._debounce_seconds = (
            debounce_seconds if debounce_seconds is not None else settings.SYNC_DEBOUNCE_SECONDS
        )

        self._sync_state = SyncState()
        self._sync_state_callbacks: list[SyncStateCallback] = []
        self._awareness_callbacks: list[AwarenessCallback] = []
        self._collaborators: list[Collaborator] = []

        self._channel: RedisRealtimeChannel | None = None
        self._pending_updates: list[bytes] = []
        self._debounce_handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()
        self._unbroadcast: bytes | None = None
        self._local_error: LocalPersistenceError | None = None
        self._connected = False
        self._destroyed = False

        self._origin = UpdateOrigin.LOCAL
        self._doc: Doc = create_doc()
        self._subscription = self._doc.observe(self._on_document_event)
        self._unsubscribe_network = network.on_change(self._on_network_change)

    # ------------------------------------------------------------------
    # Editor-facing API
    # ------------------------------------------------------------------

    def get_document(self) -> Doc:
        self._ensure_open()
        return self._doc

    def get_content_fragment(self) -> XmlFragment:
        self._ensure_open()
        return get_content(self._doc)

    def get_sync_state(self) -> SyncState:
        self._ensure_open()
        return dataclasses.replace(self._sync_state)

    def get_collaborators(self) -> list[Collaborator]:
        self._ensure_open()
        return list(self._collaborators)

    def on_sync_state_change(self, callback: SyncStateCallback) -> Callable[[], None]:
        self._ensure_open()
        self._sync_state_callbacks.append(callback)
        return lambda: _discard(self._sync_state_callbacks, callback)

    def on_awareness_update(self, callback: AwarenessCallback) -> Callable[[], None]:
        self._ensure_open()
        self._awareness_callbacks.append(callback)
        return lambda: _discard(self._awareness_callbacks, callback)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        self._ensure_open()
        await self._attach_local_persistence()
        self._connected = True
        if self._network.is_online():
            await self._go_online()

    async def reconnect(self) -> None:
        self._ensure_open()
        if self._connected and self._network.is_online():
            await self._go_online()

    async def flush(self) -> None:
        """Push coalesced edits now and wait until background work settles."""
        self._ensure_open()
        await self._settle()
        if self._local_error is not None:
            raise self._local_error

    async def destroy(self) -> None:
        if self._destroyed:
            return
        try:
            await self._settle()
        finally:
            self._destroyed = True
            await self._close_channel()
            self._unsubscribe_network()
            self._doc.unobserve(self._subscription)
            self._sync_state_callbacks.clear()
            self._awareness_callbacks.clear()
            logger.info("Sync provider for note %s destroyed", self.note_id)

    # ------------------------------------------------------------------
    # Document observation
    # ------------------------------------------------------------------

    def _on_document_event(self, event: TransactionEvent) -> None:
        self._handle_update(event.update, self._origin)

    def _handle_update(self, update: bytes, origin: UpdateOrigin) -> None:
        if self._destroyed or is_empty_update(update) or origin is UpdateOrigin.REPLAY:
            return
        self._spawn(self._persist_locally(update))
        if origin is UpdateOrigin.LOCAL:
            self._pending_updates.append(update)
            self._schedule_flush()

    def _apply(self, update: bytes, origin: UpdateOrigin) -> None:
        previous, self._origin = self._origin, origin
        try:
            apply_update(self._doc, update)
        finally:
            self._origin = previous

    def _schedule_flush(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        loop = asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(self._debounce_seconds, self._on_debounce_elapsed)

    def _on_debounce_elapsed(self) -> None:
        self._debounce_handle = None
        self._spawn(self._flush_pending())

    async def _flush_pending(self) -> None:
        if not self._pending_updates:
            return
        update = merge_updates(self._pending_updates)
        self._pending_updates = []

        if not self._network.is_online():
            try:
                await self._local.queue_offline_update(self.note_id, update)
            except LocalPersistenceError as exc:
                self._fail_locally(exc)
            return

        if self._channel is not None:
            try:
                await self._channel.broadcast(UPDATE_EVENT, update)
            except RemoteBackendError as exc:
                logger.warning("Broadcast failed for note %s: %s", self.note_id, exc.message)
                self._update_sync_state(error=exc.message)
        await self._save_remote_state()

    async def _persist_locally(self, update: bytes) -> None:
        try:
            await self._local.on_update(self.note_id, update)
        except LocalPersistenceError as exc:
            self._fail_locally(exc)

    # ------------------------------------------------------------------
    # Remote sync
    # ------------------------------------------------------------------

    async def _attach_local_persistence(self) -> None:
        state = await self._local.hydrate(self.note_id)
        if state is not None:
            self._apply(state, UpdateOrigin.REPLAY)
        logger.info("Local persistence synced for note %s", self.note_id)

    async def _go_online(self) -> None:
        # Subscribe before fetching so broadcasts sent meanwhile still arrive.
        channel_error = await self._open_channel()
        await self._sync_with_remote()
        if channel_error is not None:
            self._update_sync_state(error=channel_error)
        elif self._network.is_online():
            await self._broadcast_replayed()

    async def _sync_with_remote(self) -> None:
        self._update_sync_state(syncing=True, error=None)
        try:
            state = await self._remote.fetch_note_state(self.note_id)
            if state is not None:
                self._apply(state, UpdateOrigin.REMOTE)
            replayed = await self._replay_offline_updates()
            await self._remote.save_note_state(self.note_id, encode_state_as_update(self._doc))
            if replayed:
                await self._local.remove_offline_updates([u.id for u in replayed])
                replayed_updates = [u.update_data for u in replayed]
                if self._unbroadcast is not None:
                    replayed_updates.insert(0, self._unbroadcast)
                self._unbroadcast = merge_updates(replayed_updates)
        except RemoteBackendError as exc:
            logger.warning("Failed to sync note %s with server: %s", self.note_id, exc.message)
            self._update_sync_state(syncing=False, error=exc.message)
            return
        except LocalPersistenceError as exc:
            self._update_sync_state(syncing=False, error=exc.message)
            raise

        self._update_sync_state(
            syncing=False, synced=True, error=None, last_sync_at=datetime.now(UTC)
        )

    async def _replay_offline_updates(self) -> list[OfflineUpdate]:
        updates = await self._local.get_offline_updates(self.note_id)
        for update in updates:
            self._apply(update.update_data, UpdateOrigin.REPLAY)
        if updates:
            logger.info("Replayed %d offline updates for note %s", len(updates), self.note_id)
        return updates

    async def _save_remote_state(self) -> None:
        try:
            await self._remote.save_note_state(self.note_id, encode_state_as_update(self._doc))
        except RemoteBackendError as exc:
            logger.warning("Failed to save state of note %s: %s", self.note_id, exc.message)
            self._update_sync_state(synced=False, error=exc.message)
            return
        self._update_sync_state(synced=True, error=None, last_sync_at=datetime.now(UTC))

    # ------------------------------------------------------------------
    # Realtime channel
    # ------------------------------------------------------------------

    async def _open_channel(self) -> str | None:
        if self._channel is not None:
            return None
        channel = self._realtime.channel(self.note_id, self._key)
        channel.on_broadcast(UPDATE_EVENT, self._on_remote_update)
        channel.on_presence_sync(self._on_presence_sync)
        self._channel = channel
        try:
            await channel.subscribe()
            await channel.track(
                {
                    "id": self._key,
                    "name": self._user_name,
                    "color": self._user_color,
                    "online_at": datetime.now(UTC).isoformat(),
                }
            )
        except RemoteBackendError as exc:
            logger.warning("Realtime channel for note %s unavailable: %s", self.note_id, exc.message)
            await self._close_channel()
            return exc.message
        return None

    async def _broadcast_replayed(self) -> None:
        """Send edits replayed from the offline buffer to peers already in the room."""
        if self._channel is None or self._unbroadcast is None:
            return
        try:
            await self._channel.broadcast(UPDATE_EVENT, self._unbroadcast)
        except RemoteBackendError as exc:
            logger.warning("Broadcast failed for note %s: %s", self.note_id, exc.message)
            self._update_sync_state(error=exc.message)
            return
        self._unbroadcast = None

    async def _close_channel(self) -> None:
        channel, self._channel = self._channel, None
        if channel is None:
            return
        try:
            await channel.unsubscribe()
        except RemoteBackendError as exc:
            logger.warning("Failed to leave channel for note %s: %s", self.note_id, exc.message)
        self._set_collaborators([])

    async def _on_remote_update(self, sender: str, update: bytes) -> None:
        if self._destroyed:
            return
        self._apply(update, UpdateOrigin.REMOTE)

    async def _on_presence_sync(self, state: dict[str, dict[str, Any]]) -> None:
        if self._destroyed:
            return
        # One entry per device; an identity shows once however many devices it has.
        by_identity: dict[str, Collaborator] = {}
        for client_id, meta in state.items():
            identity = str(meta.get("id") or client_id)
            if identity == self._key or identity in by_identity:
                continue
            by_identity[identity] = Collaborator(
                id=identity,
                name=meta.get("name") or "Anonymous",
                color=meta.get("color") or collaborator_color(identity),
            )
        self._set_collaborators([by_identity[identity] for identity in sorted(by_identity)])

    def _set_collaborators(self, collaborators: list[Collaborator]) -> None:
        if collaborators == self._collaborators:
            return
        self._collaborators = collaborators
        for callback in list(self._awareness_callbacks):
            callback(list(collaborators))

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    def _on_network_change(self, online: bool) -> None:
        if self._destroyed or not self._connected:
            return
        self._spawn(self._handle_network_change(online))

    async def _handle_network_change(self, online: bool) -> None:
        try:
            if online:
                logger.info("Back online, syncing note %s", self.note_id)
                await self._go_online()
            else:
                logger.info("Went offline, note %s continues on local storage", self.note_id)
                await self._close_channel()
        except LocalPersistenceError as exc:
            self._fail_locally(exc)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _settle(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        await self._flush_pending()
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fail_locally(self, exc: LocalPersistenceError) -> None:
        logger.error("Local persistence failed for note %s: %s", self.note_id, exc.message)
        self._local_error = exc
        self._update_sync_state(error=exc.message)

    def _update_sync_state(self, **changes: Any) -> None:
        self._sync_state = dataclasses.replace(self._sync_state, **changes)
        snapshot = dataclasses.replace(self._sync_state)
        for callback in list(self._sync_state_callbacks):
            callback(snapshot)

    def _ensure_open(self) -> None:
        if self._destroyed:
            raise ProviderClosedError(str(self.note_id))


def _discard(callbacks: list, callback: Any) -> None:
    if callback in callbacks:
        callbacks.remove(callback)
