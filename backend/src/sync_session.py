"""Per-login composition of the sync engine.

A ``SyncSession`` is created when a user signs in and torn down when they
sign out. It owns the on-device database, the client for the notes service,
the realtime channels, the open note providers and the user's offline queue.
"""

import logging
from uuid import UUID

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine

from collaboration.application.local_store import LocalDocumentStore
from collaboration.application.provider import NoteSyncProvider
from collaboration.application.registry import ProviderRegistry
from collaboration.infrastructure.redis_pubsub import RealtimeClient
from shared.infrastructure.api_client import RemoteBackendClient
from shared.infrastructure.local_database import (
    create_local_engine,
    create_local_session_factory,
    init_local_database,
)
from shared.infrastructure.network import HealthCheckNetworkMonitor, NetworkMonitor
from shared.infrastructure.redis import get_redis_pool
from sync_queue.application.registry import QueueRegistry
from sync_queue.application.services import OfflineMutationQueue

logger = logging.getLogger(__name__)


class SyncSession:
    def __init__(
        self,
        user_id: UUID,
        *,
        local_engine: AsyncEngine,
        remote: RemoteBackendClient,
        redis: Redis,
        network: NetworkMonitor,
        user_name: str | None = None,
        debounce_seconds: float | None = None,
        max_retries: int | None = None,
    ):
        self.user_id = user_id
        self.network = network
        self._user_name = user_name
        self._debounce_seconds = debounce_seconds
        self._max_retries = max_retries
        self._local_engine = local_engine
        self._session_factory = create_local_session_factory(local_engine)
        self._local_store = LocalDocumentStore(self._session_factory)
        self._remote = remote
        self._realtime = RealtimeClient(redis)
        self.providers = ProviderRegistry(self._create_provider)
        self._queues = QueueRegistry(self._create_queue)

    @classmethod
    def from_settings(cls, user_id: UUID, token: str, user_name: str | None = None) -> "SyncSession":
        remote = RemoteBackendClient.from_settings(token)
        return cls(
            user_id,
            local_engine=create_local_engine(),
            remote=remote,
            redis=get_redis_pool(),
            network=HealthCheckNetworkMonitor(remote),
            user_name=user_name,
        )

    @property
    def queue(self) -> OfflineMutationQueue:
        return self._queues.get(self.user_id)

    async def start(self) -> None:
        await init_local_database(self._local_engine)
        if isinstance(self.network, HealthCheckNetworkMonitor):
            await self.network.start()
        pending = await self.queue.get_queue_length()
        logger.info("Sync session started for user %s with %d queued mutations", self.user_id, pending)
        if pending:
            await self.queue.process_queue()

    async def open_note(self, note_id: UUID) -> NoteSyncProvider:
        return await self.providers.open(note_id)

    async def close_note(self, note_id: UUID) -> None:
        await self.providers.close(note_id)

    async def logout(self) -> None:
        """Close everything and drop this user's unsent mutations."""
        await self.providers.close_all()
        await self.queue.clear()
        await self.close()

    async def close(self) -> None:
        await self.providers.close_all()
        queue = self._queues.current
        if queue is not None:
            await queue.wait_for_drain()
        self._queues.release()
        if isinstance(self.network, HealthCheckNetworkMonitor):
            await self.network.stop()
        await self._remote.aclose()
        await self._local_engine.dispose()
        logger.info("Sync session closed for user %s", self.user_id)

    def _create_provider(self, note_id: UUID) -> NoteSyncProvider:
        return NoteSyncProvider(
            note_id,
            self.user_id,
            local_store=self._local_store,
            remote=self._remote,
            realtime=self._realtime,
            network=self.network,
            user_name=self._user_name,
            debounce_seconds=self._debounce_seconds,
        )

    def _create_queue(self, user_id: UUID) -> OfflineMutationQueue:
        return OfflineMutationQueue(
            user_id,
            session_factory=self._session_factory,
            remote=self._remote,
            network=self.network,
            max_retries=self._max_retries,
        )
