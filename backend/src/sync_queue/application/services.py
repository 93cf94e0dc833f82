"""Offline queue for note and folder metadata mutations.

Mutations are written to the local store first and applied to the notes
service in FIFO order whenever the device is online. A failing item is
retried on later drains until it has failed ``max_retries`` times; it is then
evicted and reported in :class:`DrainResult.errors`. Evicted mutations are
not reconciled afterwards.

Within a drain, once an item for an entity fails and stays queued, later
items for that entity wait for the next drain so they never overtake it.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shared.config import settings
from shared.exceptions import (
    LocalPersistenceError,
    QueuePayloadError,
    RemoteBackendError,
    RemoteConflictError,
)
from shared.infrastructure.api_client import RemoteBackendClient
from shared.infrastructure.network import NetworkMonitor
from sync_queue.domain.entities import (
    DrainResult,
    EntityType,
    Operation,
    QueueFailure,
    QueueItem,
)
from sync_queue.domain.payloads import QueuePayload, decode_payload
from sync_queue.domain.repository import SyncQueueRepository
from sync_queue.infrastructure.queue_repository import DbSyncQueueRepository

logger = logging.getLogger(__name__)

COLLECTIONS: dict[EntityType, str] = {
    EntityType.NOTE: "notes",
    EntityType.FOLDER: "folders",
}

DrainCallback = Callable[[DrainResult], None]


class OfflineMutationQueue:
    def __init__(
        self,
        user_id: UUID,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        remote: RemoteBackendClient,
        network: NetworkMonitor,
        max_retries: int | None = None,
    ):
        self.user_id = user_id
        self.max_retries = max_retries if max_retries is not None else settings.SYNC_MAX_RETRIES
        self._session_factory = session_factory
        self._remote = remote
        self._network = network
        self._processing = False
        self._drain_task: asyncio.Task | None = None
        self._drain_callbacks: list[DrainCallback] = []
        self._unsubscribe_network: Callable[[], None] | None = network.on_change(self._on_network_change)

    @property
    def processing(self) -> bool:
        return self._processing

    async def enqueue(
        self,
        entity_type: EntityType | str,
        entity_id: UUID,
        operation: Operation | str,
        payload: QueuePayload | dict[str, Any] | None = None,
    ) -> QueueItem:
        """Durably record a mutation and kick off a drain when online.

        Returns once the item is stored; the remote call is not awaited.
        """
        entity_type = EntityType(entity_type)
        operation = Operation(operation)
        decoded = decode_payload(entity_type, operation, payload)

        item = QueueItem(
            id=uuid4(),
            user_id=self.user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            operation=operation,
            payload=decoded.to_row(),
        )
        saved = await self._with_repo("enqueue", lambda repo: repo.add(item))

        if self._network.is_online() and not self._processing:
            self._start_drain()
        return saved

    async def process_queue(self) -> DrainResult:
        if self._processing:
            return DrainResult()

        self._processing = True
        result = DrainResult()
        try:
            if not self._network.is_online():
                return result
            await self._drain(result)
            result.success = result.failed == 0
        finally:
            self._processing = False

        if result.processed or result.failed:
            logger.info(
                "Drained sync queue for user %s: %d processed, %d failed, %d evicted",
                self.user_id,
                result.processed,
                result.failed,
                len(result.errors),
            )
        for callback in list(self._drain_callbacks):
            callback(result)
        return result

    async def wait_for_drain(self) -> None:
        if self._drain_task is not None:
            await self._drain_task

    async def get_queue_length(self) -> int:
        return await self._with_repo("count", lambda repo: repo.count(self.user_id))

    async def get_pending_items(self) -> list[QueueItem]:
        return await self._with_repo("list", lambda repo: repo.list_pending(self.user_id))

    async def clear(self) -> None:
        await self._with_repo("clear", lambda repo: repo.clear(self.user_id))
        logger.info("Cleared sync queue for user %s", self.user_id)

    def on_drain(self, callback: DrainCallback) -> Callable[[], None]:
        self._drain_callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._drain_callbacks:
                self._drain_callbacks.remove(callback)

        return unsubscribe

    def destroy(self) -> None:
        """Stop reacting to connectivity changes. Queued items stay stored."""
        if self._unsubscribe_network is not None:
            self._unsubscribe_network()
            self._unsubscribe_network = None

    # ------------------------------------------------------------------

    async def _drain(self, result: DrainResult) -> None:
        attempted: set[UUID] = set()
        blocked: set[tuple[EntityType, UUID]] = set()

        while True:
            items = [i for i in await self.get_pending_items() if i.id not in attempted]
            if not items:
                return

            for item in items:
                if not self._network.is_online():
                    return
                attempted.add(item.id)
                entity = (item.entity_type, item.entity_id)
                if entity in blocked:
                    continue

                try:
                    await self._process_item(item)
                except (RemoteBackendError, QueuePayloadError) as exc:
                    result.failed += 1
                    failure = await self._record_failure(item, exc.message)
                    if failure is not None:
                        result.errors.append(failure)
                    else:
                        blocked.add(entity)
                    continue

                await self._with_repo("remove", lambda repo: repo.remove(item.id))
                result.processed += 1

    async def _process_item(self, item: QueueItem) -> None:
        payload = decode_payload(item.entity_type, item.operation, item.payload)
        collection = COLLECTIONS[item.entity_type]

        if item.operation is Operation.CREATE:
            row = {"id": str(item.entity_id), **payload.to_row()}
            try:
                await self._remote.insert(collection, row)
            except RemoteConflictError:
                logger.info("%s %s already exists remotely", item.entity_type, item.entity_id)
        elif item.operation is Operation.UPDATE:
            await self._remote.update(collection, item.entity_id, payload.to_row())
        elif item.entity_type is EntityType.NOTE:
            await self._remote.update(
                collection,
                item.entity_id,
                {"is_deleted": True, "deleted_at": datetime.now(UTC).isoformat()},
            )
        else:
            await self._remote.delete(collection, item.entity_id)

    async def _record_failure(self, item: QueueItem, error: str) -> QueueFailure | None:
        """Bump the retry count, or evict the item once the ceiling is reached."""
        retry_count = item.retry_count + 1
        if retry_count < self.max_retries:
            logger.warning(
                "Queue item %s (%s %s) failed, attempt %d of %d: %s",
                item.id,
                item.operation,
                item.entity_type,
                retry_count,
                self.max_retries,
                error,
            )
            await self._with_repo(
                "record failure", lambda repo: repo.record_failure(item.id, retry_count, error)
            )
            return None

        logger.error(
            "Queue item %s (%s %s %s) evicted after %d attempts: %s",
            item.id,
            item.operation,
            item.entity_type,
            item.entity_id,
            retry_count,
            error,
        )
        await self._with_repo("remove", lambda repo: repo.remove(item.id))
        return QueueFailure(
            id=item.id,
            entity_type=item.entity_type,
            entity_id=item.entity_id,
            operation=item.operation,
            error=error,
        )

    def _start_drain(self) -> None:
        if self._drain_task is not None and not self._drain_task.done():
            return
        self._drain_task = asyncio.create_task(self.process_queue())
        self._drain_task.add_done_callback(self._on_drain_done)

    def _on_drain_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        # Still raised to whoever awaits wait_for_drain.
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background drain of sync queue for user %s failed: %s",
                self.user_id,
                exc,
                exc_info=exc,
            )

    def _on_network_change(self, online: bool) -> None:
        if online and not self._processing:
            logger.info("Back online, processing sync queue for user %s", self.user_id)
            self._start_drain()

    async def _with_repo(self, action: str, call: Callable[[SyncQueueRepository], Any]) -> Any:
        try:
            async with self._session_factory() as session:
                return await call(DbSyncQueueRepository(session))
        except SQLAlchemyError as exc:
            raise LocalPersistenceError(f"Sync queue {action} failed: {exc}") from exc
