from typing import Protocol
from uuid import UUID

from sync_queue.domain.entities import QueueItem


class SyncQueueRepository(Protocol):
    async def add(self, item: QueueItem) -> QueueItem: ...

    async def list_pending(self, user_id: UUID) -> list[QueueItem]: ...

    async def remove(self, item_id: UUID) -> None: ...

    async def record_failure(self, item_id: UUID, retry_count: int, error: str) -> None: ...

    async def count(self, user_id: UUID) -> int: ...

    async def clear(self, user_id: UUID) -> None: ...
