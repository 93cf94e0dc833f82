from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sync_queue.domain.entities import EntityType, Operation, QueueItem
from sync_queue.infrastructure.models import SyncQueueModel


class DbSyncQueueRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, item: QueueItem) -> QueueItem:
        model = SyncQueueModel(
            user_id=item.user_id,
            entity_type=item.entity_type.value,
            entity_id=item.entity_id,
            operation=item.operation.value,
            payload=item.payload,
            retry_count=item.retry_count,
        )
        if item.id is not None:
            model.id = item.id
        self.session.add(model)
        await self.session.commit()
        await self.session.refresh(model)
        return _to_entity(model)

    async def list_pending(self, user_id: UUID) -> list[QueueItem]:
        result = await self.session.execute(
            select(SyncQueueModel)
            .where(SyncQueueModel.user_id == user_id)
            .order_by(SyncQueueModel.seq.asc())
        )
        return [_to_entity(m) for m in result.scalars().all()]

    async def remove(self, item_id: UUID) -> None:
        await self.session.execute(delete(SyncQueueModel).where(SyncQueueModel.id == item_id))
        await self.session.commit()

    async def record_failure(self, item_id: UUID, retry_count: int, error: str) -> None:
        await self.session.execute(
            update(SyncQueueModel)
            .where(SyncQueueModel.id == item_id)
            .values(retry_count=retry_count, error=error)
        )
        await self.session.commit()

    async def count(self, user_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(SyncQueueModel).where(SyncQueueModel.user_id == user_id)
        )
        return result.scalar_one()

    async def clear(self, user_id: UUID) -> None:
        await self.session.execute(delete(SyncQueueModel).where(SyncQueueModel.user_id == user_id))
        await self.session.commit()


def _to_entity(model: SyncQueueModel) -> QueueItem:
    return QueueItem(
        id=model.id,
        user_id=model.user_id,
        entity_type=EntityType(model.entity_type),
        entity_id=model.entity_id,
        operation=Operation(model.operation),
        payload=model.payload,
        created_at=model.created_at,
        retry_count=model.retry_count,
        error=model.error,
    )
