from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from collaboration.domain.entities import CrdtSnapshot, CrdtUpdate, OfflineUpdate
from collaboration.infrastructure.models import (
    CrdtSnapshotModel,
    CrdtUpdateModel,
    OfflineUpdateModel,
)


class DbCrdtStorageRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_latest_snapshot(self, note_id: UUID) -> CrdtSnapshot | None:
        result = await self.session.execute(
            select(CrdtSnapshotModel)
            .where(CrdtSnapshotModel.note_id == note_id)
            .order_by(CrdtSnapshotModel.update_seq.desc(), CrdtSnapshotModel.id.desc())
            .limit(1)
        )
        model = result.scalar_one_or_none()
        return _snapshot_to_entity(model) if model else None

    async def get_updates_since(self, note_id: UUID, since_seq: int) -> list[CrdtUpdate]:
        result = await self.session.execute(
            select(CrdtUpdateModel)
            .where(
                CrdtUpdateModel.note_id == note_id,
                CrdtUpdateModel.update_seq > since_seq,
            )
            .order_by(CrdtUpdateModel.update_seq.asc())
        )
        return [_update_to_entity(m) for m in result.scalars().all()]

    async def save_update(self, update: CrdtUpdate) -> CrdtUpdate:
        model = CrdtUpdateModel(
            note_id=update.note_id,
            update_data=update.update_data,
            update_seq=update.update_seq,
        )
        self.session.add(model)
        await self.session.commit()
        await self.session.refresh(model)
        return _update_to_entity(model)

    async def save_snapshot(self, snapshot: CrdtSnapshot) -> CrdtSnapshot:
        model = CrdtSnapshotModel(
            note_id=snapshot.note_id,
            snapshot=snapshot.snapshot,
            state_vector=snapshot.state_vector,
            update_seq=snapshot.update_seq,
        )
        self.session.add(model)
        await self.session.commit()
        await self.session.refresh(model)
        return _snapshot_to_entity(model)

    async def delete_updates_before(self, note_id: UUID, up_to_seq: int) -> None:
        await self.session.execute(
            delete(CrdtUpdateModel).where(
                CrdtUpdateModel.note_id == note_id,
                CrdtUpdateModel.update_seq <= up_to_seq,
            )
        )
        # Older snapshots are superseded by the one covering up_to_seq.
        await self.session.execute(
            delete(CrdtSnapshotModel).where(
                CrdtSnapshotModel.note_id == note_id,
                CrdtSnapshotModel.update_seq < up_to_seq,
            )
        )
        await self.session.commit()

    async def get_next_seq(self, note_id: UUID) -> int:
        update_seq = await self.session.execute(
            select(func.coalesce(func.max(CrdtUpdateModel.update_seq), 0))
            .where(CrdtUpdateModel.note_id == note_id)
        )
        snapshot_seq = await self.session.execute(
            select(func.coalesce(func.max(CrdtSnapshotModel.update_seq), 0))
            .where(CrdtSnapshotModel.note_id == note_id)
        )
        return max(update_seq.scalar_one(), snapshot_seq.scalar_one()) + 1


class DbOfflineUpdateRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, update: OfflineUpdate) -> OfflineUpdate:
        model = OfflineUpdateModel(note_id=update.note_id, update_data=update.update_data)
        self.session.add(model)
        await self.session.commit()
        await self.session.refresh(model)
        return _offline_to_entity(model)

    async def list_for_note(self, note_id: UUID) -> list[OfflineUpdate]:
        result = await self.session.execute(
            select(OfflineUpdateModel)
            .where(OfflineUpdateModel.note_id == note_id)
            .order_by(OfflineUpdateModel.id.asc())
        )
        return [_offline_to_entity(m) for m in result.scalars().all()]

    async def delete(self, ids: list[int]) -> None:
        if not ids:
            return
        await self.session.execute(delete(OfflineUpdateModel).where(OfflineUpdateModel.id.in_(ids)))
        await self.session.commit()


def _snapshot_to_entity(model: CrdtSnapshotModel) -> CrdtSnapshot:
    return CrdtSnapshot(
        id=model.id,
        note_id=model.note_id,
        snapshot=model.snapshot,
        state_vector=model.state_vector,
        update_seq=model.update_seq,
        created_at=model.created_at,
    )


def _update_to_entity(model: CrdtUpdateModel) -> CrdtUpdate:
    return CrdtUpdate(
        id=model.id,
        note_id=model.note_id,
        update_data=model.update_data,
        update_seq=model.update_seq,
        created_at=model.created_at,
    )


def _offline_to_entity(model: OfflineUpdateModel) -> OfflineUpdate:
    return OfflineUpdate(
        id=model.id,
        note_id=model.note_id,
        update_data=model.update_data,
        created_at=model.created_at,
    )
