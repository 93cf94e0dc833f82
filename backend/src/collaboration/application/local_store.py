"""On-device persistence for note documents.

Plays the part IndexedDB plays in a browser: every update is appended to a
per-note log, and hydration replays it into a fresh document.
"""

import asyncio
import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from collaboration.application.services import load_document_state, persist_update
from collaboration.domain.entities import OfflineUpdate
from collaboration.infrastructure.crdt_storage_repository import (
    DbCrdtStorageRepository,
    DbOfflineUpdateRepository,
)
from collaboration.infrastructure.yjs_adapter import encode_state_as_update
from shared.exceptions import LocalPersistenceError

logger = logging.getLogger(__name__)


class LocalDocumentStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        snapshot_interval: int | None = None,
    ):
        self._session_factory = session_factory
        self._snapshot_interval = snapshot_interval
        # Keeps update_seq allocation gap free across concurrent writers.
        self._write_lock = asyncio.Lock()

    async def hydrate(self, note_id: UUID) -> bytes | None:
        try:
            async with self._session_factory() as session:
                doc, found = await load_document_state(DbCrdtStorageRepository(session), note_id)
        except SQLAlchemyError as exc:
            raise LocalPersistenceError(f"Failed to hydrate note {note_id}: {exc}") from exc
        return encode_state_as_update(doc) if found else None

    async def on_update(self, note_id: UUID, update: bytes) -> None:
        try:
            async with self._write_lock, self._session_factory() as session:
                await persist_update(
                    DbCrdtStorageRepository(session),
                    note_id,
                    update,
                    snapshot_interval=self._snapshot_interval,
                )
        except SQLAlchemyError as exc:
            raise LocalPersistenceError(f"Failed to persist update for note {note_id}: {exc}") from exc

    async def queue_offline_update(self, note_id: UUID, update: bytes) -> OfflineUpdate:
        try:
            async with self._session_factory() as session:
                return await DbOfflineUpdateRepository(session).add(
                    OfflineUpdate(note_id=note_id, update_data=update)
                )
        except SQLAlchemyError as exc:
            raise LocalPersistenceError(f"Failed to queue offline update for note {note_id}: {exc}") from exc

    async def get_offline_updates(self, note_id: UUID) -> list[OfflineUpdate]:
        try:
            async with self._session_factory() as session:
                return await DbOfflineUpdateRepository(session).list_for_note(note_id)
        except SQLAlchemyError as exc:
            raise LocalPersistenceError(f"Failed to read offline updates for note {note_id}: {exc}") from exc

    async def remove_offline_updates(self, ids: list[int]) -> None:
        try:
            async with self._session_factory() as session:
                await DbOfflineUpdateRepository(session).delete(ids)
        except SQLAlchemyError as exc:
            raise LocalPersistenceError(f"Failed to remove offline updates: {exc}") from exc
