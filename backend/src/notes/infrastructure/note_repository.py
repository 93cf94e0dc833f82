from typing import Any
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from notes.domain.entities import Folder, Note, NoteCollaborator, NoteRole
from notes.infrastructure.models import FolderModel, NoteCollaboratorModel, NoteModel
from shared.exceptions import ConflictError, NotFoundError


class DbNoteRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, note_id: UUID) -> Note | None:
        result = await self.session.execute(select(NoteModel).where(NoteModel.id == note_id))
        model = result.scalar_one_or_none()
        return _note_to_entity(model) if model else None

    async def create(self, note: Note) -> Note:
        model = NoteModel(
            user_id=note.user_id,
            folder_id=note.folder_id,
            title=note.title,
            content_json=note.content_json,
            content_text=note.content_text,
            is_archived=note.is_archived,
            position=note.position,
        )
        if note.id is not None:
            model.id = note.id
        self.session.add(model)
        await _commit(self.session, f"Note {note.id} could not be created")
        await self.session.refresh(model)
        return _note_to_entity(model)

    async def update(self, note_id: UUID, values: dict[str, Any]) -> Note:
        if values:
            await self.session.execute(update(NoteModel).where(NoteModel.id == note_id).values(**values))
            await _commit(self.session, f"Note {note_id} could not be updated")
        note = await self._refreshed(note_id)
        if note is None:
            raise NotFoundError("Note", str(note_id))
        return note

    async def get_state(self, note_id: UUID, for_update: bool = False) -> bytes | None:
        stmt = select(NoteModel.yjs_state).where(NoteModel.id == note_id)
        if for_update:
            # Held until save_state commits, so concurrent saves merge in turn.
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def save_state(self, note_id: UUID, state: bytes) -> None:
        await self.session.execute(
            update(NoteModel).where(NoteModel.id == note_id).values(yjs_state=state)
        )
        await self.session.commit()

    async def get_role(self, note_id: UUID, user_id: UUID) -> NoteRole | None:
        result = await self.session.execute(
            select(NoteCollaboratorModel.role).where(
                NoteCollaboratorModel.note_id == note_id,
                NoteCollaboratorModel.user_id == user_id,
            )
        )
        role = result.scalar_one_or_none()
        return NoteRole(role) if role else None

    async def list_collaborators(self, note_id: UUID) -> list[NoteCollaborator]:
        result = await self.session.execute(
            select(NoteCollaboratorModel)
            .where(NoteCollaboratorModel.note_id == note_id)
            .order_by(NoteCollaboratorModel.created_at, NoteCollaboratorModel.user_id)
        )
        return [_collaborator_to_entity(m) for m in result.scalars().all()]

    async def upsert_collaborator(self, collaborator: NoteCollaborator) -> NoteCollaborator:
        result = await self.session.execute(
            select(NoteCollaboratorModel).where(
                NoteCollaboratorModel.note_id == collaborator.note_id,
                NoteCollaboratorModel.user_id == collaborator.user_id,
            )
        )
        model = result.scalar_one_or_none()
        if model is None:
            model = NoteCollaboratorModel(note_id=collaborator.note_id, user_id=collaborator.user_id)
            self.session.add(model)
        model.role = collaborator.role.value
        await _commit(self.session, f"Collaborator {collaborator.user_id} could not be saved")
        await self.session.refresh(model)
        return _collaborator_to_entity(model)

    async def remove_collaborator(self, note_id: UUID, user_id: UUID) -> None:
        await self.session.execute(
            delete(NoteCollaboratorModel).where(
                NoteCollaboratorModel.note_id == note_id,
                NoteCollaboratorModel.user_id == user_id,
            )
        )
        await self.session.commit()

    async def _refreshed(self, note_id: UUID) -> Note | None:
        result = await self.session.execute(
            select(NoteModel).where(NoteModel.id == note_id).execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return _note_to_entity(model) if model else None


class DbFolderRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, folder_id: UUID) -> Folder | None:
        result = await self.session.execute(select(FolderModel).where(FolderModel.id == folder_id))
        model = result.scalar_one_or_none()
        return _folder_to_entity(model) if model else None

    async def create(self, folder: Folder) -> Folder:
        model = FolderModel(
            user_id=folder.user_id,
            name=folder.name,
            parent_id=folder.parent_id,
            color=folder.color,
            icon=folder.icon,
            position=folder.position,
        )
        if folder.id is not None:
            model.id = folder.id
        self.session.add(model)
        await _commit(self.session, f"Folder {folder.id} could not be created")
        await self.session.refresh(model)
        return _folder_to_entity(model)

    async def update(self, folder_id: UUID, values: dict[str, Any]) -> Folder:
        if values:
            await self.session.execute(
                update(FolderModel).where(FolderModel.id == folder_id).values(**values)
            )
            await _commit(self.session, f"Folder {folder_id} could not be updated")
        result = await self.session.execute(
            select(FolderModel)
            .where(FolderModel.id == folder_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        if model is None:
            raise NotFoundError("Folder", str(folder_id))
        return _folder_to_entity(model)

    async def delete(self, folder_id: UUID) -> None:
        result = await self.session.execute(select(FolderModel).where(FolderModel.id == folder_id))
        model = result.scalar_one_or_none()
        if model:
            await self.session.delete(model)
            await self.session.commit()


async def _commit(session: AsyncSession, message: str) -> None:
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError(f"{message}: {exc.orig}") from exc


def _note_to_entity(model: NoteModel) -> Note:
    return Note(
        id=model.id,
        user_id=model.user_id,
        folder_id=model.folder_id,
        title=model.title,
        content_json=model.content_json,
        content_text=model.content_text,
        is_archived=model.is_archived,
        is_deleted=model.is_deleted,
        deleted_at=model.deleted_at,
        position=model.position,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _folder_to_entity(model: FolderModel) -> Folder:
    return Folder(
        id=model.id,
        user_id=model.user_id,
        name=model.name,
        parent_id=model.parent_id,
        color=model.color,
        icon=model.icon,
        position=model.position,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _collaborator_to_entity(model: NoteCollaboratorModel) -> NoteCollaborator:
    return NoteCollaborator(
        id=model.id,
        note_id=model.note_id,
        user_id=model.user_id,
        role=NoteRole(model.role),
        created_at=model.created_at,
    )
