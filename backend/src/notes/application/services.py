from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from collaboration.infrastructure.yjs_adapter import merge_updates
from notes.domain.entities import Folder, Note, NoteCollaborator, NoteRole
from notes.domain.repository import FolderRepository, NoteRepository
from shared.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidNoteStateError,
    NotFoundError,
)


async def create_note(repo: NoteRepository, note: Note) -> Note:
    if note.id is not None and await repo.get_by_id(note.id):
        raise ConflictError(f"Note already exists: {note.id}")
    return await repo.create(note)


async def get_note(repo: NoteRepository, note_id: UUID, user_id: UUID) -> Note:
    note, _ = await _accessible_note(repo, note_id, user_id)
    return note


async def update_note(
    repo: NoteRepository, note_id: UUID, user_id: UUID, values: dict[str, Any]
) -> Note:
    await _accessible_note(repo, note_id, user_id, write=True)
    return await repo.update(note_id, values)


async def delete_note(repo: NoteRepository, note_id: UUID, user_id: UUID) -> Note:
    """Notes are only ever soft deleted, and only by their owner."""
    await _owned_note(repo, note_id, user_id)
    return await repo.update(note_id, {"is_deleted": True, "deleted_at": datetime.now(UTC)})


async def get_note_state(repo: NoteRepository, note_id: UUID, user_id: UUID) -> bytes | None:
    await _accessible_note(repo, note_id, user_id)
    return await repo.get_state(note_id)


async def save_note_state(repo: NoteRepository, note_id: UUID, user_id: UUID, update: bytes) -> None:
    """Merge ``update`` into the stored document state.

    Clients send their whole state, but a client that missed a broadcast does
    not hold every edit, so the stored state is never replaced outright.
    """
    await _accessible_note(repo, note_id, user_id, write=True)
    stored = await repo.get_state(note_id, for_update=True)
    if stored:
        try:
            update = merge_updates([stored, update])
        except ValueError as exc:
            raise InvalidNoteStateError(f"Note {note_id} state could not be merged: {exc}") from exc
    await repo.save_state(note_id, update)


async def list_collaborators(
    repo: NoteRepository, note_id: UUID, user_id: UUID
) -> list[NoteCollaborator]:
    await _accessible_note(repo, note_id, user_id)
    return await repo.list_collaborators(note_id)


async def share_note(
    repo: NoteRepository, note_id: UUID, user_id: UUID, collaborator: NoteCollaborator
) -> NoteCollaborator:
    note = await _owned_note(repo, note_id, user_id)
    if collaborator.user_id == note.user_id:
        raise ConflictError("The note owner cannot be added as a collaborator")
    return await repo.upsert_collaborator(collaborator)


async def unshare_note(
    repo: NoteRepository, note_id: UUID, user_id: UUID, collaborator_id: UUID
) -> None:
    await _owned_note(repo, note_id, user_id)
    await repo.remove_collaborator(note_id, collaborator_id)


async def create_folder(repo: FolderRepository, folder: Folder) -> Folder:
    if folder.id is not None and await repo.get_by_id(folder.id):
        raise ConflictError(f"Folder already exists: {folder.id}")
    return await repo.create(folder)


async def get_folder(repo: FolderRepository, folder_id: UUID, user_id: UUID) -> Folder:
    return await _owned_folder(repo, folder_id, user_id)


async def update_folder(
    repo: FolderRepository, folder_id: UUID, user_id: UUID, values: dict[str, Any]
) -> Folder:
    await _owned_folder(repo, folder_id, user_id)
    return await repo.update(folder_id, values)


async def delete_folder(repo: FolderRepository, folder_id: UUID, user_id: UUID) -> None:
    await _owned_folder(repo, folder_id, user_id)
    await repo.delete(folder_id)


async def _owned_note(repo: NoteRepository, note_id: UUID, user_id: UUID) -> Note:
    note = await repo.get_by_id(note_id)
    if not note:
        raise NotFoundError("Note", str(note_id))
    if note.user_id != user_id:
        raise AuthorizationError("Only the note owner can do this")
    return note


async def _accessible_note(
    repo: NoteRepository, note_id: UUID, user_id: UUID, write: bool = False
) -> tuple[Note, NoteRole]:
    note = await repo.get_by_id(note_id)
    if not note:
        raise NotFoundError("Note", str(note_id))
    if note.user_id == user_id:
        return note, NoteRole.OWNER
    role = await repo.get_role(note_id, user_id)
    if role is None:
        raise AuthorizationError("Note is not shared with this user")
    if write and not role.can_write:
        raise AuthorizationError("Viewers cannot change the note")
    return note, role


async def _owned_folder(repo: FolderRepository, folder_id: UUID, user_id: UUID) -> Folder:
    folder = await repo.get_by_id(folder_id)
    if not folder:
        raise NotFoundError("Folder", str(folder_id))
    if folder.user_id != user_id:
        raise AuthorizationError("Only the folder owner can access it")
    return folder
