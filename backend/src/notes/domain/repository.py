from typing import Any, Protocol
from uuid import UUID

from notes.domain.entities import Folder, Note, NoteCollaborator, NoteRole


class NoteRepository(Protocol):
    async def get_by_id(self, note_id: UUID) -> Note | None: ...

    async def create(self, note: Note) -> Note: ...

    async def update(self, note_id: UUID, values: dict[str, Any]) -> Note: ...

    async def get_state(self, note_id: UUID, for_update: bool = False) -> bytes | None: ...

    async def save_state(self, note_id: UUID, state: bytes) -> None: ...

    async def get_role(self, note_id: UUID, user_id: UUID) -> NoteRole | None: ...

    async def list_collaborators(self, note_id: UUID) -> list[NoteCollaborator]: ...

    async def upsert_collaborator(self, collaborator: NoteCollaborator) -> NoteCollaborator: ...

    async def remove_collaborator(self, note_id: UUID, user_id: UUID) -> None: ...


class FolderRepository(Protocol):
    async def get_by_id(self, folder_id: UUID) -> Folder | None: ...

    async def create(self, folder: Folder) -> Folder: ...

    async def update(self, folder_id: UUID, values: dict[str, Any]) -> Folder: ...

    async def delete(self, folder_id: UUID) -> None: ...
