from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID


class NoteRole(StrEnum):
    OWNER = "owner"
    EDITOR = "editor"
    VIEWER = "viewer"

    @property
    def can_write(self) -> bool:
        return self in (NoteRole.OWNER, NoteRole.EDITOR)


@dataclass
class Folder:
    name: str
    user_id: UUID
    parent_id: UUID | None = None
    color: str | None = None
    icon: str | None = None
    position: int = 0
    id: UUID | None = field(default=None)
    created_at: datetime | None = field(default=None)
    updated_at: datetime | None = field(default=None)


@dataclass
class Note:
    user_id: UUID
    title: str = "Untitled"
    folder_id: UUID | None = None
    content_json: dict[str, Any] | None = None
    content_text: str | None = None
    is_archived: bool = False
    is_deleted: bool = False
    deleted_at: datetime | None = None
    position: int = 0
    id: UUID | None = field(default=None)
    created_at: datetime | None = field(default=None)
    updated_at: datetime | None = field(default=None)


@dataclass
class NoteCollaborator:
    note_id: UUID
    user_id: UUID
    role: NoteRole = NoteRole.VIEWER
    id: UUID | None = field(default=None)
    created_at: datetime | None = field(default=None)
