from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from notes.domain.entities import NoteRole


class CreateNoteRequest(BaseModel):
    id: UUID | None = None
    folder_id: UUID | None = None
    title: str = "Untitled"
    content_json: dict[str, Any] | None = None
    content_text: str | None = None
    is_archived: bool = False
    position: int = 0


class UpdateNoteRequest(BaseModel):
    folder_id: UUID | None = None
    title: str | None = None
    content_json: dict[str, Any] | None = None
    content_text: str | None = None
    is_archived: bool | None = None
    is_deleted: bool | None = None
    deleted_at: datetime | None = None
    position: int | None = None


class NoteResponse(BaseModel):
    id: UUID
    user_id: UUID
    folder_id: UUID | None = None
    title: str
    content_json: dict[str, Any] | None = None
    content_text: str | None = None
    is_archived: bool
    is_deleted: bool
    deleted_at: datetime | None = None
    position: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ShareNoteRequest(BaseModel):
    user_id: UUID
    role: NoteRole = NoteRole.VIEWER


class CollaboratorResponse(BaseModel):
    note_id: UUID
    user_id: UUID
    role: NoteRole
    created_at: datetime | None = None


class CreateFolderRequest(BaseModel):
    id: UUID | None = None
    name: str
    parent_id: UUID | None = None
    color: str | None = None
    icon: str | None = None
    position: int = 0


class UpdateFolderRequest(BaseModel):
    name: str | None = None
    parent_id: UUID | None = None
    color: str | None = None
    icon: str | None = None
    position: int | None = None


class FolderResponse(BaseModel):
    id: UUID
    user_id: UUID
    name: str
    parent_id: UUID | None = None
    color: str | None = None
    icon: str | None = None
    position: int
    created_at: datetime | None = None
    updated_at: datetime | None = None
