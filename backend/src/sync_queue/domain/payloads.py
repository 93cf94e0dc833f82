"""Structured payloads for queued mutations, keyed by entity type and operation."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, ValidationError

from shared.exceptions import QueuePayloadError
from sync_queue.domain.entities import EntityType, Operation


class QueuePayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True)


class NoteCreate(QueuePayload):
    folder_id: UUID | None = None
    title: str = "Untitled"
    content_json: dict[str, Any] | None = None
    content_text: str | None = None
    is_archived: bool = False
    position: int = 0


class NoteUpdate(QueuePayload):
    folder_id: UUID | None = None
    title: str | None = None
    content_json: dict[str, Any] | None = None
    content_text: str | None = None
    is_archived: bool | None = None
    is_deleted: bool | None = None
    deleted_at: datetime | None = None
    position: int | None = None


class FolderCreate(QueuePayload):
    name: str
    parent_id: UUID | None = None
    color: str | None = None
    icon: str | None = None
    position: int = 0


class FolderUpdate(QueuePayload):
    name: str | None = None
    parent_id: UUID | None = None
    color: str | None = None
    icon: str | None = None
    position: int | None = None


class DeletePayload(QueuePayload):
    pass


PAYLOAD_TYPES: dict[tuple[EntityType, Operation], type[QueuePayload]] = {
    (EntityType.NOTE, Operation.CREATE): NoteCreate,
    (EntityType.NOTE, Operation.UPDATE): NoteUpdate,
    (EntityType.NOTE, Operation.DELETE): DeletePayload,
    (EntityType.FOLDER, Operation.CREATE): FolderCreate,
    (EntityType.FOLDER, Operation.UPDATE): FolderUpdate,
    (EntityType.FOLDER, Operation.DELETE): DeletePayload,
}


def decode_payload(
    entity_type: EntityType,
    operation: Operation,
    payload: QueuePayload | dict[str, Any] | None,
) -> QueuePayload:
    payload_type = PAYLOAD_TYPES[(entity_type, operation)]
    if isinstance(payload, payload_type):
        return payload
    if isinstance(payload, QueuePayload):
        raise QueuePayloadError(
            f"{type(payload).__name__} is not a valid payload for {entity_type} {operation}"
        )
    try:
        return payload_type.model_validate(payload or {})
    except ValidationError as exc:
        raise QueuePayloadError(f"Invalid {entity_type} {operation} payload: {exc}") from exc
