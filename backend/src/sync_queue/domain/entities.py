from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID


class EntityType(StrEnum):
    NOTE = "note"
    FOLDER = "folder"


class Operation(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class QueueItem:
    user_id: UUID
    entity_type: EntityType
    entity_id: UUID
    operation: Operation
    payload: dict[str, Any]
    id: UUID | None = field(default=None)
    created_at: datetime | None = field(default=None)
    retry_count: int = 0
    error: str | None = None


@dataclass(frozen=True)
class QueueFailure:
    id: UUID
    entity_type: EntityType
    entity_id: UUID
    operation: Operation
    error: str


@dataclass
class DrainResult:
    success: bool = True
    processed: int = 0
    failed: int = 0
    errors: list[QueueFailure] = field(default_factory=list)
