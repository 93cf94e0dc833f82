from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from uuid import UUID


class UpdateOrigin(StrEnum):
    LOCAL = "local"
    REMOTE = "remote"
    REPLAY = "replay"


@dataclass
class CrdtSnapshot:
    note_id: UUID
    snapshot: bytes
    state_vector: bytes
    update_seq: int
    id: int | None = field(default=None)
    created_at: datetime | None = field(default=None)


@dataclass
class CrdtUpdate:
    note_id: UUID
    update_data: bytes
    update_seq: int
    id: int | None = field(default=None)
    created_at: datetime | None = field(default=None)


@dataclass
class OfflineUpdate:
    """A document update captured while disconnected, waiting to be merged upstream."""

    note_id: UUID
    update_data: bytes
    id: int | None = field(default=None)
    created_at: datetime | None = field(default=None)


@dataclass
class SyncState:
    synced: bool = False
    syncing: bool = False
    error: str | None = None
    last_sync_at: datetime | None = None


@dataclass(frozen=True)
class Collaborator:
    id: str
    name: str
    color: str
