from uuid import UUID

from pycrdt import Doc

from collaboration.domain.entities import CrdtSnapshot, CrdtUpdate
from collaboration.domain.repository import CrdtStorageRepository
from collaboration.infrastructure.yjs_adapter import (
    apply_update,
    create_doc,
    encode_state_as_update,
    encode_state_vector,
)
from shared.config import settings


async def load_document_state(repo: CrdtStorageRepository, note_id: UUID) -> tuple[Doc, bool]:
    """Rebuild a note from its latest local snapshot plus the updates after it.

    The flag is False when nothing was ever stored for the note.
    """
    doc = create_doc()
    found = False

    snapshot = await repo.get_latest_snapshot(note_id)
    since_seq = 0
    if snapshot:
        apply_update(doc, snapshot.snapshot)
        since_seq = snapshot.update_seq
        found = True

    updates = await repo.get_updates_since(note_id, since_seq)
    for update in updates:
        apply_update(doc, update.update_data)
        found = True

    return doc, found


async def persist_update(
    repo: CrdtStorageRepository,
    note_id: UUID,
    update_data: bytes,
    snapshot_interval: int | None = None,
) -> CrdtUpdate:
    """Append an incremental update and compact the log every N updates."""
    interval = snapshot_interval or settings.LOCAL_SNAPSHOT_INTERVAL
    seq = await repo.get_next_seq(note_id)

    update = CrdtUpdate(note_id=note_id, update_data=update_data, update_seq=seq)
    saved = await repo.save_update(update)

    if seq % interval == 0:
        await create_snapshot(repo, note_id)

    return saved


async def create_snapshot(repo: CrdtStorageRepository, note_id: UUID) -> CrdtSnapshot:
    """Fold the update log into a snapshot, then prune the covered updates."""
    doc, _ = await load_document_state(repo, note_id)

    next_seq = await repo.get_next_seq(note_id)
    current_seq = next_seq - 1

    snapshot = CrdtSnapshot(
        note_id=note_id,
        snapshot=encode_state_as_update(doc),
        state_vector=encode_state_vector(doc),
        update_seq=current_seq,
    )
    saved = await repo.save_snapshot(snapshot)
    await repo.delete_updates_before(note_id, current_seq)

    return saved
