from uuid import uuid4

import pytest
from pycrdt import XmlText

from notes.application.services import (
    create_folder,
    create_note,
    delete_folder,
    delete_note,
    get_folder,
    get_note,
    get_note_state,
    list_collaborators,
    save_note_state,
    share_note,
    unshare_note,
    update_folder,
    update_note,
)
from collaboration.infrastructure.yjs_adapter import apply_update, create_doc, get_content, get_text
from notes.domain.entities import Folder, Note, NoteCollaborator, NoteRole
from notes.infrastructure.note_repository import DbFolderRepository, DbNoteRepository
from shared.exceptions import AuthorizationError, ConflictError, NotFoundError


@pytest.fixture
def repo(db):
    return DbNoteRepository(db)


@pytest.fixture
def folder_repo(db):
    return DbFolderRepository(db)


async def test_create_note(repo, user_id):
    note = await create_note(repo, Note(user_id=user_id, title="My Note"))
    assert note.id is not None
    assert note.title == "My Note"
    assert note.user_id == user_id
    assert note.is_deleted is False


async def test_create_note_keeps_client_id(repo, user_id):
    note_id = uuid4()
    note = await create_note(repo, Note(id=note_id, user_id=user_id))
    assert note.id == note_id
    assert note.title == "Untitled"


async def test_create_existing_note_conflicts(repo, user_id):
    note_id = uuid4()
    await create_note(repo, Note(id=note_id, user_id=user_id))
    with pytest.raises(ConflictError):
        await create_note(repo, Note(id=note_id, user_id=user_id))


async def test_get_note_not_found(repo, user_id):
    with pytest.raises(NotFoundError):
        await get_note(repo, uuid4(), user_id)


async def test_get_note_wrong_owner(repo, user_id):
    note = await create_note(repo, Note(user_id=user_id))
    with pytest.raises(AuthorizationError):
        await get_note(repo, note.id, uuid4())


async def test_update_note(repo, user_id):
    note = await create_note(repo, Note(user_id=user_id, title="Old"))
    updated = await update_note(repo, note.id, user_id, {"title": "New", "position": 3})
    assert updated.title == "New"
    assert updated.position == 3


async def test_delete_note_is_soft(repo, user_id):
    note = await create_note(repo, Note(user_id=user_id))
    deleted = await delete_note(repo, note.id, user_id)
    assert deleted.is_deleted is True
    assert deleted.deleted_at is not None

    again = await get_note(repo, note.id, user_id)
    assert again.is_deleted is True


async def test_note_state(repo, user_id):
    note = await create_note(repo, Note(user_id=user_id))
    assert await get_note_state(repo, note.id, user_id) is None

    await save_note_state(repo, note.id, user_id, b"state")
    assert await get_note_state(repo, note.id, user_id) == b"state"


async def test_save_state_wrong_owner(repo, user_id):
    note = await create_note(repo, Note(user_id=user_id))
    with pytest.raises(AuthorizationError):
        await save_note_state(repo, note.id, uuid4(), b"state")


def edit(text: str) -> bytes:
    doc = create_doc()
    get_content(doc).children.append(XmlText(text))
    return doc.get_update()


async def test_saves_from_diverged_clients_are_merged(repo, user_id):
    note = await create_note(repo, Note(user_id=user_id))

    await save_note_state(repo, note.id, user_id, edit("A"))
    await save_note_state(repo, note.id, user_id, edit("B"))

    doc = create_doc()
    apply_update(doc, await get_note_state(repo, note.id, user_id))
    assert sorted(get_text(doc)) == ["A", "B"]


async def test_editor_can_read_and_write(repo, user_id):
    note = await create_note(repo, Note(user_id=user_id, title="Shared"))
    editor = uuid4()
    await share_note(repo, note.id, user_id, NoteCollaborator(note.id, editor, NoteRole.EDITOR))

    assert (await get_note(repo, note.id, editor)).title == "Shared"
    await save_note_state(repo, note.id, editor, edit("from editor"))
    updated = await update_note(repo, note.id, editor, {"title": "Renamed"})
    assert updated.title == "Renamed"
    with pytest.raises(AuthorizationError):
        await delete_note(repo, note.id, editor)


async def test_viewer_is_read_only(repo, user_id):
    note = await create_note(repo, Note(user_id=user_id))
    await save_note_state(repo, note.id, user_id, b"state")
    viewer = uuid4()
    await share_note(repo, note.id, user_id, NoteCollaborator(note.id, viewer, NoteRole.VIEWER))

    assert await get_note_state(repo, note.id, viewer) == b"state"
    with pytest.raises(AuthorizationError):
        await save_note_state(repo, note.id, viewer, b"other")
    with pytest.raises(AuthorizationError):
        await update_note(repo, note.id, viewer, {"title": "Nope"})


async def test_only_owner_manages_collaborators(repo, user_id):
    note = await create_note(repo, Note(user_id=user_id))
    editor = uuid4()
    await share_note(repo, note.id, user_id, NoteCollaborator(note.id, editor, NoteRole.EDITOR))

    with pytest.raises(AuthorizationError):
        await share_note(repo, note.id, editor, NoteCollaborator(note.id, uuid4()))
    with pytest.raises(ConflictError):
        await share_note(repo, note.id, user_id, NoteCollaborator(note.id, user_id))

    demoted = await share_note(
        repo, note.id, user_id, NoteCollaborator(note.id, editor, NoteRole.VIEWER)
    )
    assert demoted.role is NoteRole.VIEWER
    assert [c.user_id for c in await list_collaborators(repo, note.id, editor)] == [editor]

    await unshare_note(repo, note.id, user_id, editor)
    with pytest.raises(AuthorizationError):
        await get_note_state(repo, note.id, editor)


async def test_folder_lifecycle(folder_repo, user_id):
    folder = await create_folder(folder_repo, Folder(name="Inbox", user_id=user_id))
    assert (await get_folder(folder_repo, folder.id, user_id)).name == "Inbox"

    renamed = await update_folder(folder_repo, folder.id, user_id, {"name": "Archive"})
    assert renamed.name == "Archive"

    await delete_folder(folder_repo, folder.id, user_id)
    with pytest.raises(NotFoundError):
        await get_folder(folder_repo, folder.id, user_id)


async def test_delete_folder_wrong_owner(folder_repo, user_id):
    folder = await create_folder(folder_repo, Folder(name="Inbox", user_id=user_id))
    with pytest.raises(AuthorizationError):
        await delete_folder(folder_repo, folder.id, uuid4())
