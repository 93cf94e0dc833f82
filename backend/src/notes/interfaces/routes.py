from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

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
from notes.domain.entities import Folder, Note, NoteCollaborator
from notes.infrastructure.note_repository import DbFolderRepository, DbNoteRepository
from notes.interfaces.schemas import (
    CollaboratorResponse,
    CreateFolderRequest,
    CreateNoteRequest,
    FolderResponse,
    NoteResponse,
    ShareNoteRequest,
    UpdateFolderRequest,
    UpdateNoteRequest,
)
from shared.dependencies import get_current_user, get_db

notes_router = APIRouter(prefix="/api/notes", tags=["notes"])
folders_router = APIRouter(prefix="/api/folders", tags=["folders"])


@notes_router.post("", response_model=NoteResponse, status_code=201)
async def create(
    body: CreateNoteRequest,
    user_id: UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    repo = DbNoteRepository(db)
    return await create_note(repo, Note(user_id=user_id, **body.model_dump()))


@notes_router.get("/{note_id}", response_model=NoteResponse)
async def get_one(
    note_id: UUID,
    user_id: UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    repo = DbNoteRepository(db)
    return await get_note(repo, note_id, user_id)


@notes_router.patch("/{note_id}", response_model=NoteResponse)
async def update(
    note_id: UUID,
    body: UpdateNoteRequest,
    user_id: UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    repo = DbNoteRepository(db)
    return await update_note(repo, note_id, user_id, body.model_dump(exclude_unset=True))


@notes_router.delete("/{note_id}", response_model=NoteResponse)
async def delete(
    note_id: UUID,
    user_id: UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    repo = DbNoteRepository(db)
    return await delete_note(repo, note_id, user_id)


@notes_router.get("/{note_id}/state")
async def get_state(
    note_id: UUID,
    user_id: UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    repo = DbNoteRepository(db)
    state = await get_note_state(repo, note_id, user_id)
    if state is None:
        return Response(status_code=204)
    return Response(content=state, media_type="application/octet-stream")


@notes_router.put("/{note_id}/state", status_code=204)
async def put_state(
    note_id: UUID,
    request: Request,
    user_id: UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    repo = DbNoteRepository(db)
    await save_note_state(repo, note_id, user_id, await request.body())
    return Response(status_code=204)


@notes_router.get("/{note_id}/collaborators", response_model=list[CollaboratorResponse])
async def get_collaborators(
    note_id: UUID,
    user_id: UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    repo = DbNoteRepository(db)
    return await list_collaborators(repo, note_id, user_id)


@notes_router.put("/{note_id}/collaborators", response_model=CollaboratorResponse)
async def share(
    note_id: UUID,
    body: ShareNoteRequest,
    user_id: UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    repo = DbNoteRepository(db)
    collaborator = NoteCollaborator(note_id=note_id, user_id=body.user_id, role=body.role)
    return await share_note(repo, note_id, user_id, collaborator)


@notes_router.delete("/{note_id}/collaborators/{collaborator_id}", status_code=204)
async def unshare(
    note_id: UUID,
    collaborator_id: UUID,
    user_id: UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    repo = DbNoteRepository(db)
    await unshare_note(repo, note_id, user_id, collaborator_id)
    return Response(status_code=204)


@folders_router.post("", response_model=FolderResponse, status_code=201)
async def create_one_folder(
    body: CreateFolderRequest,
    user_id: UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    repo = DbFolderRepository(db)
    return await create_folder(repo, Folder(user_id=user_id, **body.model_dump()))


@folders_router.get("/{folder_id}", response_model=FolderResponse)
async def get_one_folder(
    folder_id: UUID,
    user_id: UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    repo = DbFolderRepository(db)
    return await get_folder(repo, folder_id, user_id)


@folders_router.patch("/{folder_id}", response_model=FolderResponse)
async def update_one_folder(
    folder_id: UUID,
    body: UpdateFolderRequest,
    user_id: UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    repo = DbFolderRepository(db)
    return await update_folder(repo, folder_id, user_id, body.model_dump(exclude_unset=True))


@folders_router.delete("/{folder_id}", status_code=204)
async def delete_one_folder(
    folder_id: UUID,
    user_id: UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    repo = DbFolderRepository(db)
    await delete_folder(repo, folder_id, user_id)
    return Response(status_code=204)
