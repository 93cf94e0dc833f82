from uuid import uuid4

import pytest

from shared.exceptions import QueuePayloadError
from sync_queue.domain.entities import EntityType, Operation
from sync_queue.domain.payloads import (
    DeletePayload,
    FolderCreate,
    NoteCreate,
    NoteUpdate,
    decode_payload,
)


def test_decode_dict_into_typed_payload():
    payload = decode_payload(EntityType.NOTE, Operation.CREATE, {"title": "Draft"})
    assert isinstance(payload, NoteCreate)
    assert payload.title == "Draft"


def test_to_row_keeps_only_fields_that_were_set():
    folder_id = uuid4()
    payload = NoteUpdate(folder_id=folder_id)
    assert payload.to_row() == {"folder_id": str(folder_id)}


def test_explicit_null_is_kept():
    payload = decode_payload(EntityType.NOTE, Operation.UPDATE, {"folder_id": None})
    assert payload.to_row() == {"folder_id": None}


def test_missing_payload_for_delete():
    payload = decode_payload(EntityType.FOLDER, Operation.DELETE, None)
    assert isinstance(payload, DeletePayload)
    assert payload.to_row() == {}


def test_folder_create_requires_name():
    with pytest.raises(QueuePayloadError):
        decode_payload(EntityType.FOLDER, Operation.CREATE, {"color": "#fff"})


def test_unknown_fields_are_rejected():
    with pytest.raises(QueuePayloadError):
        decode_payload(EntityType.NOTE, Operation.UPDATE, {"owner": "someone"})


def test_payload_type_must_match_operation():
    with pytest.raises(QueuePayloadError):
        decode_payload(EntityType.NOTE, Operation.CREATE, FolderCreate(name="Inbox"))
