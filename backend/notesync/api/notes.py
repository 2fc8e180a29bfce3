from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Path, status
from loguru import logger
from pydantic import ValidationError

from notesync import config
from notesync.models.notes import NoteCreate, NoteOut, NoteUpdate
from notesync.models.sync import ServerData, SyncChange, SyncConflict, SyncRequest, SyncResponse
from notesync.storage.notes_store import NOTE_ID_PATTERN, Note, NotesStore, StorageError
from notesync.sync.processor import Change, Conflict, SyncProcessor
from notesync.utils.jwt_auth import get_current_user

logger = logger.bind(module="api.notes")

router = APIRouter(prefix="/notes", tags=["notes"])

DATA_DIR = config.data_dir()
store = NotesStore(DATA_DIR)
processor = SyncProcessor(store)

NoteId = Annotated[str, Path(pattern=NOTE_ID_PATTERN)]


def _note_out(note: Note) -> NoteOut:
    return NoteOut(
        id=note.id,
        title=note.title,
        content=note.content,
        version=note.version,
        created_at=note.created_at,
        updated_at=note.updated_at,
    )


def _to_change(raw: Any) -> Change:
    try:
        item = SyncChange.model_validate(raw)
    except ValidationError:
        # unusable item: no base version, so it is reported as missing fields
        raw_id = raw.get("id") if isinstance(raw, dict) else None
        return Change(id=raw_id if isinstance(raw_id, str) else None, base_version=None)
    return Change(id=item.id, base_version=item.base_version, title=item.title, content=item.content)


def _conflict_out(conflict: Conflict) -> SyncConflict:
    # serverData is left unset (and so dropped from the response) unless the
    # conflict carries a server snapshot
    fields = {
        "id": conflict.id,
        "reason": conflict.reason.value,
        "client_version": conflict.client_version,
        "server_version": conflict.server_version,
    }
    if conflict.has_server_data:
        fields["server_data"] = ServerData(title=conflict.server_title, content=conflict.server_content)
    return SyncConflict(**fields)


@router.post("/sync", response_model=SyncResponse, response_model_exclude_unset=True)
def sync_notes(payload: SyncRequest, user_id: str = Depends(get_current_user)) -> SyncResponse:
    changes = [_to_change(raw) for raw in payload.changes]
    try:
        report = processor.sync(user_id, changes)
    except StorageError:
        logger.exception(f"[{user_id}] sync batch of {len(changes)} changes failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to sync notes")

    return SyncResponse(
        applied=[_note_out(n) for n in report.applied],
        conflicts=[_conflict_out(c) for c in report.conflicts],
    )


@router.post("", response_model=NoteOut, status_code=status.HTTP_201_CREATED)
def create_note(payload: NoteCreate, user_id: str = Depends(get_current_user)) -> NoteOut:
    try:
        note = store.create_note(user_id=user_id, title=payload.title, content=payload.content, note_id=payload.id)
    except FileExistsError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Note exists")
    return _note_out(note)


@router.get("", response_model=list[NoteOut])
def list_notes(user_id: str = Depends(get_current_user)) -> list[NoteOut]:
    return [_note_out(n) for n in store.list_notes(user_id=user_id)]


@router.get("/{note_id}", response_model=NoteOut)
def get_note(note_id: NoteId, user_id: str = Depends(get_current_user)) -> NoteOut:
    note = store.get_note(user_id=user_id, note_id=note_id)
    if note is None:
        raise HTTPException(status_code=404, detail="Note not found")
    return _note_out(note)


@router.put("/{note_id}", response_model=NoteOut)
def update_note(payload: NoteUpdate, note_id: NoteId, user_id: str = Depends(get_current_user)) -> NoteOut:
    existing = store.get_note(user_id=user_id, note_id=note_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Note not found")

    updated = store.update_note_if_version(
        user_id=user_id,
        note_id=note_id,
        expected_version=payload.base_version,
        title=payload.title,
        content=payload.content,
    )
    if updated is None:
        if payload.base_version is not None and store.get_note(user_id=user_id, note_id=note_id) is not None:
            raise HTTPException(status_code=409, detail="Version conflict")
        raise HTTPException(status_code=404, detail="Note not found")
    return _note_out(updated)


@router.delete("/{note_id}", status_code=204)
def delete_note(note_id: NoteId, user_id: str = Depends(get_current_user)) -> None:
    if not store.delete_note(user_id=user_id, note_id=note_id):
        raise HTTPException(status_code=404, detail="Note not found")
    return None
