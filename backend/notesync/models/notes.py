from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from notesync.storage.notes_store import NOTE_ID_PATTERN


class CamelModel(BaseModel):
    # wire format is camelCase; python side stays snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NoteCreate(CamelModel):
    title: str = Field(min_length=1)
    content: str = ""
    id: Optional[str] = Field(default=None, pattern=NOTE_ID_PATTERN)


class NoteUpdate(CamelModel):
    title: Optional[str] = None
    content: Optional[str] = None
    base_version: Optional[int] = Field(default=None, ge=0)


class NoteOut(CamelModel):
    id: str
    title: str
    content: str
    version: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
