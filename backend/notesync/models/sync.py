from typing import Any, Optional

from pydantic import Field

from notesync.models.notes import CamelModel, NoteOut


class SyncChange(CamelModel):
    id: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    base_version: Optional[int] = None


class SyncRequest(CamelModel):
    # Items are checked one by one in the route, so a bad item becomes a
    # conflict of its own instead of failing the batch.
    changes: list[Any]


class ServerData(CamelModel):
    title: str
    content: str


class SyncConflict(CamelModel):
    id: Optional[str] = None
    reason: str
    client_version: Optional[int] = None
    server_version: Optional[int] = None
    server_data: Optional[ServerData] = None


class SyncResponse(CamelModel):
    applied: list[NoteOut] = Field(default_factory=list)
    conflicts: list[SyncConflict] = Field(default_factory=list)
