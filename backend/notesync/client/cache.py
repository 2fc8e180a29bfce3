from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Iterator, Optional

from notesync.models.notes import NoteOut

# Ids of notes created online but not yet confirmed by the server.
TEMP_ID_PREFIX = "temp-"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class CachedNote:
    id: str
    title: str
    content: str
    version: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_pending_create(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)

    @classmethod
    def from_server(cls, note: NoteOut) -> "CachedNote":
        return cls(
            id=note.id,
            title=note.title,
            content=note.content,
            version=note.version,
            created_at=note.created_at,
            updated_at=note.updated_at,
        )


class NoteCache:
    """The client's local mirror of its notes, keyed by id."""

    def __init__(self, notes: Optional[list[CachedNote]] = None):
        self._notes: dict[str, CachedNote] = {}
        for n in notes or []:
            self._notes[n.id] = n

    def __len__(self) -> int:
        return len(self._notes)

    def __contains__(self, note_id: object) -> bool:
        return note_id in self._notes

    def __iter__(self) -> Iterator[CachedNote]:
        return iter(list(self._notes.values()))

    def get(self, note_id: str) -> Optional[CachedNote]:
        return self._notes.get(note_id)

    def put(self, note: CachedNote) -> None:
        self._notes[note.id] = note

    def remove(self, note_id: str) -> Optional[CachedNote]:
        return self._notes.pop(note_id, None)

    def edit(self, note_id: str, title: Optional[str] = None, content: Optional[str] = None) -> CachedNote:
        """Change text fields locally. The version is left alone."""
        edited = self.edited(note_id, title=title, content=content)
        self._notes[note_id] = edited
        return edited

    def edited(self, note_id: str, title: Optional[str] = None, content: Optional[str] = None) -> CachedNote:
        current = self._notes.get(note_id)
        if current is None:
            raise KeyError(note_id)
        changes = {"updated_at": utc_now_iso()}
        if title is not None:
            changes["title"] = title
        if content is not None:
            changes["content"] = content
        return replace(current, **changes)

    def snapshot(self) -> list[CachedNote]:
        return list(self._notes.values())

    def search(self, query: str) -> list[CachedNote]:
        """Notes whose title or content contains `query`, ignoring case.

        A blank query matches everything.
        """
        needle = query.strip().casefold()
        if not needle:
            return self.snapshot()
        return [
            n for n in self._notes.values()
            if needle in n.title.casefold() or needle in n.content.casefold()
        ]

    @contextmanager
    def optimistic(self, note_id: str, draft: Optional[CachedNote]) -> Iterator[Optional[CachedNote]]:
        """Show `draft` for one entry while the block runs.

        A `draft` of None removes the entry. Yields the entry as it was
        before. If the block raises (including cancellation) and the entry
        still holds this draft, the old entry is put back, or removed if
        there was none. An entry replaced meanwhile, for example by a sync
        cycle writing the server's copy, is left as it is.
        """
        prior = self._notes.get(note_id)
        if draft is None:
            self._notes.pop(note_id, None)
        else:
            self._notes[note_id] = draft
        try:
            yield prior
        except BaseException:
            if self._notes.get(note_id) is draft:
                if prior is None:
                    self._notes.pop(note_id, None)
                else:
                    self._notes[note_id] = prior
            raise
