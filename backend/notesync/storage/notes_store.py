import json
import os
import re
import threading
import uuid
import weakref
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

logger = logger.bind(module="notes_store")

NOTE_ID_PATTERN = r"^[A-Za-z0-9_-]{1,128}$"
_NOTE_ID_RE = re.compile(NOTE_ID_PATTERN)


def is_valid_note_id(note_id: Optional[str]) -> bool:
    return bool(note_id) and _NOTE_ID_RE.match(note_id) is not None


class StorageError(Exception):
    """A note file could not be read or written."""


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _safe_user_dir(base_dir: Path, user_id: str) -> Path:
    # user_id comes from a verified token, but it still becomes a path segment
    if not user_id or any(ch in user_id for ch in "/\\") or ".." in user_id:
        raise ValueError("Invalid user_id")
    return base_dir / "users" / user_id / "notes"


def _note_path(base_dir: Path, user_id: str, note_id: str) -> Path:
    if not is_valid_note_id(note_id):
        raise ValueError("Invalid note_id")
    return _safe_user_dir(base_dir, user_id) / f"{note_id}.json"


def _atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())
        tmp_path.replace(path)
    except OSError as exc:
        raise StorageError(f"Cannot write {path.name}") from exc


def _read_note(path: Path) -> Optional["Note"]:
    if not path.exists():
        return None
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return Note.from_dict(raw)
    except (OSError, ValueError, KeyError, TypeError) as exc:
        raise StorageError(f"Cannot read {path.name}") from exc


@dataclass(frozen=True)
class Note:
    id: str
    owner_user_id: str
    title: str
    content: str
    created_at: str
    updated_at: str
    version: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_user_id": self.owner_user_id,
            "title": self.title,
            "content": self.content,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Note":
        return cls(
            id=str(raw["id"]),
            owner_user_id=raw["owner_user_id"],
            title=raw["title"],
            content=raw["content"],
            created_at=raw["created_at"],
            updated_at=raw["updated_at"],
            version=int(raw["version"]),
        )


class NotesStore:
    """One JSON file per note under data/users/<owner>/notes.

    Every read-check-write sequence for a note runs under that note's lock,
    so `update_note_if_version` behaves as an atomic compare-and-swap.
    """

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir
        # entries vanish once no caller holds the lock
        self._locks: "weakref.WeakValueDictionary[tuple[str, str], threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _lock_for(self, user_id: str, note_id: str) -> threading.Lock:
        key = (user_id, note_id)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def create_note(self, user_id: str, title: str, content: str, note_id: Optional[str] = None) -> Note:
        note_id = note_id or str(uuid.uuid4())
        note = self.create_note_if_absent(user_id, note_id, title, content)
        if note is None:
            raise FileExistsError("Note exists")
        return note

    def create_note_if_absent(self, user_id: str, note_id: str, title: str, content: str) -> Optional[Note]:
        path = _note_path(self.base_dir, user_id, note_id)
        with self._lock_for(user_id, note_id):
            if path.exists():
                return None
            now = _utc_now_iso()
            note = Note(
                id=note_id,
                owner_user_id=user_id,
                title=title,
                content=content,
                created_at=now,
                updated_at=now,
                version=1,
            )
            _atomic_write_json(path, note.to_dict())
        return note

    def list_notes(self, user_id: str) -> list[Note]:
        notes_dir = _safe_user_dir(self.base_dir, user_id)
        if not notes_dir.exists():
            return []
        out: list[Note] = []
        for p in notes_dir.glob("*.json"):
            try:
                note = _read_note(p)
            except StorageError:
                logger.warning(f"Skipping unreadable note file {p.name} for {user_id}")
                continue
            if note is not None:
                out.append(note)
        out.sort(key=lambda n: n.created_at, reverse=True)
        return out

    def get_note(self, user_id: str, note_id: str) -> Optional[Note]:
        return _read_note(_note_path(self.base_dir, user_id, note_id))

    def update_note_if_version(
        self,
        user_id: str,
        note_id: str,
        expected_version: Optional[int],
        title: Optional[str] = None,
        content: Optional[str] = None,
    ) -> Optional[Note]:
        """Apply the given fields and bump the version by one.

        `None` fields keep their stored value. With `expected_version` set, the
        write only happens when the stored version still equals it. Returns
        None when the note is missing or the version check fails.
        """
        path = _note_path(self.base_dir, user_id, note_id)
        with self._lock_for(user_id, note_id):
            existing = _read_note(path)
            if existing is None:
                return None
            if expected_version is not None and existing.version != expected_version:
                return None

            updated = Note(
                id=existing.id,
                owner_user_id=existing.owner_user_id,
                title=existing.title if title is None else title,
                content=existing.content if content is None else content,
                created_at=existing.created_at,
                updated_at=_utc_now_iso(),
                version=existing.version + 1,
            )
            _atomic_write_json(path, updated.to_dict())
        return updated

    def update_note(
        self,
        user_id: str,
        note_id: str,
        title: Optional[str] = None,
        content: Optional[str] = None,
    ) -> Optional[Note]:
        return self.update_note_if_version(user_id, note_id, None, title=title, content=content)

    def delete_note(self, user_id: str, note_id: str) -> bool:
        path = _note_path(self.base_dir, user_id, note_id)
        with self._lock_for(user_id, note_id):
            if not path.exists():
                return False
            try:
                path.unlink()
            except OSError as exc:
                raise StorageError(f"Cannot delete {path.name}") from exc
        return True
