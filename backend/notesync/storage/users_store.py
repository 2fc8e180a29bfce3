from __future__ import annotations

import json
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from loguru import logger

from notesync.storage.notes_store import StorageError, _atomic_write_json, _safe_user_dir

logger = logger.bind(module="users_store")


@dataclass(frozen=True)
class UserRecord:
    user_id: str
    hashed_password: str
    created_at: str


class UsersStore:
    """Account records at data/users/<user_id>/user.json, next to the notes dir."""

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir
        self._create_lock = threading.Lock()

    def _user_path(self, user_id: str) -> Path:
        return _safe_user_dir(self.base_dir, user_id).parent / "user.json"

    def get(self, user_id: str) -> Optional[UserRecord]:
        p = self._user_path(user_id)
        if not p.exists():
            return None
        try:
            raw = json.loads(p.read_text(encoding="utf-8"))
            return UserRecord(
                user_id=raw["user_id"],
                hashed_password=raw["hashed_password"],
                created_at=raw["created_at"],
            )
        except (OSError, ValueError, KeyError) as exc:
            raise StorageError(f"Cannot read user record for {user_id}") from exc

    def create(self, user_id: str, hashed_password: str) -> UserRecord:
        p = self._user_path(user_id)
        with self._create_lock:
            if p.exists():
                raise FileExistsError("User exists")
            rec = UserRecord(
                user_id=user_id,
                hashed_password=hashed_password,
                created_at=datetime.now(timezone.utc).isoformat(),
            )
            _atomic_write_json(p, asdict(rec))
        logger.info(f"Registered user {user_id}")
        return rec
