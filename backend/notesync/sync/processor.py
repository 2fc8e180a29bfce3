"""Server-side batch sync with per-note optimistic concurrency.

Each proposed change is classified against the stored note into one of the
`Outcome` kinds, then applied with the store's compare-and-swap primitives.
A lost race (someone else wrote the note between the read and the write)
sends the change back through classification against the fresh state.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterable, Optional

from loguru import logger

from notesync.storage.notes_store import Note, NotesStore, StorageError, is_valid_note_id

logger = logger.bind(module="sync_processor")

# Each change gets at most this many classify/write rounds before the store is
# considered unable to make progress.
MAX_APPLY_ATTEMPTS = 8


class ConflictReason(str, enum.Enum):
    MISSING_FIELDS = "Missing required fields"
    VERSION_CONFLICT = "Version conflict"
    CLIENT_AHEAD = "Client version ahead of server"


class Outcome(enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    STALE_CONFLICT = "stale_conflict"
    AHEAD_CONFLICT = "ahead_conflict"
    INVALID = "invalid"


@dataclass(frozen=True)
class Change:
    id: Optional[str]
    base_version: Optional[int]
    title: Optional[str] = None
    content: Optional[str] = None


@dataclass(frozen=True)
class Conflict:
    id: Optional[str]
    reason: ConflictReason
    client_version: Optional[int]
    server_version: Optional[int]
    server_title: Optional[str] = None
    server_content: Optional[str] = None

    @property
    def has_server_data(self) -> bool:
        return self.reason is ConflictReason.VERSION_CONFLICT


@dataclass
class SyncReport:
    applied: list[Note] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.applied) + len(self.conflicts)


def classify(change: Change, existing: Optional[Note]) -> Outcome:
    # an id the store cannot key a note by counts as missing
    if not is_valid_note_id(change.id) or change.base_version is None:
        return Outcome.INVALID
    if existing is None:
        return Outcome.CREATED
    if change.base_version == existing.version:
        return Outcome.UPDATED
    if change.base_version < existing.version:
        return Outcome.STALE_CONFLICT
    return Outcome.AHEAD_CONFLICT


class SyncProcessor:
    def __init__(self, store: NotesStore):
        self.store = store

    def sync(self, user_id: str, changes: Iterable[Change]) -> SyncReport:
        report = SyncReport()
        received = 0
        for change in changes:
            received += 1
            self._apply_one(user_id, change, report)

        logger.info(
            f"[{user_id}] sync batch: {received} changes, "
            f"{len(report.applied)} applied, {len(report.conflicts)} conflicts"
        )
        return report

    def _apply_one(self, user_id: str, change: Change, report: SyncReport) -> None:
        for _ in range(MAX_APPLY_ATTEMPTS):
            existing = None
            if is_valid_note_id(change.id) and change.base_version is not None:
                existing = self.store.get_note(user_id=user_id, note_id=change.id)

            outcome = classify(change, existing)

            if outcome is Outcome.INVALID:
                report.conflicts.append(Conflict(
                    id=change.id,
                    reason=ConflictReason.MISSING_FIELDS,
                    client_version=change.base_version,
                    server_version=None,
                ))
                return

            if outcome is Outcome.CREATED:
                created = self.store.create_note_if_absent(
                    user_id=user_id,
                    note_id=change.id,
                    title=change.title if change.title is not None else "",
                    content=change.content if change.content is not None else "",
                )
                if created is None:
                    continue  # created concurrently; classify again
                report.applied.append(created)
                return

            if outcome is Outcome.UPDATED:
                updated = self.store.update_note_if_version(
                    user_id=user_id,
                    note_id=change.id,
                    expected_version=existing.version,
                    title=change.title,
                    content=change.content,
                )
                if updated is None:
                    continue  # version moved or note deleted; classify again
                report.applied.append(updated)
                return

            if outcome is Outcome.STALE_CONFLICT:
                logger.warning(
                    f"[{user_id}] version conflict on {change.id}: "
                    f"client at {change.base_version}, server at {existing.version}"
                )
                report.conflicts.append(Conflict(
                    id=change.id,
                    reason=ConflictReason.VERSION_CONFLICT,
                    client_version=change.base_version,
                    server_version=existing.version,
                    server_title=existing.title,
                    server_content=existing.content,
                ))
                return

            if outcome is Outcome.AHEAD_CONFLICT:
                # Only a store rollback or a buggy client gets here.
                logger.error(
                    f"[{user_id}] data integrity: client claims version {change.base_version} "
                    f"of {change.id} but server has {existing.version}"
                )
                report.conflicts.append(Conflict(
                    id=change.id,
                    reason=ConflictReason.CLIENT_AHEAD,
                    client_version=change.base_version,
                    server_version=existing.version,
                ))
                return

            raise AssertionError(f"Unhandled outcome {outcome!r}")

        raise StorageError(f"Could not apply change to {change.id} after {MAX_APPLY_ATTEMPTS} attempts")
