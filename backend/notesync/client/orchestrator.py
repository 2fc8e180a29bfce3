"""Client sync orchestrator.

One `SyncOrchestrator` owns a note cache, a conflict queue and the
in-flight flag for its sync cycles. A cycle snapshots the cache, posts the
batch, then writes back only the entries the server named in its answer.
Single-note writes go through `NoteCache.optimistic` so a failed request
leaves the cache as it was.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Optional, Union

from loguru import logger

from notesync.client.cache import TEMP_ID_PREFIX, CachedNote, NoteCache, utc_now_iso
from notesync.client.conflicts import ConflictQueue, ConflictResolver, ResolutionPolicy
from notesync.client.transport import NotesTransport, TransportError
from notesync.models.notes import NoteOut
from notesync.models.sync import SyncChange, SyncConflict

logger = logger.bind(module="client.orchestrator")


@dataclass
class SyncResult:
    applied: list[NoteOut] = field(default_factory=list)
    conflicts: list[SyncConflict] = field(default_factory=list)
    skipped: bool = False


class SyncOrchestrator:
    def __init__(
        self,
        cache: NoteCache,
        transport: NotesTransport,
        conflicts: Optional[ConflictQueue] = None,
    ):
        self.cache = cache
        self.transport = transport
        self.conflicts = conflicts if conflicts is not None else ConflictQueue()
        self.resolver = ConflictResolver(self)
        self.last_error: Optional[TransportError] = None
        self._in_flight = False

    @property
    def is_syncing(self) -> bool:
        return self._in_flight

    @property
    def has_conflicts(self) -> bool:
        return len(self.conflicts) > 0

    def build_changes(self) -> list[SyncChange]:
        # Unconfirmed online creates are still on their way to the server.
        # Items are not validated here; the server judges each one.
        return [
            SyncChange.model_construct(id=n.id, title=n.title, content=n.content, base_version=n.version)
            for n in self.cache.snapshot()
            if not n.is_pending_create
        ]

    async def sync_cycle(self) -> SyncResult:
        """Run one sync round unless one is already running.

        A call made while a cycle is in flight returns `SyncResult(skipped=True)`
        without touching the network. Transport failures are raised as
        `TransportError` with the cache unchanged.
        """
        if self._in_flight:
            logger.debug("Sync already in progress; trigger dropped")
            return SyncResult(skipped=True)

        self._in_flight = True
        try:
            changes = self.build_changes()
            logger.info(f"Starting sync cycle with {len(changes)} changes")
            try:
                response = await self.transport.sync(changes)
            except TransportError as exc:
                self.last_error = exc
                logger.error(f"Sync cycle failed: {exc}")
                raise

            self._apply_response(response.applied, response.conflicts)
            self.last_error = None
            if response.conflicts:
                logger.warning(f"Sync cycle reported {len(response.conflicts)} conflicts")
            logger.info(f"Sync cycle finished: {len(response.applied)} applied")
            return SyncResult(applied=response.applied, conflicts=response.conflicts)
        finally:
            self._in_flight = False

    def _apply_response(self, applied: list[NoteOut], conflicts: list[SyncConflict]) -> None:
        for note in applied:
            # deleted locally while the request was out: leave it deleted
            if note.id in self.cache:
                self.cache.put(CachedNote.from_server(note))
            self.conflicts.discard(note.id)
        for conflict in conflicts:
            self.conflicts.upsert(conflict)

    async def resolve_conflict(self, conflict_id: str, policy: Union[ResolutionPolicy, str]) -> None:
        await self.resolver.resolve(conflict_id, policy)

    # --- offline edits, carried by the next sync cycle ---

    def add_local_note(self, title: str, content: str = "", note_id: Optional[str] = None) -> CachedNote:
        now = utc_now_iso()
        note = CachedNote(
            id=note_id or uuid.uuid4().hex,
            title=title,
            content=content,
            version=0,
            created_at=now,
            updated_at=now,
        )
        self.cache.put(note)
        return note

    def edit_local_note(self, note_id: str, title: Optional[str] = None, content: Optional[str] = None) -> CachedNote:
        return self.cache.edit(note_id, title=title, content=content)

    async def load_remote_notes(self) -> int:
        """Add server notes this cache has never seen; returns how many were added.

        Entries already cached are left for the sync cycle to reconcile, so
        pending local edits are never overwritten here.
        """
        added = 0
        for note in await self.transport.list_notes():
            if note.id not in self.cache:
                self.cache.put(CachedNote.from_server(note))
                added += 1
        return added

    # --- optimistic single-note writes ---

    async def create_note(self, title: str, content: str = "") -> CachedNote:
        temp_id = f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"
        now = utc_now_iso()
        try:
            draft = CachedNote(id=temp_id, title=title, content=content, version=0, created_at=now, updated_at=now)
            with self.cache.optimistic(temp_id, draft):
                created = await self.transport.create_note(title, content)
        except TransportError as exc:
            logger.error(f"Create note failed: {exc}")
            raise

        self.cache.remove(temp_id)
        confirmed = CachedNote.from_server(created)
        self.cache.put(confirmed)
        return confirmed

    async def update_note(
        self,
        note_id: str,
        title: Optional[str] = None,
        content: Optional[str] = None,
    ) -> CachedNote:
        current = self.cache.get(note_id)
        if current is None:
            raise KeyError(note_id)

        try:
            with self.cache.optimistic(note_id, self.cache.edited(note_id, title=title, content=content)):
                updated = await self.transport.update_note(
                    note_id, title=title, content=content, base_version=current.version,
                )
        except TransportError as exc:
            logger.error(f"Update of {note_id} failed: {exc}")
            raise

        confirmed = CachedNote.from_server(updated)
        self.cache.put(confirmed)
        return confirmed

    async def delete_note(self, note_id: str) -> None:
        if note_id not in self.cache:
            raise KeyError(note_id)

        try:
            with self.cache.optimistic(note_id, None):
                await self.transport.delete_note(note_id)
        except TransportError as exc:
            logger.error(f"Delete of {note_id} failed: {exc}")
            raise

        self.conflicts.discard(note_id)

    async def delete_notes(self, note_ids: list[str]) -> list[str]:
        """Delete several notes, one request each; returns the ids deleted.

        Ids not in the cache are skipped. Each delete rolls back on its own,
        so one failure leaves the others deleted. The first `TransportError`
        is raised after every id has been tried.
        """
        deleted: list[str] = []
        first_error: Optional[TransportError] = None
        for note_id in note_ids:
            if note_id not in self.cache:
                continue
            try:
                await self.delete_note(note_id)
            except TransportError as exc:
                if first_error is None:
                    first_error = exc
                continue
            deleted.append(note_id)

        if first_error is not None:
            logger.warning(f"Batch delete removed {len(deleted)} of {len(note_ids)} notes")
            raise first_error
        return deleted
