"""Client-side conflict queue and the three resolution policies."""
from __future__ import annotations

import enum
from dataclasses import replace
from typing import TYPE_CHECKING, Iterator, Optional, Union

from loguru import logger

from notesync.client.cache import utc_now_iso
from notesync.models.sync import SyncConflict

if TYPE_CHECKING:
    from notesync.client.orchestrator import SyncOrchestrator

logger = logger.bind(module="client.conflicts")

MERGE_SEPARATOR = "\n\n--- Server Version ---\n"


class ResolutionPolicy(str, enum.Enum):
    SERVER = "server"
    LOCAL = "local"
    MERGE = "merge"


def merge_content(local: str, server: str) -> str:
    return f"{local}{MERGE_SEPARATOR}{server}"


class ConflictQueue:
    """Unresolved conflicts, one per note id. A newer report replaces the old one."""

    def __init__(self) -> None:
        self._items: dict[Optional[str], SyncConflict] = {}

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, conflict_id: object) -> bool:
        return conflict_id in self._items

    def __iter__(self) -> Iterator[SyncConflict]:
        return iter(list(self._items.values()))

    def upsert(self, conflict: SyncConflict) -> None:
        self._items[conflict.id] = conflict

    def get(self, conflict_id: Optional[str]) -> Optional[SyncConflict]:
        return self._items.get(conflict_id)

    def discard(self, conflict_id: Optional[str]) -> Optional[SyncConflict]:
        return self._items.pop(conflict_id, None)

    def clear(self) -> None:
        self._items.clear()


class ConflictResolver:
    def __init__(self, orchestrator: "SyncOrchestrator"):
        self.orchestrator = orchestrator

    async def resolve(self, conflict_id: str, policy: Union[ResolutionPolicy, str]) -> None:
        policy = ResolutionPolicy(policy)
        queue = self.orchestrator.conflicts
        conflict = queue.get(conflict_id)
        if conflict is None:
            return

        # Dequeue first: a `local` retry may report a fresh conflict for the
        # same id, and that one must stay queued.
        queue.discard(conflict_id)
        logger.info(f"Resolving conflict on {conflict_id} with policy '{policy.value}'")

        if policy is ResolutionPolicy.LOCAL:
            await self.orchestrator.sync_cycle()
        elif policy is ResolutionPolicy.SERVER:
            self._take_server(conflict)
        else:
            self._merge(conflict)

    def _take_server(self, conflict: SyncConflict) -> None:
        cache = self.orchestrator.cache
        local = cache.get(conflict.id)
        if conflict.server_data is None or local is None:
            return
        cache.put(replace(
            local,
            title=conflict.server_data.title,
            content=conflict.server_data.content,
            version=conflict.server_version,
            updated_at=utc_now_iso(),
        ))

    def _merge(self, conflict: SyncConflict) -> None:
        cache = self.orchestrator.cache
        local = cache.get(conflict.id)
        if conflict.server_data is None or local is None:
            return
        cache.put(replace(
            local,
            content=merge_content(local.content, conflict.server_data.content),
            version=conflict.server_version,
            updated_at=utc_now_iso(),
        ))
