import json

import httpx
import pytest

from notesync.client.cache import CachedNote, NoteCache
from notesync.client.conflicts import MERGE_SEPARATOR, ResolutionPolicy, merge_content
from notesync.models.sync import SyncConflict

pytestmark = pytest.mark.asyncio


def _stale_conflict():
    # note X is at version 3 on the server with title "A"; the client based its edit on 2
    return SyncConflict.model_validate({
        "id": "X",
        "reason": "Version conflict",
        "clientVersion": 2,
        "serverVersion": 3,
        "serverData": {"title": "A", "content": "S"},
    })


@pytest.fixture()
def offline(mock_orchestrator):
    """Orchestrator with a queued stale conflict and a transport that must not be used."""
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"applied": [], "conflicts": []})

    cache = NoteCache([CachedNote(id="X", title="B", content="L", version=2)])
    orch = mock_orchestrator(handler, cache)
    orch.conflicts.upsert(_stale_conflict())
    orch.requests = requests
    return orch


async def test_server_policy_takes_server_copy(offline):
    await offline.resolve_conflict("X", ResolutionPolicy.SERVER)

    note = offline.cache.get("X")
    assert note.title == "A"
    assert note.content == "S"
    assert note.version == 3
    assert "X" not in offline.conflicts
    assert offline.requests == []


async def test_merge_policy_keeps_both_texts(offline):
    await offline.resolve_conflict("X", "merge")

    note = offline.cache.get("X")
    assert note.content == "L" + MERGE_SEPARATOR + "S"
    assert "L" in note.content and "S" in note.content
    assert note.title == "B"
    assert note.version == 3
    assert note.updated_at is not None
    assert "X" not in offline.conflicts
    assert offline.requests == []


def test_merge_content_literal():
    assert merge_content("mine", "theirs") == "mine\n\n--- Server Version ---\ntheirs"


async def test_local_policy_retries_with_current_cache(offline):
    await offline.resolve_conflict("X", ResolutionPolicy.LOCAL)

    [request] = offline.requests
    assert json.loads(request.content)["changes"] == [
        {"id": "X", "title": "B", "content": "L", "baseVersion": 2},
    ]
    assert offline.cache.get("X").title == "B"
    assert "X" not in offline.conflicts


async def test_local_retry_can_surface_a_fresh_conflict(mock_orchestrator):
    def handler(request):
        return httpx.Response(200, json={"applied": [], "conflicts": [{
            "id": "X", "reason": "Version conflict", "clientVersion": 2, "serverVersion": 4,
            "serverData": {"title": "A2", "content": "S2"},
        }]})

    orch = mock_orchestrator(handler, NoteCache([CachedNote(id="X", title="B", content="L", version=2)]))
    orch.conflicts.upsert(_stale_conflict())

    await orch.resolve_conflict("X", "local")
    assert orch.conflicts.get("X").server_version == 4


async def test_after_server_policy_next_sync_is_clean(make_orchestrator):
    laptop = make_orchestrator("userA")
    phone = make_orchestrator("userA")
    note = await laptop.create_note("A", "S")
    await phone.load_remote_notes()

    laptop.edit_local_note(note.id, title="A2")
    await laptop.sync_cycle()
    phone.edit_local_note(note.id, title="B")
    await phone.sync_cycle()

    await phone.resolve_conflict(note.id, "server")
    assert phone.cache.get(note.id).title == "A2"

    result = await phone.sync_cycle()
    assert result.conflicts == []
    assert phone.cache.get(note.id).version == 3


async def test_merge_then_sync_uploads_merged_text(make_orchestrator):
    laptop = make_orchestrator("userA")
    phone = make_orchestrator("userA")
    note = await laptop.create_note("T", "base")
    await phone.load_remote_notes()

    laptop.edit_local_note(note.id, content="S")
    await laptop.sync_cycle()
    phone.edit_local_note(note.id, content="L")
    await phone.sync_cycle()

    await phone.resolve_conflict(note.id, "merge")
    await phone.sync_cycle()

    await laptop.sync_cycle()
    assert laptop.conflicts.get(note.id).server_data.content == "L" + MERGE_SEPARATOR + "S"


@pytest.mark.parametrize("policy", ["server", "merge"])
async def test_without_server_data_only_dequeues(mock_orchestrator, policy):
    cache = NoteCache([CachedNote(id="X", title="B", content="L", version=9)])
    orch = mock_orchestrator(lambda request: httpx.Response(500), cache)
    orch.conflicts.upsert(SyncConflict.model_validate({
        "id": "X", "reason": "Client version ahead of server", "clientVersion": 9, "serverVersion": 3,
    }))

    await orch.resolve_conflict("X", policy)
    assert cache.get("X") == CachedNote(id="X", title="B", content="L", version=9)
    assert len(orch.conflicts) == 0


async def test_unknown_conflict_is_ignored(offline):
    await offline.resolve_conflict("nope", "server")
    assert len(offline.conflicts) == 1


async def test_unknown_policy_is_rejected(offline):
    with pytest.raises(ValueError):
        await offline.resolve_conflict("X", "coin-flip")
    assert "X" in offline.conflicts
