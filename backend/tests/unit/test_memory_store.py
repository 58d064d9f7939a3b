import pytest

from timepass.infra.store import (
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    DocumentNotFound,
    Increment,
    MemoryDocumentStore,
    Query,
)


@pytest.mark.asyncio
async def test_conditional_create_only_succeeds_once():
    store = MemoryDocumentStore()
    assert await store.create("chats/a_b", {"participants": ["a", "b"]}) is True
    assert await store.create("chats/a_b", {"participants": ["x", "y"]}) is False

    doc = await store.get("chats/a_b")
    assert doc is not None
    assert doc.data["participants"] == ["a", "b"]


@pytest.mark.asyncio
async def test_update_applies_field_transforms():
    store = MemoryDocumentStore()
    await store.create("things/t1", {"tags": ["a"], "hits": 1, "at": SERVER_TIMESTAMP})

    doc = await store.update(
        "things/t1",
        {"tags": ArrayUnion(["a", "b"]), "hits": Increment(2), "old": ArrayRemove(["z"])},
    )
    assert doc.data["tags"] == ["a", "b"]
    assert doc.data["hits"] == 3
    assert doc.data["old"] == []
    assert doc.data["at"] is not None


@pytest.mark.asyncio
async def test_update_missing_document_raises():
    store = MemoryDocumentStore()
    with pytest.raises(DocumentNotFound):
        await store.update("things/missing", {"x": 1})


@pytest.mark.asyncio
async def test_query_filters_and_orders():
    store = MemoryDocumentStore()
    await store.create("items/1", {"owner": "a", "rank": 3})
    await store.create("items/2", {"owner": "b", "rank": 1})
    await store.create("items/3", {"owner": "a", "rank": 2})
    await store.create("items/4", {"owner": "a"})

    docs = await store.query(Query("items").where("owner", "==", "a").ordered("rank"))
    assert [doc.id for doc in docs] == ["3", "1", "4"]


@pytest.mark.asyncio
async def test_watch_replays_then_tracks_changes_until_unsubscribed():
    store = MemoryDocumentStore()
    await store.create("items/1", {"v": 1})
    snapshots = []

    subscription = await store.watch(Query("items"), lambda docs: snapshots.append([d.id for d in docs]))
    await store.add("items", {"v": 2})
    assert snapshots[0] == ["1"]
    assert len(snapshots[1]) == 2
    assert store.watcher_count("items") == 1

    subscription.unsubscribe()
    await store.create("items/9", {"v": 9})
    assert len(snapshots) == 2
    assert store.watcher_count() == 0


@pytest.mark.asyncio
async def test_failing_watcher_does_not_fail_the_write():
    store = MemoryDocumentStore()
    calls = []

    def _boom(docs):
        calls.append(len(docs))
        if len(docs) > 0:
            raise RuntimeError("subscriber fault")

    await store.watch(Query("items"), _boom)
    await store.create("items/1", {"v": 1})

    assert calls == [0, 1]
    assert await store.get("items/1") is not None
