import asyncio

import pytest

from timepass.domain.chat.exceptions import StoreUnavailable
from timepass.domain.chat.live_view import COPIED, DELETE_FAILED, EDIT_FAILED, SEND_FAILED, LiveViewController
from timepass.domain.chat.service import ChatService


DWELL = 0.02


async def _seed(service: ChatService, *texts: str) -> list:
    return [await service.send_to_peer("alice", "bob", text) for text in texts]


@pytest.mark.asyncio
async def test_visible_messages_are_marked_seen_after_dwell(memory_store):
    service = ChatService(memory_store)
    await _seed(service, "one", "two")

    view = LiveViewController(service, "bob", "alice", dwell_seconds=DWELL)
    await view.open()
    assert all("bob" not in item.seen_by for item in view.messages)

    await view.flush_seen()

    assert [item.seen_by for item in view.messages] == [("alice", "bob"), ("alice", "bob")]
    assert await service.get_unread_count("bob", strategy="precise") == 0
    await view.close()


@pytest.mark.asyncio
async def test_hidden_view_does_not_mark_seen(memory_store):
    service = ChatService(memory_store)
    await _seed(service, "one")

    view = LiveViewController(service, "bob", "alice", dwell_seconds=DWELL)
    view.set_visible(False)
    await view.open()
    await asyncio.sleep(DWELL * 3)

    assert view.messages[0].seen_by == ("alice",)

    view.set_visible(True)
    await view.flush_seen()
    assert view.messages[0].seen_by == ("alice", "bob")
    await view.close()


@pytest.mark.asyncio
async def test_closing_stops_further_callback_delivery(memory_store):
    service = ChatService(memory_store)
    await _seed(service, "before")
    renders = []

    view = LiveViewController(service, "bob", "alice", dwell_seconds=DWELL, on_render=renders.append)
    await view.open()
    await view.close()
    delivered = len(renders)

    await _seed(service, "after")
    await asyncio.sleep(DWELL * 3)

    assert len(renders) == delivered
    assert not view.is_open
    assert [item.text for item in view.messages] == ["before"]
    latest = (await service.list_messages("alice_bob", "bob"))[-1]
    assert "bob" not in latest.seen_by
    assert memory_store.watcher_count("chats/alice_bob/messages") == 0


@pytest.mark.asyncio
async def test_send_clears_draft_and_keeps_it_on_failure(memory_store, monkeypatch):
    service = ChatService(memory_store)
    view = LiveViewController(service, "alice", "bob", dwell_seconds=DWELL)
    await view.open()

    view.set_draft("hello")
    message = await view.send()
    assert message is not None and message.text == "hello"
    assert view.draft == ""
    assert [item.text for item in view.messages] == ["hello"]

    async def _fail(*_args, **_kwargs):
        raise StoreUnavailable()

    monkeypatch.setattr(service, "send_message", _fail)
    view.set_draft("try again")
    assert await view.send() is None
    assert view.draft == "try again"
    assert view.notices[-1].text == SEND_FAILED

    view.set_draft("   ")
    monkeypatch.undo()
    assert await view.send() is None
    assert view.draft == "   "
    assert view.notices[-1].reason == "empty_text"
    await view.close()


@pytest.mark.asyncio
async def test_edit_round_trip_and_revert_on_failure(memory_store, monkeypatch):
    service = ChatService(memory_store)
    view = LiveViewController(service, "alice", "bob", dwell_seconds=DWELL)
    await view.open()
    message = await view.send("helo")
    reply = await service.send_to_peer("bob", "alice", "hi")

    assert view.begin_edit(reply.id) is False
    assert view.begin_edit(message.id) is True
    view.update_edit("hello")
    edited = await view.save_edit()
    assert edited is not None and edited.is_edited
    assert view.editing is None
    assert view.messages[0].text == "hello"

    async def _fail(*_args, **_kwargs):
        raise StoreUnavailable()

    monkeypatch.setattr(service, "edit_message", _fail)
    view.begin_edit(message.id)
    view.update_edit("hello there")
    assert await view.save_edit() is None
    assert view.editing is None
    assert view.notices[-1].text == EDIT_FAILED
    assert view.messages[0].text == "hello"
    await view.close()


@pytest.mark.asyncio
async def test_delete_and_copy(memory_store):
    service = ChatService(memory_store)
    view = LiveViewController(service, "alice", "bob", dwell_seconds=DWELL)
    await view.open()
    mine = await view.send("mine")
    theirs = await service.send_to_peer("bob", "alice", "theirs")

    assert await view.copy(theirs.id) == "theirs"
    assert view.clipboard.text == "theirs"
    assert view.notices[-1].text == COPIED

    assert await view.delete(theirs.id) is False
    assert view.notices[-1].text == DELETE_FAILED
    assert await view.delete(mine.id) is True
    assert [item.text for item in view.messages] == ["theirs"]
    await view.close()


@pytest.mark.asyncio
async def test_render_groups_consecutive_senders(memory_store):
    service = ChatService(memory_store)
    await service.send_to_peer("alice", "bob", "a1")
    await service.send_to_peer("alice", "bob", "a2")
    await service.send_to_peer("bob", "alice", "b1")
    await service.mark_seen("alice_bob", "bob", [item.id for item in await service.list_messages("alice_bob", "bob")])

    view = LiveViewController(service, "alice", "bob", dwell_seconds=DWELL)
    async with view:
        groups = view.render()

    assert [(group.sender_id, len(group.messages)) for group in groups] == [("alice", 2), ("bob", 1)]
    assert groups[0].is_own and all(item.seen for item in groups[0].messages)
    assert not groups[1].is_own and not groups[1].messages[0].can_modify


@pytest.mark.asyncio
async def test_close_during_open_releases_subscription(slow_watch_store):
    service = ChatService(slow_watch_store)
    view = LiveViewController(service, "bob", "alice", dwell_seconds=DWELL)

    opening = asyncio.create_task(view.open())
    await asyncio.sleep(slow_watch_store.delay / 5)
    await view.close()
    await opening

    assert not view.is_open
    assert slow_watch_store.watcher_count() == 0


@pytest.mark.asyncio
async def test_steady_incoming_messages_do_not_postpone_seen(memory_store):
    service = ChatService(memory_store)
    await _seed(service, "first")
    view = LiveViewController(service, "bob", "alice", dwell_seconds=DWELL * 5)
    await view.open()

    for index in range(8):
        await asyncio.sleep(DWELL * 3)
        await service.send_to_peer("alice", "bob", f"more {index}")

    assert view.messages[0].seen_by == ("alice", "bob")
    await view.close()


@pytest.mark.asyncio
async def test_unexpected_mark_seen_error_is_logged(memory_store, monkeypatch, caplog):
    service = ChatService(memory_store)
    await _seed(service, "one")

    async def _boom(*_args, **_kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(service, "mark_seen", _boom)
    view = LiveViewController(service, "bob", "alice", dwell_seconds=DWELL)
    await view.open()
    await view.flush_seen()

    assert any(record.getMessage() == "chat_mark_seen_error" for record in caplog.records)
    assert view.messages[0].seen_by == ("alice",)
    await view.close()
