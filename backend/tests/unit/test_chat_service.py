from datetime import timedelta

import pytest

from timepass.domain.chat.exceptions import (
    MessageNotFound,
    PermissionDenied,
    StoreUnavailable,
    ValidationError,
)
from timepass.domain.chat.service import ChatService, get_chat_service, set_chat_service
from timepass.infra.store import MemoryDocumentStore, Query, StoreUnavailableError


class DownStore(MemoryDocumentStore):
    async def query(self, query):
        raise StoreUnavailableError("query")


@pytest.mark.asyncio
async def test_ensure_conversation_rejects_bad_pairs(memory_store):
    service = ChatService(memory_store)

    with pytest.raises(ValidationError) as excinfo:
        await service.ensure_conversation("alice", "alice")
    assert excinfo.value.reason == "cannot_dm_self"
    with pytest.raises(ValidationError):
        await service.ensure_conversation("alice", "")

    assert await service.ensure_conversation("zane", "alice") == "alice_zane"
    assert await service.ensure_conversation("alice", "zane") == "alice_zane"
    assert len(await memory_store.query(Query("chats"))) == 1


@pytest.mark.asyncio
async def test_story_reply_creates_flagged_message(memory_store):
    service = ChatService(memory_store)

    message = await service.reply_to_story("bob", "alice", "story-42", "nice view")

    assert message.conversation_id == "alice_bob"
    assert message.is_story_reply is True
    assert message.story_id == "story-42"
    with pytest.raises(ValidationError):
        await service.reply_to_story("bob", "alice", "", "nice view")


@pytest.mark.asyncio
async def test_story_reply_orders_and_counts_like_a_message(memory_store):
    service = ChatService(memory_store)
    earlier = await service.send_to_peer("alice", "bob", "hey")

    reply = await service.reply_to_story("bob", "alice", "story-42", "nice view")

    assert reply.seen_by == ("bob",)
    messages = await service.list_messages("alice_bob", "alice")
    assert [item.id for item in messages] == [earlier.id, reply.id]
    assert await service.get_unread_count("alice", strategy="coarse") == 1
    assert await service.get_unread_count("alice", strategy="precise") == 1
    assert await service.get_unread_count("bob", strategy="precise") == 0

    await service.mark_seen("alice_bob", "alice", [reply.id])
    assert await service.get_unread_count("alice", strategy="precise") == 0


@pytest.mark.asyncio
async def test_plain_messages_have_no_story_id(memory_store):
    service = ChatService(memory_store)
    conversation_id = await service.ensure_conversation("alice", "bob")

    message = await service.send_message(conversation_id, "alice", "hi", story_id="ignored")
    assert message.is_story_reply is False
    assert message.story_id is None


@pytest.mark.asyncio
async def test_list_conversations_newest_first_with_unread(memory_store):
    service = ChatService(memory_store)
    await memory_store.create("users/carol", {"username": "carol_c"})
    await service.send_to_peer("bob", "alice", "from bob")
    await service.send_to_peer("carol", "alice", "from carol")
    await service.ensure_conversation("alice", "dave")
    latest = await service.send_to_peer("alice", "bob", "reply to bob")

    summaries = await service.list_conversations("alice", now=latest.created_at + timedelta(minutes=2))

    assert [item.conversation_id for item in summaries] == ["alice_bob", "alice_carol", "alice_dave"]
    by_id = {item.conversation_id: item for item in summaries}
    assert by_id["alice_bob"].has_unread is False
    assert by_id["alice_bob"].last_message == "reply to bob"
    assert by_id["alice_bob"].relative_time == "2 minutes ago"
    assert by_id["alice_carol"].has_unread is True
    assert by_id["alice_carol"].other_user.username == "carol_c"
    assert by_id["alice_dave"].last_message is None
    assert by_id["alice_dave"].relative_time == ""


@pytest.mark.asyncio
async def test_list_messages_requires_participant(memory_store):
    service = ChatService(memory_store)
    await service.send_to_peer("alice", "bob", "private")

    assert len(await service.list_messages("alice_bob", "bob")) == 1
    with pytest.raises(PermissionDenied):
        await service.list_messages("alice_bob", "mallory")


@pytest.mark.asyncio
async def test_edit_delete_and_copy_errors(memory_store):
    service = ChatService(memory_store)
    message = await service.send_to_peer("alice", "bob", "original")

    with pytest.raises(MessageNotFound):
        await service.edit_message("alice_bob", "nope", "alice", "x")
    with pytest.raises(PermissionDenied):
        await service.delete_message("alice_bob", message.id, "bob")

    assert await service.copy_text("alice_bob", message.id) == "original"
    await service.delete_message("alice_bob", message.id, "alice")
    with pytest.raises(MessageNotFound):
        await service.copy_text("alice_bob", message.id)


@pytest.mark.asyncio
async def test_store_outage_maps_to_store_unavailable():
    service = ChatService(DownStore())

    with pytest.raises(StoreUnavailable):
        await service.list_conversations("alice")
    with pytest.raises(StoreUnavailable):
        await service.get_unread_count("alice")


@pytest.mark.asyncio
async def test_like_notifications_reach_feed(memory_store):
    service = ChatService(memory_store)

    await service.notify_like("alice", "bob", "story-1")
    await service.notify_like("bob", "bob", "story-2")

    items = await service.list_notifications("bob")
    assert len(items) == 1
    assert items[0].message == "liked your story"
    assert await service.unread_notifications("bob") == 1
    await service.mark_notification_read("bob", items[0].id)
    assert await service.unread_notifications("bob") == 0


def test_service_singleton_can_be_swapped(memory_store):
    custom = ChatService(memory_store)
    set_chat_service(custom)
    assert get_chat_service() is custom
    set_chat_service(None)
    assert get_chat_service() is not custom
