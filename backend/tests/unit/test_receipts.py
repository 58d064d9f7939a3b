import pytest

from timepass.domain.chat.conversations import ConversationStore
from timepass.domain.chat.messages import MessageLog
from timepass.domain.chat.models import ChatMessage
from timepass.domain.chat.receipts import (
    ReadReceiptTracker,
    is_seen_by_other,
    seen_by_counterpart,
    select_candidates,
)


def _message(message_id: str, sender: str, seen_by=()) -> ChatMessage:
    return ChatMessage(
        id=message_id,
        conversation_id="alice_bob",
        text="x",
        sender_id=sender,
        created_at=None,
        seen_by=tuple(seen_by) or (sender,),
    )


def test_select_candidates_skips_own_and_seen():
    messages = [
        _message("m1", "alice"),
        _message("m2", "bob"),
        _message("m3", "bob", ("bob", "alice")),
    ]
    assert select_candidates(messages, "alice") == ["m2"]
    assert select_candidates(messages, "bob") == ["m1"]


def test_checkmark_helpers():
    unseen = _message("m1", "alice")
    seen = _message("m2", "alice", ("alice", "bob"))
    assert not is_seen_by_other(unseen)
    assert is_seen_by_other(seen)
    assert seen_by_counterpart(seen, "bob")
    assert not seen_by_counterpart(seen, "alice")


@pytest.mark.asyncio
async def test_mark_seen_is_idempotent(memory_store):
    conversations = ConversationStore(memory_store)
    await conversations.ensure_conversation("alice_bob", "alice", "bob")
    log = MessageLog(memory_store, conversations=conversations)
    first = await log.append("alice_bob", "alice", "one")
    second = await log.append("alice_bob", "alice", "two")
    own = await log.append("alice_bob", "bob", "mine")
    tracker = ReadReceiptTracker(memory_store)

    marked = await tracker.mark_seen("alice_bob", "bob", [first.id, second.id, own.id, first.id, "missing"])
    assert marked == [first.id, second.id]

    again = await tracker.mark_seen("alice_bob", "bob", [first.id, second.id])
    assert again == []

    reloaded = await log.get("alice_bob", first.id)
    assert reloaded.seen_by == ("alice", "bob")
    assert reloaded.seen_at is not None
    assert (await log.get("alice_bob", own.id)).seen_by == ("bob",)
