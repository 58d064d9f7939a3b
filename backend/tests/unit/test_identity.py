from timepass.domain.chat import ConversationKey, resolve_conversation_id


def test_conversation_id_sorts_participants():
    assert resolve_conversation_id("zane", "alice") == "alice_zane"
    assert resolve_conversation_id("alice", "zane") == "alice_zane"


def test_conversation_id_is_symmetric_for_uuid_like_ids():
    a = "7f3c2b10-0000-0000-0000-000000000001"
    b = "11111111-0000-0000-0000-000000000002"
    assert resolve_conversation_id(a, b) == resolve_conversation_id(b, a)
    assert resolve_conversation_id(a, b).startswith(b)


def test_conversation_key_helpers():
    key = ConversationKey.from_participants("bob", "alice")
    assert key.participants() == ("alice", "bob")
    assert not key.is_self


def test_self_pair_is_flagged():
    key = ConversationKey.from_participants("alice", "alice")
    assert key.is_self
    assert key.conversation_id == "alice_alice"
