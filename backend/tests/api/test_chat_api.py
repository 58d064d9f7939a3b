import pytest

from timepass.domain.chat.service import get_chat_service

ALICE = {"X-User-Id": "alice", "X-User-Handle": "alice01"}
BOB = {"X-User-Id": "bob", "X-User-Handle": "bobby"}
MALLORY = {"X-User-Id": "mallory"}


@pytest.mark.asyncio
async def test_requires_authentication(api_client):
    response = await api_client.get("/chat/conversations")
    assert response.status_code == 401
    body = response.json()
    assert body["detail"] == "invalid_token"
    assert body["request_id"]


@pytest.mark.asyncio
async def test_send_list_seen_flow(api_client):
    opened = await api_client.post("/chat/conversations/bob", headers=ALICE)
    assert opened.status_code == 200
    assert opened.json() == {"conversation_id": "alice_bob", "participants": ["alice", "bob"]}

    sent = await api_client.post("/chat/conversations/bob/messages", json={"text": " hi bob "}, headers=ALICE)
    assert sent.status_code == 201
    message = sent.json()
    assert message["text"] == "hi bob"
    assert message["seen_by"] == ["alice"]

    unread = await api_client.get("/chat/unread", headers=BOB)
    assert unread.json() == {"count": 1, "strategy": "precise"}

    listed = await api_client.get("/chat/conversations/alice/messages", headers=BOB)
    assert listed.status_code == 200
    assert [item["id"] for item in listed.json()["items"]] == [message["id"]]

    seen = await api_client.post(
        "/chat/conversations/alice/seen",
        json={"message_ids": [message["id"]]},
        headers=BOB,
    )
    assert seen.json() == {"conversation_id": "alice_bob", "marked": [message["id"]]}

    unread = await api_client.get("/chat/unread", headers=BOB)
    assert unread.json()["count"] == 0
    coarse = await api_client.get("/chat/unread", params={"strategy": "coarse"}, headers=BOB)
    assert coarse.json() == {"count": 1, "strategy": "coarse"}


@pytest.mark.asyncio
async def test_conversation_list_for_viewer(api_client):
    await api_client.post("/chat/conversations/alice/messages", json={"text": "hey"}, headers=BOB)

    response = await api_client.get("/chat/conversations", headers=ALICE)
    assert response.status_code == 200
    items = response.json()
    assert len(items) == 1
    assert items[0]["other_user_id"] == "bob"
    assert items[0]["last_message"] == "hey"
    assert items[0]["has_unread"] is True


@pytest.mark.asyncio
async def test_validation_and_permission_errors(api_client):
    empty = await api_client.post("/chat/conversations/bob/messages", json={"text": "   "}, headers=ALICE)
    assert empty.status_code == 400
    assert empty.json()["detail"] == "empty_text"

    self_chat = await api_client.post("/chat/conversations/alice", headers=ALICE)
    assert self_chat.status_code == 400
    assert self_chat.json()["detail"] == "cannot_dm_self"

    sent = await api_client.post("/chat/conversations/bob/messages", json={"text": "mine"}, headers=ALICE)
    message_id = sent.json()["id"]

    forbidden = await api_client.delete(f"/chat/conversations/alice/messages/{message_id}", headers=BOB)
    assert forbidden.status_code == 403
    assert forbidden.json()["detail"] == "not_sender"

    outsider = await api_client.get("/chat/conversations/alice/messages", headers=MALLORY)
    assert outsider.status_code == 403

    bad_strategy = await api_client.get("/chat/unread", params={"strategy": "fuzzy"}, headers=ALICE)
    assert bad_strategy.status_code == 422


@pytest.mark.asyncio
async def test_edit_and_delete_own_message(api_client):
    sent = await api_client.post("/chat/conversations/bob/messages", json={"text": "helo"}, headers=ALICE)
    message_id = sent.json()["id"]

    edited = await api_client.patch(
        f"/chat/conversations/bob/messages/{message_id}",
        json={"text": "hello"},
        headers=ALICE,
    )
    assert edited.status_code == 200
    assert edited.json()["text"] == "hello"
    assert edited.json()["is_edited"] is True

    deleted = await api_client.delete(f"/chat/conversations/bob/messages/{message_id}", headers=ALICE)
    assert deleted.status_code == 204

    missing = await api_client.patch(
        f"/chat/conversations/bob/messages/{message_id}",
        json={"text": "again"},
        headers=ALICE,
    )
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_story_reply(api_client):
    response = await api_client.post(
        "/chat/stories/story-7/replies",
        json={"story_owner_id": "alice", "text": "great shot"},
        headers=BOB,
    )
    assert response.status_code == 201
    body = response.json()
    assert body["conversation_id"] == "alice_bob"
    assert body["is_story_reply"] is True
    assert body["story_id"] == "story-7"


@pytest.mark.asyncio
async def test_notification_feed(api_client):
    await api_client.post("/chat/conversations/bob/messages", json={"text": "not in feed"}, headers=ALICE)
    like = await get_chat_service().notify_like("alice", "bob", "story-1")

    feed = await api_client.get("/notifications", headers=BOB)
    assert feed.status_code == 200
    assert [item["id"] for item in feed.json()["items"]] == [like.id]

    unread = await api_client.get("/notifications/unread", headers=BOB)
    assert unread.json()["count"] == 1

    stranger = await api_client.post(f"/notifications/{like.id}/read", headers=ALICE)
    assert stranger.status_code == 403
    marked = await api_client.post(f"/notifications/{like.id}/read", headers=BOB)
    assert marked.json()["read"] is True
    missing = await api_client.post("/notifications/nope/read", headers=BOB)
    assert missing.status_code == 404
