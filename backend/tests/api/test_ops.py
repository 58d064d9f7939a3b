import pytest


@pytest.mark.asyncio
async def test_health_and_metrics(api_client):
    live = await api_client.get("/health/live")
    assert live.status_code == 200
    assert live.json()["status"] == "ok"
    assert live.headers.get("x-request-id")

    ready = await api_client.get("/health/ready")
    assert ready.status_code == 200
    assert ready.json()["store"]["backend"] == "memory"

    await api_client.post("/chat/conversations/bob/messages", json={"text": "count me"}, headers={"X-User-Id": "alice"})
    metrics = await api_client.get("/metrics")
    assert metrics.status_code == 200
    assert "timepass_chat_send_total" in metrics.text
