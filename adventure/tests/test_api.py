"""
API integration tests for the FastAPI app and the adventure WebSocket.
"""

import pytest
from fastapi.testclient import TestClient

from adventure.api import sessions as sessions_api
from adventure.api.sessions import get_session_factory
from adventure.engine.session import AdventureSession
from adventure.main import app


@pytest.fixture
def client(provider, embeddings, test_settings, story, tmp_path, monkeypatch):
    story_path = tmp_path / "story-parameters.json"
    story_path.write_text(story.model_dump_json(), encoding="utf-8")
    monkeypatch.setattr(sessions_api.settings, "story_parameters_path", str(story_path))

    def factory(adventure_id: str) -> AdventureSession:
        return AdventureSession(provider, embeddings, config=test_settings, session_id=adventure_id)

    app.dependency_overrides[get_session_factory] = lambda: factory
    yield TestClient(app)
    app.dependency_overrides.clear()


def receive_until(websocket, predicate, limit=50):
    """Collect messages until one matches ``predicate``"""
    messages = []
    for _ in range(limit):
        message = websocket.receive_json()
        messages.append(message)
        if predicate(message):
            return messages
    raise AssertionError(f"No matching message in {messages}")


class TestRootEndpoints:
    """Test basic root endpoints"""

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "active_sessions": 0}


class TestAdventureWebSocket:
    def test_first_action_starts_adventure(self, client, provider, replies):
        provider.add(replies.narrative("You wake up."), replies.memory_update())

        with client.websocket_connect("/ws?adventure_id=ws-test") as websocket:
            websocket.send_json({"type": "action", "characterAction": "Look around"})
            messages = receive_until(
                websocket,
                lambda message: message["type"] == "image-update" and message["role"] == "illustration",
            )

        turn_updates = [message["content"] for message in messages if message["type"] == "turn-update"]
        assert turn_updates[0]["turn_number"] == 0
        assert turn_updates[-1]["narrative"] == "You wake up."
        running = [message["content"] for message in messages if message["type"] == "llm-running"]
        assert running == [True, False]

    def test_failed_turn_reports_error(self, client, provider):
        provider.add(*["<response><narrative>n</narrative>"] * 3)

        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "action"})
            messages = receive_until(websocket, lambda message: message["type"] == "error")

        cancelled = [
            message for message in messages
            if message["type"] == "turn-update" and message["content"]["cancelled"]
        ]
        assert cancelled
        assert messages[-1]["error"] == "Turn failed"
        assert messages[-1]["details"]

    def test_unknown_message_type(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "dance"})
            message = websocket.receive_json()
        assert message == {"type": "error", "error": "Unknown message type: dance"}

    def test_invalid_json(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_text("{not json")
            assert websocket.receive_json()["error"] == "Invalid JSON message"

    def test_invalid_feedback(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "feedback", "feedbackType": "meh"})
            assert websocket.receive_json()["error"] == "Failed to process feedback"

    def test_refresh_missing_image(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "refresh-image", "role": "background"})
            assert websocket.receive_json()["error"] == "Image not found for role: background"
