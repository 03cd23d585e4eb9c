"""
Tests for the conversation HTTP endpoints.

Each test gets its own manager through a dependency override so that
state never leaks between tests.
"""

import pytest
from fastapi.testclient import TestClient

from api.routes.conversation import get_conversation_manager
from core.conversation import ConversationConfig, ConversationManager, InMemoryStateStore
from main import app


@pytest.fixture
def api_manager():
    return ConversationManager(
        ConversationConfig(enable_llm_intent_recognition=False),
        storage=InMemoryStateStore(),
    )


@pytest.fixture
def client(api_manager):
    app.dependency_overrides[get_conversation_manager] = lambda: api_manager
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestMessages:
    """Tests for POST /message."""

    def test_routed_message(self, client):
        response = client.post("/api/conversation/message",
                               json={"message": "查询抽纸库存", "conversation_id": "api-1"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["conversation_id"] == "api-1"
        assert data["intent_result"]["intent"] == "inventory_management"
        assert data["routing_result"]["target_agent"] == "inventory"
        assert data["language_detection"]["language"] == "zh-CN"
        assert data["metadata"]["requires_clarification"] is False

    def test_clarification_round_trip(self, client):
        first = client.post("/api/conversation/message",
                            json={"message": "添加", "conversation_id": "api-1"}).json()

        assert first["metadata"]["requires_clarification"] is True
        assert first["clarification_request"]["missing_entities"] == ["item_name", "quantity"]

        second = client.post("/api/conversation/message",
                             json={"message": "抽纸2包", "conversation_id": "api-1"}).json()

        assert second["metadata"]["clarification_resolved"] is True
        assert second["entity_result"]["entities"]["item_name"] == "抽纸"

    def test_missing_conversation_id_is_generated(self, client):
        data = client.post("/api/conversation/message", json={"message": ""}).json()

        assert data["success"] is True
        assert data["conversation_id"]


class TestLanguages:
    """Tests for detection and preferred-language endpoints."""

    def test_detect_language(self, client):
        response = client.post("/api/conversation/detect-language", json={"text": "This is English test"})

        assert response.status_code == 200
        data = response.json()
        assert data["language"] == "en-US"
        assert data["scores"]["en-US"] == 4

    def test_supported_languages(self, client):
        response = client.get("/api/conversation/languages")

        assert response.json() == {"languages": ["zh-CN", "en-US"]}

    def test_set_and_get_preferred_language(self, client):
        response = client.put("/api/conversation/api-1/language", json={"language": "en-US"})

        assert response.status_code == 200
        assert response.json()["preferred_language"] == "en-US"
        assert client.get("/api/conversation/api-1/language").json()["preferred_language"] == "en-US"

    def test_unsupported_language(self, client):
        response = client.put("/api/conversation/api-1/language", json={"language": "fr-FR"})

        assert response.status_code == 400

    def test_unknown_conversation_language(self, client):
        response = client.get("/api/conversation/unknown/language")

        assert response.status_code == 200
        assert response.json()["preferred_language"] is None


class TestClarificationEndpoints:
    """Tests for pending clarification management."""

    def test_no_pending_clarification(self, client):
        response = client.get("/api/conversation/api-1/clarification")

        assert response.status_code == 404

    def test_get_and_cancel_clarification(self, client):
        client.post("/api/conversation/message", json={"message": "添加", "conversation_id": "api-1"})

        pending = client.get("/api/conversation/api-1/clarification")
        assert pending.status_code == 200
        assert pending.json()["guidance_type"] == "entity_missing"

        canceled = client.delete("/api/conversation/api-1/clarification")
        assert canceled.json() == {"conversation_id": "api-1", "canceled": True}
        again = client.delete("/api/conversation/api-1/clarification")
        assert again.json()["canceled"] is False


class TestManagementEndpoints:
    """Tests for stats and conversation clearing."""

    def test_stats(self, client):
        client.post("/api/conversation/message", json={"message": "查询抽纸库存", "conversation_id": "api-1"})
        client.post("/api/conversation/message", json={"message": "添加", "conversation_id": "api-2"})

        stats = client.get("/api/conversation/stats").json()

        assert stats["active_conversations"] == 2
        assert stats["pending_clarifications"] == 1
        assert stats["total_messages"] == 2
        assert stats["clarifications_raised"] == 1

    def test_clear_conversation(self, client):
        client.post("/api/conversation/message", json={"message": "添加", "conversation_id": "api-1"})

        response = client.delete("/api/conversation/api-1")

        assert response.status_code == 200
        assert response.json() == {"conversation_id": "api-1", "cleared": True}
        assert client.get("/api/conversation/api-1/clarification").status_code == 404
        assert client.get("/api/conversation/stats").json()["active_conversations"] == 0
