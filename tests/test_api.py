"""
Tests for the FastAPI endpoints.
"""

import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient, ASGITransport

from onboardflow.main import create_app
from onboardflow.service import build_service
from onboardflow.storage.checkpoint import Checkpoint, InMemoryCheckpointStore

from conftest import ACCOUNT, CARD, NOW, TOKEN_ID, make_settings


def make_app(operations, encryptor, extractor, store=None, tools=True):
    deps = {
        "encryptor": encryptor,
        "intent_extractor": extractor,
        "clock": lambda: NOW,
    }
    if tools:
        deps["tools"] = operations.registry()
    return create_app(build_service(config=make_settings(), deps=deps, store=store))


class RacingStore(InMemoryCheckpointStore):
    """Store where another request saves right after every load."""

    async def load(self, thread_id):
        checkpoint = await super().load(thread_id)
        await super().save(
            thread_id,
            Checkpoint(thread_id=thread_id, state={"data": {}, "events": []}, next_step="await-card-data"),
            expected_version=checkpoint.version if checkpoint else 0,
        )
        return checkpoint


@pytest.fixture
def client(operations, encryptor, extractor) -> TestClient:
    return TestClient(make_app(operations, encryptor, extractor))


# ============================================================
# Sync Test Client (for simple tests)
# ============================================================

class TestRootEndpoints:
    """Tests for root endpoints."""

    def test_root(self, client):
        """Test root endpoint."""
        response = client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert data["name"] == "OnboardFlow"
        assert "version" in data
        assert data["endpoints"]["resume"] == "/threads/{thread_id}/resume"

    def test_health(self, client):
        """Test health endpoint."""
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["threads_count"] == 0
        assert data["operations_count"] == 8
        assert data["operation_server_connected"] is True


class TestOperationEndpoints:
    """Tests for operation endpoints."""

    def test_list_operations(self, client):
        """Test listing operations."""
        response = client.get("/operations/")
        assert response.status_code == 200

        data = response.json()
        assert data["total"] == 8
        assert data["connected"] is True
        names = [op["name"] for op in data["operations"]]
        assert "tokenize-card" in names
        assert "delete-token" in names

    def test_get_operation(self, client):
        """Test getting a specific operation."""
        response = client.get("/operations/validate-otp")
        assert response.status_code == 200
        assert response.json()["name"] == "validate-otp"

    def test_get_nonexistent_operation(self, client):
        """Test getting an operation that doesn't exist."""
        response = client.get("/operations/refund-card")
        assert response.status_code == 404

    def test_no_operation_server(self, operations, encryptor, extractor):
        """Test the listing is empty without an operation server."""
        client = TestClient(make_app(operations, encryptor, extractor, tools=False))
        data = client.get("/operations/").json()
        assert data == {"operations": [], "total": 0, "connected": False}


class TestWorkflowEndpoints:
    """Tests for workflow endpoints."""

    def test_get_workflow(self, client):
        """Test the workflow structure."""
        response = client.get("/workflow")
        assert response.status_code == 200

        data = response.json()
        assert data["name"] == "Onboarding Workflow"
        assert data["entry_point"] == "router"
        assert data["step_count"] == 22
        assert data["edges"]["cleanup"] == "router"
        assert set(data["conditional_edges"]["router"]) == {
            "await-card-data", "clarify-intent", "delete-token", "__END__",
        }

        kinds = {s["name"]: s["kind"] for s in data["steps"]}
        assert kinds["await-otp"] == "interrupt"
        assert kinds["tokenize-card"] == "side_effect"
        tokenize = next(s for s in data["steps"] if s["name"] == "tokenize-card")
        assert tokenize["guard_fields"] == ["tokenId"]

    def test_get_mermaid(self, client):
        """Test the plain text diagram."""
        response = client.get("/workflow/mermaid")
        assert response.status_code == 200
        assert response.text.startswith("graph TD")
        assert 'await_otp[/"await-otp"/]' in response.text
        assert 'router{"router"}' in response.text


class TestThreadEndpoints:
    """Tests for thread endpoints."""

    def test_start_thread(self, client):
        """Test a new thread suspends for card data."""
        response = client.post("/threads/t1/resume", json={"input": ACCOUNT})
        assert response.status_code == 200

        data = response.json()
        assert data["thread_id"] == "t1"
        assert data["status"] == "suspended"
        assert data["suspended_at"] == "await-card-data"
        assert data["reason"] == "awaiting_card_data"
        assert data["state"]["isToolServerConnected"] is True
        assert data["version"] == 2
        assert [entry["name"] for entry in data["execution_log"]] == ["router", "await-card-data"]

    def test_private_fields_are_hidden(self, client):
        """Test card data never leaves the service."""
        client.post("/threads/t1/resume", json={"input": ACCOUNT})
        response = client.post("/threads/t1/resume", json={"input": {"cardData": CARD}})

        data = response.json()
        assert data["suspended_at"] == "await-secure-token"
        assert data["state"]["tokenId"] == TOKEN_ID
        assert "cardData" not in data["state"]
        assert "4111111111111111" not in response.text

    def test_resume_without_body(self, client):
        """Test the input defaults to an empty delta."""
        response = client.post("/threads/t1/resume", json={})
        assert response.status_code == 200
        assert response.json()["suspended_at"] == "await-card-data"

    def test_unavailable_is_not_an_http_error(self, operations, encryptor, extractor):
        """Test a missing operation server is reported in the body."""
        client = TestClient(make_app(operations, encryptor, extractor, tools=False))

        response = client.post("/threads/t1/resume", json={"input": {**ACCOUNT, "cardData": CARD}})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "unavailable"
        assert data["suspended_at"] is None
        assert data["reason"] == "We encountered a configuration issue. Please try again later."
        assert data["state"]["isToolServerConnected"] is False

    def test_get_thread(self, client):
        """Test reading a thread's persisted public state."""
        client.post("/threads/t1/resume", json={"input": {**ACCOUNT, "cardData": CARD}})

        response = client.get("/threads/t1")
        assert response.status_code == 200

        data = response.json()
        assert data["next_step"] == "await-secure-token"
        assert data["completed"] is False
        assert data["state"]["email"] == "jane@example.com"
        assert "cardData" not in data["state"]
        assert "secureToken" not in data["state"]
        assert any(e["type"] == "tool_call" for e in data["events"])

    def test_get_nonexistent_thread(self, client):
        """Test reading a thread that doesn't exist."""
        response = client.get("/threads/missing")
        assert response.status_code == 404

    def test_list_and_delete_threads(self, client):
        """Test listing and deleting threads."""
        client.post("/threads/t1/resume", json={"input": ACCOUNT})
        client.post("/threads/t2/resume", json={"input": ACCOUNT})

        data = client.get("/threads/").json()
        assert sorted(data["threads"]) == ["t1", "t2"]
        assert data["total"] == 2

        assert client.delete("/threads/t1").status_code == 204
        assert client.delete("/threads/t1").status_code == 404
        assert client.get("/threads/").json()["threads"] == ["t2"]

    def test_concurrent_resume_conflict(self, operations, encryptor, extractor):
        """Test a concurrent writer is rejected with 409."""
        client = TestClient(make_app(operations, encryptor, extractor, store=RacingStore()))

        response = client.post("/threads/t1/resume", json={"input": ACCOUNT})

        assert response.status_code == 409
        assert "t1" in response.json()["detail"]


# ============================================================
# Async Tests (for async endpoints)
# ============================================================

@pytest.mark.asyncio
async def test_add_card_conversation(operations, encryptor, extractor):
    """Test a full add-card conversation over HTTP."""
    app = make_app(operations, encryptor, extractor)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        steps = [
            ({**ACCOUNT, "cardData": CARD}, "awaiting_secure_token"),
            ({"secureToken": {
                "result": "COMPLETE",
                "sessionContext": {"secureToken": "st-1"},
                "browserData": {"userAgent": "Mozilla/5.0", "ipAddress": "10.1.2.3"},
                "dfpSessionID": "dfp-1",
            }}, "awaiting_validation_method"),
            ({"selectedValidationMethod": {"method": "OTPSMS", "value": "+1******1234"}}, "awaiting_otp"),
            ({"otpCode": "123456"}, "awaiting_authentication_result"),
            ({"authenticationResult": {"assuranceData": {"identifier": "ad-1", "fidoBlob": "blob"}}},
             "awaiting_user_intent"),
        ]
        for delta, reason in steps:
            response = await ac.post("/threads/conv-1/resume", json={"input": delta})
            assert response.status_code == 200
            assert response.json()["reason"] == reason

        data = response.json()
        assert data["state"]["validationMethods"] is None
        assert data["state"]["tokenId"] == TOKEN_ID

        response = await ac.post("/threads/conv-1/resume", json={
            "input": {"userIntentInput": "running shoes for $120"}
        })
        data = response.json()
        assert data["status"] == "completed"
        assert data["state"]["product"] == "running shoes"
        assert data["state"]["budget"] == 120


@pytest.mark.asyncio
async def test_delete_card_over_http(operations, encryptor, extractor):
    """Test the delete-card action over HTTP."""
    app = make_app(operations, encryptor, extractor)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        seeded = {
            **ACCOUNT,
            "cardData": CARD,
            "tokenId": TOKEN_ID,
            "cardAdditionCompleted": True,
            "product": "shoes",
            "budget": 100,
        }
        response = await ac.post("/threads/t1/resume", json={"input": seeded})
        assert response.json()["status"] == "completed"

        response = await ac.post("/threads/t1/resume", json={"input": {"action": "delete-card"}})
        data = response.json()
        assert data["status"] == "suspended"
        assert data["suspended_at"] == "await-card-data"
        assert data["state"]["cardDeletionSignal"] == 1
        assert data["state"]["tokenId"] is None

        state = (await ac.get("/threads/t1")).json()
        assert state["next_step"] == "await-card-data"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
