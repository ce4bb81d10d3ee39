"""Tests for the therapist API endpoints."""

import pytest
import pytest_asyncio
from dataclasses import dataclass
from unittest.mock import AsyncMock

from httpx import ASGITransport, AsyncClient

from app.api.routes.therapist import get_mediation_service
from app.core.mediation import (
    InMemoryMediationStore,
    LocalFinalizationNotifier,
    MediationService,
)
from app.infra.claude import ClaudeClientError
from app.main import app


ALICE_SUMMARY = (
    "Here's what I have understood so far from your perspective: "
    "Alice misses the weekends together."
)
BOB_SUMMARY = (
    "Here's what I've understood about your side of the story: "
    "Bob is exhausted.\n\nWhat feels like the next step now? Plan one free Sunday."
)


@dataclass
class MockClaudeResponse:
    """Mock Claude response."""

    content: str
    model: str = "claude-sonnet-4-5"
    input_tokens: int = 100
    output_tokens: int = 50
    stop_reason: str = "end_turn"
    latency_ms: int = 500


@pytest.fixture
def mock_client():
    """Create mock Claude client."""
    client = AsyncMock()
    client.complete = AsyncMock(return_value=MockClaudeResponse(content="Tell me more."))
    return client


@pytest.fixture
def service(mock_client):
    """Service shared by every request of a test."""
    return MediationService(
        InMemoryMediationStore(),
        claude_client=mock_client,
        notifier=LocalFinalizationNotifier(),
    )


@pytest_asyncio.fixture
async def client(service):
    """HTTP client bound to the app with the in-memory service."""
    app.dependency_overrides[get_mediation_service] = lambda: service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


async def create_session(client, names="Alice & Bob") -> str:
    response = await client.post("/therapist/sessions", json={"partnerNames": names})
    assert response.status_code == 201
    return response.json()["sessionId"]


class TestSessionEndpoints:
    """Test session creation and lookup."""

    @pytest.mark.asyncio
    async def test_create_session(self, client):
        """Test creating a session."""
        response = await client.post("/therapist/sessions", json={"partnerNames": "Alice & Bob"})

        assert response.status_code == 201
        data = response.json()
        assert data["partnerNames"] == "Alice & Bob"
        assert data["sessionId"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{}, {"partnerNames": "Alice"}, {"partnerNames": "Al & Al"}])
    async def test_create_session_invalid(self, client, body):
        """Test invalid partner names give 400."""
        response = await client.post("/therapist/sessions", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"

    @pytest.mark.asyncio
    async def test_get_session(self, client):
        """Test fetching a session."""
        session_id = await create_session(client)

        response = await client.get(f"/therapist/sessions/{session_id}")

        assert response.status_code == 200
        assert response.json()["partners"] == ["Alice", "Bob"]

    @pytest.mark.asyncio
    async def test_get_session_not_found(self, client):
        """Test an unknown session gives 404."""
        response = await client.get("/therapist/sessions/missing")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_partners_availability(self, client):
        """Test a partner is marked used after chatting."""
        session_id = await create_session(client)
        await client.post("/therapist/chat", json={
            "sessionId": session_id, "partnerName": "Alice", "message": "hi",
        })

        response = await client.get(f"/therapist/sessions/{session_id}/partners")

        assert response.json() == [
            {"name": "Alice", "isUsed": True},
            {"name": "Bob", "isUsed": False},
        ]


class TestChatEndpoint:
    """Test partner turns over HTTP."""

    @pytest.mark.asyncio
    async def test_chat(self, client):
        """Test a plain turn."""
        session_id = await create_session(client)

        response = await client.post("/therapist/chat", json={
            "sessionId": session_id, "partnerName": "Alice", "message": "hi",
        })

        assert response.status_code == 200
        assert response.json() == {
            "message": "Tell me more.",
            "summary": None,
            "finalized": False,
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["sessionId", "partnerName", "message"])
    async def test_chat_missing_field(self, client, missing):
        """Test a missing field gives 400."""
        session_id = await create_session(client)
        body = {"sessionId": session_id, "partnerName": "Alice", "message": "hi"}
        del body[missing]

        response = await client.post("/therapist/chat", json=body)

        assert response.status_code == 400
        assert missing in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_chat_unknown_session(self, client):
        """Test an unknown session gives 404."""
        response = await client.post("/therapist/chat", json={
            "sessionId": "missing", "partnerName": "Alice", "message": "hi",
        })

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_chat_upstream_failure(self, client, mock_client):
        """Test a completion failure gives 502."""
        session_id = await create_session(client)
        mock_client.complete.side_effect = ClaudeClientError("overloaded")

        response = await client.post("/therapist/chat", json={
            "sessionId": session_id, "partnerName": "Alice", "message": "hi",
        })

        assert response.status_code == 502

    @pytest.mark.asyncio
    async def test_chat_with_client_history(self, client, mock_client):
        """Test a client-supplied thread is replayed."""
        session_id = await create_session(client)

        await client.post("/therapist/chat", json={
            "sessionId": session_id,
            "partnerName": "Alice",
            "message": "and then?",
            "messages": [
                {"role": "user", "message": "earlier", "name": "Alice"},
                {"role": "assistant", "message": "I see", "name": "Alice"},
            ],
        })

        contents = [m["content"] for m in mock_client.complete.call_args.kwargs["messages"]]
        assert contents == ["earlier", "I see", "and then?"]


class TestMediationFlow:
    """Test the two-partner flow over HTTP."""

    @pytest.mark.asyncio
    async def test_full_flow(self, client, mock_client):
        """Test summaries, solution and per-partner threads."""
        session_id = await create_session(client)
        chat = {"sessionId": session_id}

        mock_client.complete.return_value = MockClaudeResponse(content=ALICE_SUMMARY)
        response = await client.post("/therapist/chat", json={
            **chat, "partnerName": "Alice", "message": "that's it",
        })
        assert response.json()["summary"] == ALICE_SUMMARY
        assert response.json()["finalized"] is False

        summary = await client.get(f"/therapist/sessions/{session_id}/summaries/Alice")
        assert summary.status_code == 200
        assert summary.json()["summaryText"] == ALICE_SUMMARY

        missing = await client.get(f"/therapist/sessions/{session_id}/summaries/Bob")
        assert missing.status_code == 404

        mock_client.complete.return_value = MockClaudeResponse(content=BOB_SUMMARY)
        response = await client.post("/therapist/chat", json={
            **chat, "partnerName": "Bob", "message": "my side",
        })
        assert response.json()["finalized"] is True

        status = await client.get(
            f"/therapist/sessions/{session_id}/status", params={"partner": "Alice"}
        )
        data = status.json()
        assert data["bothCompleted"] is True
        assert data["solution"]["message"] == BOB_SUMMARY
        assert data["solution"]["name"] == "SOLUTION"
        assert data["currentPartnerSummary"]["partnerName"] == "Alice"
        assert data["otherPartnerSummary"]["summaryText"] == BOB_SUMMARY
        assert data["stages"] == {"Alice": "both_done", "Bob": "both_done"}

        alice = await client.get(
            f"/therapist/sessions/{session_id}/messages", params={"partner": "Alice"}
        )
        messages = alice.json()
        assert [m["message"] for m in messages] == ["that's it", ALICE_SUMMARY, BOB_SUMMARY]
        assert messages[-1]["name"] == "SOLUTION"

    @pytest.mark.asyncio
    async def test_status_in_progress(self, client):
        """Test status before anyone finished."""
        session_id = await create_session(client)

        response = await client.get(
            f"/therapist/sessions/{session_id}/status", params={"wait": 0.01}
        )

        data = response.json()
        assert response.status_code == 200
        assert data["bothCompleted"] is False
        assert data["solution"] is None
        assert data["stages"] == {"Alice": "not_started", "Bob": "not_started"}

    @pytest.mark.asyncio
    async def test_messages_unknown_partner(self, client):
        """Test a stranger's thread gives 400."""
        session_id = await create_session(client)

        response = await client.get(
            f"/therapist/sessions/{session_id}/messages", params={"partner": "Carol"}
        )

        assert response.status_code == 400
