"""Integration tests for API endpoints."""

import pytest
from httpx import AsyncClient, ASGITransport

from src.api.dependencies import (
    get_message_repository,
    get_reflection_service,
    get_session_repository,
    get_session_service,
)
from src.main import app
from src.persistence.repositories.message_repo import MessageRepository
from src.persistence.repositories.session_repo import SessionRepository
from src.services.reflection_service import ReflectionService
from src.services.session_service import SessionService

USER = {"X-User-ID": "user-1"}


@pytest.fixture
def wire_app(test_db):
    """Point the app's dependencies at the test database and a fake backend."""

    def _wire(backend):
        session_repo = SessionRepository(str(test_db))
        message_repo = MessageRepository(str(test_db))
        reflection = ReflectionService(backend)
        service = SessionService(session_repo, message_repo, reflection)

        app.dependency_overrides[get_session_repository] = lambda: session_repo
        app.dependency_overrides[get_message_repository] = lambda: message_repo
        app.dependency_overrides[get_reflection_service] = lambda: reflection
        app.dependency_overrides[get_session_service] = lambda: service
        return app

    yield _wire
    app.dependency_overrides.clear()


@pytest.fixture
async def client(wire_app, fake_backend):
    transport = ASGITransport(app=wire_app(fake_backend))
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.mark.asyncio
async def test_root_endpoint(client):
    """Root endpoint returns basic info."""
    response = await client.get("/")

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "CBT Reflection Engine"
    assert data["status"] == "running"


@pytest.mark.asyncio
async def test_liveness_endpoint(client):
    response = await client.get("/health/live")

    assert response.status_code == 200
    assert response.json()["status"] == "alive"
    assert "X-Request-ID" in response.headers


class TestReflectEndpoint:
    """POST /reflect."""

    @pytest.mark.asyncio
    async def test_first_thought_creates_session(self, client, fake_backend):
        response = await client.post(
            "/reflect", json={"text": "I always mess everything up."}, headers=USER
        )

        assert response.status_code == 200
        data = response.json()
        assert data["session"]["user_id"] == "user-1"
        assert data["session"]["original_trigger"] == "I always mess everything up."
        assert data["response"]["icebergLayer"] == "surface"
        assert data["response"]["isCrisisResponse"] is False
        assert data["meta"]["turn"] == 1
        assert fake_backend.call_count == 1

    @pytest.mark.asyncio
    async def test_follow_up_uses_existing_session(self, client):
        first = await client.post(
            "/reflect", json={"text": "My manager ignored my email"}, headers=USER
        )
        session_id = first.json()["session"]["id"]

        second = await client.post(
            "/reflect",
            json={"text": "It made me feel invisible", "session_id": session_id},
            headers=USER,
        )

        assert second.status_code == 200
        assert second.json()["session"]["id"] == session_id
        assert second.json()["meta"]["turn"] == 2

    @pytest.mark.asyncio
    async def test_empty_text_is_400(self, client, fake_backend):
        response = await client.post("/reflect", json={"text": "   "}, headers=USER)

        assert response.status_code == 400
        assert response.json()["error"]["type"] == "InvalidInput"
        assert fake_backend.call_count == 0

    @pytest.mark.asyncio
    async def test_missing_user_header_is_422(self, client):
        response = await client.post("/reflect", json={"text": "hello there"})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_session_is_404(self, client):
        response = await client.post(
            "/reflect",
            json={"text": "hello there", "session_id": "missing"},
            headers=USER,
        )

        assert response.status_code == 404
        assert response.json()["error"]["type"] == "SessionNotFound"

    @pytest.mark.asyncio
    async def test_other_users_session_is_404(self, client):
        first = await client.post(
            "/reflect", json={"text": "My manager ignored my email"}, headers=USER
        )
        session_id = first.json()["session"]["id"]

        response = await client.post(
            "/reflect",
            json={"text": "hello there", "session_id": session_id},
            headers={"X-User-ID": "user-2"},
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_exhausted_providers_is_503(self, wire_app, backend_factory):
        transport = ASGITransport(app=wire_app(backend_factory(fail=True)))
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            response = await c.post(
                "/reflect", json={"text": "My manager ignored my email"}, headers=USER
            )
            listing = await c.get("/sessions", headers=USER)

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "30"
        body = response.json()
        assert body["error"]["type"] == "ServiceUnavailable"
        assert "anthropic" not in response.text
        assert listing.json()["total"] == 0


class TestSessionEndpoints:
    """Session CRUD scoped to X-User-ID."""

    @pytest.mark.asyncio
    async def test_create_and_list(self, client):
        created = await client.post("/sessions", json={"title": "Work"}, headers=USER)
        await client.post("/sessions", json={}, headers={"X-User-ID": "user-2"})

        assert created.status_code == 201
        assert created.json()["current_layer"] == "surface"

        listing = await client.get("/sessions", headers=USER)
        assert listing.status_code == 200
        assert listing.json()["total"] == 1
        assert listing.json()["sessions"][0]["title"] == "Work"

    @pytest.mark.asyncio
    async def test_detail_includes_messages_and_context(self, client):
        first = await client.post(
            "/reflect", json={"text": "My manager ignored my email"}, headers=USER
        )
        session_id = first.json()["session"]["id"]

        response = await client.get(f"/sessions/{session_id}", headers=USER)

        assert response.status_code == 200
        data = response.json()
        assert [m["role"] for m in data["messages"]] == ["user", "assistant"]
        assert data["context"]["turn_number"] == 2
        assert data["context"]["original_trigger"] == "My manager ignored my email"

    @pytest.mark.asyncio
    async def test_rename(self, client):
        created = await client.post("/sessions", json={"title": "Work"}, headers=USER)
        session_id = created.json()["id"]

        response = await client.put(
            f"/sessions/{session_id}", json={"title": "Family"}, headers=USER
        )

        assert response.status_code == 200
        assert response.json()["title"] == "Family"

    @pytest.mark.asyncio
    async def test_delete(self, client):
        created = await client.post("/sessions", json={}, headers=USER)
        session_id = created.json()["id"]

        response = await client.delete(f"/sessions/{session_id}", headers=USER)

        assert response.status_code == 204
        missing = await client.get(f"/sessions/{session_id}", headers=USER)
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_other_user_cannot_delete(self, client):
        created = await client.post("/sessions", json={}, headers=USER)
        session_id = created.json()["id"]

        response = await client.delete(
            f"/sessions/{session_id}", headers={"X-User-ID": "user-2"}
        )

        assert response.status_code == 404


class TestEngineEndpoint:
    """POST /engine is stateless."""

    @pytest.mark.asyncio
    async def test_returns_update_without_persisting(self, client, fake_backend):
        response = await client.post(
            "/engine",
            json={
                "text": "It made me feel invisible",
                "session": {"id": "ext-1", "user_id": "caller", "current_layer": "trigger"},
                "messages": [
                    {
                        "id": "m1",
                        "session_id": "ext-1",
                        "role": "user",
                        "content": "My manager ignored my email",
                    }
                ],
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["meta"]["turn"] == 2
        assert data["session_update"]["current_layer"] in ("trigger", "emotion", "coreBelief")
        assert fake_backend.calls[0]["history"][0]["content"] == "My manager ignored my email"

        listing = await client.get("/sessions", headers={"X-User-ID": "caller"})
        assert listing.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_acute_message_answers_without_backend(self, client, fake_backend):
        response = await client.post("/engine", json={"text": "I want to kill myself"})

        assert response.status_code == 200
        assert response.json()["response"]["isCrisisResponse"] is True
        assert fake_backend.call_count == 0
