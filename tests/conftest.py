"""
Shared test fixtures.

Provides a temporary database, repositories, and a counting test double
for the generation backend so pipeline tests never touch the network.
"""

import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import patch

import pytest

from src.core.exceptions import AllProvidersExhaustedError
from src.domain.models.provider import ProviderSuccess, ReflectionPayload
from src.persistence.database import init_database
from src.persistence.repositories.message_repo import MessageRepository
from src.persistence.repositories.session_repo import SessionRepository


def payload_dict(**overrides: Any) -> Dict[str, Any]:
    """Well-formed backend JSON body (camelCase, as a provider returns it)."""
    body = {
        "acknowledgment": "Messing up the presentation left you feeling exposed.",
        "thoughtPattern": "All-or-nothing thinking",
        "patternNote": "One rough moment is being treated as the whole picture. That makes it heavier.",
        "reframe": "A shaky presentation is one event, not a verdict on your ability.",
        "question": "What happened right before the presentation went off track?",
        "encouragement": "Naming this clearly is already useful work.",
        "icebergLayer": "surface",
        "layerInsight": "",
    }
    body.update(overrides)
    return body


class FakeBackend:
    """Counting stand-in for ProviderFailoverClient."""

    def __init__(
        self,
        payloads: Optional[List[Dict[str, Any]]] = None,
        fail: bool = False,
    ):
        self.payloads = list(payloads or [payload_dict()])
        self.fail = fail
        self.calls: List[Dict[str, Any]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def generate(self, system, history, turn_number=None) -> ProviderSuccess:
        self.calls.append(
            {"system": system, "history": history, "turn_number": turn_number}
        )
        if self.fail:
            raise AllProvidersExhaustedError(
                "All 3 providers failed",
                failures=[
                    {"provider": p, "error_kind": "timeout"}
                    for p in ("anthropic", "openai", "deepseek")
                ],
            )
        body = self.payloads[min(len(self.calls), len(self.payloads)) - 1]
        return ProviderSuccess(
            provider="fake",
            model="fake-model",
            payload=ReflectionPayload.model_validate(body),
        )


@pytest.fixture
def make_payload():
    """Factory for backend JSON bodies."""
    return payload_dict


@pytest.fixture
def fake_backend():
    """Backend that always answers with the default payload."""
    return FakeBackend()


@pytest.fixture
def backend_factory():
    """Build a FakeBackend with custom payloads or failure."""
    return FakeBackend


@pytest.fixture
async def test_db():
    """Create and initialize test database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        await init_database(db_path)

        from src.core import config

        original_path = config.settings.database_path
        config.settings.database_path = db_path

        with patch("src.persistence.database.settings", config.settings):
            yield db_path

        config.settings.database_path = original_path


@pytest.fixture
async def session_repo(test_db):
    """Create session repository with test database."""
    return SessionRepository(str(test_db))


@pytest.fixture
async def message_repo(test_db):
    """Create message repository with test database."""
    return MessageRepository(str(test_db))
