"""Shared fixtures. Everything runs against the in-memory database."""

import os

os.environ.setdefault("USE_MEMORY_DB", "true")
os.environ.setdefault("USE_MOCK_CLAUDE", "true")

import pytest
from fastapi.testclient import TestClient

from lexia.api import app, get_conversation_service, get_session_manager
from lexia.db import InMemoryDatabase
from lexia.services.activity_log import ActivityLog
from lexia.services.conversations import ConversationService
from lexia.services.permissions import PermissionGate
from lexia.services.sessions import SessionManager


class FakeTitleGenerator:
    """Records prompts and returns a fixed title."""

    def __init__(self, title: str | None = "Contestación de demanda laboral"):
        self.title = title
        self.calls: list[str] = []

    async def __call__(self, text: str) -> str | None:
        self.calls.append(text)
        return self.title


@pytest.fixture
def memory_db() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture
def gate(memory_db) -> PermissionGate:
    return PermissionGate(memory_db)


@pytest.fixture
def session_manager(memory_db, gate) -> SessionManager:
    return SessionManager(memory_db, gate, ActivityLog(memory_db))


@pytest.fixture
def title_generator() -> FakeTitleGenerator:
    return FakeTitleGenerator()


@pytest.fixture
def conversation_service(memory_db, gate, title_generator) -> ConversationService:
    return ConversationService(memory_db, gate, title_generator=title_generator)


@pytest.fixture
def client(session_manager, conversation_service):
    app.dependency_overrides[get_session_manager] = lambda: session_manager
    app.dependency_overrides[get_conversation_service] = lambda: conversation_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
