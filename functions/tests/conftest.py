"""Pytest configuration and shared fixtures for QuoteSmith tests."""

import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock


# ============================================================================
# Ensure local imports work (engines/, models/, services/, config/)
# ============================================================================
#
# Our codebase uses absolute imports like `from models...` / `from engines...`.
# This guarantees that `functions/` is importable as the top-level module root.
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


# ============================================================================
# Clock
# ============================================================================

class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    """Clock fixed at 2024-03-01 12:00 UTC."""
    return FakeClock(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))


# ============================================================================
# Knowledge store
# ============================================================================

@pytest.fixture
def memory_store(clock):
    """In-memory knowledge store sharing the test clock."""
    from services.knowledge_store import InMemoryKnowledgeStore

    return InMemoryKnowledgeStore(clock=clock)


@pytest.fixture
def json_store(tmp_path, clock):
    """JSON file knowledge store rooted in a temp directory."""
    from services.knowledge_store import JsonFileKnowledgeStore

    return JsonFileKnowledgeStore(str(tmp_path), clock=clock)


@pytest.fixture
def learning_engine(memory_store, clock):
    """AdaptiveLearningEngine over the in-memory store."""
    from engines.adaptive_learning_engine import AdaptiveLearningEngine

    return AdaptiveLearningEngine(
        "contractor-1",
        store=memory_store,
        clock=clock,
        pattern_history_limit=100,
        refresh_days=14,
        default_markup=0.25,
    )


# ============================================================================
# Conversation
# ============================================================================

@pytest.fixture
def conversation_engine():
    """ConversationEngine over a fresh in-memory session repository."""
    from engines.conversation_engine import ConversationEngine
    from services.session_store import InMemorySessionRepository

    return ConversationEngine(session_repository=InMemorySessionRepository())


# ============================================================================
# Firebase Mocks
# ============================================================================

@pytest.fixture
def mock_firestore_client():
    """Mock Firestore client."""
    client = MagicMock()

    # Set up chain: client.collection().document()
    collection_mock = MagicMock()
    document_mock = MagicMock()
    client.collection.return_value = collection_mock
    collection_mock.document.return_value = document_mock

    # No knowledge base stored yet
    document_mock.get = AsyncMock(return_value=MagicMock(
        exists=False,
        to_dict=lambda: None
    ))
    document_mock.set = AsyncMock()

    return client


@pytest.fixture
def firestore_store(mock_firestore_client, clock):
    """FirestoreKnowledgeStore with mocked client."""
    from services.firestore_knowledge_store import FirestoreKnowledgeStore

    return FirestoreKnowledgeStore(db=mock_firestore_client, clock=clock)
