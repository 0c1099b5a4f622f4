"""Common test fixtures for DOJO tests."""

import asyncio
from datetime import datetime, timedelta, timezone
from itertools import count
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from dojo.api.deps import get_lock, get_orchestrator, get_store
from dojo.api.main import app
from dojo.orchestration.orchestrator import TurnOrchestrator
from dojo.orchestration.reasoning import (
    ReasoningRequest,
    ReasoningService,
    RoundComplete,
    TextDelta,
    ToolCall,
)
from dojo.orchestration.session_lock import InMemorySessionLock
from dojo.records.models import (
    ConceptRecord,
    Session,
    SessionType,
    SkillProgress,
)
from dojo.records.store import TrainingStore


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

_call_ids = count(1)


def text(content: str) -> TextDelta:
    """Scripted text fragment."""
    return TextDelta(text=content)


def tool(name: str, **arguments: Any) -> ToolCall:
    """Scripted tool call."""
    return ToolCall(id=f"call_{next(_call_ids)}", name=name, arguments=arguments)


def concept(
    exposures: int,
    successes: int,
    streak: int = 0,
    contexts: Optional[list[str]] = None,
    days_ago: Optional[float] = 0,
    **kwargs: Any,
) -> ConceptRecord:
    """Build a concept record seen `days_ago` days before NOW."""
    return ConceptRecord(
        exposure_count=exposures,
        success_count=successes,
        streak=streak,
        contexts=contexts or [],
        last_seen=None if days_ago is None else NOW - timedelta(days=days_ago),
        **kwargs,
    )


class FakeReasoningService(ReasoningService):
    """Reasoning service that plays back scripted rounds.

    Each round is a list of TextDelta / ToolCall items. An Exception in a
    round is raised at that point; an asyncio.Event is awaited, which lets a
    test hold a turn open. When the script runs out, `repeat` (if set) is
    played for every further round, otherwise a plain "OK" reply.
    """

    def __init__(self, rounds: Optional[list[list[Any]]] = None, repeat: Optional[list[Any]] = None):
        self.rounds = list(rounds or [])
        self.repeat = repeat
        self.requests: list[ReasoningRequest] = []

    async def stream(self, request: ReasoningRequest):
        self.requests.append(request)
        index = len(self.requests) - 1
        if index < len(self.rounds):
            script = self.rounds[index]
        elif self.repeat is not None:
            # Fresh ids so repeated calls stay distinct
            script = [
                tool(item.name, **item.arguments) if isinstance(item, ToolCall) else item
                for item in self.repeat
            ]
        else:
            script = [text("OK")]

        for item in script:
            if isinstance(item, Exception):
                raise item
            if isinstance(item, asyncio.Event):
                await item.wait()
                continue
            yield item

        yield RoundComplete(usage={"prompt_tokens": 10, "completion_tokens": 5}, stop_reason="stop")


@pytest.fixture
def test_store(tmp_path):
    """Create test store with temp database."""
    return TrainingStore(tmp_path / "test.db")


@pytest.fixture
def test_skill(test_store):
    """Create a Python skill for learner-1."""
    skill = SkillProgress(learner_id="learner-1", skill_name="Python", skill_slug="python")
    return test_store.create_skill(skill)


def create_session_in_store(
    store: TrainingStore,
    skill: SkillProgress,
    session_type: SessionType = SessionType.TRAINING,
) -> Session:
    """Create a session of the given type for a skill."""
    session = Session(skill_id=skill.id, learner_id=skill.learner_id, type=session_type)
    return store.create_session(session)


@pytest.fixture
def test_session(test_store, test_skill):
    """Create an active training session."""
    return create_session_in_store(test_store, test_skill)


@pytest.fixture
def session_lock():
    """Fresh lock registry."""
    return InMemorySessionLock()


@pytest.fixture
def fake_reasoning():
    """Scripted reasoning service; tests set .rounds before sending."""
    return FakeReasoningService()


@pytest.fixture
def orchestrator(test_store, fake_reasoning, session_lock):
    """Create orchestrator wired to the fake reasoning service."""
    return TurnOrchestrator(
        test_store,
        fake_reasoning,
        session_lock,
        max_rounds=5,
        clock=lambda: NOW,
    )


@pytest.fixture
def client(test_store, session_lock, orchestrator):
    """Create test client with overridden dependencies."""

    def override_get_store():
        yield test_store

    app.dependency_overrides[get_store] = override_get_store
    app.dependency_overrides[get_lock] = lambda: session_lock
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()
