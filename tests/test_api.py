"""Tests for API endpoints."""

import json

from conftest import concept, create_session_in_store, text, tool
from dojo.api.schemas import MAX_MESSAGE_CHARS
from dojo.core.errors import ReasoningServiceError
from dojo.orchestration.session_lock import skill_lock_key
from dojo.records.models import (
    Belt,
    ReinforcementItem,
    ReinforcementPriority,
    SessionStatus,
    SessionType,
)


def parse_sse(body: str) -> list[dict]:
    """Decode the data: lines of an SSE body."""
    return [
        json.loads(line[len("data: "):])
        for line in body.splitlines()
        if line.startswith("data: ")
    ]


def strong_concepts(n: int) -> dict:
    return {
        f"concept_{i}": concept(10, 10, streak=5, contexts=["a", "b", "c"], days_ago=None)
        for i in range(n)
    }


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["message"] == "DOJO API"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestSkillEndpoints:
    """Test skill enrollment endpoints."""

    def test_enroll(self, client):
        response = client.post("/api/skills", json={"learner_id": "l1", "name": "js"})
        assert response.status_code == 201
        data = response.json()
        assert data["skill_name"] == "JavaScript"
        assert data["skill_slug"] == "javascript"
        assert data["current_belt"] == "white"
        assert data["concept_count"] == 0

    def test_enroll_duplicate_alias(self, client):
        client.post("/api/skills", json={"learner_id": "l1", "name": "JavaScript"})
        response = client.post("/api/skills", json={"learner_id": "l1", "name": "es6"})
        assert response.status_code == 409
        assert "JavaScript" in response.json()["detail"]

    def test_same_skill_other_learner(self, client):
        client.post("/api/skills", json={"learner_id": "l1", "name": "Rust"})
        response = client.post("/api/skills", json={"learner_id": "l2", "name": "rust"})
        assert response.status_code == 201

    def test_enroll_empty_name(self, client):
        response = client.post("/api/skills", json={"learner_id": "l1", "name": ""})
        assert response.status_code == 422

    def test_enroll_whitespace_name(self, client):
        response = client.post("/api/skills", json={"learner_id": "l1", "name": "   "})
        assert response.status_code == 400

    def test_list_by_learner(self, client, test_skill):
        client.post("/api/skills", json={"learner_id": "other", "name": "Go"})

        response = client.get("/api/skills", params={"learner_id": "learner-1"})
        assert response.status_code == 200
        assert [s["id"] for s in response.json()] == [test_skill.id]

        assert len(client.get("/api/skills").json()) == 2

    def test_get_skill(self, client, test_skill):
        response = client.get(f"/api/skills/{test_skill.id}")
        assert response.status_code == 200
        assert response.json()["skill_name"] == "Python"

    def test_get_skill_not_found(self, client):
        assert client.get("/api/skills/missing").status_code == 404

    def test_delete_skill(self, client, test_skill, test_session, test_store):
        response = client.delete(f"/api/skills/{test_skill.id}")
        assert response.status_code == 204
        assert test_store.get_skill(test_skill.id) is None
        assert test_store.get_session(test_session.id) is None
        assert client.delete(f"/api/skills/{test_skill.id}").status_code == 404

    def test_list_sessions(self, client, test_skill, test_session):
        response = client.get(f"/api/skills/{test_skill.id}/sessions")
        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["id"] == test_session.id
        assert data[0]["status"] == "active"


class TestSessionCreation:
    """Test session creation."""

    def test_new_skill_defaults_to_onboarding(self, client, test_skill):
        response = client.post(f"/api/skills/{test_skill.id}/sessions")
        assert response.status_code == 201
        data = response.json()
        assert data["type"] == "onboarding"
        assert data["status"] == "active"
        assert data["messages"] == []

    def test_explicit_type(self, client, test_skill):
        response = client.post(f"/api/skills/{test_skill.id}/sessions", json={"type": "kata"})
        assert response.status_code == 201
        assert response.json()["type"] == "kata"

    def test_invalid_type(self, client, test_skill):
        response = client.post(f"/api/skills/{test_skill.id}/sessions", json={"type": "sparring"})
        assert response.status_code == 422

    def test_unknown_skill(self, client):
        assert client.post("/api/skills/missing/sessions").status_code == 404


class TestSessionLifecycle:
    """Test get, abandon and reactivate."""

    def test_get_session(self, client, test_session):
        response = client.get(f"/api/sessions/{test_session.id}")
        assert response.status_code == 200
        assert response.json()["type"] == "training"

    def test_get_session_not_found(self, client):
        assert client.get("/api/sessions/missing").status_code == 404

    def test_abandon(self, client, test_session, test_store):
        response = client.delete(f"/api/sessions/{test_session.id}")
        assert response.status_code == 204
        assert test_store.get_session(test_session.id).status == SessionStatus.ABANDONED

    def test_abandon_twice(self, client, test_session):
        client.delete(f"/api/sessions/{test_session.id}")
        response = client.delete(f"/api/sessions/{test_session.id}")
        assert response.status_code == 400
        assert "abandoned" in response.json()["detail"]

    def test_abandon_while_turn_in_flight(self, client, test_session, session_lock, test_store):
        session_lock.acquire(test_session.id)
        response = client.delete(f"/api/sessions/{test_session.id}")
        assert response.status_code == 409
        assert response.headers["Retry-After"] == "1"
        assert test_store.get_session(test_session.id).status == SessionStatus.ACTIVE

    def test_reactivate_active(self, client, test_session):
        response = client.patch(f"/api/sessions/{test_session.id}/reactivate")
        assert response.status_code == 200
        assert response.json()["id"] == test_session.id

    def test_reactivate_terminal(self, client, test_session):
        client.delete(f"/api/sessions/{test_session.id}")
        response = client.patch(f"/api/sessions/{test_session.id}/reactivate")
        assert response.status_code == 400


class TestMessageEndpoint:
    """Test the streaming message endpoint."""

    def test_streams_reply(self, client, test_session, fake_reasoning, test_store):
        fake_reasoning.rounds = [[text("Welcome"), text(" back")]]

        response = client.post(
            f"/api/sessions/{test_session.id}/messages",
            json={"content": "Ready to train"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = parse_sse(response.text)
        assert [e["type"] for e in events] == ["text", "text", "done"]
        assert events[0]["content"] == "Welcome"
        assert events[-1]["session_status"] == "active"
        assert "tool" not in events[0]

        messages = test_store.get_session(test_session.id).messages
        assert [(m.role, m.content) for m in messages] == [
            ("user", "Ready to train"),
            ("assistant", "Welcome back"),
        ]

    def test_tool_use_event(self, client, test_session, fake_reasoning):
        fake_reasoning.rounds = [
            [tool("queue_reinforcement", concept="Closures", priority="high")],
            [text("Noted")],
        ]

        response = client.post(
            f"/api/sessions/{test_session.id}/messages", json={"content": "I'm lost"}
        )

        events = parse_sse(response.text)
        tool_event = events[0]
        assert tool_event["type"] == "tool_use"
        assert tool_event["tool"] == "queue_reinforcement"
        assert tool_event["input"] == {"concept": "Closures", "priority": "high"}
        assert tool_event["ok"] is True
        assert tool_event["result"] == "Queued closures (high)"

    def test_upstream_error_event(self, client, test_session, fake_reasoning, test_store):
        fake_reasoning.rounds = [[ReasoningServiceError("rate limited")]]

        response = client.post(f"/api/sessions/{test_session.id}/messages", json={"content": "Hi"})

        events = parse_sse(response.text)
        assert events == [{"type": "error", "error": "rate limited"}]
        assert [m.role for m in test_store.get_session(test_session.id).messages] == ["user"]

    def test_session_not_found(self, client):
        response = client.post("/api/sessions/missing/messages", json={"content": "Hi"})
        assert response.status_code == 404

    def test_inactive_session(self, client, test_session):
        client.delete(f"/api/sessions/{test_session.id}")
        response = client.post(f"/api/sessions/{test_session.id}/messages", json={"content": "Hi"})
        assert response.status_code == 400

    def test_conflict(self, client, test_session, session_lock, fake_reasoning):
        session_lock.acquire(test_session.id)
        response = client.post(f"/api/sessions/{test_session.id}/messages", json={"content": "Hi"})
        assert response.status_code == 409
        assert response.headers["Retry-After"] == "1"
        assert fake_reasoning.requests == []

    def test_empty_message(self, client, test_session):
        response = client.post(f"/api/sessions/{test_session.id}/messages", json={"content": ""})
        assert response.status_code == 422

    def test_oversized_message(self, client, test_session):
        response = client.post(
            f"/api/sessions/{test_session.id}/messages",
            json={"content": "x" * (MAX_MESSAGE_CHARS + 1)},
        )
        assert response.status_code == 422


class TestProgressEndpoints:
    """Test dashboard, detail and belt endpoints."""

    def test_dashboard(self, client, test_skill, test_session, test_store):
        test_skill.concepts = {"loops": concept(4, 4, streak=4, contexts=["a", "b", "c"])}
        test_store.update_skill(test_skill)

        response = client.get("/api/progress", params={"learner_id": "learner-1"})

        assert response.status_code == 200
        data = response.json()
        assert data["total_sessions"] == 1
        overview = data["skills"][0]
        assert overview["skill_name"] == "Python"
        assert overview["concept_count"] == 1
        assert overview["session_count"] == 1

    def test_dashboard_requires_learner(self, client):
        assert client.get("/api/progress").status_code == 422

    def test_detail(self, client, test_skill, test_store):
        test_skill.concepts = {
            "weak_one": concept(4, 1, days_ago=None),
            "strong_one": concept(10, 10, streak=5, contexts=["a", "b", "c"], days_ago=None),
        }
        test_skill.reinforcement_queue = [
            ReinforcementItem(concept="weak_one", priority=ReinforcementPriority.HIGH)
        ]
        test_store.update_skill(test_skill)

        response = client.get(f"/api/progress/{test_skill.id}")

        assert response.status_code == 200
        data = response.json()
        assert [c["name"] for c in data["concepts"]] == ["strong_one", "weak_one"]
        assert data["concepts"][0]["band"] == "strong"
        assert data["reinforcement_queue"][0]["concept"] == "weak_one"
        assert data["focus"][0]["concept"] == "weak_one"
        assert data["focus"][0]["priority"] == "critical"

    def test_detail_not_found(self, client):
        assert client.get("/api/progress/missing").status_code == 404

    def test_belt_info(self, client, test_skill):
        response = client.get(f"/api/progress/{test_skill.id}/belt-info")
        assert response.status_code == 200
        data = response.json()
        assert data["current_belt"] == "white"
        assert data["next_belt"] == "yellow"
        assert data["eligible"] is False

    def test_promote_ineligible(self, client, test_skill, test_store):
        response = client.post(f"/api/progress/{test_skill.id}/promote")
        assert response.status_code == 400
        assert test_store.get_skill(test_skill.id).current_belt == Belt.WHITE

    def test_promote(self, client, test_skill, test_store):
        test_skill.concepts = strong_concepts(3)
        test_store.update_skill(test_skill)
        for _ in range(3):
            create_session_in_store(test_store, test_skill, SessionType.TRAINING)

        response = client.post(f"/api/progress/{test_skill.id}/promote")

        assert response.status_code == 200
        data = response.json()
        assert data["from_belt"] == "white"
        assert data["to_belt"] == "yellow"
        assert test_store.get_skill(test_skill.id).current_belt == Belt.YELLOW

        history = client.get(f"/api/belt-history/{test_skill.id}").json()
        assert [(h["from_belt"], h["to_belt"]) for h in history] == [("white", "yellow")]

    def test_promote_while_skill_busy(self, client, test_skill, test_store, session_lock):
        test_skill.concepts = strong_concepts(3)
        test_store.update_skill(test_skill)
        for _ in range(3):
            create_session_in_store(test_store, test_skill, SessionType.TRAINING)
        session_lock.acquire(skill_lock_key(test_skill.id))

        response = client.post(f"/api/progress/{test_skill.id}/promote")

        assert response.status_code == 409
        assert response.headers["retry-after"] == "1"
        assert test_store.get_skill(test_skill.id).current_belt == Belt.WHITE
        assert client.get(f"/api/belt-history/{test_skill.id}").json() == []

        session_lock.release(skill_lock_key(test_skill.id))
        assert client.post(f"/api/progress/{test_skill.id}/promote").status_code == 200

    def test_remove_reinforcement(self, client, test_skill, test_store):
        test_skill.reinforcement_queue = [
            ReinforcementItem(concept="closures", context="callbacks"),
            ReinforcementItem(concept="closures", context="decorators"),
            ReinforcementItem(concept="loops"),
        ]
        test_store.update_skill(test_skill)

        response = client.delete(f"/api/progress/{test_skill.id}/reinforcement/Closures")

        assert response.status_code == 204
        queue = test_store.get_skill(test_skill.id).reinforcement_queue
        assert [item.concept for item in queue] == ["loops"]

    def test_remove_reinforcement_while_skill_busy(self, client, test_skill, test_store, session_lock):
        test_skill.reinforcement_queue = [ReinforcementItem(concept="loops")]
        test_store.update_skill(test_skill)
        session_lock.acquire(skill_lock_key(test_skill.id))

        response = client.delete(f"/api/progress/{test_skill.id}/reinforcement/loops")

        assert response.status_code == 409
        assert len(test_store.get_skill(test_skill.id).reinforcement_queue) == 1

    def test_remove_reinforcement_not_queued(self, client, test_skill):
        response = client.delete(f"/api/progress/{test_skill.id}/reinforcement/loops")
        assert response.status_code == 404


class TestBeltHistoryEndpoint:
    """Test belt history."""

    def test_empty(self, client, test_skill):
        response = client.get(f"/api/belt-history/{test_skill.id}")
        assert response.status_code == 200
        assert response.json() == []

    def test_not_found(self, client):
        assert client.get("/api/belt-history/missing").status_code == 404
