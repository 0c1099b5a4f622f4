"""Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from dojo.records.models import (
    Belt,
    BeltHistoryEntry,
    ReinforcementItem,
    Session,
    SessionStatus,
    SessionType,
    SkillProgress,
)
from dojo.scoring import average_mastery

MAX_MESSAGE_CHARS = 50_000


# Skill schemas
class SkillCreate(BaseModel):
    """Request to enroll a learner in a skill."""

    learner_id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=200)
    category: str = "technology"


class SkillResponse(BaseModel):
    """Skill progress summary."""

    id: str
    learner_id: str
    skill_name: str
    skill_slug: str
    category: str
    training_context: Optional[str] = None
    current_belt: Belt
    assessment_available: bool
    concept_count: int = 0
    average_mastery: float = 0.0  # 0-100
    reinforcement_count: int = 0
    created_at: datetime
    updated_at: datetime


# Session schemas
class SessionCreate(BaseModel):
    """Request to start a session. Type defaults to the suggested one."""

    type: Optional[SessionType] = None


class SessionSummary(BaseModel):
    """Session list entry."""

    id: str
    skill_id: str
    type: SessionType
    status: SessionStatus
    message_count: int = 0
    problem_prompt: str = ""
    correctness: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class MessageCreate(BaseModel):
    """A learner message for the coach."""

    content: str = Field(min_length=1, max_length=MAX_MESSAGE_CHARS)


# Progress schemas
class SkillOverview(BaseModel):
    """Dashboard row for one skill."""

    skill_id: str
    skill_name: str
    category: str
    current_belt: Belt
    assessment_available: bool
    average_mastery: float  # 0-100
    concept_count: int
    mastered_count: int
    session_count: int


class DashboardResponse(BaseModel):
    """All skills for a learner."""

    learner_id: str
    skills: list[SkillOverview] = Field(default_factory=list)
    total_sessions: int = 0


class ConceptMastery(BaseModel):
    """Concept with its decayed mastery."""

    name: str
    mastery: float  # 0-100
    band: str  # strong, developing, weak
    exposure_count: int
    success_count: int
    streak: int
    contexts: list[str] = Field(default_factory=list)
    belt_level: Belt
    last_seen: Optional[datetime] = None


class FocusResponse(BaseModel):
    """Prioritized concept."""

    concept: str
    reason: str
    priority: str
    mastery: float  # 0-100


class ProgressDetail(BaseModel):
    """Full progress view for one skill."""

    skill: SkillResponse
    concepts: list[ConceptMastery] = Field(default_factory=list)
    reinforcement_queue: list[ReinforcementItem] = Field(default_factory=list)
    recent_sessions: list[SessionSummary] = Field(default_factory=list)
    belt_history: list[BeltHistoryEntry] = Field(default_factory=list)
    focus: list[FocusResponse] = Field(default_factory=list)


class BeltInfoResponse(BaseModel):
    """Advancement status toward the next belt."""

    current_belt: Belt
    next_belt: Optional[Belt] = None
    eligible: bool
    assessment_available: bool
    details: dict[str, Any] = Field(default_factory=dict)


class PromotionResponse(BaseModel):
    """Result of a successful promotion."""

    promoted: bool
    from_belt: Belt
    to_belt: Optional[Belt] = None
    history_entry: Optional[BeltHistoryEntry] = None


# Converters
def skill_to_response(skill: SkillProgress, now: datetime) -> SkillResponse:
    """Convert SkillProgress to response schema."""
    return SkillResponse(
        id=skill.id,
        learner_id=skill.learner_id,
        skill_name=skill.skill_name,
        skill_slug=skill.skill_slug,
        category=skill.category,
        training_context=skill.training_context,
        current_belt=skill.current_belt,
        assessment_available=skill.assessment_available,
        concept_count=len(skill.concepts),
        average_mastery=round(average_mastery(skill.concepts, now) * 100, 1),
        reinforcement_count=len(skill.reinforcement_queue),
        created_at=skill.created_at,
        updated_at=skill.updated_at,
    )


def session_to_summary(session: Session) -> SessionSummary:
    """Convert Session to list entry schema."""
    return SessionSummary(
        id=session.id,
        skill_id=session.skill_id,
        type=session.type,
        status=session.status,
        message_count=len(session.messages),
        problem_prompt=session.problem.prompt,
        correctness=session.evaluation.correctness,
        created_at=session.created_at,
        completed_at=session.completed_at,
    )
