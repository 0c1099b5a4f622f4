"""Pydantic models for DOJO training records.

Record Types:
- SkillProgress: One learner training one skill (belt, concepts, reinforcement)
- ConceptRecord: Exposure statistics for one concept inside a skill
- ReinforcementItem: A concept flagged for extra practice
- BeltHistoryEntry: Immutable audit record of a belt change
- Session: A coached conversation with its problem, evaluation and messages
"""

import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def gen_id() -> str:
    """Generate a unique ID."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


_WHITESPACE = re.compile(r"\s+")


def normalize_concept_name(name: str) -> str:
    """Normalize a free-form concept name into its storage key.

    "Array Methods" and "array   methods" both become "array_methods".
    """
    return _WHITESPACE.sub("_", name.strip().casefold())


# =============================================================================
# Enums
# =============================================================================


class Belt(str, Enum):
    """Proficiency rank, lowest to highest."""

    WHITE = "white"
    YELLOW = "yellow"
    ORANGE = "orange"
    GREEN = "green"
    BLUE = "blue"
    PURPLE = "purple"
    BROWN = "brown"
    BLACK = "black"

    @property
    def rank(self) -> int:
        """Position in BELT_ORDER (0 = white)."""
        return BELT_ORDER.index(self)


BELT_ORDER: list[Belt] = list(Belt)


class ReinforcementPriority(str, Enum):
    """Priority of a reinforcement queue item."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SessionStatus(str, Enum):
    """Lifecycle status of a session."""

    ACTIVE = "active"
    COMPLETED = "completed"  # Terminal, via complete_session
    ABANDONED = "abandoned"  # Terminal, via user deletion


class SessionType(str, Enum):
    """What kind of session the coach is running."""

    TRAINING = "training"
    ASSESSMENT = "assessment"
    ONBOARDING = "onboarding"
    KATA = "kata"


# Allowed status transitions. Terminal states have no outgoing edges.
SESSION_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.ACTIVE: {SessionStatus.COMPLETED, SessionStatus.ABANDONED},
    SessionStatus.COMPLETED: set(),
    SessionStatus.ABANDONED: set(),
}


# =============================================================================
# Skill Progress Models
# =============================================================================


class ConceptRecord(BaseModel):
    """Exposure statistics for a single concept."""

    exposure_count: int = Field(default=0, ge=0)
    success_count: int = Field(default=0, ge=0)
    last_seen: Optional[datetime] = None
    streak: int = Field(default=0, ge=0)
    contexts: list[str] = Field(default_factory=list)
    belt_level: Belt = Belt.WHITE  # Rank at which the concept was introduced
    observations: list[str] = Field(default_factory=list)
    mastery: float = 0.0  # Cached display value, recomputed on every write

    @field_validator("contexts")
    @classmethod
    def _dedupe_contexts(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @model_validator(mode="after")
    def _check_counts(self) -> "ConceptRecord":
        if self.success_count > self.exposure_count:
            raise ValueError("success_count cannot exceed exposure_count")
        return self

    def add_context(self, context: str) -> None:
        """Record a situational tag, ignoring duplicates."""
        if context and context not in self.contexts:
            self.contexts.append(context)


class ReinforcementItem(BaseModel):
    """A concept queued for extra practice."""

    concept: str
    context: Optional[str] = None
    priority: ReinforcementPriority = ReinforcementPriority.MEDIUM
    attempts: int = 0
    source_session_id: Optional[str] = None


class SkillProgress(BaseModel):
    """One learner's progress in one skill."""

    id: str = Field(default_factory=gen_id)
    learner_id: str
    skill_name: str
    skill_slug: str
    category: str = "technology"
    training_context: Optional[str] = None  # Written during onboarding
    current_belt: Belt = Belt.WHITE
    assessment_available: bool = False
    concepts: dict[str, ConceptRecord] = Field(default_factory=dict)
    reinforcement_queue: list[ReinforcementItem] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def get_concept(self, name: str) -> Optional[ConceptRecord]:
        """Look up a concept by free-form or normalized name."""
        return self.concepts.get(normalize_concept_name(name))

    def ensure_concept(self, name: str, belt_level: Optional[Belt] = None) -> ConceptRecord:
        """Get a concept record, creating an empty one if needed."""
        key = normalize_concept_name(name)
        record = self.concepts.get(key)
        if record is None:
            record = ConceptRecord(belt_level=belt_level or self.current_belt)
            self.concepts[key] = record
        return record


class BeltHistoryEntry(BaseModel):
    """Audit record of a belt change. Never mutated once written."""

    id: str = Field(default_factory=gen_id)
    skill_id: str
    learner_id: str
    from_belt: Optional[Belt] = None
    to_belt: Belt
    achieved_at: datetime = Field(default_factory=utcnow)
    session_id: Optional[str] = None

    model_config = {"frozen": True}


# =============================================================================
# Session Models
# =============================================================================


class Message(BaseModel):
    """A single message in a session."""

    role: str  # "user" or "assistant"
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class Problem(BaseModel):
    """Metadata of the challenge the coach presented."""

    prompt: str = ""
    concepts_targeted: list[str] = Field(default_factory=list)
    belt_level: Optional[Belt] = None
    starter_code: str = ""
    language: str = ""


class Solution(BaseModel):
    """The learner's final submission, as recorded by the coach."""

    content: str = ""
    language: str = ""
    submitted_at: Optional[datetime] = None


class Evaluation(BaseModel):
    """The coach's end-of-session evaluation."""

    correctness: Optional[str] = None  # "correct", "partial", "incorrect"
    quality: Optional[str] = None
    summary: str = ""
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    passed: Optional[bool] = None  # Assessment sessions only


class Session(BaseModel):
    """A coached session on one skill."""

    id: str = Field(default_factory=gen_id)
    skill_id: str
    learner_id: str
    status: SessionStatus = SessionStatus.ACTIVE
    type: SessionType = SessionType.TRAINING
    messages: list[Message] = Field(default_factory=list)
    problem: Problem = Field(default_factory=Problem)
    solution: Solution = Field(default_factory=Solution)
    evaluation: Evaluation = Field(default_factory=Evaluation)
    observations: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def can_transition(self, to: SessionStatus) -> bool:
        return to in SESSION_TRANSITIONS[self.status]

    def transition(self, to: SessionStatus, now: Optional[datetime] = None) -> None:
        """Move to a new status.

        Args:
            to: Target status
            now: Completion time to record (defaults to the current UTC time)

        Raises:
            ValueError: If the transition is not allowed (terminal states
                have no outgoing transitions)
        """
        if not self.can_transition(to):
            raise ValueError(
                f"Cannot move session from {self.status.value} to {to.value}"
            )
        self.status = to
        if to == SessionStatus.COMPLETED:
            self.completed_at = now or utcnow()

    def add_message(self, role: str, content: str) -> Message:
        message = Message(role=role, content=content)
        self.messages.append(message)
        return message
