"""Coach tools and their executor.

The reasoning service never writes records directly. It asks for one of the
tools below and the ToolExecutor applies the effect against the store on its
behalf. Every tool has a pydantic input model; the function definitions the
model sees are generated from those models.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from dojo.core.errors import ToolError
from dojo.records.models import (
    BELT_ORDER,
    Belt,
    Evaluation,
    Problem,
    ReinforcementItem,
    ReinforcementPriority,
    Session,
    SessionStatus,
    SessionType,
    SkillProgress,
    Solution,
    normalize_concept_name,
)
from dojo.records.store import TrainingStore
from dojo.scoring import compute_mastery, get_next_belt, place, promote

logger = logging.getLogger(__name__)

_BELT_VALUES = [belt.value for belt in BELT_ORDER]
_PRIORITY_VALUES = [priority.value for priority in ReinforcementPriority]


def _concept_key(value: str) -> str:
    key = normalize_concept_name(value)
    if not key:
        raise ValueError("concept name must not be blank")
    return key


def _belt(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip().lower()
    if value not in _BELT_VALUES:
        raise ValueError(f"unknown belt '{value}'")
    return value


# =============================================================================
# Tool Inputs
# =============================================================================


class RecordObservationInput(BaseModel):
    observation: str = Field(min_length=1, description="What you noticed about the learner")
    concept: Optional[str] = Field(default=None, description="Concept the observation is about")

    @field_validator("concept")
    @classmethod
    def _check_concept(cls, value: Optional[str]) -> Optional[str]:
        return _concept_key(value) if value is not None else None


class UpdateMasteryInput(BaseModel):
    concept: str = Field(description="Concept that was exercised")
    success: bool = Field(description="Whether the learner applied it correctly")
    context: Optional[str] = Field(default=None, description="Situation it was applied in")
    belt_level: Optional[str] = Field(
        default=None,
        description="Belt the concept belongs to",
        json_schema_extra={"enum": _BELT_VALUES},
    )

    @field_validator("concept")
    @classmethod
    def _check_concept(cls, value: str) -> str:
        return _concept_key(value)

    @field_validator("belt_level")
    @classmethod
    def _check_belt(cls, value: Optional[str]) -> Optional[str]:
        return _belt(value)


class QueueReinforcementInput(BaseModel):
    concept: str = Field(description="Concept needing more practice")
    priority: str = Field(
        default="medium",
        description="How urgently to revisit it",
        json_schema_extra={"enum": _PRIORITY_VALUES},
    )
    context: Optional[str] = Field(default=None, description="Situation it failed in")

    @field_validator("concept")
    @classmethod
    def _check_concept(cls, value: str) -> str:
        return _concept_key(value)

    @field_validator("priority")
    @classmethod
    def _check_priority(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in _PRIORITY_VALUES:
            raise ValueError(f"unknown priority '{value}'")
        return value


class SetBeltInput(BaseModel):
    belt: str = Field(description="Belt to award", json_schema_extra={"enum": _BELT_VALUES})
    reason: Optional[str] = Field(default=None, description="Why this belt fits")

    @field_validator("belt")
    @classmethod
    def _check_belt(cls, value: str) -> str:
        return _belt(value)


class SetAssessmentAvailableInput(BaseModel):
    available: bool = Field(description="Whether a belt assessment should be offered")
    reason: Optional[str] = None


class SetTrainingContextInput(BaseModel):
    training_context: str = Field(
        min_length=1,
        description="Learner goals, background and preferences for this skill",
    )


class PresentProblemInput(BaseModel):
    prompt: str = Field(min_length=1, description="The challenge as shown to the learner")
    concepts_targeted: list[str] = Field(default_factory=list)
    belt_level: Optional[str] = Field(default=None, json_schema_extra={"enum": _BELT_VALUES})
    starter_code: Optional[str] = None
    language: Optional[str] = None

    @field_validator("belt_level")
    @classmethod
    def _check_belt(cls, value: Optional[str]) -> Optional[str]:
        return _belt(value)


class CompleteSessionInput(BaseModel):
    summary: str = Field(min_length=1, description="Evaluation summary for the learner")
    correctness: Optional[str] = Field(
        default=None, json_schema_extra={"enum": ["correct", "partial", "incorrect"]}
    )
    quality: Optional[str] = None
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    passed: Optional[bool] = Field(default=None, description="Assessment sessions only")
    solution: Optional[str] = Field(default=None, description="The learner's final solution")


# =============================================================================
# Definitions
# =============================================================================


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_model: type[BaseModel]


TOOL_SPECS: dict[str, ToolSpec] = {
    spec.name: spec
    for spec in [
        ToolSpec(
            "record_observation",
            "Note something about the learner's reasoning or habits.",
            RecordObservationInput,
        ),
        ToolSpec(
            "update_mastery",
            "Record one attempt at a concept and whether it succeeded.",
            UpdateMasteryInput,
        ),
        ToolSpec(
            "queue_reinforcement",
            "Flag a concept for extra practice in a later session.",
            QueueReinforcementInput,
        ),
        ToolSpec(
            "set_belt",
            "Place the learner after onboarding, or award the next belt.",
            SetBeltInput,
        ),
        ToolSpec(
            "set_assessment_available",
            "Offer or withdraw a belt assessment.",
            SetAssessmentAvailableInput,
        ),
        ToolSpec(
            "set_training_context",
            "Store what you learned about the learner's goals for this skill.",
            SetTrainingContextInput,
        ),
        ToolSpec(
            "present_problem",
            "Record the problem you are presenting to the learner.",
            PresentProblemInput,
        ),
        ToolSpec(
            "complete_session",
            "Evaluate the learner's work and end the session.",
            CompleteSessionInput,
        ),
    ]
}


def _function_definition(spec: ToolSpec) -> dict[str, Any]:
    parameters = spec.input_model.model_json_schema()
    parameters.pop("title", None)
    return {
        "type": "function",
        "function": {
            "name": spec.name,
            "description": spec.description,
            "parameters": parameters,
        },
    }


TOOL_DEFINITIONS: list[dict[str, Any]] = [_function_definition(spec) for spec in TOOL_SPECS.values()]


# =============================================================================
# Execution
# =============================================================================


@dataclass
class ToolContext:
    """Records a tool call may touch, held under the session lock."""

    store: TrainingStore
    skill: SkillProgress
    session: Session
    now: datetime
    session_count: int = 0


@dataclass
class ToolResult:
    ok: bool
    content: str
    session_completed: bool = False


class ToolExecutor:
    """Applies tool calls to skill and session records."""

    def __init__(self):
        self._handlers: dict[str, Callable[[Any, ToolContext], ToolResult]] = {
            "record_observation": self._record_observation,
            "update_mastery": self._update_mastery,
            "queue_reinforcement": self._queue_reinforcement,
            "set_belt": self._set_belt,
            "set_assessment_available": self._set_assessment_available,
            "set_training_context": self._set_training_context,
            "present_problem": self._present_problem,
            "complete_session": self._complete_session,
        }

    def execute(self, name: str, arguments: dict[str, Any], ctx: ToolContext) -> ToolResult:
        """Validate and apply one tool call.

        Raises:
            ToolError: Unknown tool, invalid arguments, or a write against a
                session that is no longer active
        """
        spec = TOOL_SPECS.get(name)
        if spec is None:
            raise ToolError(f"Unknown tool: {name}")

        try:
            params = spec.input_model.model_validate(arguments)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}"
                for err in e.errors()
            )
            raise ToolError(f"Invalid arguments for {name}: {problems}") from e

        if not ctx.session.is_active:
            raise ToolError(f"Session is {ctx.session.status.value}; {name} not applied")

        return self._handlers[name](params, ctx)

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    def _record_observation(self, params: RecordObservationInput, ctx: ToolContext) -> ToolResult:
        ctx.session.observations.append(params.observation)
        ctx.store.update_session(ctx.session)
        if params.concept:
            ctx.skill.ensure_concept(params.concept).observations.append(params.observation)
            ctx.store.update_skill(ctx.skill)
            return ToolResult(ok=True, content=f"Observation recorded for {params.concept}")
        return ToolResult(ok=True, content="Observation recorded")

    def _update_mastery(self, params: UpdateMasteryInput, ctx: ToolContext) -> ToolResult:
        belt_level = Belt(params.belt_level) if params.belt_level else None
        record = ctx.skill.ensure_concept(params.concept, belt_level)

        record.exposure_count += 1
        if params.success:
            record.success_count += 1
            record.streak += 1
        else:
            record.streak = 0
        record.last_seen = ctx.now
        if params.context:
            record.add_context(params.context)
        record.mastery = round(compute_mastery(record, ctx.now), 4)

        for item in ctx.skill.reinforcement_queue:
            if normalize_concept_name(item.concept) == params.concept:
                item.attempts += 1

        ctx.store.update_skill(ctx.skill)
        return ToolResult(
            ok=True,
            content=(
                f"{params.concept}: mastery {record.mastery * 100:.0f}% "
                f"({record.success_count}/{record.exposure_count}, streak {record.streak})"
            ),
        )

    def _queue_reinforcement(self, params: QueueReinforcementInput, ctx: ToolContext) -> ToolResult:
        priority = ReinforcementPriority(params.priority)
        order = list(ReinforcementPriority)

        for item in ctx.skill.reinforcement_queue:
            if item.concept == params.concept and item.context == params.context:
                if order.index(priority) > order.index(item.priority):
                    item.priority = priority
                ctx.store.update_skill(ctx.skill)
                return ToolResult(
                    ok=True,
                    content=f"{params.concept} already queued ({item.priority.value})",
                )

        ctx.skill.reinforcement_queue.append(
            ReinforcementItem(
                concept=params.concept,
                context=params.context,
                priority=priority,
                source_session_id=ctx.session.id,
            )
        )
        ctx.store.update_skill(ctx.skill)
        return ToolResult(ok=True, content=f"Queued {params.concept} ({priority.value})")

    def _set_belt(self, params: SetBeltInput, ctx: ToolContext) -> ToolResult:
        belt = Belt(params.belt)

        if ctx.session.type == SessionType.ONBOARDING:
            previously_placed = bool(ctx.store.get_belt_history(ctx.skill.id))
            result = place(
                ctx.skill,
                belt,
                ctx.now,
                session_id=ctx.session.id,
                previously_placed=previously_placed,
            )
        else:
            next_belt = get_next_belt(ctx.skill.current_belt)
            if belt != next_belt:
                expected = next_belt.value if next_belt else "none"
                raise ToolError(
                    f"Cannot set belt to {belt.value} from {ctx.skill.current_belt.value}; "
                    f"only the next belt ({expected}) can be awarded"
                )
            result = promote(
                ctx.skill,
                ctx.session_count,
                ctx.now,
                session_id=ctx.session.id,
                enforce_eligibility=False,
            )

        ctx.store.update_skill(ctx.skill)
        if result.history_entry:
            ctx.store.append_belt_history(result.history_entry)
        return ToolResult(ok=True, content=f"Belt set to {belt.value}")

    def _set_assessment_available(
        self, params: SetAssessmentAvailableInput, ctx: ToolContext
    ) -> ToolResult:
        ctx.skill.assessment_available = params.available
        ctx.store.update_skill(ctx.skill)
        state = "available" if params.available else "withdrawn"
        return ToolResult(ok=True, content=f"Assessment {state}")

    def _set_training_context(self, params: SetTrainingContextInput, ctx: ToolContext) -> ToolResult:
        ctx.skill.training_context = params.training_context
        ctx.store.update_skill(ctx.skill)
        return ToolResult(ok=True, content="Training context saved")

    def _present_problem(self, params: PresentProblemInput, ctx: ToolContext) -> ToolResult:
        concepts = [normalize_concept_name(c) for c in params.concepts_targeted if c.strip()]
        ctx.session.problem = Problem(
            prompt=params.prompt,
            concepts_targeted=list(dict.fromkeys(concepts)),
            belt_level=Belt(params.belt_level) if params.belt_level else ctx.skill.current_belt,
            starter_code=params.starter_code or "",
            language=params.language or "",
        )
        ctx.store.update_session(ctx.session)
        return ToolResult(ok=True, content="Problem recorded")

    def _complete_session(self, params: CompleteSessionInput, ctx: ToolContext) -> ToolResult:
        session = ctx.session
        session.evaluation = Evaluation(
            correctness=params.correctness,
            quality=params.quality,
            summary=params.summary,
            strengths=params.strengths,
            weaknesses=params.weaknesses,
            passed=params.passed,
        )
        if params.solution:
            session.solution = Solution(
                content=params.solution,
                language=session.problem.language,
                submitted_at=ctx.now,
            )
        session.transition(SessionStatus.COMPLETED, ctx.now)
        ctx.store.update_session(session)

        content = "Session completed"
        if session.type == SessionType.ASSESSMENT and params.passed:
            result = promote(
                ctx.skill,
                ctx.session_count,
                ctx.now,
                session_id=session.id,
                enforce_eligibility=False,
            )
            if result.promoted:
                ctx.store.update_skill(ctx.skill)
                ctx.store.append_belt_history(result.history_entry)
                content += (
                    f". Assessment passed: promoted from {result.from_belt.value} "
                    f"to {result.to_belt.value}"
                )
            else:
                content += f". Assessment passed but no promotion: {result.reason}"
        elif session.type == SessionType.ASSESSMENT:
            content += ". Assessment not passed"

        logger.info(f"Session {session.id} completed ({session.type.value})")
        return ToolResult(ok=True, content=content, session_completed=True)
