"""Belt advancement state machine.

Belts only move upward, one rank at a time. Eligibility for the next belt
depends on how many concepts are tracked, how many are mastered, the average
mastery across them, and how many non-abandoned sessions were logged.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from dojo.records.models import BELT_ORDER, Belt, BeltHistoryEntry, SkillProgress

from .mastery import compute_mastery

logger = logging.getLogger(__name__)

MASTERED_THRESHOLD = 0.8


@dataclass(frozen=True)
class BeltRequirement:
    """Thresholds for leaving a belt."""

    concepts: int  # Tracked concepts
    mastered: int  # Concepts with mastery >= MASTERED_THRESHOLD
    percentage: float  # Average mastery across tracked concepts, 0-100
    sessions: int  # Non-abandoned sessions logged against the skill


# Keyed by the belt being left. Black has no entry: nothing above it.
BELT_REQUIREMENTS: dict[Belt, BeltRequirement] = {
    Belt.WHITE: BeltRequirement(concepts=2, mastered=2, percentage=70, sessions=3),
    Belt.YELLOW: BeltRequirement(concepts=4, mastered=3, percentage=70, sessions=5),
    Belt.ORANGE: BeltRequirement(concepts=6, mastered=5, percentage=72, sessions=8),
    Belt.GREEN: BeltRequirement(concepts=8, mastered=6, percentage=75, sessions=12),
    Belt.BLUE: BeltRequirement(concepts=10, mastered=8, percentage=78, sessions=16),
    Belt.PURPLE: BeltRequirement(concepts=12, mastered=10, percentage=80, sessions=20),
    Belt.BROWN: BeltRequirement(concepts=15, mastered=12, percentage=85, sessions=25),
}


@dataclass
class AdvancementResult:
    """Outcome of an eligibility check."""

    eligible: bool
    next_belt: Optional[Belt]
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class PromotionResult:
    """Outcome of a promotion or placement attempt."""

    promoted: bool
    from_belt: Belt
    to_belt: Optional[Belt] = None
    reason: str = ""
    history_entry: Optional[BeltHistoryEntry] = None


def get_next_belt(belt: Belt | str) -> Optional[Belt]:
    """Get the belt above the given one, or None at black / for unknown values."""
    try:
        current = Belt(belt)
    except ValueError:
        return None
    idx = BELT_ORDER.index(current)
    if idx + 1 >= len(BELT_ORDER):
        return None
    return BELT_ORDER[idx + 1]


def check_advancement(
    progress: SkillProgress,
    session_count: int,
    now: datetime,
) -> AdvancementResult:
    """Decide whether the learner may move to the next belt.

    Never raises for valid input; a negative result carries the raw numbers
    in details so callers can render progress without recomputing.
    """
    next_belt = get_next_belt(progress.current_belt)
    if next_belt is None:
        return AdvancementResult(eligible=False, next_belt=None, details={})

    req = BELT_REQUIREMENTS[progress.current_belt]
    masteries = [compute_mastery(record, now) for record in progress.concepts.values()]
    total = len(masteries)
    mastered = sum(1 for m in masteries if m >= MASTERED_THRESHOLD)
    percentage = round(sum(masteries) / total * 100, 1) if total else 0.0

    details = {
        "total_concepts": total,
        "required_concepts": req.concepts,
        "mastered_concepts": mastered,
        "required_mastered": req.mastered,
        "mastery_percentage": percentage,
        "required_percentage": req.percentage,
        "session_count": session_count,
        "required_sessions": req.sessions,
    }

    eligible = (
        total >= req.concepts
        and mastered >= req.mastered
        and percentage >= req.percentage
        and session_count >= req.sessions
    )
    return AdvancementResult(eligible=eligible, next_belt=next_belt, details=details)


def _ineligibility_reason(details: dict[str, Any]) -> str:
    """Describe the first unmet requirement."""
    if details["total_concepts"] < details["required_concepts"]:
        return (
            f"Needs {details['required_concepts']} tracked concepts "
            f"(has {details['total_concepts']})"
        )
    if details["mastered_concepts"] < details["required_mastered"]:
        return (
            f"Needs {details['required_mastered']} mastered concepts "
            f"(has {details['mastered_concepts']})"
        )
    if details["mastery_percentage"] < details["required_percentage"]:
        return (
            f"Needs {details['required_percentage']}% average mastery "
            f"(has {details['mastery_percentage']}%)"
        )
    return (
        f"Needs {details['required_sessions']} sessions "
        f"(has {details['session_count']})"
    )


def promote(
    progress: SkillProgress,
    session_count: int,
    now: datetime,
    *,
    session_id: Optional[str] = None,
    enforce_eligibility: bool = True,
) -> PromotionResult:
    """Advance the learner exactly one belt.

    Mutates progress in place on success; the caller persists it and the
    returned history entry.

    Args:
        progress: The skill to promote
        session_count: Non-abandoned sessions logged against the skill
        now: Evaluation instant
        session_id: Session that triggered the promotion, if any
        enforce_eligibility: When False, skip the threshold check (coach or
            assessment driven promotions)
    """
    from_belt = progress.current_belt
    next_belt = get_next_belt(from_belt)
    if next_belt is None:
        return PromotionResult(
            promoted=False, from_belt=from_belt, reason="Already at the highest belt"
        )

    if enforce_eligibility:
        result = check_advancement(progress, session_count, now)
        if not result.eligible:
            return PromotionResult(
                promoted=False,
                from_belt=from_belt,
                reason=_ineligibility_reason(result.details),
            )

    progress.current_belt = next_belt
    progress.assessment_available = False
    entry = BeltHistoryEntry(
        skill_id=progress.id,
        learner_id=progress.learner_id,
        from_belt=from_belt,
        to_belt=next_belt,
        achieved_at=now,
        session_id=session_id,
    )
    logger.info(
        f"Promoted skill {progress.id} from {from_belt.value} to {next_belt.value}"
    )
    return PromotionResult(
        promoted=True, from_belt=from_belt, to_belt=next_belt, history_entry=entry
    )


def place(
    progress: SkillProgress,
    belt: Belt,
    now: datetime,
    *,
    session_id: Optional[str] = None,
    previously_placed: bool = False,
) -> PromotionResult:
    """Assign an initial belt after onboarding.

    Placement may land on any rank. from_belt is recorded only when the
    skill already had a belt on record.
    """
    from_belt = progress.current_belt
    progress.current_belt = belt
    progress.assessment_available = False
    entry = BeltHistoryEntry(
        skill_id=progress.id,
        learner_id=progress.learner_id,
        from_belt=from_belt if previously_placed else None,
        to_belt=belt,
        achieved_at=now,
        session_id=session_id,
    )
    logger.info(f"Placed skill {progress.id} at {belt.value}")
    return PromotionResult(promoted=True, from_belt=from_belt, to_belt=belt, history_entry=entry)
