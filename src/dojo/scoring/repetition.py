"""Spaced repetition - prioritize concepts for the next session.

Sources, in strict precedence order:
1. Reinforcement queue (explicitly flagged by the coach)
2. Decayed concepts (not practiced recently and slipping)
3. Context gaps (solid, but only seen in a few situations)
4. Weak concepts at or below the current belt

A concept picked by an earlier source is never repeated by a later one.
"""

from dataclasses import dataclass
from datetime import datetime

from dojo.records.models import (
    BELT_ORDER,
    ReinforcementPriority,
    SessionType,
    SkillProgress,
    normalize_concept_name,
)

from .mastery import compute_mastery, days_since

DECAY_AFTER_DAYS = 14
DECAYED_MASTERY_CEILING = 0.6
DECAYED_HIGH_BELOW = 0.3
CONTEXT_GAP_MIN_MASTERY = 0.5
CONTEXT_GAP_MIN_CONTEXTS = 3
CONTEXT_GAP_MIN_EXPOSURES = 2
WEAK_MASTERY_CEILING = 0.7
WEAK_HIGH_BELOW = 0.4

PRIORITY_WEIGHT = {"critical": 0, "high": 1, "medium": 2, "low": 3}

# Queue priority as seen by the prioritizer: explicit "high" outranks everything
QUEUE_PRIORITY_MAP = {
    ReinforcementPriority.HIGH: "critical",
    ReinforcementPriority.MEDIUM: "medium",
    ReinforcementPriority.LOW: "low",
}


@dataclass
class FocusItem:
    """A concept recommended for the next session."""

    concept: str
    reason: str
    priority: str  # critical | high | medium | low
    mastery: float


def prioritize(progress: SkillProgress, now: datetime) -> list[FocusItem]:
    """Rank the concepts that need attention next.

    Args:
        progress: The learner's skill progress
        now: Evaluation instant

    Returns:
        Focus items ordered by priority weight, ties in source order
    """
    results: list[FocusItem] = []
    seen: set[str] = set()

    def add(concept: str, reason: str, priority: str, mastery: float) -> None:
        results.append(FocusItem(concept=concept, reason=reason, priority=priority, mastery=mastery))
        seen.add(normalize_concept_name(concept))

    # 1. Reinforcement queue items
    for item in progress.reinforcement_queue:
        key = normalize_concept_name(item.concept)
        if key in seen:
            continue
        mastery = compute_mastery(progress.concepts.get(key), now)
        add(key, f"reinforcement_queue ({item.priority.value})", QUEUE_PRIORITY_MAP[item.priority], mastery)

    # 2. Decayed concepts
    for name, record in progress.concepts.items():
        if name in seen or record.exposure_count < 1:
            continue
        mastery = compute_mastery(record, now)
        days = days_since(record.last_seen, now)
        stale = days is None or days > DECAY_AFTER_DAYS
        if stale and mastery < DECAYED_MASTERY_CEILING:
            age = "never seen" if days is None else f"{days:.0f} days"
            add(
                name,
                f"decayed ({age}, mastery {mastery * 100:.0f}%)",
                "high" if mastery < DECAYED_HIGH_BELOW else "medium",
                mastery,
            )

    # 3. Context gaps
    for name, record in progress.concepts.items():
        if name in seen:
            continue
        mastery = compute_mastery(record, now)
        context_count = len(record.contexts)
        if (
            mastery >= CONTEXT_GAP_MIN_MASTERY
            and context_count < CONTEXT_GAP_MIN_CONTEXTS
            and record.exposure_count >= CONTEXT_GAP_MIN_EXPOSURES
        ):
            add(name, f"context_gap ({context_count} contexts)", "low", mastery)

    # 4. Weak concepts at or below the current belt
    current_rank = BELT_ORDER.index(progress.current_belt)
    for name, record in progress.concepts.items():
        if name in seen or BELT_ORDER.index(record.belt_level) > current_rank:
            continue
        mastery = compute_mastery(record, now)
        if mastery < WEAK_MASTERY_CEILING and record.exposure_count >= 1:
            add(
                name,
                f"weak (mastery {mastery * 100:.0f}%)",
                "high" if mastery < WEAK_HIGH_BELOW else "medium",
                mastery,
            )

    # Stable sort keeps source order within a priority
    results.sort(key=lambda r: PRIORITY_WEIGHT.get(r.priority, 99))
    return results


def suggest_session_type(progress: SkillProgress) -> SessionType:
    """Pick the most useful session type for the learner's current state."""
    if not progress.concepts:
        return SessionType.ONBOARDING
    high_items = [
        item for item in progress.reinforcement_queue
        if item.priority == ReinforcementPriority.HIGH
    ]
    if len(high_items) >= 3:
        return SessionType.TRAINING
    if progress.assessment_available:
        return SessionType.ASSESSMENT
    return SessionType.TRAINING
