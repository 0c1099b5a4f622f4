"""Scoring - mastery, belt advancement, and spaced repetition."""

from .belts import (
    BELT_REQUIREMENTS,
    AdvancementResult,
    BeltRequirement,
    PromotionResult,
    check_advancement,
    get_next_belt,
    place,
    promote,
)
from .mastery import average_mastery, compute_mastery, days_since, mastery_band
from .repetition import FocusItem, prioritize, suggest_session_type

__all__ = [
    "BELT_REQUIREMENTS",
    "AdvancementResult",
    "BeltRequirement",
    "FocusItem",
    "PromotionResult",
    "average_mastery",
    "check_advancement",
    "compute_mastery",
    "days_since",
    "get_next_belt",
    "mastery_band",
    "place",
    "prioritize",
    "promote",
    "suggest_session_type",
]
