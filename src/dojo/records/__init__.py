"""Training records - models, store, and skill normalization."""

from .models import (
    # Enums
    Belt,
    ReinforcementPriority,
    SessionStatus,
    SessionType,
    # Records
    BeltHistoryEntry,
    ConceptRecord,
    Evaluation,
    Message,
    Problem,
    ReinforcementItem,
    Session,
    SkillProgress,
    Solution,
    # Utilities
    BELT_ORDER,
    gen_id,
    normalize_concept_name,
    utcnow,
)
from .skills import normalize_skill
from .store import TrainingStore

__all__ = [
    "BELT_ORDER",
    "Belt",
    "BeltHistoryEntry",
    "ConceptRecord",
    "Evaluation",
    "Message",
    "Problem",
    "ReinforcementItem",
    "ReinforcementPriority",
    "Session",
    "SessionStatus",
    "SessionType",
    "SkillProgress",
    "Solution",
    "TrainingStore",
    "gen_id",
    "normalize_concept_name",
    "normalize_skill",
    "utcnow",
]
