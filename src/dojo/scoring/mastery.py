"""Mastery estimation for tracked concepts.

Mastery is a 0.0-1.0 projection of a ConceptRecord at a point in time:

    ratio      = successes / exposures
    streak     = min(streak * 0.02, 0.10)
    variety    = min(distinct contexts * 0.02, 0.10)
    pre_decay  = clamp(ratio + streak + variety)
    decay      = clamp(1 - days_since_last_seen / 90)
    mastery    = clamp(pre_decay * decay)

It is never stored as ground truth; ConceptRecord.mastery only caches the
last computed value for display.
"""

from datetime import datetime
from typing import Optional

from dojo.records.models import ConceptRecord

STREAK_BONUS_STEP = 0.02
STREAK_BONUS_CAP = 0.10
CONTEXT_BONUS_STEP = 0.02
CONTEXT_BONUS_CAP = 0.10
DECAY_WINDOW_DAYS = 90.0

# Display bands
STRONG_THRESHOLD = 0.8
DEVELOPING_THRESHOLD = 0.5

SECONDS_PER_DAY = 86400.0


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def days_since(last_seen: Optional[datetime], now: datetime) -> Optional[float]:
    """Fractional days between last_seen and now, or None if never seen."""
    if last_seen is None:
        return None
    return (now - last_seen).total_seconds() / SECONDS_PER_DAY


def decay_factor(last_seen: Optional[datetime], now: datetime) -> float:
    """Linear forgetting factor over DECAY_WINDOW_DAYS.

    A record without last_seen carries no timing information and is not
    decayed.
    """
    days = days_since(last_seen, now)
    if days is None:
        return 1.0
    return _clamp(1.0 - days / DECAY_WINDOW_DAYS)


def compute_mastery(record: Optional[ConceptRecord], now: datetime) -> float:
    """Compute current mastery for a concept record.

    Args:
        record: The concept's exposure statistics (None if untracked)
        now: The instant to evaluate at

    Returns:
        Mastery in [0.0, 1.0]
    """
    if record is None or record.exposure_count <= 0:
        return 0.0

    ratio = record.success_count / record.exposure_count
    streak_bonus = min(record.streak * STREAK_BONUS_STEP, STREAK_BONUS_CAP)
    context_bonus = min(len(set(record.contexts)) * CONTEXT_BONUS_STEP, CONTEXT_BONUS_CAP)

    pre_decay = _clamp(ratio + streak_bonus + context_bonus)
    return _clamp(pre_decay * decay_factor(record.last_seen, now))


def mastery_band(mastery: float) -> str:
    """Bucket a mastery score into strong / developing / weak."""
    if mastery >= STRONG_THRESHOLD:
        return "strong"
    if mastery >= DEVELOPING_THRESHOLD:
        return "developing"
    return "weak"


def average_mastery(records: dict[str, ConceptRecord], now: datetime) -> float:
    """Mean mastery across records (0.0 when there are none)."""
    if not records:
        return 0.0
    return sum(compute_mastery(r, now) for r in records.values()) / len(records)
