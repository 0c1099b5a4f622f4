"""Progress API routes - dashboard, mastery detail and belt advancement."""

import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import APIRouter, HTTPException, Response, status

from dojo.orchestration.session_lock import SessionLock, skill_lock_key
from dojo.records.models import SkillProgress, normalize_concept_name, utcnow
from dojo.scoring import (
    average_mastery,
    check_advancement,
    compute_mastery,
    mastery_band,
    prioritize,
    promote,
)
from dojo.scoring.belts import MASTERED_THRESHOLD

from ..deps import Lock, Store
from ..schemas import (
    BeltInfoResponse,
    ConceptMastery,
    DashboardResponse,
    FocusResponse,
    ProgressDetail,
    PromotionResponse,
    SkillOverview,
    session_to_summary,
    skill_to_response,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/progress", tags=["progress"])

RECENT_SESSIONS_LIMIT = 10


def _get_skill_or_404(store: Store, skill_id: str) -> SkillProgress:
    skill = store.get_skill(skill_id)
    if not skill:
        raise HTTPException(status_code=404, detail="Skill not found")
    return skill


@contextmanager
def _skill_write(lock: SessionLock, skill_id: str) -> Iterator[None]:
    """Hold the skill's lock for a load-change-save, or answer 409."""
    key = skill_lock_key(skill_id)
    if not lock.acquire(key):
        raise HTTPException(
            status_code=409,
            detail="The skill is being updated; try again",
            headers={"Retry-After": "1"},
        )
    try:
        yield
    finally:
        lock.release(key)


@router.get("", response_model=DashboardResponse)
def get_dashboard(learner_id: str, store: Store) -> DashboardResponse:
    """Summarize every skill a learner trains."""
    now = utcnow()
    overviews = []
    for skill in store.list_skills(learner_id):
        masteries = [compute_mastery(r, now) for r in skill.concepts.values()]
        overviews.append(
            SkillOverview(
                skill_id=skill.id,
                skill_name=skill.skill_name,
                category=skill.category,
                current_belt=skill.current_belt,
                assessment_available=skill.assessment_available,
                average_mastery=round(average_mastery(skill.concepts, now) * 100, 1),
                concept_count=len(masteries),
                mastered_count=sum(1 for m in masteries if m >= MASTERED_THRESHOLD),
                session_count=store.count_sessions(skill.id),
            )
        )

    return DashboardResponse(
        learner_id=learner_id,
        skills=overviews,
        total_sessions=sum(o.session_count for o in overviews),
    )


@router.get("/{skill_id}", response_model=ProgressDetail)
def get_progress(skill_id: str, store: Store) -> ProgressDetail:
    """Full progress for one skill."""
    skill = _get_skill_or_404(store, skill_id)
    now = utcnow()

    concepts = []
    for name, record in skill.concepts.items():
        mastery = compute_mastery(record, now)
        concepts.append(
            ConceptMastery(
                name=name,
                mastery=round(mastery * 100, 1),
                band=mastery_band(mastery),
                exposure_count=record.exposure_count,
                success_count=record.success_count,
                streak=record.streak,
                contexts=record.contexts,
                belt_level=record.belt_level,
                last_seen=record.last_seen,
            )
        )
    concepts.sort(key=lambda c: c.mastery, reverse=True)

    focus = [
        FocusResponse(
            concept=item.concept,
            reason=item.reason,
            priority=item.priority,
            mastery=round(item.mastery * 100, 1),
        )
        for item in prioritize(skill, now)
    ]

    return ProgressDetail(
        skill=skill_to_response(skill, now),
        concepts=concepts,
        reinforcement_queue=skill.reinforcement_queue,
        recent_sessions=[
            session_to_summary(s)
            for s in store.list_sessions(skill.id, limit=RECENT_SESSIONS_LIMIT)
        ],
        belt_history=store.get_belt_history(skill.id),
        focus=focus,
    )


@router.get("/{skill_id}/belt-info", response_model=BeltInfoResponse)
def get_belt_info(skill_id: str, store: Store) -> BeltInfoResponse:
    """Where the learner stands against the next belt's requirements."""
    skill = _get_skill_or_404(store, skill_id)
    result = check_advancement(skill, store.count_sessions(skill.id), utcnow())
    return BeltInfoResponse(
        current_belt=skill.current_belt,
        next_belt=result.next_belt,
        eligible=result.eligible,
        assessment_available=skill.assessment_available,
        details=result.details,
    )


@router.post("/{skill_id}/promote", response_model=PromotionResponse)
def promote_skill(skill_id: str, store: Store, lock: Lock) -> PromotionResponse:
    """Promote to the next belt if the requirements are met."""
    _get_skill_or_404(store, skill_id)
    with _skill_write(lock, skill_id):
        skill = _get_skill_or_404(store, skill_id)
        result = promote(skill, store.count_sessions(skill.id), utcnow())
        if not result.promoted:
            raise HTTPException(status_code=400, detail=result.reason)

        store.update_skill(skill)
        store.append_belt_history(result.history_entry)
    return PromotionResponse(
        promoted=True,
        from_belt=result.from_belt,
        to_belt=result.to_belt,
        history_entry=result.history_entry,
    )


@router.delete(
    "/{skill_id}/reinforcement/{concept}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def remove_reinforcement(skill_id: str, concept: str, store: Store, lock: Lock) -> Response:
    """Drop a concept from the reinforcement queue."""
    _get_skill_or_404(store, skill_id)
    key = normalize_concept_name(concept)

    with _skill_write(lock, skill_id):
        skill = _get_skill_or_404(store, skill_id)
        remaining = [
            item for item in skill.reinforcement_queue
            if normalize_concept_name(item.concept) != key
        ]
        if len(remaining) == len(skill.reinforcement_queue):
            raise HTTPException(status_code=404, detail=f"'{concept}' is not queued")

        skill.reinforcement_queue = remaining
        store.update_skill(skill)
    logger.info(f"Removed {key} from reinforcement queue of skill {skill_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
