"""Skill enrollment API routes."""

import logging
import sqlite3
from typing import Optional

from fastapi import APIRouter, HTTPException, Response, status

from dojo.records.models import Session, SkillProgress, utcnow
from dojo.records.skills import normalize_skill
from dojo.scoring import suggest_session_type

from ..deps import Store
from ..schemas import (
    SessionCreate,
    SessionSummary,
    SkillCreate,
    SkillResponse,
    session_to_summary,
    skill_to_response,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/skills", tags=["skills"])


def _get_skill_or_404(store: Store, skill_id: str) -> SkillProgress:
    skill = store.get_skill(skill_id)
    if not skill:
        raise HTTPException(status_code=404, detail="Skill not found")
    return skill


@router.post("", response_model=SkillResponse, status_code=status.HTTP_201_CREATED)
def enroll_skill(data: SkillCreate, store: Store) -> SkillResponse:
    """Enroll a learner in a skill. Names are normalized ("js" -> JavaScript)."""
    try:
        name, slug = normalize_skill(data.name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if store.get_skill_by_slug(data.learner_id, slug):
        raise HTTPException(status_code=409, detail=f"Already training {name}")

    skill = SkillProgress(
        learner_id=data.learner_id,
        skill_name=name,
        skill_slug=slug,
        category=data.category,
    )
    try:
        created = store.create_skill(skill)
    except sqlite3.IntegrityError:
        # Lost a race with a concurrent enrollment
        raise HTTPException(status_code=409, detail=f"Already training {name}")

    logger.info(f"Learner {data.learner_id} enrolled in {name}")
    return skill_to_response(created, utcnow())


@router.get("", response_model=list[SkillResponse])
def list_skills(store: Store, learner_id: Optional[str] = None) -> list[SkillResponse]:
    """List enrolled skills, optionally for one learner."""
    now = utcnow()
    return [skill_to_response(s, now) for s in store.list_skills(learner_id)]


@router.get("/{skill_id}", response_model=SkillResponse)
def get_skill(skill_id: str, store: Store) -> SkillResponse:
    """Get a skill by ID."""
    return skill_to_response(_get_skill_or_404(store, skill_id), utcnow())


@router.delete("/{skill_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_skill(skill_id: str, store: Store) -> Response:
    """Remove a skill with its sessions and belt history."""
    if not store.delete_skill(skill_id):
        raise HTTPException(status_code=404, detail="Skill not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{skill_id}/sessions", response_model=list[SessionSummary])
def list_skill_sessions(
    skill_id: str,
    store: Store,
    limit: Optional[int] = None,
) -> list[SessionSummary]:
    """List sessions for a skill, newest first."""
    _get_skill_or_404(store, skill_id)
    return [session_to_summary(s) for s in store.list_sessions(skill_id, limit=limit)]


@router.post(
    "/{skill_id}/sessions",
    response_model=Session,
    status_code=status.HTTP_201_CREATED,
)
def create_skill_session(
    skill_id: str,
    store: Store,
    data: Optional[SessionCreate] = None,
) -> Session:
    """Start a session. Without an explicit type the most useful one is picked."""
    skill = _get_skill_or_404(store, skill_id)
    session_type = (data.type if data else None) or suggest_session_type(skill)

    session = Session(skill_id=skill.id, learner_id=skill.learner_id, type=session_type)
    return store.create_session(session)
