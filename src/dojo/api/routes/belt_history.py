"""Belt history API routes."""

from fastapi import APIRouter, HTTPException

from dojo.records.models import BeltHistoryEntry

from ..deps import Store

router = APIRouter(prefix="/api/belt-history", tags=["belt-history"])


@router.get("/{skill_id}", response_model=list[BeltHistoryEntry])
def get_belt_history(skill_id: str, store: Store) -> list[BeltHistoryEntry]:
    """Belt changes for a skill, oldest first."""
    if not store.get_skill(skill_id):
        raise HTTPException(status_code=404, detail="Skill not found")
    return store.get_belt_history(skill_id)
