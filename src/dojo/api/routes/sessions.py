"""Session API routes, including the streaming message endpoint."""

import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, HTTPException, Response, status
from fastapi.responses import StreamingResponse

from dojo.core.errors import (
    InvalidSessionStateError,
    SessionConflictError,
    SessionNotFoundError,
    SkillNotFoundError,
)
from dojo.orchestration.orchestrator import Turn
from dojo.records.models import Session, SessionStatus

from ..deps import Lock, Orchestrator, Store
from ..schemas import MessageCreate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def _get_session_or_404(store: Store, session_id: str) -> Session:
    session = store.get_session(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@router.get("/{session_id}", response_model=Session)
def get_session(session_id: str, store: Store) -> Session:
    """Get a session with its messages, problem and evaluation."""
    return _get_session_or_404(store, session_id)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def abandon_session(session_id: str, store: Store, lock: Lock) -> Response:
    """Abandon an active session."""
    _get_session_or_404(store, session_id)

    # A turn in flight would overwrite the status when it persists its reply
    if not lock.acquire(session_id):
        raise HTTPException(
            status_code=409,
            detail="A message is being processed for this session",
            headers={"Retry-After": "1"},
        )
    try:
        session = _get_session_or_404(store, session_id)
        if not session.can_transition(SessionStatus.ABANDONED):
            raise HTTPException(
                status_code=400,
                detail=f"Session is already {session.status.value}",
            )
        session.transition(SessionStatus.ABANDONED)
        store.update_session(session)
    finally:
        lock.release(session_id)

    logger.info(f"Session {session_id} abandoned")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{session_id}/reactivate", response_model=Session)
def reactivate_session(session_id: str, store: Store) -> Session:
    """Resume a session.

    Only active sessions can be resumed; completed and abandoned sessions are
    terminal.
    """
    session = _get_session_or_404(store, session_id)
    if not session.is_active:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot reactivate a {session.status.value} session",
        )
    return session


async def _event_generator(turn: Turn) -> AsyncGenerator[str, None]:
    """Format turn events as SSE."""
    async for event in turn.events():
        yield f"data: {json.dumps(event.to_payload())}\n\n"


@router.post("/{session_id}/messages")
async def send_message(
    session_id: str,
    data: MessageCreate,
    orchestrator: Orchestrator,
) -> StreamingResponse:
    """Send a learner message and stream the coach's reply.

    Events (JSON in each data: line):
    - text: a fragment of the reply
    - tool_use: a tool the coach called, with its input and result
    - done: the turn finished; carries usage and the session status
    - error: the turn failed; nothing from it was saved
    """
    try:
        turn = await orchestrator.begin_turn(session_id, data.content)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")
    except SkillNotFoundError:
        raise HTTPException(status_code=404, detail="Skill not found")
    except InvalidSessionStateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SessionConflictError as e:
        raise HTTPException(status_code=409, detail=str(e), headers={"Retry-After": "1"})

    return StreamingResponse(
        _event_generator(turn),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
