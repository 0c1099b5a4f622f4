"""API dependencies for dependency injection."""

from functools import lru_cache
from typing import Annotated, Generator

from fastapi import Depends, HTTPException

from dojo.core.config import get_settings
from dojo.orchestration.orchestrator import TurnOrchestrator, create_orchestrator
from dojo.orchestration.session_lock import SessionLock, get_session_lock
from dojo.records.store import TrainingStore


@lru_cache
def get_settings_cached():
    """Get cached settings."""
    return get_settings()


def get_store() -> Generator[TrainingStore, None, None]:
    """Get TrainingStore instance for request."""
    settings = get_settings_cached()
    yield TrainingStore(settings.db_path)


def get_lock() -> SessionLock:
    """Get the process-wide session lock registry."""
    return get_session_lock()


def get_orchestrator(
    store: TrainingStore = Depends(get_store),
    lock: SessionLock = Depends(get_lock),
) -> TurnOrchestrator:
    """Get a turn orchestrator wired to the configured reasoning service."""
    try:
        return create_orchestrator(store, lock=lock)
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))


# Type aliases for cleaner route signatures
Store = Annotated[TrainingStore, Depends(get_store)]
Lock = Annotated[SessionLock, Depends(get_lock)]
Orchestrator = Annotated[TurnOrchestrator, Depends(get_orchestrator)]
