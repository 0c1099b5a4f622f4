"""API routes."""

from .belt_history import router as belt_history_router
from .progress import router as progress_router
from .sessions import router as sessions_router
from .skills import router as skills_router

__all__ = [
    "belt_history_router",
    "progress_router",
    "sessions_router",
    "skills_router",
]
