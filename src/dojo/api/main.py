"""FastAPI application for the DOJO backend."""

import contextlib

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dojo.core.config import get_settings
from dojo.core.logging import configure_logging

from .routes import (
    belt_history_router,
    progress_router,
    sessions_router,
    skills_router,
)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    configure_logging(get_settings().log_level_int)
    yield


app = FastAPI(
    title="DOJO API",
    description="Adaptive training sessions with a coaching sensei",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS for the frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(skills_router)
app.include_router(sessions_router)
app.include_router(progress_router)
app.include_router(belt_history_router)


@app.get("/")
def root() -> dict:
    """Root endpoint."""
    return {"message": "DOJO API", "version": "0.1.0"}


@app.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "healthy"}
