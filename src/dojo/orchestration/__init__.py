"""DOJO Orchestration Layer.

This module handles the coach's turn loop: session locking, system context
assembly, the reasoning service boundary, and tool execution.
"""

from dojo.orchestration.orchestrator import (
    Turn,
    TurnEvent,
    TurnOrchestrator,
    TurnResult,
    create_orchestrator,
)
from dojo.orchestration.prompt_builder import PromptBuilder, PromptTemplates
from dojo.orchestration.reasoning import (
    OpenAIReasoningService,
    ReasoningRequest,
    ReasoningService,
    RoundComplete,
    TextDelta,
    ToolCall,
)
from dojo.orchestration.session_lock import (
    InMemorySessionLock,
    SessionLock,
    get_session_lock,
    reset_session_lock,
)
from dojo.orchestration.tools import (
    TOOL_DEFINITIONS,
    ToolContext,
    ToolExecutor,
    ToolResult,
)

__all__ = [
    # Session lock
    "InMemorySessionLock",
    "SessionLock",
    "get_session_lock",
    "reset_session_lock",
    # Reasoning service
    "OpenAIReasoningService",
    "ReasoningRequest",
    "ReasoningService",
    "RoundComplete",
    "TextDelta",
    "ToolCall",
    # Prompts
    "PromptBuilder",
    "PromptTemplates",
    # Tools
    "TOOL_DEFINITIONS",
    "ToolContext",
    "ToolExecutor",
    "ToolResult",
    # Orchestrator
    "Turn",
    "TurnEvent",
    "TurnOrchestrator",
    "TurnResult",
    "create_orchestrator",
]
