"""Turn orchestrator - the coach's tool-invocation loop.

One turn is one learner message. The orchestrator:
1. Checks the session is active and takes its lock
2. Persists the learner's message
3. Runs reasoning rounds, executing tool calls as they arrive and feeding
   their results back until a round ends without tool calls
4. Persists the accumulated reply as a single assistant message
5. Releases the lock

The rounds run in a background asyncio task that pushes TurnEvents onto a
queue. A consumer that stops reading does not stop the turn.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Coroutine, Optional

from pydantic import BaseModel

from dojo.core.errors import (
    InvalidSessionStateError,
    ReasoningServiceError,
    SessionConflictError,
    SessionNotFoundError,
    SkillNotFoundError,
    ToolError,
)
from dojo.records.models import Session, SkillProgress, utcnow
from dojo.records.store import TrainingStore

from .prompt_builder import PROBLEM_HISTORY_LIMIT, PromptBuilder
from .reasoning import (
    ReasoningEvent,
    ReasoningRequest,
    ReasoningService,
    RoundComplete,
    TextDelta,
    ToolCall,
    assistant_tool_message,
    tool_result_message,
)
from .session_lock import SessionLock, skill_lock_key
from .tools import TOOL_DEFINITIONS, ToolContext, ToolExecutor, ToolResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 5


class TurnEvent(BaseModel):
    """One event on a turn's stream.

    type is one of: text, tool_use, done, error.
    """

    type: str
    content: Optional[str] = None
    tool: Optional[str] = None
    input: Optional[dict[str, Any]] = None
    ok: Optional[bool] = None
    result: Optional[str] = None
    error: Optional[str] = None
    warning: Optional[str] = None
    session_status: Optional[str] = None
    usage: Optional[dict[str, int]] = None

    def to_payload(self) -> dict[str, Any]:
        """Wire form with unset fields dropped."""
        return self.model_dump(exclude_none=True)


@dataclass
class TurnResult:
    """Summary of a finished turn."""

    text: str = ""
    """Everything the coach said, across all rounds."""

    rounds: int = 0
    tool_calls: int = 0

    completed: bool = False
    """True when complete_session ended the session during this turn."""

    warning: Optional[str] = None
    """Set when the round cap cut the turn short."""

    error: Optional[str] = None
    """Set when the reasoning service failed; nothing was persisted."""

    usage: dict[str, int] = field(default_factory=dict)


class Turn:
    """Handle on a running turn.

    The orchestrator drives the turn through start, emit, fail and finish;
    consumers read events() and wait().
    """

    def __init__(self, session_id: str, release: Callable[[], None]):
        self.session_id = session_id
        self.result = TurnResult()
        self._release = release
        self._queue: asyncio.Queue[Optional[TurnEvent]] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._exception: Optional[BaseException] = None
        self._closed = False

    def start(self, loop: Coroutine[Any, Any, None]) -> None:
        """Run the turn's loop in a background task."""
        self._task = asyncio.create_task(loop)
        # Covers a task cancelled before it ever started running
        self._task.add_done_callback(lambda _: self.finish())

    def emit(self, event: TurnEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def fail(self, exc: BaseException) -> None:
        """Report an unexpected error; wait() re-raises it."""
        self._exception = exc
        self.emit(TurnEvent(type="error", error=f"Internal error: {exc}"))

    def finish(self) -> None:
        """Release the session lock and end the event stream."""
        # Once only: a later turn may already hold the lock again
        if self._closed:
            return
        self._closed = True
        self._release()
        self._queue.put_nowait(None)

    async def events(self) -> AsyncIterator[TurnEvent]:
        """Yield events until the turn finishes."""
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def wait(self) -> TurnResult:
        """Wait for the turn to finish.

        Raises:
            Whatever unexpected error (e.g. sqlite3.Error) ended the turn
        """
        if self._task is not None:
            await self._task
        if self._exception is not None:
            raise self._exception
        return self.result

    def cancel(self) -> None:
        """Cancel the turn. The lock is released and nothing more is persisted."""
        if self._task is not None and not self._task.done():
            self._task.cancel()

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()


class TurnOrchestrator:
    """Runs coach turns against the store, the reasoning service and the lock."""

    def __init__(
        self,
        store: TrainingStore,
        reasoning: ReasoningService,
        lock: SessionLock,
        *,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        max_output_tokens: int = 4096,
        clock: Callable[[], datetime] = utcnow,
        prompt_builder: Optional[PromptBuilder] = None,
        executor: Optional[ToolExecutor] = None,
    ):
        """Initialize the orchestrator.

        Args:
            store: Training record store
            reasoning: Streaming reasoning service
            lock: Per-session lock registry
            max_rounds: Reasoning rounds allowed per turn
            max_output_tokens: Output budget per round
            clock: Source of "now" for mastery and timestamps
            prompt_builder: System context builder (defaults to packaged templates)
            executor: Tool executor
        """
        self.store = store
        self.reasoning = reasoning
        self.lock = lock
        self.max_rounds = max_rounds
        self.max_output_tokens = max_output_tokens
        self.clock = clock
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.executor = executor or ToolExecutor()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def begin_turn(self, session_id: str, content: str) -> Turn:
        """Start processing a learner message.

        Everything that can be rejected is rejected here, before any event is
        produced, so the HTTP layer can still answer with a status code.

        Raises:
            SessionNotFoundError: Unknown session
            InvalidSessionStateError: Session is completed or abandoned
            SessionConflictError: Another turn holds the session lock
        """
        self._load_active_session(session_id)

        if not self.lock.acquire(session_id):
            raise SessionConflictError(
                f"A message is already being processed for session {session_id}"
            )

        try:
            # Re-read under the lock: the previous turn may have completed it
            session = self._load_active_session(session_id)
            self._load_skill(session.skill_id)
            session.add_message("user", content)
            self.store.update_session(session)
        except BaseException:
            self.lock.release(session_id)
            raise

        turn = Turn(session_id, release=lambda: self.lock.release(session_id))
        turn.start(self._run(turn, session))
        return turn

    async def run_turn(self, session_id: str, content: str) -> TurnResult:
        """Process a message to completion and return the summary."""
        turn = await self.begin_turn(session_id, content)
        async for _ in turn.events():
            pass
        return await turn.wait()

    # -------------------------------------------------------------------------
    # Loop
    # -------------------------------------------------------------------------

    def _load_active_session(self, session_id: str) -> Session:
        session = self.store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        if not session.is_active:
            raise InvalidSessionStateError(
                f"Session {session_id} is {session.status.value}"
            )
        return session

    async def _run(self, turn: Turn, session: Session) -> None:
        result = turn.result
        buffer: list[str] = []
        scratch: list[dict[str, Any]] = []

        try:
            while True:
                if result.rounds >= self.max_rounds:
                    result.warning = (
                        f"Stopped after {self.max_rounds} reasoning rounds; "
                        "the reply may be incomplete"
                    )
                    logger.warning(
                        f"Session {session.id} hit the round cap ({self.max_rounds})"
                    )
                    break

                result.rounds += 1
                request = ReasoningRequest(
                    system_context=self._build_context(session),
                    conversation=self._conversation(session) + scratch,
                    tools=TOOL_DEFINITIONS,
                    max_output_tokens=self.max_output_tokens,
                )

                round_text: list[str] = []
                round_calls: list[tuple[ToolCall, ToolResult]] = []

                async for event in self._stream(request):
                    if isinstance(event, TextDelta):
                        round_text.append(event.text)
                        buffer.append(event.text)
                        turn.emit(TurnEvent(type="text", content=event.text))
                    elif isinstance(event, ToolCall):
                        outcome = self._apply_tool(event, session)
                        round_calls.append((event, outcome))
                        result.tool_calls += 1
                        turn.emit(
                            TurnEvent(
                                type="tool_use",
                                tool=event.name,
                                input=event.arguments,
                                ok=outcome.ok,
                                result=outcome.content,
                            )
                        )
                    elif isinstance(event, RoundComplete):
                        for key, value in event.usage.items():
                            result.usage[key] = result.usage.get(key, 0) + value

                if not round_calls:
                    break

                scratch.append(assistant_tool_message("".join(round_text), [c for c, _ in round_calls]))
                scratch.extend(tool_result_message(c, r.content) for c, r in round_calls)

                if not session.is_active:
                    result.completed = True
                    break

        except ReasoningServiceError as e:
            # Partial text was already streamed but is not persisted
            result.error = str(e)
            logger.error(f"Reasoning failed for session {session.id}: {e}")
            turn.emit(TurnEvent(type="error", error=str(e)))
            turn.finish()
            return
        except asyncio.CancelledError:
            logger.warning(f"Turn cancelled for session {session.id}")
            turn.finish()
            raise
        except Exception as e:
            logger.exception(f"Turn failed for session {session.id}")
            turn.fail(e)
            turn.finish()
            return

        try:
            result.text = "".join(buffer)
            if result.text:
                session.add_message("assistant", result.text)
            self.store.update_session(session)
            turn.emit(
                TurnEvent(
                    type="done",
                    session_status=session.status.value,
                    usage=result.usage,
                    warning=result.warning,
                )
            )
        except Exception as e:
            logger.exception(f"Could not persist reply for session {session.id}")
            turn.fail(e)
        finally:
            turn.finish()

    async def _stream(self, request: ReasoningRequest) -> AsyncIterator[ReasoningEvent]:
        """Stream a round, reporting any backend failure as ReasoningServiceError."""
        try:
            async for event in self.reasoning.stream(request):
                yield event
        except ReasoningServiceError:
            raise
        except Exception as e:
            raise ReasoningServiceError(str(e)) from e

    def _apply_tool(self, call: ToolCall, session: Session) -> ToolResult:
        """Execute a tool call, turning ToolError into an error result.

        The skill is re-read under its lock so the change lands on the latest
        stored record, not on a copy from earlier in the turn.
        """
        if call.error:
            logger.warning(f"Tool {call.name} skipped: {call.error}")
            return ToolResult(ok=False, content=f"Error: {call.error}")

        key = skill_lock_key(session.skill_id)
        if not self.lock.acquire(key):
            logger.warning(f"Tool {call.name} skipped: skill {session.skill_id} is being updated")
            return ToolResult(
                ok=False,
                content="Error: the skill record is being updated elsewhere; try again",
            )
        try:
            skill = self._load_skill(session.skill_id)
            ctx = ToolContext(
                store=self.store,
                skill=skill,
                session=session,
                now=self.clock(),
                session_count=self.store.count_sessions(skill.id),
            )
            return self.executor.execute(call.name, call.arguments, ctx)
        except ToolError as e:
            logger.warning(f"Tool {call.name} failed for session {session.id}: {e}")
            return ToolResult(ok=False, content=f"Error: {e}")
        finally:
            self.lock.release(key)

    def _load_skill(self, skill_id: str) -> SkillProgress:
        skill = self.store.get_skill(skill_id)
        if skill is None:
            raise SkillNotFoundError(f"Skill not found: {skill_id}")
        return skill

    def _build_context(self, session: Session) -> str:
        # Fresh each round: other sessions and endpoints may have moved the skill on
        skill = self._load_skill(session.skill_id)
        past = self.store.list_sessions(skill.id, limit=PROBLEM_HISTORY_LIMIT + 1)
        return self.prompt_builder.build_system_context(skill, session, self.clock(), past)

    @staticmethod
    def _conversation(session: Session) -> list[dict[str, Any]]:
        return [{"role": m.role, "content": m.content} for m in session.messages]


def create_orchestrator(
    store: TrainingStore,
    reasoning: Optional[ReasoningService] = None,
    lock: Optional[SessionLock] = None,
) -> TurnOrchestrator:
    """Build an orchestrator from settings.

    Args:
        store: Training record store
        reasoning: Reasoning service (defaults to the configured OpenAI client)
        lock: Lock registry (defaults to the process-wide one)
    """
    from dojo.core.config import get_llm_client, get_settings

    from .reasoning import OpenAIReasoningService
    from .session_lock import get_session_lock

    settings = get_settings()
    if reasoning is None:
        reasoning = OpenAIReasoningService(get_llm_client(), model=settings.llm_model)

    return TurnOrchestrator(
        store,
        reasoning,
        lock or get_session_lock(),
        max_rounds=settings.max_tool_rounds,
        max_output_tokens=settings.max_output_tokens,
    )
