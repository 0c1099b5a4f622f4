"""SQLite store for DOJO training records.

Provides persistent storage for skill progress, sessions and belt history.
Nested structures (concepts, queues, messages) are stored as JSON columns.
Every write is a single-record upsert; there are no cross-record transactions
apart from the cascade in delete_skill.
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import TypeAdapter

from .models import (
    Belt,
    BeltHistoryEntry,
    ConceptRecord,
    Evaluation,
    Message,
    Problem,
    ReinforcementItem,
    Session,
    SessionStatus,
    SessionType,
    SkillProgress,
    Solution,
    utcnow,
)


# =============================================================================
# Schema Definition
# =============================================================================

SCHEMA = """
-- Skill progress (one per learner per skill)
CREATE TABLE IF NOT EXISTS skills (
    id TEXT PRIMARY KEY,
    learner_id TEXT NOT NULL,
    skill_name TEXT NOT NULL,
    skill_slug TEXT NOT NULL,
    category TEXT DEFAULT 'technology',
    training_context TEXT,
    current_belt TEXT DEFAULT 'white',
    assessment_available INTEGER DEFAULT 0,
    concepts JSON,
    reinforcement_queue JSON,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (learner_id, skill_slug)
);

-- Sessions table
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    skill_id TEXT NOT NULL,
    learner_id TEXT NOT NULL,
    status TEXT DEFAULT 'active',
    type TEXT DEFAULT 'training',
    messages JSON,
    problem JSON,
    solution JSON,
    evaluation JSON,
    observations JSON,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    completed_at DATETIME,
    FOREIGN KEY (skill_id) REFERENCES skills(id)
);

-- Belt history (append-only)
CREATE TABLE IF NOT EXISTS belt_history (
    id TEXT PRIMARY KEY,
    skill_id TEXT NOT NULL,
    learner_id TEXT NOT NULL,
    from_belt TEXT,
    to_belt TEXT NOT NULL,
    achieved_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    session_id TEXT,
    FOREIGN KEY (skill_id) REFERENCES skills(id)
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_skills_learner ON skills(learner_id);
CREATE INDEX IF NOT EXISTS idx_sessions_skill ON sessions(skill_id, status);
CREATE INDEX IF NOT EXISTS idx_belt_history_skill ON belt_history(skill_id, achieved_at);
"""

_concepts_adapter = TypeAdapter(dict[str, ConceptRecord])
_queue_adapter = TypeAdapter(list[ReinforcementItem])
_messages_adapter = TypeAdapter(list[Message])


# =============================================================================
# JSON Serialization Helpers
# =============================================================================


def _deserialize_json(value: Optional[str]) -> Optional[dict | list]:
    """Deserialize a JSON string from SQLite."""
    if value is None:
        return None
    return json.loads(value)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse a datetime string from SQLite."""
    if value is None:
        return None
    return datetime.fromisoformat(value)


# =============================================================================
# TrainingStore Class
# =============================================================================


class TrainingStore:
    """SQLite-based storage for DOJO training records."""

    def __init__(self, db_path: str | Path = ":memory:"):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory.
        """
        self.db_path = str(db_path)
        self._is_memory = self.db_path == ":memory:"
        self._persistent_conn: Optional[sqlite3.Connection] = None
        self._memory_lock = threading.RLock()

        # For in-memory DBs, create persistent connection immediately
        if self._is_memory:
            self._persistent_conn = sqlite3.connect(":memory:", check_same_thread=False)
            self._persistent_conn.row_factory = sqlite3.Row
        else:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._init_db()

    def _init_db(self) -> None:
        """Initialize database with schema."""
        with self.connection() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def connection(self):
        """Get a database connection with proper cleanup.

        For in-memory databases, returns the persistent connection.
        For file-based databases, creates a new connection each time.
        """
        if self._is_memory:
            # Shared connection: serialize access across threads
            with self._memory_lock:
                try:
                    yield self._persistent_conn
                    self._persistent_conn.commit()
                except Exception:
                    self._persistent_conn.rollback()
                    raise
        else:
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()

    # =========================================================================
    # Skill Progress Operations
    # =========================================================================

    def create_skill(self, skill: SkillProgress) -> SkillProgress:
        """Create a new skill progress record.

        Raises:
            sqlite3.IntegrityError: If the learner already trains this skill
        """
        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO skills (
                    id, learner_id, skill_name, skill_slug, category,
                    training_context, current_belt, assessment_available,
                    concepts, reinforcement_queue, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    skill.id,
                    skill.learner_id,
                    skill.skill_name,
                    skill.skill_slug,
                    skill.category,
                    skill.training_context,
                    skill.current_belt.value,
                    int(skill.assessment_available),
                    _concepts_adapter.dump_json(skill.concepts).decode(),
                    _queue_adapter.dump_json(skill.reinforcement_queue).decode(),
                    skill.created_at.isoformat(),
                    skill.updated_at.isoformat(),
                ),
            )
        return skill

    def get_skill(self, skill_id: str) -> Optional[SkillProgress]:
        """Get a skill progress record by ID."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM skills WHERE id = ?", (skill_id,)
            ).fetchone()
            if row is None:
                return None
            return self._row_to_skill(row)

    def get_skill_by_slug(self, learner_id: str, skill_slug: str) -> Optional[SkillProgress]:
        """Get a learner's progress in a skill by its slug."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM skills WHERE learner_id = ? AND skill_slug = ?",
                (learner_id, skill_slug),
            ).fetchone()
            if row is None:
                return None
            return self._row_to_skill(row)

    def list_skills(self, learner_id: Optional[str] = None) -> list[SkillProgress]:
        """List skill progress records, optionally for a single learner."""
        with self.connection() as conn:
            if learner_id:
                rows = conn.execute(
                    "SELECT * FROM skills WHERE learner_id = ? ORDER BY created_at",
                    (learner_id,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM skills ORDER BY created_at"
                ).fetchall()
            return [self._row_to_skill(row) for row in rows]

    def update_skill(self, skill: SkillProgress) -> None:
        """Update an existing skill progress record."""
        skill.updated_at = utcnow()
        with self.connection() as conn:
            conn.execute(
                """
                UPDATE skills SET
                    skill_name = ?,
                    category = ?,
                    training_context = ?,
                    current_belt = ?,
                    assessment_available = ?,
                    concepts = ?,
                    reinforcement_queue = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    skill.skill_name,
                    skill.category,
                    skill.training_context,
                    skill.current_belt.value,
                    int(skill.assessment_available),
                    _concepts_adapter.dump_json(skill.concepts).decode(),
                    _queue_adapter.dump_json(skill.reinforcement_queue).decode(),
                    skill.updated_at.isoformat(),
                    skill.id,
                ),
            )

    def delete_skill(self, skill_id: str) -> bool:
        """Delete a skill and everything that depends on it.

        Returns:
            True if the skill existed
        """
        with self.connection() as conn:
            conn.execute("DELETE FROM belt_history WHERE skill_id = ?", (skill_id,))
            conn.execute("DELETE FROM sessions WHERE skill_id = ?", (skill_id,))
            cursor = conn.execute("DELETE FROM skills WHERE id = ?", (skill_id,))
            return cursor.rowcount > 0

    def _row_to_skill(self, row: sqlite3.Row) -> SkillProgress:
        """Convert a database row to a SkillProgress model."""
        return SkillProgress(
            id=row["id"],
            learner_id=row["learner_id"],
            skill_name=row["skill_name"],
            skill_slug=row["skill_slug"],
            category=row["category"],
            training_context=row["training_context"],
            current_belt=Belt(row["current_belt"]),
            assessment_available=bool(row["assessment_available"]),
            concepts=_concepts_adapter.validate_json(row["concepts"] or "{}"),
            reinforcement_queue=_queue_adapter.validate_json(row["reinforcement_queue"] or "[]"),
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )

    # =========================================================================
    # Session Operations
    # =========================================================================

    def create_session(self, session: Session) -> Session:
        """Create a new session."""
        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO sessions (
                    id, skill_id, learner_id, status, type, messages,
                    problem, solution, evaluation, observations,
                    created_at, completed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session.id,
                    session.skill_id,
                    session.learner_id,
                    session.status.value,
                    session.type.value,
                    _messages_adapter.dump_json(session.messages).decode(),
                    session.problem.model_dump_json(),
                    session.solution.model_dump_json(),
                    session.evaluation.model_dump_json(),
                    json.dumps(session.observations),
                    session.created_at.isoformat(),
                    session.completed_at.isoformat() if session.completed_at else None,
                ),
            )
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        """Get a session by ID."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM sessions WHERE id = ?", (session_id,)
            ).fetchone()
            if row is None:
                return None
            return self._row_to_session(row)

    def list_sessions(self, skill_id: str, limit: Optional[int] = None) -> list[Session]:
        """Get sessions for a skill, newest first."""
        query = "SELECT * FROM sessions WHERE skill_id = ? ORDER BY created_at DESC"
        params: tuple = (skill_id,)
        if limit is not None:
            query += " LIMIT ?"
            params = (skill_id, limit)
        with self.connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_session(row) for row in rows]

    def count_sessions(self, skill_id: str, exclude_abandoned: bool = True) -> int:
        """Count sessions logged against a skill."""
        with self.connection() as conn:
            if exclude_abandoned:
                row = conn.execute(
                    "SELECT COUNT(*) FROM sessions WHERE skill_id = ? AND status != ?",
                    (skill_id, SessionStatus.ABANDONED.value),
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) FROM sessions WHERE skill_id = ?", (skill_id,)
                ).fetchone()
            return row[0]

    def update_session(self, session: Session) -> None:
        """Update an existing session."""
        with self.connection() as conn:
            conn.execute(
                """
                UPDATE sessions SET
                    status = ?,
                    type = ?,
                    messages = ?,
                    problem = ?,
                    solution = ?,
                    evaluation = ?,
                    observations = ?,
                    completed_at = ?
                WHERE id = ?
                """,
                (
                    session.status.value,
                    session.type.value,
                    _messages_adapter.dump_json(session.messages).decode(),
                    session.problem.model_dump_json(),
                    session.solution.model_dump_json(),
                    session.evaluation.model_dump_json(),
                    json.dumps(session.observations),
                    session.completed_at.isoformat() if session.completed_at else None,
                    session.id,
                ),
            )

    def _row_to_session(self, row: sqlite3.Row) -> Session:
        """Convert a database row to a Session model."""
        return Session(
            id=row["id"],
            skill_id=row["skill_id"],
            learner_id=row["learner_id"],
            status=SessionStatus(row["status"]),
            type=SessionType(row["type"]),
            messages=_messages_adapter.validate_json(row["messages"] or "[]"),
            problem=Problem.model_validate_json(row["problem"] or "{}"),
            solution=Solution.model_validate_json(row["solution"] or "{}"),
            evaluation=Evaluation.model_validate_json(row["evaluation"] or "{}"),
            observations=_deserialize_json(row["observations"]) or [],
            created_at=_parse_datetime(row["created_at"]),
            completed_at=_parse_datetime(row["completed_at"]),
        )

    # =========================================================================
    # Belt History Operations
    # =========================================================================

    def append_belt_history(self, entry: BeltHistoryEntry) -> BeltHistoryEntry:
        """Append a belt history entry."""
        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO belt_history (
                    id, skill_id, learner_id, from_belt, to_belt,
                    achieved_at, session_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    entry.skill_id,
                    entry.learner_id,
                    entry.from_belt.value if entry.from_belt else None,
                    entry.to_belt.value,
                    entry.achieved_at.isoformat(),
                    entry.session_id,
                ),
            )
        return entry

    def get_belt_history(self, skill_id: str) -> list[BeltHistoryEntry]:
        """Get the belt timeline for a skill, oldest first."""
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM belt_history WHERE skill_id = ? ORDER BY achieved_at",
                (skill_id,),
            ).fetchall()
            return [
                BeltHistoryEntry(
                    id=row["id"],
                    skill_id=row["skill_id"],
                    learner_id=row["learner_id"],
                    from_belt=Belt(row["from_belt"]) if row["from_belt"] else None,
                    to_belt=Belt(row["to_belt"]),
                    achieved_at=_parse_datetime(row["achieved_at"]),
                    session_id=row["session_id"],
                )
                for row in rows
            ]
