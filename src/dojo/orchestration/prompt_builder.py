"""System context assembly from templates.

The context is layered:
- Training protocol (static)
- Skill context: name, category and stored training context
- Session instructions for the session type
- Output format
- Current state: belt, concept mastery, reinforcement queue and focus list,
  recomputed on every round because tool calls change it
- Past problems, so the coach does not repeat itself
"""

from datetime import datetime
from pathlib import Path
from typing import Optional

from dojo.records.models import Session, SessionType, SkillProgress
from dojo.records.skills import is_music_category, is_tech_category
from dojo.scoring import compute_mastery, days_since, get_next_belt, mastery_band, prioritize


# Default prompt templates directory
DEFAULT_PROMPTS_DIR = Path(__file__).parent / "prompts"

FOCUS_LIMIT = 5
PROBLEM_HISTORY_LIMIT = 20
PROBLEM_PREVIEW_CHARS = 150


class PromptTemplates:
    """Loads and caches prompt templates."""

    def __init__(self, prompts_dir: Optional[Path] = None):
        """Initialize with optional custom prompts directory."""
        self.prompts_dir = prompts_dir or DEFAULT_PROMPTS_DIR
        self._cache: dict[str, str] = {}

    def _load(self, name: str) -> str:
        """Load a template file, caching the result.

        Args:
            name: Template name (without .md extension)

        Returns:
            Template content
        """
        if name not in self._cache:
            path = self.prompts_dir / f"{name}.md"
            if not path.exists():
                raise FileNotFoundError(f"Prompt template not found: {path}")
            self._cache[name] = path.read_text().strip()
        return self._cache[name]

    @property
    def protocol(self) -> str:
        return self._load("protocol")

    @property
    def output_format(self) -> str:
        return self._load("output_format")

    def get_session_prompt(self, session_type: SessionType) -> str:
        """Get the instructions template for a session type."""
        return self._load(session_type.value)


class PromptBuilder:
    """Builds the system context for one reasoning round."""

    def __init__(self, templates: Optional[PromptTemplates] = None):
        """Initialize with optional custom templates."""
        self.templates = templates or PromptTemplates()

    def build_system_context(
        self,
        skill: SkillProgress,
        session: Session,
        now: datetime,
        past_sessions: Optional[list[Session]] = None,
    ) -> str:
        """Build the full system context.

        Args:
            skill: Current skill progress (reflects tool effects so far)
            session: The session being coached
            now: Evaluation instant for mastery decay
            past_sessions: Other sessions on this skill, newest first

        Returns:
            Static layers followed by dynamic state
        """
        static_parts = [
            self.templates.protocol,
            self._build_skill_section(skill),
            self._build_session_section(skill, session.type),
            self.templates.output_format,
        ]
        dynamic_parts = [self._build_state_section(skill, now)]

        history = self._build_problem_history(session, past_sessions or [])
        if history:
            dynamic_parts.append(history)

        return "\n\n".join(part for part in static_parts + dynamic_parts if part)

    def _build_skill_section(self, skill: SkillProgress) -> str:
        """Build the skill context section."""
        lines = [f"## Skill: {skill.skill_name} (Category: {skill.category})"]

        if skill.training_context:
            lines.append(f"\n{skill.training_context}")
        else:
            lines.append(
                "\nThis skill is new to the dojo. No training context exists yet; "
                "write one during onboarding with `set_training_context`."
            )

        if is_music_category(skill.category):
            lines.append(
                "\n**This is a music skill.** When calling `present_problem`, set "
                '`language` to "music-notation" and `starter_code` to a JSON object '
                "with clef, timeSignature, keySignature and notes."
            )
        elif not is_tech_category(skill.category):
            lines.append(
                "\n**This is not a programming skill.** Present challenges as text "
                "and leave `starter_code` and `language` empty."
            )

        return "\n".join(lines)

    def _build_session_section(self, skill: SkillProgress, session_type: SessionType) -> str:
        """Build the session instructions section."""
        if is_music_category(skill.category):
            editor = "pre-fill the staff editor with a music-notation `starter_code`"
        elif is_tech_category(skill.category):
            editor = "always include `starter_code` and `language` for the code editor"
        else:
            editor = "leave `starter_code` and `language` empty"

        next_belt = get_next_belt(skill.current_belt)
        return self.templates.get_session_prompt(session_type).format(
            editor_instruction=editor,
            current_belt=skill.current_belt.value,
            next_belt=next_belt.value if next_belt else "none (highest belt)",
        )

    def _build_state_section(self, skill: SkillProgress, now: datetime) -> str:
        """Build the current learner state section."""
        lines = ["## Current Learner State"]
        lines.append(f"- Current Belt: **{skill.current_belt.value}**")
        lines.append(f"- Assessment Available: {'Yes' if skill.assessment_available else 'No'}")

        if skill.concepts:
            lines.append(f"- Tracked Concepts: {len(skill.concepts)}")
            bands: dict[str, list[str]] = {"strong": [], "developing": [], "weak": []}
            for name, record in skill.concepts.items():
                mastery = compute_mastery(record, now)
                days = days_since(record.last_seen, now)
                last = f"{days:.0f}d ago" if days is not None else "never"
                label = (
                    f"{name} ({mastery * 100:.0f}%, exp:{record.exposure_count}, "
                    f"streak:{record.streak}, last:{last}"
                )
                if record.observations:
                    label += f", obs:{len(record.observations)}"
                bands[mastery_band(mastery)].append(label + ")")

            for band, labels in bands.items():
                if labels:
                    lines.append(f"- {band.capitalize()}: {', '.join(labels)}")

        if skill.reinforcement_queue:
            queued = ", ".join(
                f"{item.concept} ({item.priority.value})" for item in skill.reinforcement_queue
            )
            lines.append(f"- Reinforcement Queue: {queued}")

        focus = prioritize(skill, now)[:FOCUS_LIMIT]
        if focus:
            lines.append("\n### Suggested Focus for This Session")
            for item in focus:
                lines.append(f"- **{item.concept}**: {item.reason}")

        return "\n".join(lines)

    def _build_problem_history(self, session: Session, past_sessions: list[Session]) -> str:
        """List problems already given so new ones stay fresh."""
        problems = [
            s for s in past_sessions
            if s.id != session.id and s.problem.prompt
        ][:PROBLEM_HISTORY_LIMIT]
        if not problems:
            return ""

        lines = [
            "## Past Problems (do not repeat)",
            "Write a new scenario every time unless the learner asks to retry one.",
            "",
        ]
        for past in problems:
            concepts = ", ".join(past.problem.concepts_targeted) or "unspecified"
            result = past.evaluation.correctness or "in-progress"
            prompt = past.problem.prompt
            if len(prompt) > PROBLEM_PREVIEW_CHARS:
                prompt = prompt[:PROBLEM_PREVIEW_CHARS] + "..."
            lines.append(f"- [{past.created_at.date().isoformat()}] ({result}) [{concepts}]: {prompt}")

        return "\n".join(lines)
