"""DOJO Command Line Interface.

Provides server startup and read-only progress views for the DOJO training
system.
"""

import logging
from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from dojo.core.config import get_settings
from dojo.core.logging import configure_logging
from dojo.records.models import SkillProgress, utcnow
from dojo.records.store import TrainingStore
from dojo.scoring import (
    BELT_REQUIREMENTS,
    average_mastery,
    check_advancement,
    prioritize,
    suggest_session_type,
)

app = typer.Typer(
    name="dojo",
    help="DOJO - adaptive training sessions with a coaching sensei",
    add_completion=False,
)
console = Console()
logger = logging.getLogger(__name__)

PRIORITY_STYLES = {"critical": "bold red", "high": "red", "medium": "yellow", "low": "dim"}


def _get_store() -> TrainingStore:
    """Get configured training store instance."""
    return TrainingStore(get_settings().db_path)


def _get_skill(store: TrainingStore, skill_id: str) -> SkillProgress:
    skill = store.get_skill(skill_id)
    if not skill:
        console.print(f"[yellow]Skill '{skill_id}' not found.[/yellow]")
        raise typer.Exit(1)
    return skill


def _format_timestamp(ts: Optional[datetime]) -> str:
    """Format timestamp for display."""
    if not ts:
        return "Never"
    return ts.strftime("%Y-%m-%d %H:%M")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to listen on"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log warnings and errors"),
):
    """Run the DOJO API server."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level_int, quiet=quiet)
    if not settings.llm_api_key:
        console.print(
            "[yellow]LLM_API_KEY is not set; message endpoints will return 503.[/yellow]"
        )

    logger.info(f"Starting DOJO API on {host}:{port}")
    uvicorn.run("dojo.api.main:app", host=host, port=port, reload=reload)


@app.command()
def status(
    learner: str = typer.Option(..., "--learner", "-l", help="Learner ID to show status for"),
):
    """Show every skill a learner trains.

    Examples:
        dojo status -l alice
    """
    store = _get_store()
    skills = store.list_skills(learner)
    if not skills:
        console.print(f"[yellow]Learner '{learner}' is not training any skills.[/yellow]")
        raise typer.Exit(1)

    now = utcnow()
    table = Table(title=f"Skills for {learner}", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Skill")
    table.add_column("Belt")
    table.add_column("Concepts", justify="right")
    table.add_column("Mastery", justify="right")
    table.add_column("Sessions", justify="right")
    table.add_column("Next Session")
    table.add_column("Updated", style="dim")

    for skill in skills:
        table.add_row(
            skill.id[:8],
            skill.skill_name,
            skill.current_belt.value,
            str(len(skill.concepts)),
            f"{average_mastery(skill.concepts, now) * 100:.0f}%",
            str(store.count_sessions(skill.id)),
            suggest_session_type(skill).value,
            _format_timestamp(skill.updated_at),
        )

    console.print(table)


@app.command()
def focus(
    skill_id: str = typer.Argument(..., help="Skill ID"),
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum concepts to show"),
):
    """Show the concepts to practice next, most urgent first."""
    store = _get_store()
    skill = _get_skill(store, skill_id)
    items = prioritize(skill, utcnow())

    if not items:
        console.print("[dim]Nothing needs attention right now.[/dim]")
        return

    table = Table(title=f"Focus for {skill.skill_name}", show_header=True)
    table.add_column("Priority")
    table.add_column("Concept")
    table.add_column("Mastery", justify="right")
    table.add_column("Reason", style="dim")

    for item in items[:limit]:
        style = PRIORITY_STYLES.get(item.priority, "")
        table.add_row(
            f"[{style}]{item.priority}[/{style}]",
            item.concept,
            f"{item.mastery * 100:.0f}%",
            item.reason,
        )

    console.print(table)
    if len(items) > limit:
        console.print(f"[dim]... and {len(items) - limit} more[/dim]")


@app.command()
def belt(
    skill_id: str = typer.Argument(..., help="Skill ID"),
):
    """Show progress toward the next belt."""
    store = _get_store()
    skill = _get_skill(store, skill_id)
    result = check_advancement(skill, store.count_sessions(skill.id), utcnow())

    if result.next_belt is None:
        console.print(
            Panel(
                f"[bold]{skill.skill_name}[/bold] is at the highest belt.",
                title="Black Belt",
                border_style="white",
            )
        )
        return

    verdict = "[green]Eligible[/green]" if result.eligible else "[yellow]Not yet[/yellow]"
    console.print(
        Panel(
            f"[bold]{skill.skill_name}[/bold]: {skill.current_belt.value} -> "
            f"{result.next_belt.value}  {verdict}",
            title="Belt Progress",
            border_style="blue",
        )
    )

    d = result.details
    req = BELT_REQUIREMENTS[skill.current_belt]
    table = Table(show_header=True, box=None, padding=(0, 2))
    table.add_column("Requirement", style="dim")
    table.add_column("Current", justify="right")
    table.add_column("Needed", justify="right")
    table.add_row("Concepts", str(d["total_concepts"]), str(req.concepts))
    table.add_row("Mastered", str(d["mastered_concepts"]), str(req.mastered))
    table.add_row("Avg mastery", f"{d['mastery_percentage']}%", f"{req.percentage}%")
    table.add_row("Sessions", str(d["session_count"]), str(req.sessions))
    console.print(table)

    if skill.assessment_available:
        console.print("\n[bold]An assessment is available.[/bold]")


if __name__ == "__main__":
    app()
