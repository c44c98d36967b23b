"""CLI for mission-tracker."""

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import TrackerConfig
from .constants import MISSION_TRACKER_DIR, TRACKER_VERSION
from .context import TrackerContext
from .core import (
    ContainerStatus,
    DiffAvailability,
    Outcome,
    SnapshotDescriptor,
    SnapshotKind,
    UnitStatus,
)
from .diffing import DiffEngine
from .errors import ConfigError, TrackerError
from .scope import verify_scope
from .service import TrackerDeps, TrackerService
from .snapshot import SnapshotService
from .utils import humanize_duration
from .vcs import GitProbe


app = typer.Typer(help="""\
Track units of work in a repository: snapshot the tree when work starts,
compute exactly what changed when it ends, check it against the declared
scope and roll results up through phases, missions and workflows.""")

workflow_app = typer.Typer(help="Manage workflows")
mission_app = typer.Typer(help="Manage missions")
unit_app = typer.Typer(help="Start and complete units of work")
issue_app = typer.Typer(help="Log and resolve issues")
decision_app = typer.Typer(help="Log decisions")
milestone_app = typer.Typer(help="Log progress milestones")
app.add_typer(workflow_app, name="workflow")
app.add_typer(mission_app, name="mission")
app.add_typer(unit_app, name="unit")
app.add_typer(issue_app, name="issue")
app.add_typer(decision_app, name="decision")
app.add_typer(milestone_app, name="milestone")

console = Console()

STATUS_STYLES = {
    ContainerStatus.PENDING: "[dim]PENDING[/dim]",
    ContainerStatus.IN_PROGRESS: "[yellow]IN_PROGRESS[/yellow]",
    ContainerStatus.COMPLETED: "[green]COMPLETED[/green]",
    ContainerStatus.FAILED: "[red]FAILED[/red]",
    ContainerStatus.BLOCKED: "[magenta]BLOCKED[/magenta]",
    UnitStatus.IN_PROGRESS: "[yellow]IN_PROGRESS[/yellow]",
    UnitStatus.SUCCESS: "[green]SUCCESS[/green]",
    UnitStatus.PARTIAL_SUCCESS: "[yellow]PARTIAL_SUCCESS[/yellow]",
    UnitStatus.FAILED: "[red]FAILED[/red]",
}


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def require_project_context() -> TrackerContext:
    """Ensure project is initialized and return context.

    Raises:
        typer.Exit: If not in a project directory
    """
    try:
        return TrackerContext()
    except ConfigError as e:
        console.print(f"[red]✗[/red] {e}")
        console.print()
        console.print("To initialize a project here, run:")
        console.print("  [cyan]mission-tracker init[/cyan]")
        raise typer.Exit(1)


def make_service() -> TrackerService:
    ctx = require_project_context()
    try:
        return TrackerService(TrackerDeps.from_context(ctx))
    except TrackerError as e:
        fail(e)


def fail(error: Exception) -> None:
    """Print an error and exit non-zero."""
    console.print(f"[red]✗[/red] {error}")
    raise typer.Exit(1)


def _config_for(path: Path) -> TrackerConfig:
    """Project config when ``path`` is inside a project, defaults otherwise."""
    try:
        return TrackerContext(path).config
    except ConfigError:
        return TrackerConfig()


@app.command()
def init(
    path: Optional[str] = typer.Argument(None, help="Directory to initialize (default: current directory)"),
):
    """Initialize mission tracking in a directory."""
    target_dir = Path(path).resolve() if path else Path.cwd()
    if TrackerContext.is_initialized(target_dir):
        console.print(f"[red]error:[/red] Already initialized in `{target_dir}`")
        raise typer.Exit(1)
    if not target_dir.is_dir():
        console.print(f"[red]✗[/red] Not a directory: {target_dir}")
        raise typer.Exit(1)

    ctx = TrackerContext.init(target_dir)
    console.print(f"[green]✓[/green] Initialized mission tracking in `{ctx.root}`")
    console.print(f"  Config: {ctx.config_path.relative_to(ctx.root)}")
    console.print(f"  Ignored by git: {MISSION_TRACKER_DIR}/")


@app.command()
def version():
    """Show version."""
    console.print(f"mission-tracker {TRACKER_VERSION}")


@app.command()
def snapshot(
    path: str = typer.Argument(".", help="Tree to snapshot"),
):
    """Print a snapshot descriptor of a tree as JSON."""
    root = Path(path).resolve()
    config = _config_for(root)
    service = SnapshotService(probe=GitProbe(config.vcs_binary, config.probe_timeout_seconds))
    descriptor = service.create_snapshot(root)
    typer.echo(descriptor.model_dump_json(indent=2))


@app.command()
def diff(
    since: str = typer.Option(..., "--since", help="Revision the diff starts from"),
    path: str = typer.Argument(".", help="Version-controlled tree"),
    areas: List[str] = typer.Option([], "--area", "-a", help="Declared work area (repeatable)"),
):
    """Show files changed since a revision, including uncommitted work.

    Examples:
        mission-tracker diff --since HEAD~3
        mission-tracker diff --since abc123 --area auth --area api
    """
    root = Path(path).resolve()
    config = _config_for(root)
    engine = DiffEngine(GitProbe(config.vcs_binary, config.probe_timeout_seconds))
    descriptor = SnapshotDescriptor(kind=SnapshotKind.VERSIONED, id=since, payload=since)

    try:
        changes = engine.compute_diff(descriptor, root)
    except TrackerError as e:
        fail(e)

    if not changes.total_files:
        console.print("[dim]No changes[/dim]")
    for p in changes.added:
        console.print(f"  [green]+[/green] {p}")
    for p in changes.modified:
        console.print(f"  [yellow]~[/yellow] {p}")
    for p in changes.deleted:
        console.print(f"  [red]−[/red] {p}")

    if changes.availability != DiffAvailability.COMPLETE:
        console.print(f"\n[yellow]⚠ Diff is {changes.availability.value}[/yellow]")
        for note in changes.notes:
            console.print(f"  [dim]{note}[/dim]")

    if areas:
        _print_verdict(verify_scope(changes.all_paths, areas))


@app.command()
def scope(
    areas: List[str] = typer.Argument(..., help="Declared work areas"),
    files: List[str] = typer.Option(..., "--files", "-f", help="Changed path (repeatable)"),
):
    """Check changed paths against declared work areas."""
    verdict = verify_scope(files, areas)
    _print_verdict(verdict)
    if not verdict.scope_match:
        raise typer.Exit(1)


def _print_verdict(verdict) -> None:
    if verdict.scope_match:
        console.print("[green]✓[/green] All changes within declared scope")
        return
    for warning in verdict.warnings:
        console.print(f"[yellow]⚠[/yellow] {warning}")
    for p in verdict.unexpected_files:
        console.print(f"  [yellow]•[/yellow] {p}")


@workflow_app.command("start")
def workflow_start(
    name: str = typer.Argument(..., help="Workflow name"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    objective: Optional[str] = typer.Option(None, "--objective"),
    scope_text: Optional[str] = typer.Option(None, "--scope"),
    constraints: Optional[str] = typer.Option(None, "--constraints"),
):
    """Start a workflow."""
    service = make_service()
    try:
        workflow = service.start_workflow(name, description, objective, scope_text, constraints)
    except TrackerError as e:
        fail(e)
    console.print(f"[green]✓[/green] Started workflow {workflow.id}")


@mission_app.command("start")
def mission_start(
    name: str = typer.Argument(..., help="Mission name"),
    objective: str = typer.Option(..., "--objective", help="What the mission must achieve"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    profile: str = typer.Option("standard", "--profile", help="simple, standard or complex"),
    total_phases: Optional[int] = typer.Option(None, "--phases", help="Override phase count"),
):
    """Start a mission."""
    service = make_service()
    try:
        mission = service.start_mission(name, objective, description, profile, total_phases)
    except TrackerError as e:
        fail(e)
    console.print(
        f"[green]✓[/green] Started mission {mission.id} "
        f"({mission.profile.value.lower()}, {mission.total_phases} phases)"
    )


@unit_app.command("start")
def unit_start(
    name: str = typer.Argument(..., help="Unit name"),
    workflow_id: Optional[str] = typer.Option(None, "--workflow", "-w"),
    mission_id: Optional[str] = typer.Option(None, "--mission", "-m"),
    phase: Optional[int] = typer.Option(None, "--phase", "-p", help="Phase number within the mission"),
    phase_name: Optional[str] = typer.Option(None, "--phase-name"),
    parent_unit_id: Optional[str] = typer.Option(None, "--parent"),
    caller_type: Optional[str] = typer.Option(None, "--caller", help="orchestrator or subagent"),
    agent_name: Optional[str] = typer.Option(None, "--agent"),
    goal: str = typer.Option("", "--goal"),
    areas: List[str] = typer.Option([], "--area", "-a", help="Declared work area (repeatable)"),
):
    """Snapshot the tree and start a unit of work."""
    service = make_service()
    try:
        started = service.start_unit(
            name,
            workflow_id=workflow_id,
            mission_id=mission_id,
            phase=phase,
            phase_name=phase_name,
            parent_unit_id=parent_unit_id,
            caller_type=caller_type,
            agent_name=agent_name,
            goal=goal,
            areas=areas,
        )
    except TrackerError as e:
        fail(e)

    if started.phase_created:
        console.print(f"[green]✓[/green] Created phase {started.container_id}")
    console.print(f"[green]✓[/green] Started unit {started.unit_id}")
    console.print(f"  Snapshot: {started.snapshot.kind.value} {started.snapshot.id[:12]}")


@unit_app.command("complete")
def unit_complete(
    unit_id: str = typer.Argument(..., help="Unit to complete"),
    status: str = typer.Option(..., "--status", "-s", help="success, partial_success or failed"),
    summary: Optional[str] = typer.Option(None, "--summary"),
    achievements: List[str] = typer.Option([], "--achievement"),
    limitations: List[str] = typer.Option([], "--limitation"),
    next_steps: List[str] = typer.Option([], "--next-step"),
    tests_status: Optional[str] = typer.Option(None, "--tests", help="passed, failed or not_run"),
    tokens_input: Optional[int] = typer.Option(None, "--tokens-in"),
    tokens_output: Optional[int] = typer.Option(None, "--tokens-out"),
):
    """Complete a unit: diff, verify scope and update container status."""
    service = make_service()
    outcome = None
    if summary:
        outcome = Outcome(
            summary=summary,
            achievements=achievements,
            limitations=limitations,
            next_steps=next_steps,
        )
    metadata = {"tests_status": tests_status} if tests_status else None

    try:
        result = service.complete_unit(
            unit_id, status, outcome, metadata, tokens_input, tokens_output,
        )
    except TrackerError as e:
        fail(e)

    console.print(
        f"[green]✓[/green] Completed unit {unit_id}: {STATUS_STYLES[result.status]} "
        f"in {humanize_duration(result.duration_ms)}"
    )
    console.print(f"  Changes: {result.changes.summary}")
    for note in result.changes.notes:
        console.print(f"  [dim]{note}[/dim]")
    _print_verdict(result.verdict)
    if result.container_status:
        console.print(f"  Container: {STATUS_STYLES[result.container_status]}")


@issue_app.command("log")
def issue_log(
    unit_id: str = typer.Argument(..., help="Unit the issue occurred in"),
    issue_type: str = typer.Option(..., "--type", "-t", help="documentation_gap, bug_encountered, dependency_conflict, unclear_requirement or other"),
    description: str = typer.Option(..., "--description", "-d"),
    resolution: str = typer.Option(..., "--resolution", "-r"),
    human_review: bool = typer.Option(False, "--human-review", help="Block the container until resolved"),
):
    """Log an issue against a unit."""
    service = make_service()
    try:
        issue = service.log_issue(unit_id, issue_type, description, resolution, human_review)
    except TrackerError as e:
        fail(e)
    console.print(f"[green]✓[/green] Logged issue {issue.id}")
    if issue.requires_human_review:
        console.print("  [magenta]Requires human review; container is blocked until resolved[/magenta]")


@issue_app.command("resolve")
def issue_resolve(
    issue_id: str = typer.Argument(..., help="Issue to resolve"),
):
    """Resolve an issue."""
    service = make_service()
    try:
        service.resolve_issue(issue_id)
    except TrackerError as e:
        fail(e)
    console.print(f"[green]✓[/green] Resolved issue {issue_id}")


@decision_app.command("log")
def decision_log(
    unit_id: str = typer.Argument(..., help="Unit the decision was made in"),
    category: str = typer.Option(..., "--category", "-c", help="architecture, library_choice, trade_off, workaround or other"),
    question: str = typer.Option(..., "--question", "-q", help="What had to be decided"),
    chosen: str = typer.Option(..., "--chosen", help="Chosen option"),
    reasoning: str = typer.Option(..., "--reasoning", "-r", help="Why this option"),
    options: Optional[List[str]] = typer.Option(None, "--option", "-o", help="Option considered (repeatable)"),
    trade_offs: Optional[str] = typer.Option(None, "--trade-offs", help="Accepted compromises"),
):
    """Log a decision made during a unit."""
    service = make_service()
    try:
        decision = service.log_decision(
            unit_id, category, question, chosen, reasoning,
            options_considered=options, trade_offs=trade_offs,
        )
    except TrackerError as e:
        fail(e)
    console.print(f"[green]✓[/green] Logged decision {decision.id}")


@milestone_app.command("log")
def milestone_log(
    unit_id: str = typer.Argument(..., help="Unit the milestone belongs to"),
    message: str = typer.Argument(..., help="Short progress note"),
    progress: Optional[float] = typer.Option(None, "--progress", "-p", help="Estimated progress (0-100)"),
):
    """Log a progress milestone for a unit."""
    service = make_service()
    try:
        milestone = service.log_milestone(unit_id, message, progress=progress)
    except TrackerError as e:
        fail(e)
    suffix = f" ({milestone.progress:g}%)" if milestone.progress is not None else ""
    console.print(f"[green]✓[/green] Logged milestone {milestone.id}{suffix}")


@app.command()
def status(
    container_id: str = typer.Argument(..., help="Workflow, mission or phase id"),
    recompute: bool = typer.Option(False, "--recompute", help="Re-derive status before showing it"),
):
    """Show a container's status, children and rollup."""
    service = make_service()
    try:
        if recompute:
            service.recompute_container_status(container_id)
        context = service.get_context(container_id)
    except TrackerError as e:
        fail(e)

    container = context.container
    console.print(
        f"[bold]{container.kind.value.title()}:[/bold] {container.name} ({container.id})"
    )
    console.print(f"Status: {STATUS_STYLES[container.status]}")

    if context.child_containers:
        table = Table(title="Phases")
        table.add_column("#", justify="right")
        table.add_column("Name")
        table.add_column("Status")
        table.add_column("Units", justify="right")
        for child in context.child_containers:
            table.add_row(
                str(child.number or ""),
                child.name,
                STATUS_STYLES[child.status],
                str(child.rollup.total_units),
            )
        console.print(table)

    if context.units:
        table = Table(title="Units")
        table.add_column("Unit")
        table.add_column("Name")
        table.add_column("Status")
        table.add_column("Duration", justify="right")
        table.add_column("Changes")
        table.add_column("Scope")
        for unit in context.units:
            table.add_row(
                unit.id,
                unit.name,
                STATUS_STYLES.get(unit.status, unit.status.value),
                humanize_duration(unit.duration_ms) if unit.duration_ms is not None else "-",
                unit.changes.summary if unit.changes else "-",
                "-" if unit.verdict is None else (
                    "[green]✓[/green]" if unit.verdict.scope_match
                    else f"[yellow]⚠ {len(unit.verdict.unexpected_files)}[/yellow]"
                ),
            )
        console.print(table)

    rollup = container.rollup
    console.print(
        f"\nUnits: {rollup.total_units} "
        f"([green]{rollup.success} ok[/green], [yellow]{rollup.partial} partial[/yellow], "
        f"[red]{rollup.failed} failed[/red], {rollup.in_progress} running)"
    )
    console.print(
        f"Duration: {humanize_duration(rollup.total_duration_ms)}  "
        f"Tokens: {rollup.total_tokens:,}  Files changed: {rollup.files_changed}"
    )

    if context.open_issues:
        console.print(f"\n[magenta]Open issues ({len(context.open_issues)}):[/magenta]")
        for issue in context.open_issues:
            marker = " [magenta](human review)[/magenta]" if issue.requires_human_review else ""
            console.print(f"  • {issue.id} {issue.issue_type.value}: {issue.description}{marker}")

    if context.decisions:
        console.print(f"\n[bold]Decisions ({len(context.decisions)}):[/bold]")
        for decision in context.decisions:
            console.print(f"  • {decision.question} → [cyan]{decision.chosen}[/cyan]")

    if context.milestones:
        latest = context.milestones[0]
        progress = f" ({latest.progress:g}%)" if latest.progress is not None else ""
        console.print(f"\nLatest milestone: {latest.message}{progress}")


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
