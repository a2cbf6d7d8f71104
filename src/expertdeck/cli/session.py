"""
Session commands: start, tower, status, sessions, worktrees,
remove-worktree, decisions, reports, down.
"""

from typing import Annotated, Optional

import typer
import yaml
from rich import print as rprint
from rich.table import Table

from ..config import DEFAULT_SESSION_PREFIX, load_config
from ..context_models import ExpertContext
from ..coordinator import expert_key
from ..exceptions import ExpertdeckError
from ..launch_sequence import LaunchOptions
from ..logging_config import setup_cli_logging, setup_tower_logging
from ..reports import load_reports
from ..status_constants import get_status_symbol, is_active_status
from ..tmux_manager import list_sessions
from ..tui_helpers import format_ago
from ..worktree import WorktreeManager
from ._shared import (
    ProjectArgument,
    _project_path,
    app,
    console,
    load_services,
    operation_timeout,
    report_outcome,
    resolve_expert,
)


@app.command()
def start(
    project: ProjectArgument = None,
    num_experts: Annotated[
        Optional[int], typer.Option("--experts", "-n", min=1, help="Number of experts")
    ] = None,
    fresh: Annotated[
        bool, typer.Option("--fresh", help="Ignore stored conversations and start new ones")
    ] = False,
    relaunch: Annotated[
        bool, typer.Option("--relaunch", help="Relaunch experts of an already running session")
    ] = False,
):
    """Create the session and launch every expert."""
    setup_cli_logging()
    services = load_services(project, num_experts=num_experts)
    config = services.config

    for note in services.notes:
        rprint(f"[dim]{note}[/dim]")
    if not services.created and not relaunch:
        rprint(f"Session [bold]{config.session_name}[/bold] is already running (use --relaunch to restart experts)")
        return

    rprint(f"Launching {config.num_experts} experts in [bold]{config.session_name}[/bold]...")
    for expert_id in config.expert_ids:
        operation = services.guarded_launch(expert_id, LaunchOptions(fresh=fresh))
        services.coordinator.start(expert_key(expert_id), operation.run, label="launch")

    ok = True
    timeout = operation_timeout(services)
    for expert_id in config.expert_ids:
        ok = report_outcome(services.coordinator.wait(expert_key(expert_id), timeout)) and ok
    services.coordinator.abandon()

    rprint(f"\nAttach with: [bold]tmux attach -t {config.session_name}[/bold]")
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def tower(project: ProjectArgument = None):
    """Open the control tower TUI."""
    from ..tui import run_tower

    services = load_services(project)
    setup_tower_logging()
    run_tower(services)


def _location(ctx: Optional[ExpertContext]) -> str:
    if ctx is None or not ctx.worktree_branch:
        return "[dim]root[/dim]"
    return f"[magenta]⎇ {ctx.worktree_branch}[/magenta]"


@app.command()
def status(project: ProjectArgument = None):
    """Show the status of every expert."""
    setup_cli_logging()
    services = load_services(project, create=False)
    config = services.config

    services.snapshots.refresh(services.tmux, config.expert_ids)
    contexts = {
        ctx.expert_id: ctx
        for ctx in services.context_store.list_expert_contexts(config.session_hash)
    }

    table = Table(title=f"{config.session_name} · {config.project_path}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Expert", style="bold")
    table.add_column("Role")
    table.add_column("Status")
    table.add_column("Location")
    table.add_column("Conversation", style="dim")
    table.add_column("Updated", style="dim")

    for expert_id, expert_status in services.detector.classify_all(config.expert_ids):
        symbol, color = get_status_symbol(expert_status)
        ctx = contexts.get(expert_id)
        table.add_row(
            str(expert_id),
            config.get_expert_name(expert_id),
            services.role_for(expert_id),
            f"[{color}]{symbol} {expert_status.value}[/{color}]",
            _location(ctx),
            (ctx.claude_session_id or "-")[:8] if ctx else "-",
            format_ago(ctx.updated_at) if ctx else "never",
        )
    console.print(table)


@app.command()
def worktrees(project: ProjectArgument = None):
    """List the worktrees created for this project's experts."""
    setup_cli_logging()
    try:
        manager = WorktreeManager.resolve(_project_path(project))
        entries = manager.session_worktrees()
    except ExpertdeckError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if not entries:
        rprint("[dim]No expert worktrees[/dim]")
        return

    table = Table(title=str(manager.worktree_dir()))
    table.add_column("Branch", style="magenta")
    table.add_column("Path")
    for entry in entries:
        table.add_row(entry.get("branch") or "[dim](detached)[/dim]", entry["path"])
    console.print(table)


@app.command()
def down(
    project: ProjectArgument = None,
    cleanup: Annotated[
        bool, typer.Option("--cleanup", help="Also remove the stored session context")
    ] = False,
):
    """Stop every expert and kill the tmux session."""
    setup_cli_logging()
    services = load_services(project, create=False)
    config = services.config

    services.snapshots.refresh(services.tmux, config.expert_ids)
    for expert_id, expert_status in services.detector.classify_all(config.expert_ids):
        if not is_active_status(expert_status):
            continue
        try:
            services.claude.send_exit(expert_id)
        except ExpertdeckError as e:
            rprint(f"[yellow]Warning:[/yellow] could not stop {config.get_expert_name(expert_id)}: {e}")

    try:
        services.tmux.kill_session()
    except ExpertdeckError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    rprint(f"[green]✓[/green] Session [bold]{config.session_name}[/bold] stopped")

    if cleanup:
        services.context_store.cleanup_session(config.session_hash)
        rprint(f"  Removed session context {config.session_hash}")


@app.command()
def sessions():
    """List the expertdeck sessions running in tmux."""
    setup_cli_logging()
    prefix = load_config().get("session_prefix") or DEFAULT_SESSION_PREFIX
    try:
        running = list_sessions(str(prefix))
    except ExpertdeckError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if not running:
        rprint("[dim]No expertdeck sessions running[/dim]")
        return

    table = Table()
    table.add_column("Session", style="bold")
    table.add_column("Experts", justify="right")
    table.add_column("Project")
    table.add_column("Started", style="dim")
    for info in running:
        table.add_row(
            info.session_name,
            str(info.num_experts) if info.num_experts is not None else "?",
            info.project_path or "[dim]unknown[/dim]",
            format_ago(info.created_at) if info.created_at else "-",
        )
    console.print(table)


@app.command()
def decisions(
    project: ProjectArgument = None,
    expert: Annotated[
        Optional[str], typer.Option("--expert", "-e", help="Only decisions made by or affecting this expert")
    ] = None,
    topic: Annotated[
        Optional[str], typer.Option("--topic", "-t", help="Only decisions whose topic contains this text")
    ] = None,
):
    """Show the decisions shared between experts, task assignments included."""
    setup_cli_logging()
    services = load_services(project, create=False)
    config = services.config

    try:
        shared = services.context_store.load_shared_context(config.session_hash)
    except (yaml.YAMLError, ValueError) as e:
        rprint(f"[red]Error:[/red] unreadable decisions: {e}")
        raise typer.Exit(code=1)

    selected = shared.decisions
    if expert is not None:
        expert_id = resolve_expert(services, expert)
        selected = shared.decisions_for_expert(expert_id)
    if topic:
        matching = {id(d) for d in shared.decisions_by_topic(topic)}
        selected = [d for d in selected if id(d) in matching]

    if not selected:
        rprint("[dim]No decisions recorded[/dim]")
        return

    table = Table()
    table.add_column("When", style="dim")
    table.add_column("By", style="bold")
    table.add_column("Topic")
    table.add_column("Decision")
    for decision in selected:
        table.add_row(
            format_ago(decision.timestamp),
            config.get_expert_name(decision.made_by),
            decision.topic,
            decision.decision,
        )
    console.print(table)


@app.command()
def reports(
    project: ProjectArgument = None,
    expert: Annotated[
        Optional[str], typer.Option("--expert", "-e", help="Only reports written by this expert")
    ] = None,
):
    """List the task reports experts have written, newest first."""
    setup_cli_logging()
    services = load_services(project, create=False)
    expert_id = resolve_expert(services, expert) if expert is not None else None

    found = load_reports(services.config.reports_path, expert_id=expert_id)
    if not found:
        rprint(f"[dim]No reports in {services.config.reports_path}[/dim]")
        return

    table = Table()
    table.add_column("Task", style="bold")
    table.add_column("Expert")
    table.add_column("Status")
    table.add_column("Summary")
    table.add_column("Findings", justify="right")
    for report in found:
        color = {"done": "green", "failed": "red", "cancelled": "dim"}.get(report.status, "yellow")
        table.add_row(
            report.task_id,
            report.expert_name,
            f"[{color}]{report.status}[/{color}]",
            report.summary,
            str(len(report.findings)),
        )
    console.print(table)


@app.command("remove-worktree")
def remove_worktree(
    branch: Annotated[str, typer.Argument(help="Branch whose expert worktree to remove")],
    project: ProjectArgument = None,
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Remove even with uncommitted changes")
    ] = False,
):
    """Remove an expert worktree no expert is assigned to. The branch is kept."""
    setup_cli_logging()
    services = load_services(project, create=False)
    config = services.config
    manager = services.worktrees

    if not manager.worktree_exists(branch):
        rprint(f"[red]Error:[/red] no expert worktree for '{branch}' in {manager.worktree_dir()}")
        raise typer.Exit(code=1)
    users = [
        ctx.expert_name
        for ctx in services.context_store.list_expert_contexts(config.session_hash)
        if ctx.worktree_branch == branch
    ]
    if users:
        rprint(f"[red]Error:[/red] '{branch}' is assigned to {', '.join(users)}")
        rprint("  Move them first with: [bold]expertdeck launch <expert> --root[/bold]")
        raise typer.Exit(code=1)

    try:
        manager.remove_worktree(branch, force=force)
        manager.prune()
    except ExpertdeckError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    rprint(f"[green]✓[/green] Removed worktree [magenta]{branch}[/magenta]")
