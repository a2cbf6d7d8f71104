"""
Shared CLI state: Typer app, console, options, and utilities.
"""

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich import print as rprint
from rich.console import Console

from ..bootstrap import Services, bootstrap
from ..coordinator import PollResult, PollStatus
from ..exceptions import InfrastructureError
from ..launch_sequence import LaunchResult, TaskResult

# Main app
app = typer.Typer(
    name="expertdeck",
    help="Run a deck of Claude Code experts in tmux panes and git worktrees",
    no_args_is_help=False,
    invoke_without_command=True,
    rich_markup_mode="rich",
)

# Console for rich output
console = Console()

ProjectArgument = Annotated[
    Optional[Path],
    typer.Argument(help="Project directory (defaults to the current directory)"),
]

ProjectOption = Annotated[
    Optional[Path],
    typer.Option("--project", "-p", help="Project directory (defaults to the current directory)"),
]


def _project_path(project: Optional[Path]) -> Path:
    return (project or Path.cwd()).resolve()


def load_services(
    project: Optional[Path],
    num_experts: Optional[int] = None,
    create: bool = True,
) -> Services:
    """Bootstrap a session, turning infrastructure failures into exit code 1."""
    try:
        return bootstrap(_project_path(project), num_experts=num_experts, create=create)
    except InfrastructureError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)


def resolve_expert(services: Services, name_or_id: str) -> int:
    expert_id = services.config.find_expert(name_or_id)
    if expert_id is None:
        rprint(f"[red]Error: No expert '{name_or_id}'[/red]")
        names = ", ".join(
            f"{i}={services.config.get_expert_name(i)}" for i in services.config.expert_ids
        )
        rprint(f"[dim]Experts: {names}[/dim]")
        raise typer.Exit(code=1)
    return expert_id


@app.callback(invoke_without_command=True)
def main_callback(ctx: typer.Context):
    """Open the tower for the current directory when no command is given."""
    if ctx.invoked_subcommand is None:
        from ..logging_config import setup_tower_logging
        from ..tui import run_tower

        services = load_services(None)
        setup_tower_logging()
        run_tower(services)


def operation_timeout(services: Services) -> float:
    """Upper bound for one guarded launch when waiting from the CLI."""
    timeouts = services.config.timeouts
    return timeouts.agent_ready + timeouts.relocation_grace + timeouts.graceful_shutdown


def report_outcome(result: PollResult) -> bool:
    """Print a finished guarded operation. Returns True on success."""
    if result.status == PollStatus.RUNNING:
        rprint(f"[yellow]…[/yellow] {result.label or 'operation'} still running for {result.resource_key}")
        return False
    if result.status == PollStatus.FAILED:
        rprint(f"[red]✗[/red] {result.label or 'operation'} failed for {result.resource_key}: {result.error}")
        return False
    outcome = result.result
    if isinstance(outcome, TaskResult):
        for warning in outcome.warnings:
            rprint(f"  [yellow]Warning:[/yellow] {warning}")
        mark = "[red]✗[/red]" if outcome.error else "[green]✓[/green]"
        rprint(f"{mark} {outcome.message}")
        return outcome.delivered
    if not isinstance(outcome, LaunchResult):
        return result.status == PollStatus.COMPLETED
    for warning in outcome.warnings:
        rprint(f"  [yellow]Warning:[/yellow] {warning}")
    if outcome.previous_worktree and (outcome.branch or outcome.reset):
        rprint(f"  [yellow]Previous worktree left at {outcome.previous_worktree}[/yellow]")
    if outcome.error:
        rprint(f"[red]✗[/red] {outcome.message}")
        return False
    mark = "[green]✓[/green]" if outcome.ready else "[yellow]⚠[/yellow]"
    rprint(f"{mark} {outcome.message}")
    if outcome.used_general_fallback:
        rprint("  [dim]No instructions for this role, used 'general'[/dim]")
    return True
