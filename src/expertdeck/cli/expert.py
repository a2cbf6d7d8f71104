"""
Expert commands: launch, reset, task, role, roles.
"""

from typing import Annotated, Optional

import typer
from rich import print as rprint
from rich.table import Table

from ..coordinator import expert_key
from ..exceptions import GuardRejected, InvalidBranchNameError
from ..instructions import available_roles
from ..launch_sequence import LaunchOptions
from ..logging_config import setup_cli_logging
from ..worktree import sanitize_branch_name
from ._shared import (
    ProjectOption,
    app,
    console,
    load_services,
    operation_timeout,
    report_outcome,
    resolve_expert,
)


@app.command()
def launch(
    expert: Annotated[str, typer.Argument(help="Expert name or id")],
    branch: Annotated[
        Optional[str], typer.Option("--branch", "-b", help="Relocate the expert into a worktree for this branch")
    ] = None,
    root: Annotated[
        bool, typer.Option("--root", help="Move the expert back to the project root")
    ] = False,
    fresh: Annotated[
        bool, typer.Option("--fresh", help="Start a new conversation instead of resuming")
    ] = False,
    project: ProjectOption = None,
):
    """Launch, relocate or return one expert, waiting for the outcome."""
    if branch and root:
        rprint("[red]Error: --branch and --root cannot be combined[/red]")
        raise typer.Exit(code=1)
    if branch:
        try:
            branch = sanitize_branch_name(branch)
        except InvalidBranchNameError as e:
            rprint(f"[red]Error:[/red] {e}")
            raise typer.Exit(code=1)

    setup_cli_logging()
    services = load_services(project, create=False)
    expert_id = resolve_expert(services, expert)

    options = LaunchOptions(branch=branch, return_to_root=root, fresh=fresh)
    operation = services.guarded_launch(expert_id, options)
    services.coordinator.start(expert_key(expert_id), operation.run, label=options.label)
    rprint(f"{options.label} for [bold]{services.config.get_expert_name(expert_id)}[/bold]...")

    ok = report_outcome(services.coordinator.wait(expert_key(expert_id), operation_timeout(services)))
    services.coordinator.abandon()
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def role(
    expert: Annotated[str, typer.Argument(help="Expert name or id")],
    new_role: Annotated[str, typer.Argument(metavar="ROLE", help="Role to assign")],
    project: ProjectOption = None,
):
    """Assign a role to an expert. Takes effect on its next launch."""
    setup_cli_logging()
    services = load_services(project, create=False)
    expert_id = resolve_expert(services, expert)

    known = {info.name for info in available_roles(services.config.instructions_path)}
    if new_role not in known:
        rprint(f"[yellow]Warning:[/yellow] no instructions for role '{new_role}', 'general' will be used")

    services.assign_role(expert_id, new_role)
    rprint(f"[green]✓[/green] {services.config.get_expert_name(expert_id)} is now [bold]{new_role}[/bold]")
    rprint(f"  Relaunch with: [bold]expertdeck launch {expert_id}[/bold]")


@app.command()
def roles(project: ProjectOption = None):
    """List the roles experts can be assigned."""
    setup_cli_logging()
    services = load_services(project, create=False)

    table = Table()
    table.add_column("Role", style="bold")
    table.add_column("Description")
    table.add_column("Assigned to", style="dim")
    assigned = {}
    for expert_id in services.config.expert_ids:
        assigned.setdefault(services.role_for(expert_id), []).append(services.config.get_expert_name(expert_id))
    for info in available_roles(services.config.instructions_path):
        table.add_row(info.name, info.description, ", ".join(assigned.get(info.name, [])))
    console.print(table)


@app.command()
def reset(
    expert: Annotated[str, typer.Argument(help="Expert name or id")],
    keep_history: Annotated[
        bool, typer.Option("--keep-history", help="Restart the agent and resume its conversation")
    ] = False,
    full: Annotated[
        bool, typer.Option("--full", help="Forget the stored context and restart at the project root")
    ] = False,
    project: ProjectOption = None,
):
    """Restart an expert with a new conversation in its current location."""
    if keep_history and full:
        rprint("[red]Error: --keep-history and --full cannot be combined[/red]")
        raise typer.Exit(code=1)

    setup_cli_logging()
    services = load_services(project, create=False)
    expert_id = resolve_expert(services, expert)

    if full:
        options = LaunchOptions(forget=True)
    elif keep_history:
        options = LaunchOptions()
    else:
        options = LaunchOptions(fresh=True)
    operation = services.guarded_launch(expert_id, options)
    try:
        services.coordinator.start(expert_key(expert_id), operation.run, label="reset")
    except GuardRejected as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    rprint(f"Resetting [bold]{services.config.get_expert_name(expert_id)}[/bold]...")

    ok = report_outcome(services.coordinator.wait(expert_key(expert_id), operation_timeout(services)))
    services.coordinator.abandon()
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def task(
    expert: Annotated[str, typer.Argument(help="Expert name or id")],
    text: Annotated[str, typer.Argument(metavar="TASK", help="Task description to send")],
    project: ProjectOption = None,
):
    """Send a task to a running expert and record the assignment."""
    if not text.strip():
        rprint("[red]Error: task description is empty[/red]")
        raise typer.Exit(code=1)

    setup_cli_logging()
    services = load_services(project, create=False)
    expert_id = resolve_expert(services, expert)

    operation = services.guarded_task(expert_id, text)
    services.coordinator.start(expert_key(expert_id), operation.run, label="task")
    ok = report_outcome(services.coordinator.wait(expert_key(expert_id), operation_timeout(services)))
    services.coordinator.abandon()
    if not ok:
        raise typer.Exit(code=1)
