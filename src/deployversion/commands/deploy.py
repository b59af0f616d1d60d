"""
Deploy Command Implementation

Runs every pending deployment unit of a project: confirmation in production,
maintenance mode around the run-cycle, ledger auto-creation and a version summary.
"""

from dataclasses import dataclass, field

from rich.console import Console
from rich.prompt import Confirm

from deployversion.application.runtime import Runtime

console = Console()

PRODUCTION = "production"


@dataclass(slots=True)
class DeploySummary:
    """What one deploy did"""

    executed: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    before: str = ""
    after: str = ""
    ledger_created: bool = False
    cancelled: bool = False

    @property
    def deployments_run(self) -> int:
        return len(self.executed)


def deploy_project(
    runtime: Runtime,
    *,
    force: bool = False,
    no_interaction: bool = False,
    message: str | None = None,
) -> DeploySummary:
    """Run pending deployments for a project

    Args:
        runtime: Wired ledger, connection and deployer for the project
        force: Skip the production confirmation
        no_interaction: Never prompt; an unconfirmed production deploy is cancelled
        message: Maintenance-mode message overriding the configured one

    Returns:
        DeploySummary of the cycle (``cancelled`` if the user declined)

    Raises:
        DeployVersionError: Any failure from the run-cycle. Maintenance mode is left
            before the error propagates.
    """
    if not _confirm_to_proceed(runtime, force=force, no_interaction=no_interaction):
        console.print("[yellow]Deployment cancelled[/yellow]")
        return DeploySummary(cancelled=True)

    summary = DeploySummary()
    maintenance_enabled = bool(runtime.config.maintenance_mode)
    if maintenance_enabled:
        runtime.maintenance.enter(message or runtime.config.maintenance_message)

    try:
        summary.before = runtime.versions.fresh().release()

        if not runtime.deployer.repository_exists():
            runtime.deployer.create_repository()
            summary.ledger_created = True
            console.print("[green]✓[/green] Created deployment ledger")

        try:
            result = runtime.deployer.run(runtime.deployments_dir)
        finally:
            # Notes of a failed cycle still show what was deployed before the failure
            for note in runtime.deployer.notes:
                console.print(note, markup=False, highlight=False)

        summary.executed = result.executed
        summary.notes = result.notes
        summary.after = runtime.versions.fresh().release()
    finally:
        if maintenance_enabled:
            runtime.maintenance.exit()

    if summary.deployments_run > 0:
        console.print(f"Deployments successful: [green]{summary.deployments_run}[/green]")
        console.print(
            f"Project updated from [yellow]{summary.before}[/yellow] "
            f"to [green]{summary.after}[/green]"
        )
    return summary


def _confirm_to_proceed(runtime: Runtime, *, force: bool, no_interaction: bool) -> bool:
    if force or runtime.config.environment != PRODUCTION:
        return True
    if no_interaction:
        return False
    console.print("[bold yellow]Application in production[/bold yellow]")
    return Confirm.ask("Do you really wish to run this command?", default=False)
