"""
Click-based CLI for deploy-version.
"""

import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from . import __version__
from .application.services import DeployService, InstallService, MakeService, QueryService
from .core.version_service import NOTES_LEVELS, VERSION_FORMATS
from .domain.errors import ActionFailure, DeployVersionError
from .logging import configure_logging

console = Console()


def _fail(error: Exception) -> None:
    console.print(f"[red]✗ Error:[/red] {error}")
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="deploy-version")
@click.option(
    "--project-dir",
    "-p",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Project directory holding deploy-version.json and the deployments folder",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, project_dir: Path, verbose: bool) -> None:
    """Versioned, run-once deployments for your project"""
    configure_logging(verbose)
    ctx.obj = project_dir.resolve()


@cli.command()
@click.pass_obj
def install(project_dir: Path) -> None:
    """Create the deployment ledger"""
    try:
        result = InstallService().run(project_dir=project_dir)
        console.print(f"[green]✓[/green] {result.message}")
    except DeployVersionError as e:
        _fail(e)


@cli.command()
@click.option("--force", "-f", is_flag=True, help="Run without confirmation in production")
@click.option(
    "--no-interaction", is_flag=True, help="Never prompt (a production run then needs --force)"
)
@click.option("--message", "-m", help="Message to show while in maintenance mode")
@click.pass_obj
def deploy(project_dir: Path, force: bool, no_interaction: bool, message: Optional[str]) -> None:
    """Run the pending deployments"""
    try:
        result = DeployService().run(
            project_dir=project_dir,
            force=force,
            no_interaction=no_interaction,
            message=message,
        )
    except ActionFailure as e:
        if not e.rolled_back:
            console.print(
                "[yellow]⚠ The failed deployment ran without a transaction; "
                "review its partial changes before re-running[/yellow]"
            )
        _fail(e)
    except DeployVersionError as e:
        _fail(e)
    else:
        if not result.success:
            sys.exit(1)


@cli.command()
@click.argument("name")
@click.option("--major", is_flag=True, help="Backwards incompatible release (X.0.0)")
@click.option("--minor", is_flag=True, help="Backwards compatible functionality (x.Y.0)")
@click.option("--patch", is_flag=True, help="Backwards compatible bug fixes (x.y.Z), the default")
@click.option("--pre", help="Pre-release tag, e.g. alpha or rc.1")
@click.option("--migrate", is_flag=True, help="Run migrations before this deployment")
@click.pass_obj
def make(
    project_dir: Path,
    name: str,
    major: bool,
    minor: bool,
    patch: bool,
    pre: Optional[str],
    migrate: bool,
) -> None:
    """Create a new deployment file"""
    try:
        MakeService().run(
            project_dir=project_dir,
            name=name,
            major=major,
            minor=minor,
            patch=patch,
            pre=pre,
            migrate=migrate,
        )
    except DeployVersionError as e:
        _fail(e)


@cli.command()
@click.option(
    "--format",
    "-f",
    "fmt",
    type=click.Choice(VERSION_FORMATS),
    default="short",
    show_default=True,
    help="release (2.1.0), short (v2.1.0), full (v2.1.0+build) or long",
)
@click.pass_obj
def version(project_dir: Path, fmt: str) -> None:
    """Show the current project version"""
    try:
        QueryService().version(project_dir=project_dir, fmt=fmt)  # type: ignore[arg-type]
    except DeployVersionError as e:
        _fail(e)


@cli.command()
@click.option(
    "--level",
    "-l",
    type=click.Choice(NOTES_LEVELS),
    default="all",
    show_default=True,
    help="all, latest major line, latest minor line, or the latest release only",
)
@click.option("--json", "json_output", is_flag=True, help="Output JSON")
@click.pass_obj
def notes(project_dir: Path, level: str, json_output: bool) -> None:
    """Show release notes"""
    try:
        QueryService().notes(
            project_dir=project_dir, level=level, json_output=json_output  # type: ignore[arg-type]
        )
    except DeployVersionError as e:
        _fail(e)


@cli.command()
@click.pass_obj
def status(project_dir: Path) -> None:
    """Show which deployments have run"""
    try:
        QueryService().status(project_dir=project_dir)
    except DeployVersionError as e:
        _fail(e)


def main() -> None:
    """Main entry point"""
    cli()


if __name__ == "__main__":
    main()
