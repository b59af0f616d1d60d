"""
Make Command Implementation

Scaffolds a new deployment unit file in the project's deployments directory.
"""

from pathlib import Path

from rich.console import Console

from deployversion.core.creator import DeploymentCreator

console = Console()


def make_deployment(
    deployments_dir: Path,
    name: str,
    *,
    major: bool = False,
    minor: bool = False,
    patch: bool = False,
    pre: str | None = None,
    migrate: bool = False,
) -> Path:
    """Create a deployment unit file and report where it was written

    Raises:
        CreatorError: If the name is invalid or already used in the directory
    """
    path = DeploymentCreator(deployments_dir).create(
        name, major=major, minor=minor, patch=patch, pre=pre, migrate=migrate
    )
    console.print(f"[green]✓[/green] Created deployment: {path.name}")
    return path
