"""
Version Commands

Read-only queries: the current project version, release notes and unit status.
"""

import json
from typing import Any

from rich.console import Console
from rich.table import Table

from deployversion.application.runtime import Runtime
from deployversion.core.scanner import discover
from deployversion.core.version_service import NotesLevel, VersionFormat

console = Console()


def show_version(runtime: Runtime, fmt: VersionFormat = "short") -> str:
    """Print and return the current version in the requested format"""
    version = runtime.versions.fresh().version(fmt)
    console.print(version, markup=False, highlight=False)
    return version


def show_release_notes(
    runtime: Runtime, level: NotesLevel = "all", json_output: bool = False
) -> dict[str, Any]:
    """Print and return release notes keyed by version label"""
    notes = runtime.versions.fresh().release_notes(level)

    if json_output:
        console.print_json(json.dumps(notes, default=str))
        return notes

    for label, entry in notes.items():
        console.print(f"[bold]{label}[/bold]")
        items = entry if isinstance(entry, list) else [entry]
        if not items:
            console.print("  [dim](no release notes)[/dim]")
        for item in items:
            console.print(f"  - {item}", markup=False, highlight=False)
    return notes


def collect_status(runtime: Runtime) -> list[tuple[str, str]]:
    """(identifier, "ran" | "pending") for every unit file, in deployment order"""
    ran: set[str] = set()
    if runtime.ledger.exists():
        ran = set(runtime.ledger.ran())
    return [
        (unit.identifier, "ran" if unit.identifier in ran else "pending")
        for unit in discover(runtime.deployments_dir)
    ]


def show_status(runtime: Runtime) -> list[tuple[str, str]]:
    """Print a table of deployment units and whether each has run"""
    rows = collect_status(runtime)
    if not rows:
        console.print(f"[yellow]No deployments found in {runtime.deployments_dir}[/yellow]")
        return rows

    table = Table(title="Deployments")
    table.add_column("Deployment")
    table.add_column("Status")
    for identifier, state in rows:
        style = "green" if state == "ran" else "yellow"
        table.add_row(identifier, f"[{style}]{state}[/{style}]")
    console.print(table)
    return rows
