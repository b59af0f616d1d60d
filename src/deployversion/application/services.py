"""Application service layer over command modules.

Services load the project configuration, wire a runtime and return a CommandResult
envelope, so CLI and SDK callers share one orchestration surface.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from deployversion.application.runtime import Runtime, build_runtime
from deployversion.commands.deploy import deploy_project
from deployversion.commands.make import make_deployment
from deployversion.commands.version import show_release_notes, show_status, show_version
from deployversion.config import DeployVersionConfig, load_config
from deployversion.core.version_service import NotesLevel, VersionFormat
from deployversion.domain.results import CommandResult

RuntimeFactory = Callable[[DeployVersionConfig, Path], Runtime]


def _runtime(project_dir: Path, factory: RuntimeFactory) -> Runtime:
    return factory(load_config(project_dir), project_dir)


@dataclass(slots=True)
class InstallService:
    """Provision the deployment ledger."""

    runtime_factory: RuntimeFactory = field(default=build_runtime)

    def run(self, *, project_dir: Path) -> CommandResult:
        runtime = _runtime(project_dir, self.runtime_factory)
        try:
            if runtime.deployer.repository_exists():
                return CommandResult(
                    success=True,
                    code="already_installed",
                    message="Deployment ledger already exists",
                )
            runtime.deployer.create_repository()
        finally:
            runtime.close()
        return CommandResult(
            success=True, code="installed", message="Deployment ledger created successfully"
        )


@dataclass(slots=True)
class DeployService:
    """Run pending deployments."""

    runtime_factory: RuntimeFactory = field(default=build_runtime)

    def run(
        self,
        *,
        project_dir: Path,
        force: bool,
        no_interaction: bool,
        message: str | None,
    ) -> CommandResult:
        runtime = _runtime(project_dir, self.runtime_factory)
        try:
            summary = deploy_project(
                runtime, force=force, no_interaction=no_interaction, message=message
            )
        finally:
            runtime.close()
        if summary.cancelled:
            return CommandResult(success=False, code="cancelled", message="Deployment cancelled")
        return CommandResult(
            success=True,
            code="deployed" if summary.executed else "nothing_to_deploy",
            data={
                "executed": summary.executed,
                "notes": summary.notes,
                "before": summary.before,
                "after": summary.after,
            },
        )


@dataclass(slots=True)
class MakeService:
    """Scaffold a deployment unit file."""

    def run(
        self,
        *,
        project_dir: Path,
        name: str,
        major: bool,
        minor: bool,
        patch: bool,
        pre: str | None,
        migrate: bool,
    ) -> CommandResult:
        config = load_config(project_dir)
        path = make_deployment(
            config.deployments_dir(project_dir),
            name,
            major=major,
            minor=minor,
            patch=patch,
            pre=pre,
            migrate=migrate,
        )
        return CommandResult(success=True, code="created", data={"path": str(path)})


@dataclass(slots=True)
class QueryService:
    """Version, release-notes and status queries."""

    runtime_factory: RuntimeFactory = field(default=build_runtime)

    def version(self, *, project_dir: Path, fmt: VersionFormat) -> CommandResult:
        runtime = _runtime(project_dir, self.runtime_factory)
        try:
            version = show_version(runtime, fmt)
        finally:
            runtime.close()
        return CommandResult(success=True, code="version", data={"version": version})

    def notes(self, *, project_dir: Path, level: NotesLevel, json_output: bool) -> CommandResult:
        runtime = _runtime(project_dir, self.runtime_factory)
        try:
            notes = show_release_notes(runtime, level, json_output=json_output)
        finally:
            runtime.close()
        return CommandResult(success=True, code="release_notes", data={"notes": notes})

    def status(self, *, project_dir: Path) -> CommandResult:
        runtime = _runtime(project_dir, self.runtime_factory)
        try:
            rows = show_status(runtime)
        finally:
            runtime.close()
        return CommandResult(
            success=True,
            code="status",
            data={"deployments": [{"deployment": d, "status": s} for d, s in rows]},
        )
