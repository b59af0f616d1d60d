"""Test doubles and builders shared across the suites."""

from datetime import UTC, datetime

from deployversion.core.collaborators import ShellResult
from deployversion.models import DeploymentRecord


class FakeShell:
    """Shell executor that records commands instead of running them"""

    def __init__(self, results: dict[str, ShellResult] | None = None):
        self.results = results or {}
        self.commands: list[str] = []

    def run(self, command: str) -> ShellResult:
        self.commands.append(command)
        return self.results.get(command, ShellResult(exit_code=0, output=""))


class FakeRevision:
    def __init__(self, revision: str = "8752f75"):
        self.revision = revision

    def short_revision(self) -> str:
        return self.revision


class CountingMigrations:
    def __init__(self):
        self.calls = 0

    def run_migrations(self) -> None:
        self.calls += 1


def make_record(
    deployment: str,
    version: str,
    *,
    pre_release: str | None = None,
    build: str | None = "abc1234",
    release_notes=None,
    deployed_at: datetime | None = None,
) -> DeploymentRecord:
    return DeploymentRecord(
        deployment=deployment,
        version=version,
        pre_release=pre_release,
        build=build,
        release_notes=release_notes if release_notes is not None else [],
        deployed_at=deployed_at or datetime(2024, 1, 1, tzinfo=UTC),
    )
