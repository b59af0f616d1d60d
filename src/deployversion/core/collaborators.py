"""
Deployment Collaborators

Contracts for the services a run-cycle talks to (shell, VCS, migrations, caches,
maintenance mode) and their default shell/file based implementations.
"""

import json
import logging
import os
import shlex
import subprocess
import tempfile
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from deployversion.domain.errors import ActionFailure

logger = logging.getLogger(__name__)

MAINTENANCE_FILENAME = "down.json"

LOCAL_ENVIRONMENTS = frozenset({"local", "development", "dev"})

# Subcommands that rewrite a working tree or its history
SOURCE_CONTROL_MUTATIONS: dict[str, frozenset[str]] = {
    "git": frozenset(
        {
            "am",
            "apply",
            "checkout",
            "cherry-pick",
            "clean",
            "commit",
            "fetch",
            "merge",
            "pull",
            "push",
            "rebase",
            "reset",
            "restore",
            "revert",
            "stash",
            "switch",
        }
    ),
    "hg": frozenset({"pull", "update", "up", "revert", "merge", "rebase", "strip", "commit"}),
    "svn": frozenset({"update", "up", "switch", "revert", "checkout", "co", "commit"}),
}
# Global options that take a value before the subcommand (git -C <dir>, hg -R <repo>)
_OPTIONS_WITH_VALUE = frozenset({"-C", "-c", "-R", "--repository", "--git-dir", "--work-tree"})
_COMMAND_SEPARATORS = frozenset({"&&", "||", ";", "|", "&"})


@dataclass(slots=True)
class ShellResult:
    """Exit code and combined output of one shell command"""

    exit_code: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ShellExecutor(Protocol):
    def run(self, command: str) -> ShellResult: ...


class RevisionLookup(Protocol):
    def short_revision(self) -> str: ...


class MigrationRunner(Protocol):
    def run_migrations(self) -> None: ...


class CacheInvalidator(Protocol):
    def invalidate(self) -> None: ...


class SubprocessShellExecutor:
    """Run commands through the system shell; failures are returned, never raised"""

    def __init__(self, cwd: Path | None = None, timeout: float | None = None) -> None:
        self.cwd = cwd
        self.timeout = timeout

    def run(self, command: str) -> ShellResult:
        logger.debug("Running shell command: %s", command)
        try:
            completed = subprocess.run(
                command,
                shell=True,
                cwd=self.cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            return ShellResult(exit_code=124, output=f"Timed out after {e.timeout}s")
        except OSError as e:
            return ShellResult(exit_code=127, output=str(e))
        output = (completed.stdout or "") + (completed.stderr or "")
        return ShellResult(exit_code=completed.returncode, output=output.strip())


class GitRevisionLookup:
    """Short hash of the checked-out commit, or "" when there is none"""

    def __init__(self, executor: ShellExecutor, length: int = 7) -> None:
        self.executor = executor
        self.length = length

    def short_revision(self) -> str:
        result = self.executor.run(f"git rev-parse --short={self.length} HEAD")
        if not result.ok:
            logger.debug("No VCS revision available: %s", result.output)
            return ""
        lines = result.output.strip().splitlines()
        return lines[-1].strip() if lines else ""


class ShellMigrationRunner:
    """Run the project's migration command (e.g. ``alembic upgrade head``)"""

    def __init__(self, command: str, executor: ShellExecutor) -> None:
        self.command = command
        self.executor = executor

    def run_migrations(self) -> None:
        """
        Raises:
            ActionFailure: If the migration command exits non-zero
        """
        logger.info("Running migrations: %s", self.command)
        result = self.executor.run(self.command)
        if not result.ok:
            raise ActionFailure(
                message=f"Migrations failed (exit {result.exit_code}): {result.output}",
                code="migration_failed",
            )


class NoopMigrationRunner:
    """Used when no migration command is configured"""

    def run_migrations(self) -> None:
        logger.warning("A deployment requires migrations but no migration command is configured")


class ShellCacheInvalidator:
    """Clear a cache by running a command; failures are logged and ignored"""

    def __init__(self, command: str, executor: ShellExecutor) -> None:
        self.command = command
        self.executor = executor

    def invalidate(self) -> None:
        result = self.executor.run(self.command)
        if not result.ok:
            logger.warning(
                "Cache command '%s' failed (exit %d): %s",
                self.command,
                result.exit_code,
                result.output,
            )


def is_source_control_mutation(command: str) -> bool:
    """Whether any segment of a shell command mutates a VCS working tree

    Example:
        >>> is_source_control_mutation("cd app && git pull origin main")
        True
        >>> is_source_control_mutation("git log -1")
        False
    """
    lexer = shlex.shlex(command, posix=True, punctuation_chars=True)
    lexer.whitespace_split = True
    try:
        tokens = list(lexer)
    except ValueError:
        # Unbalanced quotes: fall back to plain whitespace splitting
        tokens = command.split()

    segment: list[str] = []
    for token in tokens + [";"]:
        if token in _COMMAND_SEPARATORS:
            if _segment_mutates(segment):
                return True
            segment = []
        else:
            segment.append(token)
    return False


def _segment_mutates(tokens: list[str]) -> bool:
    # Skip leading VAR=value assignments
    index = 0
    while index < len(tokens) and "=" in tokens[index] and not tokens[index].startswith("-"):
        index += 1
    if index >= len(tokens):
        return False

    program = os.path.basename(tokens[index])
    mutations = SOURCE_CONTROL_MUTATIONS.get(program)
    if mutations is None:
        return False

    index += 1
    while index < len(tokens):
        token = tokens[index]
        if token in _OPTIONS_WITH_VALUE:
            index += 2
            continue
        if token.startswith("-"):
            index += 1
            continue
        return token in mutations
    return False


class MaintenanceMode:
    """File-flag maintenance mode: the application reports "down" while the flag exists"""

    def __init__(self, state_dir: Path) -> None:
        self.state_dir = state_dir
        self.path = state_dir / MAINTENANCE_FILENAME

    def enter(self, message: str | None = None) -> None:
        payload: dict[str, Any] = {
            "message": message,
            "since": datetime.now(UTC).isoformat(),
        }
        self.state_dir.mkdir(parents=True, exist_ok=True)
        file_descriptor, temp_path = tempfile.mkstemp(
            prefix=f"{self.path.name}.", suffix=".tmp", dir=self.state_dir
        )
        try:
            with os.fdopen(file_descriptor, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
                handle.write("\n")
            os.replace(temp_path, self.path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise
        logger.info("Entered maintenance mode")

    def exit(self) -> None:
        self.path.unlink(missing_ok=True)
        logger.info("Left maintenance mode")

    def is_active(self) -> bool:
        return self.path.exists()

    def message(self) -> str | None:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8")).get("message")
        except (OSError, json.JSONDecodeError):
            return None
