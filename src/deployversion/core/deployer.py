"""
Deployer

Runs pending deployment units. One run-cycle scans the deployment paths, drops every
unit already in the ledger, then executes the rest strictly in scan order:

    resolve -> migrate (once per cycle) -> deploy -> next version -> build -> log

Logging the ledger record is the commit point of a unit. Any failure before it aborts
the cycle and leaves the unit pending, so re-running the cycle retries it. Only one
run-cycle may run against a ledger at a time; callers serialize run-cycles.
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from deployversion.domain.errors import ActionFailure
from deployversion.domain.results import RunResult
from deployversion.models import DeploymentRecord

from .collaborators import (
    LOCAL_ENVIRONMENTS,
    CacheInvalidator,
    MigrationRunner,
    NoopMigrationRunner,
    RevisionLookup,
    ShellExecutor,
    is_source_control_mutation,
)
from .connection import DeploymentConnection
from .ledger import LedgerStore
from .scanner import UnitFile, discover, pending
from .units import Deployment, UnitLoader, UnitRegistry
from .version import SemanticVersion, coerce_semantic_version, next_version

logger = logging.getLogger(__name__)

NOTHING_TO_DEPLOY = "Nothing to deploy."


class RunnerState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    FILTERING = "filtering"
    EXECUTING = "executing"
    FINALIZING = "finalizing"


class Deployer:
    """Execute pending deployment units and log them to the ledger

    Attributes:
        ledger: Ledger store holding executed deployments
        connection: Connection unit actions run against
        registry: Identifier -> unit factory lookup
        state: Current run-cycle state
    """

    def __init__(
        self,
        ledger: LedgerStore,
        connection: DeploymentConnection,
        registry: UnitRegistry,
        *,
        loader: UnitLoader | None = None,
        migration_runner: MigrationRunner | None = None,
        revision_lookup: RevisionLookup | None = None,
        cache_invalidators: Sequence[CacheInvalidator] = (),
        shell: ShellExecutor | None = None,
        post_deploy_commands: Sequence[str] = (),
        environment: str = "production",
        starting_version: SemanticVersion | str = "0.0.0",
    ) -> None:
        self.ledger = ledger
        self.connection = connection
        self.registry = registry
        self.loader = loader
        self.migration_runner = migration_runner or NoopMigrationRunner()
        self.revision_lookup = revision_lookup
        self.cache_invalidators = list(cache_invalidators)
        self.shell = shell
        self.post_deploy_commands = list(post_deploy_commands)
        self.environment = environment
        self.starting_version = coerce_semantic_version(str(starting_version))
        self.state = RunnerState.IDLE
        self._notes: list[str] = []
        self._migrated = False

    @property
    def notes(self) -> list[str]:
        """Notes for the last run-cycle"""
        return list(self._notes)

    def repository_exists(self) -> bool:
        return self.ledger.exists()

    def create_repository(self) -> None:
        self.ledger.create()

    def run(self, paths: Path | str | Iterable[Path | str]) -> RunResult:
        """Run every pending deployment found at ``paths``

        Returns:
            RunResult with the identifiers executed and the notes of the cycle

        Raises:
            DuplicateIdentifierError: Two unit files share an identifier
            ResolutionError: A pending identifier has no loadable unit
            ActionFailure: A unit's action or its migrations failed
            DuplicateDeploymentError / StoreUnavailableError: Ledger failures
        """
        self._notes = []
        self._migrated = False
        result = RunResult(notes=self._notes)
        try:
            self.state = RunnerState.SCANNING
            discovered = discover(paths)

            self.state = RunnerState.FILTERING
            queue = pending(discovered, self.ledger.ran())
            logger.debug(
                "%d discovered, %d pending: %s",
                len(discovered),
                len(queue),
                [unit.identifier for unit in queue],
            )

            if not queue:
                self._note(NOTHING_TO_DEPLOY)
                return result

            self.state = RunnerState.EXECUTING
            for unit_file in queue:
                self._run_unit(unit_file)
                result.executed.append(unit_file.identifier)

            self.state = RunnerState.FINALIZING
            self._finalize()
            return result
        finally:
            self.state = RunnerState.IDLE

    def _run_unit(self, unit_file: UnitFile) -> DeploymentRecord:
        identifier = unit_file.identifier
        unit = self._resolve(unit_file)

        self._note(f"Deploying: {identifier}")

        if unit.migrate and not self._migrated:
            self.migration_runner.run_migrations()
            self._migrated = True

        self._execute(identifier, unit)

        version = next_version(self._current_version(), unit.bump_kind)
        record = DeploymentRecord(
            deployment=identifier,
            version=str(version),
            pre_release=unit.pre_release,
            build=self._build(),
            release_notes=unit.notes(),
            deployed_at=datetime.now(UTC),
        )
        logged = self.ledger.append(record)
        logger.info("Deployed %s as %s", identifier, logged.release)

        self._note(f"Deployed: {identifier}")
        return logged

    def _resolve(self, unit_file: UnitFile) -> Deployment:
        if self.loader is not None and not self.registry.has(unit_file.identifier):
            self.loader.load_file(unit_file)
        return self.registry.resolve(unit_file.identifier)

    def _execute(self, identifier: str, unit: Deployment) -> None:
        if unit.within_transaction and self.connection.supports_schema_transactions():
            try:
                with self.connection.transaction() as handle:
                    unit.deploy(handle)
            except Exception as e:
                raise ActionFailure(
                    message=f"Deployment '{identifier}' failed and was rolled back: {e}",
                    rolled_back=True,
                ) from e
            return

        logger.debug("Running %s without a transaction on %s", identifier, self.connection.name)
        try:
            with self.connection.unwrapped() as handle:
                unit.deploy(handle)
        except Exception as e:
            logger.warning(
                "Deployment %s failed outside a transaction; changes it already made were "
                "not rolled back and need manual intervention",
                identifier,
            )
            raise ActionFailure(
                message=f"Deployment '{identifier}' failed without a transaction: {e}",
                rolled_back=False,
            ) from e

    def _current_version(self) -> SemanticVersion:
        latest = self.ledger.latest()
        if latest is None:
            return self.starting_version
        return latest.semantic_version

    def _build(self) -> str:
        if self.revision_lookup is None:
            return ""
        try:
            return self.revision_lookup.short_revision()
        except Exception as e:
            logger.debug("Revision lookup failed: %s", e)
            return ""

    def _finalize(self) -> None:
        for invalidator in self.cache_invalidators:
            try:
                invalidator.invalidate()
            except Exception as e:
                logger.warning("Cache invalidation failed: %s", e)

        for command in self.post_deploy_commands:
            if self.environment in LOCAL_ENVIRONMENTS and is_source_control_mutation(command):
                self._note(f"Skipped in {self.environment} environment: {command}")
                continue
            if self.shell is None:
                self._note(f"Skipped (no shell configured): {command}")
                continue
            outcome = self.shell.run(command)
            if outcome.ok:
                self._note(f"Ran: {command}")
            else:
                self._note(f"Command failed (exit {outcome.exit_code}): {command}")
                logger.warning("Post-deploy command '%s' failed: %s", command, outcome.output)

    def _note(self, message: str) -> None:
        self._notes.append(message)
