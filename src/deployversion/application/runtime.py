"""Wiring of ledger, connection and collaborators from project configuration."""

import logging
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.engine import Engine

from deployversion.config import DeployVersionConfig
from deployversion.core.collaborators import (
    GitRevisionLookup,
    MaintenanceMode,
    ShellCacheInvalidator,
    ShellMigrationRunner,
    SubprocessShellExecutor,
)
from deployversion.core.connection import (
    DeploymentConnection,
    SQLAlchemyConnection,
    create_ledger_engine,
)
from deployversion.core.deployer import Deployer
from deployversion.core.ledger import LedgerStore
from deployversion.core.sql_ledger import SQLLedgerStore
from deployversion.core.units import UnitLoader, UnitRegistry
from deployversion.core.version_service import VersionService

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Runtime:
    """Everything a command needs for one project"""

    config: DeployVersionConfig
    project_dir: Path
    ledger: LedgerStore
    connection: DeploymentConnection
    registry: UnitRegistry
    deployer: Deployer
    versions: VersionService
    maintenance: MaintenanceMode
    engine: Engine | None = None

    @property
    def deployments_dir(self) -> Path:
        return self.config.deployments_dir(self.project_dir)

    def close(self) -> None:
        """Release pooled database connections"""
        if self.engine is not None:
            self.engine.dispose()


def build_runtime(config: DeployVersionConfig, project_dir: Path) -> Runtime:
    """
    Build the runtime for a project

    A ``databricks`` section selects the SQL-warehouse ledger; otherwise the ledger
    and unit actions share one SQLAlchemy engine built from ``database_url``.

    Raises:
        StoreUnavailableError: If Databricks authentication fails
    """
    ledger: LedgerStore
    connection: DeploymentConnection
    engine: Engine | None = None
    if config.databricks is not None:
        # Imported here so SQL-only projects never load the Databricks SDK
        from deployversion.core.databricks import (
            DatabricksConnection,
            DatabricksStatementExecutor,
            create_databricks_client,
        )
        from deployversion.core.databricks_ledger import DatabricksLedgerStore

        client = create_databricks_client(config.databricks.profile)
        executor = DatabricksStatementExecutor(client, config.databricks.warehouse_id)
        connection = DatabricksConnection(executor)
        ledger = DatabricksLedgerStore(executor, config.databricks.catalog, config.table)
    else:
        engine = create_ledger_engine(config.database_url)
        connection = SQLAlchemyConnection(engine)
        ledger = SQLLedgerStore(engine, config.table)

    shell = SubprocessShellExecutor(cwd=project_dir)
    migration_runner = (
        ShellMigrationRunner(config.migration_command, shell)
        if config.migration_command
        else None
    )
    registry = UnitRegistry()

    deployer = Deployer(
        ledger,
        connection,
        registry,
        loader=UnitLoader(registry),
        migration_runner=migration_runner,
        revision_lookup=GitRevisionLookup(shell),
        cache_invalidators=[ShellCacheInvalidator(c, shell) for c in config.cache_commands],
        shell=shell,
        post_deploy_commands=config.post_deploy_commands,
        environment=config.environment,
        starting_version=config.starting_version,
    )
    logger.debug("Runtime ready for %s (connection: %s)", project_dir, connection.name)

    return Runtime(
        config=config,
        project_dir=project_dir,
        ledger=ledger,
        connection=connection,
        registry=registry,
        deployer=deployer,
        versions=VersionService(ledger, starting_version=config.starting_version),
        maintenance=MaintenanceMode(config.state_dir(project_dir)),
        engine=engine,
    )
