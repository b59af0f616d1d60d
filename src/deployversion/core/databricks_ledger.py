"""
Databricks Ledger Store

Tracks deployments in the target catalog's tracking schema (named deploy_version).
Unity Catalog does not enforce unique constraints, so ``append`` checks for an
existing row first; with a single writer per ledger that check is sufficient.
"""

import logging
from datetime import UTC, datetime

from databricks.sdk.errors import DatabricksError

from deployversion.domain.errors import (
    DuplicateDeploymentError,
    SchemaError,
    StoreUnavailableError,
)
from deployversion.models import DeploymentRecord

from .databricks import DatabricksStatementExecutor, StatementExecutionError
from .ledger import DEFAULT_TABLE, filter_by_version, order_history, order_ran, pick_latest

logger = logging.getLogger(__name__)

TRACKING_SCHEMA = "deploy_version"

_COLUMNS = ("id", "deployment", "version", "pre_release", "build", "release_notes", "deployed_at")


class DatabricksLedgerStore:
    """Track deployments in <catalog>.deploy_version.<table>

    Attributes:
        executor: Statement executor bound to a SQL warehouse
        catalog: Target catalog name
        schema: Tracking schema name (<catalog>.deploy_version)
        table: Fully qualified ledger table name
    """

    def __init__(
        self, executor: DatabricksStatementExecutor, catalog: str, table_name: str = DEFAULT_TABLE
    ):
        self.executor = executor
        self.catalog = catalog
        self.table_name = table_name
        self.schema = f"`{catalog}`.`{TRACKING_SCHEMA}`"
        self.table = f"{self.schema}.`{table_name}`"

    def exists(self) -> bool:
        """Whether the ledger table has been provisioned"""
        try:
            rows = self._execute(f"SHOW TABLES IN {self.schema} LIKE '{self.table_name}'")
        except StatementExecutionError as e:
            if e.not_found:
                return False
            raise StoreUnavailableError(message=str(e), code="store_unavailable") from e
        return len(rows) > 0

    def create(self) -> None:
        """Create tracking schema and ledger table

        Raises:
            SchemaError: If the table already exists or cannot be created
        """
        try:
            already_exists = self.exists()
        except StoreUnavailableError as e:
            raise SchemaError(
                message=f"Cannot provision {self.table}: {e}", code="ledger_unusable"
            ) from e
        if already_exists:
            raise SchemaError(
                message=f"Deployment table {self.table} already exists", code="ledger_exists"
            )
        try:
            self._execute(
                f"CREATE SCHEMA IF NOT EXISTS {self.schema} "
                f"COMMENT 'deploy-version deployment ledger'"
            )
            self._execute(self._get_ledger_table_ddl())
        except (StatementExecutionError, StoreUnavailableError) as e:
            raise SchemaError(
                message=f"Failed to create deployment table {self.table}: {e}",
                code="ledger_create_failed",
            ) from e
        logger.info("Created deployment table %s", self.table)

    def ran(self) -> list[str]:
        return order_ran(self._records())

    def latest(self) -> DeploymentRecord | None:
        return pick_latest(self._records())

    def all(self, *, major: int | None = None, minor: int | None = None) -> list[DeploymentRecord]:
        return order_history(filter_by_version(self._records(), major=major, minor=minor))

    def append(self, record: DeploymentRecord) -> DeploymentRecord:
        """Insert one record

        Raises:
            DuplicateDeploymentError: If the deployment identifier is already logged
            StoreUnavailableError: On connection or statement failure
        """
        existing = self._run(
            f"SELECT 1 FROM {self.table} WHERE deployment = :deployment LIMIT 1",
            {"deployment": record.deployment},
        )
        if existing:
            raise DuplicateDeploymentError(
                message=f"Deployment '{record.deployment}' is already logged",
                code="duplicate_deployment",
            )

        deployed_at = record.deployed_at or datetime.now(UTC)
        self._run(
            f"""
            INSERT INTO {self.table}
            (deployment, version, pre_release, build, release_notes, deployed_at)
            VALUES (:deployment, :version, :pre_release, :build, :release_notes, :deployed_at)
            """,
            {
                "deployment": record.deployment,
                "version": record.version,
                "pre_release": record.pre_release,
                "build": record.build,
                "release_notes": record.encoded_release_notes(),
                "deployed_at": (deployed_at.isoformat(), "TIMESTAMP"),
            },
        )
        logger.debug("Logged %s at version %s", record.deployment, record.version)
        return record.model_copy(update={"deployed_at": deployed_at})

    def _records(self) -> list[DeploymentRecord]:
        try:
            rows = self._execute(f"SELECT {', '.join(_COLUMNS)} FROM {self.table}")
        except StatementExecutionError as e:
            if e.not_found:
                raise SchemaError(
                    message=f"Deployment table {self.table} does not exist", code="ledger_missing"
                ) from e
            raise StoreUnavailableError(message=str(e), code="store_unavailable") from e
        return [DeploymentRecord.from_row(dict(zip(_COLUMNS, row))) for row in rows]

    def _run(self, sql: str, parameters: dict | None = None) -> list[list]:
        try:
            return self._execute(sql, parameters)
        except StatementExecutionError as e:
            raise StoreUnavailableError(message=str(e), code="store_unavailable") from e

    def _execute(self, sql: str, parameters: dict | None = None) -> list[list]:
        try:
            return self.executor.execute(sql, parameters)
        except (DatabricksError, OSError) as e:
            raise StoreUnavailableError(
                message=f"Databricks warehouse unavailable: {e}", code="store_unavailable"
            ) from e

    def _get_ledger_table_ddl(self) -> str:
        """Get DDL for the ledger table

        Returns:
            CREATE TABLE statement for the deployment ledger
        """
        return f"""
        CREATE TABLE {self.table} (
            id BIGINT GENERATED ALWAYS AS IDENTITY COMMENT 'Surrogate key',
            deployment STRING NOT NULL COMMENT 'Deployment identifier',
            version STRING NOT NULL COMMENT 'Version after this deployment (X.Y.Z)',
            pre_release STRING COMMENT 'Pre-release tag active at this point',
            build STRING COMMENT 'Short VCS revision at execution time',
            release_notes STRING COMMENT 'JSON-encoded release notes',
            deployed_at TIMESTAMP COMMENT 'Execution time',
            CONSTRAINT pk_{self.table_name} PRIMARY KEY (deployment)
        )
        COMMENT 'deploy-version deployment history'
        """
