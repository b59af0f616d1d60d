"""
SQL Ledger Store

SQLAlchemy-backed deployment ledger. Works on any dialect SQLAlchemy supports; the
uniqueness of ``deployment`` is enforced by the database so that two concurrent
run-cycles surface a DuplicateDeploymentError instead of double-logging a unit.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    inspect,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from deployversion.domain.errors import (
    DuplicateDeploymentError,
    SchemaError,
    StoreUnavailableError,
)
from deployversion.models import DeploymentRecord

from .ledger import DEFAULT_TABLE, filter_by_version, order_history, order_ran, pick_latest

logger = logging.getLogger(__name__)


def build_ledger_table(name: str = DEFAULT_TABLE, metadata: MetaData | None = None) -> Table:
    """Deployment Record schema"""
    return Table(
        name,
        metadata if metadata is not None else MetaData(),
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("deployment", String(255), nullable=False),
        Column("version", String(64), nullable=False),
        Column("pre_release", String(255), nullable=True),
        Column("build", String(64), nullable=True),
        Column("release_notes", Text, nullable=False),
        Column("deployed_at", DateTime(timezone=True), nullable=True),
        UniqueConstraint("deployment", name=f"uq_{name}_deployment"),
    )


class SQLLedgerStore:
    """Track executed deployments in a SQL table

    Attributes:
        engine: SQLAlchemy engine for the ledger database
        table: Ledger table definition
    """

    def __init__(self, engine: Engine, table_name: str = DEFAULT_TABLE):
        self.engine = engine
        self.table = build_ledger_table(table_name)

    @property
    def table_name(self) -> str:
        return self.table.name

    def exists(self) -> bool:
        """Whether the ledger table has been provisioned"""
        try:
            return inspect(self.engine).has_table(self.table.name)
        except SQLAlchemyError as e:
            raise StoreUnavailableError(
                message=f"Cannot inspect ledger database: {e}", code="store_unavailable"
            ) from e

    def create(self) -> None:
        """Provision the ledger table

        Raises:
            SchemaError: If the table already exists or cannot be created
        """
        try:
            already_exists = self.exists()
        except StoreUnavailableError as e:
            raise SchemaError(
                message=f"Cannot provision deployment table '{self.table.name}': {e}",
                code="ledger_unusable",
            ) from e
        if already_exists:
            raise SchemaError(
                message=f"Deployment table '{self.table.name}' already exists",
                code="ledger_exists",
            )
        try:
            self.table.create(self.engine)
        except SQLAlchemyError as e:
            raise SchemaError(
                message=f"Failed to create deployment table '{self.table.name}': {e}",
                code="ledger_create_failed",
            ) from e
        logger.info("Created deployment table %s", self.table.name)

    def ran(self) -> list[str]:
        """Identifiers of every logged deployment, version desc then identifier asc"""
        return order_ran(self._records())

    def latest(self) -> DeploymentRecord | None:
        """Record with the highest version, or None for an empty ledger"""
        return pick_latest(self._records())

    def all(self, *, major: int | None = None, minor: int | None = None) -> list[DeploymentRecord]:
        """Full history (optionally narrowed to a major / major.minor line), latest first"""
        return order_history(filter_by_version(self._records(), major=major, minor=minor))

    def append(self, record: DeploymentRecord) -> DeploymentRecord:
        """Insert one record; the insert is the unit's commit point

        Raises:
            DuplicateDeploymentError: If the deployment identifier is already logged
            StoreUnavailableError: On connection failure
        """
        deployed_at = record.deployed_at or datetime.now(UTC)
        values = {
            "deployment": record.deployment,
            "version": record.version,
            "pre_release": record.pre_release,
            "build": record.build,
            "release_notes": record.encoded_release_notes(),
            "deployed_at": deployed_at,
        }
        try:
            with self.engine.begin() as connection:
                result = connection.execute(self.table.insert().values(**values))
                inserted_id = result.inserted_primary_key[0] if result.inserted_primary_key else None
        except IntegrityError as e:
            raise DuplicateDeploymentError(
                message=f"Deployment '{record.deployment}' is already logged",
                code="duplicate_deployment",
            ) from e
        except SQLAlchemyError as e:
            raise StoreUnavailableError(
                message=f"Failed to log deployment '{record.deployment}': {e}",
                code="store_unavailable",
            ) from e

        logger.debug("Logged %s at version %s", record.deployment, record.version)
        return record.model_copy(update={"id": inserted_id, "deployed_at": deployed_at})

    def _records(self) -> list[DeploymentRecord]:
        # No caching: every call re-queries the store
        try:
            with self.engine.connect() as connection:
                rows = connection.execute(select(self.table)).mappings().all()
        except SQLAlchemyError as e:
            if not self.exists():
                raise SchemaError(
                    message=f"Deployment table '{self.table.name}' does not exist",
                    code="ledger_missing",
                ) from e
            raise StoreUnavailableError(
                message=f"Failed to read deployment table '{self.table.name}': {e}",
                code="store_unavailable",
            ) from e
        return [DeploymentRecord.from_row(row) for row in rows]
