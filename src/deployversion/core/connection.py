"""
Deployment Connections

The connection a deployment unit's action runs against. A connection reports whether
it can wrap schema changes in a transaction; the deployer picks between the wrapped
and unwrapped code paths from that answer.
"""

import logging
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import Any, Protocol

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection as SAConnection
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

# Dialects whose DDL participates in transactions (mysql/oracle auto-commit DDL)
TRANSACTIONAL_DDL_DIALECTS = frozenset({"postgresql", "sqlite", "mssql"})


class DeploymentConnection(Protocol):
    """Contract the deployer needs from the connection units run against."""

    @property
    def name(self) -> str: ...

    def supports_schema_transactions(self) -> bool: ...

    def transaction(self) -> AbstractContextManager[Any]:
        """Only used when supports_schema_transactions() is True"""
        ...

    def unwrapped(self) -> AbstractContextManager[Any]: ...


class SQLAlchemyConnection:
    """Deployment connection backed by a SQLAlchemy engine

    ``transaction()`` yields a connection inside ``engine.begin()``: leaving the block
    normally commits, an exception rolls everything back. ``unwrapped()`` yields an
    AUTOCOMMIT connection where every statement is committed as it runs.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @property
    def name(self) -> str:
        return self.engine.dialect.name

    def supports_schema_transactions(self) -> bool:
        return self.engine.dialect.name in TRANSACTIONAL_DDL_DIALECTS

    @contextmanager
    def transaction(self) -> Iterator[SAConnection]:
        with self.engine.begin() as connection:
            yield connection

    @contextmanager
    def unwrapped(self) -> Iterator[SAConnection]:
        with self.engine.connect() as connection:
            yield connection.execution_options(isolation_level="AUTOCOMMIT")


def create_ledger_engine(database_url: str, **kwargs: Any) -> Engine:
    """Create the SQLAlchemy engine shared by the ledger and unit actions."""
    engine = create_engine(database_url, **kwargs)
    if engine.dialect.name == "sqlite" and engine.dialect.driver == "pysqlite":
        enable_sqlite_transactional_ddl(engine)
    logger.debug("Created engine for dialect %s", engine.dialect.name)
    return engine


def enable_sqlite_transactional_ddl(engine: Engine) -> None:
    """
    Make pysqlite include schema changes in transactions

    The driver only opens a transaction before INSERT/UPDATE/DELETE, so a CREATE TABLE
    issued inside ``engine.begin()`` commits on its own. Its implicit BEGIN handling is
    switched off and BEGIN is emitted whenever SQLAlchemy starts a transaction.
    AUTOCOMMIT connections are left alone.
    """

    @event.listens_for(engine, "connect")
    def _disable_driver_begin(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(connection: SAConnection) -> None:
        if connection.get_execution_options().get("isolation_level") == "AUTOCOMMIT":
            return
        connection.exec_driver_sql("BEGIN")
