"""
Databricks SQL Warehouse Access

Authentication, statement execution and the deployment connection for Databricks
SQL warehouses. Warehouses auto-commit every statement, so units running here take
the unwrapped path of the deployer.
"""

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Optional

from databricks.sdk import WorkspaceClient
from databricks.sdk.service.sql import StatementParameterListItem, StatementState

from deployversion.domain.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

_EXPECTED_NOT_FOUND_PATTERNS = (
    "not found",
    "does not exist",
    "table_or_view_not_found",
    "schema_not_found",
    "cannot be found",
)


def is_expected_not_found_error(message: str) -> bool:
    """Return True if the error message indicates catalog/schema/table not found."""
    lower = message.lower()
    return any(p in lower for p in _EXPECTED_NOT_FOUND_PATTERNS)


class StatementExecutionError(RuntimeError):
    """Raised when a statement finishes in FAILED/CANCELED state"""

    def __init__(self, message: str, not_found: bool = False):
        super().__init__(message)
        self.not_found = not_found


def create_databricks_client(profile: Optional[str] = None) -> WorkspaceClient:
    """Create authenticated Databricks client

    Authentication priority:
    1. Profile from ~/.databrickscfg (if profile specified)
    2. Environment variables (DATABRICKS_HOST, DATABRICKS_TOKEN)
    3. Default profile from ~/.databrickscfg

    Raises:
        StoreUnavailableError: If authentication fails or credentials not found
    """
    try:
        client = WorkspaceClient(profile=profile) if profile else WorkspaceClient()
        client.current_user.me()
        return client
    except Exception as e:
        where = f"profile '{profile}'" if profile else "default credentials"
        raise StoreUnavailableError(
            message=f"Databricks authentication failed using {where}: {e}",
            code="auth_failed",
        ) from e


class DatabricksStatementExecutor:
    """Execute SQL statements on a warehouse and wait for completion

    Attributes:
        client: Authenticated Databricks WorkspaceClient
        warehouse_id: SQL warehouse ID for execution
    """

    def __init__(
        self,
        client: WorkspaceClient,
        warehouse_id: str,
        max_wait: int = 60,
        poll_interval: float = 1.0,
    ):
        self.client = client
        self.warehouse_id = warehouse_id
        self.max_wait = max_wait
        self.poll_interval = poll_interval

    def execute(self, sql: str, parameters: dict[str, Any] | None = None) -> list[list[Any]]:
        """Execute a statement and return its rows (empty for DDL/DML)

        Args:
            sql: Statement, with ``:name`` markers for parameters
            parameters: Named parameter values (None binds NULL)

        Raises:
            StatementExecutionError: If the statement fails or is canceled
            TimeoutError: If the statement does not finish within ``max_wait`` seconds
        """
        response = self.client.statement_execution.execute_statement(
            warehouse_id=self.warehouse_id,
            statement=sql,
            wait_timeout="30s",
            parameters=self._parameters(parameters),
        )

        elapsed = 0.0
        while True:
            state = response.status.state if response.status else None
            if state == StatementState.SUCCEEDED:
                break
            if state in (StatementState.FAILED, StatementState.CANCELED, StatementState.CLOSED):
                error = response.status.error if response.status else None
                error_msg = (getattr(error, "message", None) or "Unknown error").strip()
                raise StatementExecutionError(
                    f"Statement failed: {error_msg}",
                    not_found=is_expected_not_found_error(error_msg),
                )
            if elapsed >= self.max_wait:
                raise TimeoutError(f"Statement timed out after {self.max_wait} seconds")
            time.sleep(self.poll_interval)
            elapsed += self.poll_interval
            response = self.client.statement_execution.get_statement(response.statement_id or "")

        if not response.result or not response.result.data_array:
            return []
        return [list(row) for row in response.result.data_array]

    @staticmethod
    def _parameters(parameters: dict[str, Any] | None) -> list[StatementParameterListItem] | None:
        if not parameters:
            return None
        items = []
        for name, value in parameters.items():
            if isinstance(value, tuple):
                value, type_name = value
                items.append(
                    StatementParameterListItem(
                        name=name, value=None if value is None else str(value), type=type_name
                    )
                )
            else:
                items.append(
                    StatementParameterListItem(name=name, value=None if value is None else str(value))
                )
        return items


class DatabricksConnection:
    """Deployment connection for a Databricks SQL warehouse (no transactional DDL)"""

    def __init__(self, executor: DatabricksStatementExecutor):
        self.executor = executor

    @property
    def name(self) -> str:
        return "databricks"

    def supports_schema_transactions(self) -> bool:
        return False

    def transaction(self) -> Any:
        """Never called: supports_schema_transactions() is False, so units run unwrapped"""
        raise NotImplementedError("Databricks SQL warehouses do not support transactions")

    @contextmanager
    def unwrapped(self) -> Iterator[DatabricksStatementExecutor]:
        yield self.executor
