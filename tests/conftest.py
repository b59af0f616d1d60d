from pathlib import Path

import pytest

from deployversion.core.connection import SQLAlchemyConnection, create_ledger_engine
from deployversion.core.sql_ledger import SQLLedgerStore
from tests.utils import CountingMigrations, FakeRevision, FakeShell


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite engine"""
    engine = create_ledger_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def ledger(engine):
    """Provisioned SQL ledger"""
    store = SQLLedgerStore(engine)
    store.create()
    return store


@pytest.fixture
def connection(engine):
    return SQLAlchemyConnection(engine)


@pytest.fixture
def deployments_dir(tmp_path):
    path = tmp_path / "deployments"
    path.mkdir()
    return path


@pytest.fixture
def touch_unit(deployments_dir):
    """Create an (empty) unit file: touch_unit("2020_01_01_000000", "a")"""

    def _touch(timestamp: str, identifier: str, body: str = "") -> Path:
        path = deployments_dir / f"{timestamp}_{identifier}.py"
        path.write_text(body)
        return path

    return _touch


@pytest.fixture
def shell():
    return FakeShell()


@pytest.fixture
def revision():
    return FakeRevision()


@pytest.fixture
def migrations():
    return CountingMigrations()
