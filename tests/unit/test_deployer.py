"""
Unit tests for the Deployer run-cycle
"""

from unittest.mock import MagicMock, Mock

import pytest
from sqlalchemy import inspect, text

from deployversion.core.collaborators import ShellResult
from deployversion.core.deployer import NOTHING_TO_DEPLOY, Deployer, RunnerState
from deployversion.core.units import Deployment, UnitLoader, UnitRegistry
from deployversion.domain.errors import (
    ActionFailure,
    DuplicateDeploymentError,
    ResolutionError,
    StoreUnavailableError,
)
from tests.utils import FakeRevision, FakeShell


class Major(Deployment):
    major = True
    release_notes = ["Initial Release"]


class Patch(Deployment):
    pass


class Minor(Deployment):
    minor = True
    pre_release = "beta"


class Migrating(Deployment):
    migrate = True


class Exploding(Deployment):
    def deploy(self, connection):
        raise RuntimeError("kaboom")


@pytest.fixture
def registry():
    registry = UnitRegistry()
    registry.register("a", Major)
    registry.register("b", Patch)
    registry.register("c", Minor)
    return registry


@pytest.fixture
def three_units(touch_unit):
    touch_unit("2020_01_01_000000", "a")
    touch_unit("2020_01_02_000000", "b")
    touch_unit("2020_01_03_000000", "c")


@pytest.fixture
def deployer(ledger, connection, registry, revision):
    return Deployer(ledger, connection, registry, revision_lookup=revision)


class TestRunCycle:
    def test_runs_pending_units_in_order(self, deployer, ledger, deployments_dir, three_units):
        result = deployer.run(deployments_dir)

        assert result.executed == ["a", "b", "c"]
        assert result.executed_count == 3
        assert [(r.deployment, r.release) for r in ledger.all()] == [
            ("c", "1.1.0-beta"),
            ("b", "1.0.1"),
            ("a", "1.0.0"),
        ]
        assert ledger.latest().build == "8752f75"
        assert ledger.all()[-1].release_notes == ["Initial Release"]

    @pytest.mark.parametrize("notes", ["2024", "true", "[1]", {"fixes": ["x"]}])
    def test_release_notes_stored_verbatim(
        self, ledger, connection, deployments_dir, touch_unit, notes
    ):
        class Hotfix(Deployment):
            release_notes = notes

        registry = UnitRegistry()
        registry.register("hotfix", Hotfix)
        touch_unit("2020_01_01_000000", "hotfix")

        Deployer(ledger, connection, registry).run(deployments_dir)

        assert ledger.latest().release_notes == notes

    def test_notes(self, deployer, deployments_dir, touch_unit):
        touch_unit("2020_01_01_000000", "a")
        result = deployer.run(deployments_dir)
        assert result.notes == ["Deploying: a", "Deployed: a"]
        assert deployer.notes == result.notes

    def test_second_cycle_is_a_noop(self, deployer, ledger, deployments_dir, three_units):
        deployer.run(deployments_dir)
        result = deployer.run(deployments_dir)

        assert result.executed == []
        assert result.notes == [NOTHING_TO_DEPLOY]
        assert len(ledger.all()) == 3

    def test_logged_units_are_never_reselected(
        self, deployer, ledger, deployments_dir, touch_unit
    ):
        touch_unit("2020_01_01_000000", "a")
        deployer.run(deployments_dir)

        touch_unit("2020_01_02_000000", "b")
        result = deployer.run(deployments_dir)

        assert result.executed == ["b"]
        assert sorted(ledger.ran()) == ["a", "b"]

    def test_empty_directory(self, deployer, deployments_dir):
        result = deployer.run(deployments_dir)
        assert result.executed == []
        assert result.notes == [NOTHING_TO_DEPLOY]

    def test_state_returns_to_idle(self, deployer, deployments_dir, three_units):
        deployer.run(deployments_dir)
        assert deployer.state is RunnerState.IDLE

    def test_starting_version_when_ledger_empty(
        self, ledger, connection, registry, deployments_dir, touch_unit
    ):
        touch_unit("2020_01_02_000000", "b")
        deployer = Deployer(ledger, connection, registry, starting_version="1.4.0-beta")
        deployer.run(deployments_dir)
        assert ledger.latest().version == "1.4.1"

    def test_repository_helpers(self, engine, connection, registry):
        from deployversion.core.sql_ledger import SQLLedgerStore

        deployer = Deployer(SQLLedgerStore(engine), connection, registry)
        assert deployer.repository_exists() is False
        deployer.create_repository()
        assert deployer.repository_exists() is True


class TestFailures:
    def test_unresolvable_unit_aborts_cycle(
        self, ledger, connection, registry, deployments_dir, touch_unit
    ):
        touch_unit("2020_01_01_000000", "a")
        touch_unit("2020_01_02_000000", "unknown")
        touch_unit("2020_01_03_000000", "b")
        deployer = Deployer(ledger, connection, registry)

        with pytest.raises(ResolutionError):
            deployer.run(deployments_dir)
        assert ledger.ran() == ["a"]
        assert deployer.state is RunnerState.IDLE

    def test_failed_action_aborts_remaining_queue(
        self, ledger, connection, registry, deployments_dir, touch_unit
    ):
        registry.register("boom", Exploding)
        touch_unit("2020_01_01_000000", "a")
        touch_unit("2020_01_02_000000", "boom")
        touch_unit("2020_01_03_000000", "b")
        deployer = Deployer(ledger, connection, registry)

        with pytest.raises(ActionFailure) as exc_info:
            deployer.run(deployments_dir)

        assert exc_info.value.rolled_back is True
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert ledger.ran() == ["a"]
        assert "Deployed: a" in deployer.notes
        assert "Deployed: boom" not in deployer.notes

    def test_transactional_rollback_then_retry(
        self, engine, ledger, connection, deployments_dir, touch_unit
    ):
        with engine.begin() as conn:
            conn.execute(text("CREATE TABLE items (name VARCHAR(50))"))

        broken = {"active": True}

        class SeedItems(Deployment):
            def deploy(self, connection):
                connection.execute(text("INSERT INTO items (name) VALUES ('first')"))
                if broken["active"]:
                    raise RuntimeError("half way")
                connection.execute(text("INSERT INTO items (name) VALUES ('second')"))

        registry = UnitRegistry()
        registry.register("seed_items", SeedItems)
        touch_unit("2020_01_01_000000", "seed_items")
        deployer = Deployer(ledger, connection, registry)

        with pytest.raises(ActionFailure):
            deployer.run(deployments_dir)
        with engine.connect() as conn:
            assert conn.execute(text("SELECT COUNT(*) FROM items")).scalar() == 0
        assert ledger.ran() == []

        broken["active"] = False
        deployer.run(deployments_dir)
        with engine.connect() as conn:
            assert conn.execute(text("SELECT COUNT(*) FROM items")).scalar() == 2
        assert ledger.ran() == ["seed_items"]

    def test_schema_change_rolled_back_then_retry(
        self, engine, ledger, connection, deployments_dir, touch_unit
    ):
        broken = {"active": True}

        class CreateWidgets(Deployment):
            def deploy(self, connection):
                connection.execute(text("CREATE TABLE widgets (name VARCHAR(50))"))
                if broken["active"]:
                    raise RuntimeError("half way")

        registry = UnitRegistry()
        registry.register("create_widgets", CreateWidgets)
        touch_unit("2020_01_01_000000", "create_widgets")
        deployer = Deployer(ledger, connection, registry)

        with pytest.raises(ActionFailure) as exc_info:
            deployer.run(deployments_dir)
        assert exc_info.value.rolled_back is True
        assert not inspect(engine).has_table("widgets")
        assert ledger.ran() == []

        broken["active"] = False
        deployer.run(deployments_dir)
        assert inspect(engine).has_table("widgets")
        assert ledger.ran() == ["create_widgets"]

    def test_unwrapped_failure_is_not_rolled_back(
        self, engine, ledger, connection, deployments_dir, touch_unit
    ):
        with engine.begin() as conn:
            conn.execute(text("CREATE TABLE items (name VARCHAR(50))"))

        class Unwrapped(Deployment):
            within_transaction = False

            def deploy(self, connection):
                connection.execute(text("INSERT INTO items (name) VALUES ('kept')"))
                raise RuntimeError("half way")

        registry = UnitRegistry()
        registry.register("unwrapped", Unwrapped)
        touch_unit("2020_01_01_000000", "unwrapped")

        with pytest.raises(ActionFailure) as exc_info:
            Deployer(ledger, connection, registry).run(deployments_dir)

        assert exc_info.value.rolled_back is False
        with engine.connect() as conn:
            assert conn.execute(text("SELECT COUNT(*) FROM items")).scalar() == 1
        assert ledger.ran() == []

    def test_non_transactional_connection(self, ledger, registry, deployments_dir, touch_unit):
        handle = Mock()
        connection = MagicMock()
        connection.name = "databricks"
        connection.supports_schema_transactions.return_value = False
        connection.unwrapped.return_value.__enter__.return_value = handle
        connection.unwrapped.return_value.__exit__.return_value = False
        touch_unit("2020_01_01_000000", "a")

        Deployer(ledger, connection, registry).run(deployments_dir)

        connection.transaction.assert_not_called()
        connection.unwrapped.assert_called_once()
        assert ledger.ran() == ["a"]

    def test_append_failure_leaves_unit_pending(
        self, connection, registry, deployments_dir, touch_unit
    ):
        touch_unit("2020_01_01_000000", "a")
        ledger = Mock()
        ledger.ran.return_value = []
        ledger.latest.return_value = None
        ledger.append.side_effect = DuplicateDeploymentError(
            message="Deployment 'a' is already logged", code="duplicate_deployment"
        )

        deployer = Deployer(ledger, connection, registry)
        with pytest.raises(DuplicateDeploymentError):
            deployer.run(deployments_dir)
        assert "Deployed: a" not in deployer.notes

    def test_store_failure_propagates(self, connection, registry, deployments_dir, touch_unit):
        touch_unit("2020_01_01_000000", "a")
        ledger = Mock()
        ledger.ran.side_effect = StoreUnavailableError(message="down", code="store_unavailable")
        with pytest.raises(StoreUnavailableError):
            Deployer(ledger, connection, registry).run(deployments_dir)

    def test_build_lookup_failure_is_not_fatal(
        self, ledger, connection, registry, deployments_dir, touch_unit
    ):
        revision = Mock()
        revision.short_revision.side_effect = RuntimeError("no git")
        touch_unit("2020_01_01_000000", "a")

        Deployer(ledger, connection, registry, revision_lookup=revision).run(deployments_dir)

        assert ledger.latest().build == ""


class TestMigrations:
    def test_migrations_run_once_per_cycle(
        self, ledger, connection, migrations, deployments_dir, touch_unit
    ):
        registry = UnitRegistry()
        registry.register("m1", Migrating)
        registry.register("plain", Patch)
        registry.register("m2", Migrating)
        touch_unit("2020_01_01_000000", "m1")
        touch_unit("2020_01_02_000000", "plain")
        touch_unit("2020_01_03_000000", "m2")

        Deployer(ledger, connection, registry, migration_runner=migrations).run(deployments_dir)
        assert migrations.calls == 1

    def test_no_migrations_without_flag(
        self, ledger, connection, registry, migrations, deployments_dir, three_units
    ):
        Deployer(ledger, connection, registry, migration_runner=migrations).run(deployments_dir)
        assert migrations.calls == 0

    def test_migration_failure_aborts_before_action(
        self, ledger, connection, deployments_dir, touch_unit
    ):
        runner = Mock()
        runner.run_migrations.side_effect = ActionFailure(
            message="Migrations failed", code="migration_failed"
        )
        registry = UnitRegistry()
        registry.register("m1", Migrating)
        touch_unit("2020_01_01_000000", "m1")

        with pytest.raises(ActionFailure):
            Deployer(ledger, connection, registry, migration_runner=runner).run(deployments_dir)
        assert ledger.ran() == []


class TestFinalize:
    def test_cache_invalidators_then_commands(
        self, ledger, connection, registry, deployments_dir, touch_unit
    ):
        calls = []
        invalidator = Mock()
        invalidator.invalidate.side_effect = lambda: calls.append("cache")
        shell = FakeShell()
        touch_unit("2020_01_01_000000", "a")

        result = Deployer(
            ledger,
            connection,
            registry,
            cache_invalidators=[invalidator, invalidator],
            shell=shell,
            post_deploy_commands=["npm run build", "php artisan view:clear"],
        ).run(deployments_dir)

        assert calls == ["cache", "cache"]
        assert shell.commands == ["npm run build", "php artisan view:clear"]
        assert result.notes[-2:] == ["Ran: npm run build", "Ran: php artisan view:clear"]

    def test_nothing_to_finalize_when_nothing_ran(self, deployer, deployments_dir):
        invalidator = Mock()
        deployer.cache_invalidators = [invalidator]
        deployer.run(deployments_dir)
        invalidator.invalidate.assert_not_called()

    def test_source_control_skipped_locally(
        self, ledger, connection, registry, deployments_dir, touch_unit
    ):
        shell = FakeShell()
        touch_unit("2020_01_01_000000", "a")

        result = Deployer(
            ledger,
            connection,
            registry,
            shell=shell,
            post_deploy_commands=["git pull origin main", "make assets"],
            environment="local",
        ).run(deployments_dir)

        assert shell.commands == ["make assets"]
        assert "Skipped in local environment: git pull origin main" in result.notes

    def test_source_control_runs_in_production(
        self, ledger, connection, registry, deployments_dir, touch_unit
    ):
        shell = FakeShell()
        touch_unit("2020_01_01_000000", "a")

        Deployer(
            ledger,
            connection,
            registry,
            shell=shell,
            post_deploy_commands=["git pull origin main"],
        ).run(deployments_dir)

        assert shell.commands == ["git pull origin main"]

    def test_command_failure_becomes_note(
        self, ledger, connection, registry, deployments_dir, touch_unit
    ):
        shell = FakeShell({"make assets": ShellResult(exit_code=2, output="missing target")})
        touch_unit("2020_01_01_000000", "a")

        result = Deployer(
            ledger,
            connection,
            registry,
            shell=shell,
            post_deploy_commands=["make assets", "echo done"],
        ).run(deployments_dir)

        assert "Command failed (exit 2): make assets" in result.notes
        assert shell.commands == ["make assets", "echo done"]
        assert ledger.ran() == ["a"]

    def test_failing_invalidator_is_not_fatal(
        self, ledger, connection, registry, deployments_dir, touch_unit
    ):
        invalidator = Mock()
        invalidator.invalidate.side_effect = RuntimeError("cache down")
        touch_unit("2020_01_01_000000", "a")

        result = Deployer(
            ledger, connection, registry, cache_invalidators=[invalidator]
        ).run(deployments_dir)
        assert result.executed == ["a"]

    def test_commands_without_shell(self, ledger, connection, registry, deployments_dir, touch_unit):
        touch_unit("2020_01_01_000000", "a")
        result = Deployer(
            ledger, connection, registry, post_deploy_commands=["echo hi"]
        ).run(deployments_dir)
        assert "Skipped (no shell configured): echo hi" in result.notes


def test_lazy_loading_from_files(ledger, connection, deployments_dir, touch_unit):
    touch_unit(
        "2020_01_01_000000",
        "first_release",
        "from deployversion import Deployment\n\n"
        "class FirstRelease(Deployment):\n"
        "    major = True\n"
        "    release_notes = ['Initial Release']\n",
    )
    registry = UnitRegistry()
    deployer = Deployer(
        ledger, connection, registry, loader=UnitLoader(registry), revision_lookup=FakeRevision()
    )

    deployer.run(deployments_dir)

    assert ledger.latest().release == "1.0.0"
    assert registry.has("first_release")
