"""
Unit tests for version rendering and release-note queries
"""

import hashlib
from datetime import UTC, datetime
from unittest.mock import Mock

import pytest

from deployversion.core.version_service import VersionService
from tests.utils import make_record


def _ledger(records):
    ledger = Mock()
    ledger.exists.return_value = True
    ledger.all.return_value = records
    return ledger


@pytest.fixture
def alpha_service():
    record = make_record("launch", "2.1.0", pre_release="alpha", build="8752f75")
    return VersionService(_ledger([record]))


class TestRendering:
    def test_short(self, alpha_service):
        assert alpha_service.short() == "v2.1.0-alpha"

    def test_full(self, alpha_service):
        assert alpha_service.full() == "v2.1.0-alpha+8752f75"

    def test_long(self, alpha_service):
        assert alpha_service.long() == "Version 2.1.0-alpha (build 8752f75)"

    def test_release(self, alpha_service):
        assert alpha_service.release() == "2.1.0-alpha"

    @pytest.mark.parametrize(
        "fmt,expected",
        [
            ("release", "2.1.0-alpha"),
            ("short", "v2.1.0-alpha"),
            ("full", "v2.1.0-alpha+8752f75"),
            ("long", "Version 2.1.0-alpha (build 8752f75)"),
        ],
    )
    def test_version_dispatch(self, alpha_service, fmt, expected):
        assert alpha_service.version(fmt) == expected

    def test_unknown_format(self, alpha_service):
        with pytest.raises(ValueError, match="Unknown version format"):
            alpha_service.version("tiny")

    def test_without_pre_release(self):
        service = VersionService(_ledger([make_record("a", "1.0.0", build="abc1234")]))
        assert service.short() == "v1.0.0"
        assert service.long() == "Version 1.0.0 (build abc1234)"

    def test_latest_uses_numeric_order(self):
        service = VersionService(
            _ledger([make_record("two", "2.0.0"), make_record("ten", "10.0.0")])
        )
        assert service.short() == "v10.0.0"

    def test_date(self):
        deployed_at = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)
        service = VersionService(_ledger([make_record("a", "1.0.0", deployed_at=deployed_at)]))
        assert service.date() == deployed_at


class TestFallback:
    def test_missing_ledger_uses_starting_version(self):
        ledger = Mock()
        ledger.exists.return_value = False
        service = VersionService(ledger, starting_version="1.0.0-beta")

        assert service.short() == "v1.0.0-beta"
        ledger.all.assert_not_called()

    def test_empty_ledger_uses_starting_version(self):
        service = VersionService(_ledger([]), starting_version="0.3.0")
        expected_build = hashlib.sha1(b"VersionService").hexdigest()[:7]

        assert service.full() == f"v0.3.0+{expected_build}"
        assert service.latest.release_notes == []
        assert service.date() is not None


class TestCaching:
    def test_records_cached_until_fresh(self):
        ledger = _ledger([make_record("a", "1.0.0")])
        service = VersionService(ledger)
        assert service.short() == "v1.0.0"

        ledger.all.return_value = [make_record("b", "1.1.0"), make_record("a", "1.0.0")]
        assert service.short() == "v1.0.0"
        assert service.fresh().short() == "v1.1.0"
        assert ledger.all.call_count == 2


class TestReleaseNotes:
    @pytest.fixture
    def service(self):
        records = [
            make_record("c", "2.0.0", release_notes=["Two"]),
            make_record("b", "1.1.0", release_notes=["One one"]),
            make_record("a", "1.0.0", release_notes=["Initial Release"]),
        ]
        return VersionService(_ledger(records))

    def test_all_latest_first(self, service):
        notes = service.release_notes("all")
        assert list(notes.items()) == [
            ("2.0.0", ["Two"]),
            ("1.1.0", ["One one"]),
            ("1.0.0", ["Initial Release"]),
        ]

    def test_major(self, service):
        assert service.release_notes("major") == {"2.0.0": ["Two"]}

    def test_single(self, service):
        assert service.release_notes("single") == {"2.0.0": ["Two"]}

    def test_minor(self):
        records = [
            make_record("d", "1.1.2", pre_release="rc.1", release_notes=["Fix"]),
            make_record("c", "1.1.1", release_notes=["Patch"]),
            make_record("b", "1.1.0", release_notes=["Minor"]),
            make_record("a", "1.0.0", release_notes=["Initial Release"]),
        ]
        notes = VersionService(_ledger(records)).release_notes("minor")
        assert list(notes) == ["1.1.2-rc.1", "1.1.1", "1.1.0"]

    def test_structured_notes_kept_verbatim(self):
        notes = {"features": ["a"], "fixes": []}
        service = VersionService(_ledger([make_record("a", "1.0.0", release_notes=notes)]))
        assert service.release_notes("single") == {"1.0.0": notes}

    def test_unknown_level(self, service):
        with pytest.raises(ValueError, match="Unknown release-notes level"):
            service.release_notes("patch")
