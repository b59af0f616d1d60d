"""
Version Query Service

Read-only view of the ledger: the current version as short/full/long strings and
release notes grouped by version. When the ledger is empty or not provisioned the
configured starting version stands in as a single fallback record.
"""

import hashlib
from datetime import UTC, datetime
from typing import Any, Literal

from deployversion.models import DeploymentRecord

from .ledger import LedgerStore, pick_latest
from .version import split_version_label

VersionFormat = Literal["release", "short", "full", "long"]
NotesLevel = Literal["all", "major", "minor", "single"]

VERSION_FORMATS: tuple[str, ...] = ("release", "short", "full", "long")
NOTES_LEVELS: tuple[str, ...] = ("all", "major", "minor", "single")


class VersionService:
    """Answer "what version are we at" from the deployment ledger

    Records are read on first use and cached until ``fresh()`` is called.
    """

    def __init__(self, ledger: LedgerStore, starting_version: str = "0.0.0") -> None:
        self.ledger = ledger
        self.starting_version = starting_version
        self._records: list[DeploymentRecord] | None = None

    def fresh(self) -> "VersionService":
        """Drop cached records so the next query re-reads the ledger"""
        self._records = None
        return self

    @property
    def records(self) -> list[DeploymentRecord]:
        if self._records is None:
            self._records = self._load()
        return self._records

    @property
    def latest(self) -> DeploymentRecord:
        return pick_latest(self.records) or self.fallback_record()

    def release(self) -> str:
        """
        Example:
            2.1.0-alpha
        """
        return self.latest.release

    def short(self) -> str:
        """
        Example:
            v2.1.0-alpha
        """
        return f"v{self.release()}"

    def full(self) -> str:
        """
        Example:
            v2.1.0-alpha+8752f75
        """
        return f"{self.short()}+{self.latest.build or ''}"

    def long(self) -> str:
        """
        Example:
            Version 2.1.0-alpha (build 8752f75)
        """
        return f"Version {self.release()} (build {self.latest.build or ''})"

    def version(self, fmt: VersionFormat = "short") -> str:
        """Latest version rendered as "release", "short", "full" or "long" """
        renderers = {
            "release": self.release,
            "short": self.short,
            "full": self.full,
            "long": self.long,
        }
        if fmt not in renderers:
            raise ValueError(f"Unknown version format '{fmt}'. Expected one of {VERSION_FORMATS}")
        return renderers[fmt]()

    def date(self) -> datetime | None:
        """When the latest version was deployed"""
        return self.latest.deployed_at

    def release_notes(self, level: NotesLevel = "all") -> dict[str, Any]:
        """Release notes keyed by version label, latest first

        Levels:
            all: every record
            major: records on the latest major line (2.x.x)
            minor: records on the latest minor line (2.1.x)
            single: the latest record only
        """
        if level not in NOTES_LEVELS:
            raise ValueError(
                f"Unknown release-notes level '{level}'. Expected one of {NOTES_LEVELS}"
            )

        current = self.latest.semantic_version
        if level == "single":
            selected = [self.latest]
        elif level == "major":
            selected = [r for r in self.records if r.semantic_version.major == current.major]
        elif level == "minor":
            selected = [
                r
                for r in self.records
                if r.semantic_version.major == current.major
                and r.semantic_version.minor == current.minor
            ]
        else:
            selected = list(self.records)

        notes: dict[str, Any] = {}
        for record in selected:
            notes.setdefault(record.release, record.release_notes)
        return notes

    def _load(self) -> list[DeploymentRecord]:
        if self.ledger.exists():
            records = self.ledger.all()
            if records:
                return records
        return [self.fallback_record()]

    def fallback_record(self) -> DeploymentRecord:
        """Stand-in record built from the starting version (e.g. "1.0.0-beta")"""
        version, pre_release = split_version_label(self.starting_version)
        build = hashlib.sha1(type(self).__name__.encode("utf-8")).hexdigest()[:7]
        return DeploymentRecord(
            deployment="",
            version=str(version),
            pre_release=pre_release,
            build=build,
            release_notes=[],
            deployed_at=datetime.now(UTC),
        )
