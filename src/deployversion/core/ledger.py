"""
Deployment Ledger

Contract for the append-only table of executed deployments, plus the ordering rules
every backend shares. Ordering happens on parsed semantic versions in Python so that
"10.0.0" sorts above "2.0.0" regardless of how the store sorts strings.
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Protocol

from deployversion.models import DeploymentRecord

DEFAULT_TABLE = "deployments"

_EARLIEST = datetime.min


class LedgerStore(Protocol):
    """Durable, append-only record of executed deployment units."""

    def exists(self) -> bool: ...

    def create(self) -> None: ...

    def ran(self) -> list[str]: ...

    def latest(self) -> DeploymentRecord | None: ...

    def all(self, *, major: int | None = None, minor: int | None = None) -> list[DeploymentRecord]: ...

    def append(self, record: DeploymentRecord) -> DeploymentRecord: ...


def order_ran(records: Iterable[DeploymentRecord]) -> list[str]:
    """Identifiers ordered by (version desc, identifier asc)."""
    ordered = sorted(records, key=lambda r: r.deployment)
    ordered.sort(key=lambda r: r.semantic_version.key, reverse=True)
    return [record.deployment for record in ordered]


def order_history(records: Iterable[DeploymentRecord]) -> list[DeploymentRecord]:
    """Records ordered by (version desc, deployed_at desc, identifier desc)."""
    return sorted(
        records,
        key=lambda r: (r.semantic_version.key, _naive(r.deployed_at), r.deployment),
        reverse=True,
    )


def pick_latest(records: Iterable[DeploymentRecord]) -> DeploymentRecord | None:
    """Highest version; ties broken by identifier descending."""
    return max(records, key=lambda r: (r.semantic_version.key, r.deployment), default=None)


def filter_by_version(
    records: Iterable[DeploymentRecord], major: int | None = None, minor: int | None = None
) -> list[DeploymentRecord]:
    selected = []
    for record in records:
        version = record.semantic_version
        if major is not None and version.major != major:
            continue
        if minor is not None and version.minor != minor:
            continue
        selected.append(record)
    return selected


def _naive(value: datetime | None) -> datetime:
    if value is None:
        return _EARLIEST
    return value.replace(tzinfo=None)
