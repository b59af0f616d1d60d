"""
Deployment Scanner

Finds deployment unit files named ``YYYY_MM_DD_HHMMSS_<identifier>.py`` and orders
them chronologically (the timestamp prefix makes filename order creation order).
"""

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from deployversion.domain.errors import DuplicateIdentifierError

logger = logging.getLogger(__name__)

UNIT_SUFFIX = ".py"
TIMESTAMP_FORMAT = "%Y_%m_%d_%H%M%S"
FILENAME_PATTERN = re.compile(r"^(?P<timestamp>\d{4}_\d{2}_\d{2}_\d{6})_(?P<identifier>.+)$")


@dataclass(frozen=True)
class UnitFile:
    """A discovered deployment unit file"""

    identifier: str
    path: Path

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def timestamp(self) -> str:
        return self.path.stem[: len("YYYY_MM_DD_HHMMSS")]


def parse_identifier(path: Path | str) -> str | None:
    """Identifier for a unit file (stem minus the timestamp prefix), or None if unnamed

    Example:
        >>> parse_identifier("deployments/2020_01_01_000000_add_users.py")
        'add_users'
    """
    match = FILENAME_PATTERN.match(Path(path).stem)
    return match.group("identifier") if match else None


def discover(paths: Path | str | Iterable[Path | str]) -> list[UnitFile]:
    """Find deployment unit files at one or more directories

    Missing directories are skipped. Files are ordered by their full filename.

    Raises:
        DuplicateIdentifierError: If two files normalize to the same identifier
    """
    if isinstance(paths, (str, Path)):
        paths = [paths]

    candidates: list[Path] = []
    for directory in map(Path, paths):
        if not directory.is_dir():
            logger.debug("Deployment path %s does not exist, skipping", directory)
            continue
        candidates.extend(p for p in directory.glob(f"*_*{UNIT_SUFFIX}") if p.is_file())

    found: dict[str, UnitFile] = {}
    for path in sorted(candidates, key=lambda p: (p.name, str(p))):
        identifier = parse_identifier(path)
        if identifier is None:
            continue
        if identifier in found:
            raise DuplicateIdentifierError(
                message=(
                    f"Deployment files '{found[identifier].path}' and '{path}' "
                    f"both resolve to identifier '{identifier}'"
                ),
                code="duplicate_identifier",
            )
        found[identifier] = UnitFile(identifier=identifier, path=path)

    logger.debug("Discovered %d deployment file(s)", len(found))
    return list(found.values())


def pending(discovered: Sequence[UnitFile], ran: Iterable[str]) -> list[UnitFile]:
    """Discovered units not yet in the ledger, in discovery order"""
    completed = set(ran)
    return [unit for unit in discovered if unit.identifier not in completed]
