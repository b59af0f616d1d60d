"""
Deployment Creator

Scaffolds new deployment unit files. A unit file is named after its creation time so
that filename order is deployment order:

    2024_03_01_120000_add_users_table.py  ->  class AddUsersTable(Deployment)
"""

import logging
import re
from datetime import UTC, datetime
from pathlib import Path

from deployversion.domain.errors import CreatorError

from .scanner import TIMESTAMP_FORMAT, UNIT_SUFFIX, discover
from .units import studly
from .version import validate_pre_release

logger = logging.getLogger(__name__)

INITIAL_RELEASE_NOTE = "Initial Release"

UNIT_TEMPLATE = '''"""
{class_name} deployment
"""

from deployversion import Deployment


class {class_name}(Deployment):
{attributes}
    def deploy(self, connection):
        """Run the deployment"""
'''


def snake_case(name: str) -> str:
    """Normalize a unit name ("AddUsersTable", "add-users table" -> "add_users_table")"""
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name.strip())
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    name = re.sub(r"[^0-9A-Za-z]+", "_", name)
    return name.strip("_").lower()


class DeploymentCreator:
    """Write new deployment unit files into a deployments directory"""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def create(
        self,
        name: str,
        *,
        major: bool = False,
        minor: bool = False,
        patch: bool = False,
        pre: str | None = None,
        migrate: bool = False,
        now: datetime | None = None,
    ) -> Path:
        """
        Create a unit file and return its path

        Raises:
            CreatorError: Empty name, conflicting bump flags, invalid pre-release tag,
                or a unit with the same identifier already in the directory
        """
        identifier = snake_case(name)
        if not identifier:
            raise CreatorError(message=f"Invalid deployment name '{name}'", code="invalid_name")

        if sum((major, minor, patch)) > 1:
            raise CreatorError(
                message="Only one of --major, --minor and --patch may be given",
                code="conflicting_bump",
            )

        if pre is not None:
            try:
                validate_pre_release(pre)
            except ValueError as e:
                raise CreatorError(message=str(e), code="invalid_pre_release") from e

        existing = discover(self.path)
        if any(unit.identifier == identifier for unit in existing):
            raise CreatorError(
                message=f"A deployment named '{identifier}' already exists in {self.path}",
                code="already_exists",
            )

        notes: list[str] = []
        if major and not existing:
            notes.append(INITIAL_RELEASE_NOTE)

        class_name = studly(identifier)
        if not class_name[:1].isalpha():
            class_name = f"Deployment{class_name}"

        stamp = (now or datetime.now(UTC)).strftime(TIMESTAMP_FORMAT)
        target = self.path / f"{stamp}_{identifier}{UNIT_SUFFIX}"

        content = UNIT_TEMPLATE.format(
            class_name=class_name,
            attributes=self._attributes(
                major=major, minor=minor, patch=patch, pre=pre, migrate=migrate, notes=notes
            ),
        )

        self.path.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        logger.info("Created deployment %s", target)
        return target

    @staticmethod
    def _attributes(
        *,
        major: bool,
        minor: bool,
        patch: bool,
        pre: str | None,
        migrate: bool,
        notes: list[str],
    ) -> str:
        lines = []
        if major:
            lines.append("major = True")
        elif minor:
            lines.append("minor = True")
        elif patch:
            lines.append("patch = True")
        if pre:
            lines.append(f"pre_release = {pre!r}")
        if migrate:
            lines.append("migrate = True")
        lines.append(f"release_notes = {notes!r}")
        return "".join(f"    {line}\n" for line in lines) + "\n"
