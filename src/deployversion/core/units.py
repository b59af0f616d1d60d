"""
Deployment Units

A deployment unit is one versioned change package: metadata describing how it moves
the project version, plus a ``deploy`` action. Units are looked up by identifier in a
UnitRegistry, which the UnitLoader fills from unit files on disk.
"""

import copy
import importlib.util
import logging
import re
import sys
from collections.abc import Callable, Iterable
from types import ModuleType
from typing import Any, ClassVar

from deployversion.domain.errors import ResolutionError, UnitDefinitionError

from .scanner import UnitFile
from .version import BumpKind, validate_pre_release

logger = logging.getLogger(__name__)

UNIT_MODULE_PREFIX = "deployversion_unit_"


class Deployment:
    """Base class for deployment units

    Subclasses describe a release:

    - ``major``: backwards incompatible changes. Resets minor and patch (1.2.3 -> 2.0.0).
    - ``minor``: backwards compatible functionality. Resets patch (1.2.3 -> 1.3.0).
    - ``patch``: backwards compatible bug fixes (1.2.3 -> 1.2.4). The default when
      none of the three is set.
    - ``pre_release``: tag such as "alpha" or "rc.1" (no leading hyphen), applied to
      this deployment's version only.
    - ``migrate``: schema migrations must run before ``deploy``.
    - ``release_notes``: any JSON-serializable value stored verbatim in the ledger.
    - ``within_transaction``: set False to opt out of the transaction wrapper.

    The build identifier is always taken from the VCS at deploy time.
    """

    major: ClassVar[bool] = False
    minor: ClassVar[bool] = False
    patch: ClassVar[bool] = False
    pre_release: ClassVar[str | None] = None
    migrate: ClassVar[bool] = False
    release_notes: ClassVar[Any] = ()
    within_transaction: ClassVar[bool] = True

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        flags = [kind for kind in BumpKind if getattr(cls, kind.value)]
        if len(flags) > 1:
            raise UnitDefinitionError(
                message=(
                    f"{cls.__name__} sets more than one of major/minor/patch: "
                    f"{', '.join(f.value for f in flags)}"
                ),
                code="conflicting_bump",
            )
        if cls.pre_release is not None:
            try:
                validate_pre_release(cls.pre_release)
            except ValueError as e:
                raise UnitDefinitionError(
                    message=f"{cls.__name__}: {e}", code="invalid_pre_release"
                ) from e

    @property
    def bump_kind(self) -> BumpKind:
        if self.major:
            return BumpKind.MAJOR
        if self.minor:
            return BumpKind.MINOR
        return BumpKind.PATCH

    def notes(self) -> Any:
        """Release notes as stored in the ledger (a copy; tuples become lists)"""
        notes = copy.deepcopy(self.release_notes)
        return list(notes) if isinstance(notes, tuple) else notes

    def deploy(self, connection: Any) -> None:
        """Run the deployment

        Args:
            connection: Handle from the deployment connection (a SQLAlchemy
                Connection, or a statement executor for Databricks)
        """


UnitFactory = Callable[[], Deployment]


class UnitRegistry:
    """Registry mapping deployment identifiers to unit factories"""

    def __init__(self) -> None:
        self.units: dict[str, UnitFactory] = {}

    def register(self, identifier: str, factory: UnitFactory) -> None:
        """
        Register a unit factory (usually the Deployment subclass itself)

        Raises:
            ValueError: If the identifier is already registered
        """
        if identifier in self.units:
            raise ValueError(f"Deployment '{identifier}' is already registered")
        self.units[identifier] = factory

    def resolve(self, identifier: str) -> Deployment:
        """
        Build the unit for an identifier

        Raises:
            ResolutionError: If nothing is registered or the factory fails
        """
        factory = self.units.get(identifier)
        if factory is None:
            raise ResolutionError(
                message=f"No deployment unit registered for '{identifier}'",
                code="unit_not_found",
            )
        try:
            unit = factory()
        except Exception as e:
            raise ResolutionError(
                message=f"Failed to construct deployment '{identifier}': {e}",
                code="unit_construct_failed",
            ) from e
        if not isinstance(unit, Deployment):
            raise ResolutionError(
                message=(
                    f"Factory for '{identifier}' returned {type(unit).__name__}, "
                    f"not a Deployment"
                ),
                code="unit_invalid",
            )
        return unit

    def has(self, identifier: str) -> bool:
        return identifier in self.units

    def identifiers(self) -> list[str]:
        return list(self.units.keys())

    def unregister(self, identifier: str) -> None:
        self.units.pop(identifier, None)

    def clear(self) -> None:
        """Clear all registered units (useful for testing)"""
        self.units.clear()


def studly(identifier: str) -> str:
    """Class name for an identifier ("add_users_table" -> "AddUsersTable")"""
    parts = re.split(r"[^0-9A-Za-z]+", identifier)
    return "".join(part[:1].upper() + part[1:] for part in parts if part)


class UnitLoader:
    """Import unit files and register the Deployment subclass each one defines"""

    def __init__(self, registry: UnitRegistry) -> None:
        self.registry = registry

    def load(self, units: Iterable[UnitFile]) -> list[str]:
        """Load every file not yet registered; returns the identifiers registered"""
        loaded = []
        for unit in units:
            if self.load_file(unit):
                loaded.append(unit.identifier)
        return loaded

    def load_file(self, unit: UnitFile) -> bool:
        """
        Import one unit file and register its Deployment subclass

        Returns:
            True if a unit was registered, False if it was already registered

        Raises:
            ResolutionError: If the file cannot be imported or defines no unit
            UnitDefinitionError: If the file's unit declares invalid metadata
        """
        if self.registry.has(unit.identifier):
            return False

        module = self._import(unit)
        unit_class = self._find_unit_class(module, unit)
        self.registry.register(unit.identifier, unit_class)
        logger.debug("Registered %s from %s", unit_class.__name__, unit.path)
        return True

    def _import(self, unit: UnitFile) -> ModuleType:
        module_name = UNIT_MODULE_PREFIX + re.sub(r"\W", "_", unit.path.stem)
        spec = importlib.util.spec_from_file_location(module_name, unit.path)
        if spec is None or spec.loader is None:
            raise ResolutionError(
                message=f"Cannot load deployment file {unit.path}", code="unit_not_loadable"
            )
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except UnitDefinitionError:
            sys.modules.pop(module_name, None)
            raise
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise ResolutionError(
                message=f"Failed to import deployment file {unit.path}: {e}",
                code="unit_not_loadable",
            ) from e
        return module

    @staticmethod
    def _find_unit_class(module: ModuleType, unit: UnitFile) -> type[Deployment]:
        candidates = [
            obj
            for obj in vars(module).values()
            if isinstance(obj, type)
            and issubclass(obj, Deployment)
            and obj is not Deployment
            and obj.__module__ == module.__name__
        ]
        if len(candidates) > 1:
            # Several classes: the one named after the identifier wins
            expected = studly(unit.identifier)
            candidates = [c for c in candidates if c.__name__ == expected]
        if len(candidates) != 1:
            raise ResolutionError(
                message=(
                    f"Deployment file {unit.path} must define exactly one Deployment subclass "
                    f"(expected '{studly(unit.identifier)}')"
                ),
                code="unit_not_found",
            )
        return candidates[0]
