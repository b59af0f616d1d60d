"""Domain types and contracts for deploy-version workflows."""

from .errors import (
    ActionFailure,
    ConfigurationError,
    CreatorError,
    DeployVersionError,
    DuplicateDeploymentError,
    DuplicateIdentifierError,
    ResolutionError,
    SchemaError,
    StoreUnavailableError,
    UnitDefinitionError,
)
from .results import CommandResult, RunResult

__all__ = [
    "ActionFailure",
    "CommandResult",
    "ConfigurationError",
    "CreatorError",
    "DeployVersionError",
    "DuplicateDeploymentError",
    "DuplicateIdentifierError",
    "ResolutionError",
    "RunResult",
    "SchemaError",
    "StoreUnavailableError",
    "UnitDefinitionError",
]
