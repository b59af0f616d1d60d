"""
deploy-version: run-once, versioned deployment units with a semantic-version ledger.
"""

__version__ = "0.1.0"

from .core.deployer import Deployer
from .core.units import Deployment, UnitLoader, UnitRegistry
from .core.version import BumpKind, SemanticVersion, next_version
from .core.version_service import VersionService
from .domain.errors import (
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
from .domain.results import RunResult
from .models import DeploymentRecord

__all__ = [
    "__version__",
    "ActionFailure",
    "BumpKind",
    "ConfigurationError",
    "CreatorError",
    "DeployVersionError",
    "Deployer",
    "Deployment",
    "DeploymentRecord",
    "DuplicateDeploymentError",
    "DuplicateIdentifierError",
    "ResolutionError",
    "RunResult",
    "SchemaError",
    "SemanticVersion",
    "StoreUnavailableError",
    "UnitDefinitionError",
    "UnitLoader",
    "UnitRegistry",
    "VersionService",
    "next_version",
]
