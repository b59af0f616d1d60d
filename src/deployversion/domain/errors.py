"""Unified domain error taxonomy for deployment runs and ledger access."""

from dataclasses import dataclass


@dataclass(slots=True)
class DeployVersionError(Exception):
    """Base class for application/domain-level failures."""

    message: str
    code: str

    def __str__(self) -> str:
        return self.message


class SchemaError(DeployVersionError):
    """Raised when the ledger cannot be provisioned (or already is)."""


class DuplicateDeploymentError(DeployVersionError):
    """Raised when a ledger append collides with an existing deployment identifier."""


class ResolutionError(DeployVersionError):
    """Raised when a deployment identifier has no loadable unit."""


class StoreUnavailableError(DeployVersionError):
    """Raised for connection-level failures against the ledger store."""


class DuplicateIdentifierError(DeployVersionError):
    """Raised when two deployment files normalize to the same identifier."""


class ConfigurationError(DeployVersionError):
    """Raised for invalid or unreadable configuration."""


class UnitDefinitionError(DeployVersionError):
    """Raised when a deployment unit declares inconsistent metadata."""


class CreatorError(DeployVersionError):
    """Raised when a new deployment file cannot be scaffolded."""


class ActionFailure(DeployVersionError):
    """Raised when a unit's own action (or its migrations) fails.

    ``rolled_back`` tells whether the work was undone by a transaction. When it is
    False the connection could not wrap the action and the target may be left
    partially applied.
    """

    def __init__(self, message: str, code: str = "action_failed", rolled_back: bool = False):
        DeployVersionError.__init__(self, message=message, code=code)
        self.rolled_back = rolled_back
