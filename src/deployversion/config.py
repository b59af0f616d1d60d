"""
Project configuration

Settings live in ``deploy-version.json`` at the project root. Every field is optional;
a few can be overridden from the environment:

    DEPLOY_VERSION_DATABASE_URL  -> database_url
    DEPLOY_VERSION_ENV           -> environment
    DEPLOY_VERSION_TABLE         -> table
"""

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .core.ledger import DEFAULT_TABLE
from .core.version import parse_semantic_version, validate_pre_release
from .domain.errors import ConfigurationError

CONFIG_FILENAME = "deploy-version.json"
STATE_DIR = ".deploy-version"

ENV_OVERRIDES: dict[str, str] = {
    "DEPLOY_VERSION_DATABASE_URL": "database_url",
    "DEPLOY_VERSION_ENV": "environment",
    "DEPLOY_VERSION_TABLE": "table",
}


class DatabricksSettings(BaseModel):
    """Selects the Databricks SQL-warehouse ledger"""

    model_config = ConfigDict(extra="forbid")

    profile: str | None = None
    catalog: str
    warehouse_id: str


class DeployVersionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    table: str = DEFAULT_TABLE
    database_url: str = "sqlite:///deployments.db"
    deployments_path: str = "deployments"
    starting_version: str = "0.0.0"
    environment: str = "production"
    maintenance_mode: bool | str = False
    migration_command: str | None = None
    post_deploy_commands: list[str] = Field(default_factory=list)
    cache_commands: list[str] = Field(default_factory=list)
    databricks: DatabricksSettings | None = None

    @field_validator("table")
    @classmethod
    def _check_table(cls, value: str) -> str:
        if not value or not value.replace("_", "").isalnum():
            raise ValueError(f"table must be a plain identifier, got '{value}'")
        return value

    @field_validator("starting_version")
    @classmethod
    def _check_starting_version(cls, value: str) -> str:
        core, sep, pre_release = value.strip().partition("-")
        parse_semantic_version(core)
        if sep:
            validate_pre_release(pre_release)
        return value

    def deployments_dir(self, project_dir: Path) -> Path:
        path = Path(self.deployments_path)
        return path if path.is_absolute() else project_dir / path

    def state_dir(self, project_dir: Path) -> Path:
        return project_dir / STATE_DIR

    @property
    def maintenance_message(self) -> str | None:
        return self.maintenance_mode if isinstance(self.maintenance_mode, str) else None


def load_config(
    project_dir: Path, environ: Mapping[str, str] | None = None
) -> DeployVersionConfig:
    """
    Load configuration for a project directory

    A missing config file yields the defaults.

    Raises:
        ConfigurationError: If the file cannot be read or fails validation
    """
    environ = os.environ if environ is None else environ
    config_path = project_dir / CONFIG_FILENAME

    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                message=f"Cannot read {config_path}: {e}", code="config_unreadable"
            ) from e
        if not isinstance(data, dict):
            raise ConfigurationError(
                message=f"{config_path} must contain a JSON object", code="config_invalid"
            )

    for variable, field_name in ENV_OVERRIDES.items():
        if environ.get(variable):
            data[field_name] = environ[variable]

    try:
        return DeployVersionConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            message=f"Invalid configuration in {config_path}: {e}", code="config_invalid"
        ) from e
