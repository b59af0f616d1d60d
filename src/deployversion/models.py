"""
Pydantic models for ledger records.
"""

import json
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .core.version import SemanticVersion, coerce_semantic_version, format_release


class DeploymentRecord(BaseModel):
    """One executed deployment unit as stored in the ledger"""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    deployment: str
    version: str  # semver core X.Y.Z
    pre_release: Optional[str] = None
    build: Optional[str] = None
    release_notes: Any = Field(default_factory=list)
    deployed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "DeploymentRecord":
        """Build a record from a stored ledger row, decoding its JSON release notes"""
        data = dict(row)
        data["release_notes"] = decode_release_notes(data.get("release_notes"))
        return cls(**data)

    @property
    def semantic_version(self) -> SemanticVersion:
        return coerce_semantic_version(self.version)

    @property
    def release(self) -> str:
        """Version label "X.Y.Z[-pre]" """
        return format_release(self.semantic_version, self.pre_release)

    def encoded_release_notes(self) -> str:
        return json.dumps(self.release_notes, default=str)


def decode_release_notes(stored: Any) -> Any:
    """Decode the serialized release_notes column; empty values read as no notes"""
    if isinstance(stored, bytes):
        stored = stored.decode()
    if stored is None or stored == "":
        return []
    if not isinstance(stored, str):
        return stored
    try:
        return json.loads(stored)
    except json.JSONDecodeError:
        # Hand-written rows may hold plain text
        return stored
