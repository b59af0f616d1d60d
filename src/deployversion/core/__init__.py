"""Core deployment machinery: versions, units, scanning, ledgers and the deployer."""

from .version import BumpKind, SemanticVersion, next_version, parse_semantic_version

__all__ = ["BumpKind", "SemanticVersion", "next_version", "parse_semantic_version"]
