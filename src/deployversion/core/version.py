"""
Semantic Version Utilities

Provides version parsing, ordering and bump arithmetic for semantic versioning
(MAJOR.MINOR.PATCH), plus pre-release tag validation.
"""

import re
from dataclasses import dataclass
from enum import Enum

_STRICT_PATTERN = re.compile(r"^(v)?(\d+)\.(\d+)\.(\d+)$")
_PRE_RELEASE_IDENTIFIER = re.compile(r"^[0-9A-Za-z-]+$")


class BumpKind(str, Enum):
    """Which semantic-version component a deployment increments"""

    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"


@dataclass(frozen=True)
class SemanticVersion:
    """Semantic version core (MAJOR.MINOR.PATCH)"""

    major: int = 0
    minor: int = 0
    patch: int = 0

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    @property
    def key(self) -> tuple[int, int, int]:
        """Numeric ordering key; never compare version strings lexicographically."""
        return (self.major, self.minor, self.patch)

    def __lt__(self, other: "SemanticVersion") -> bool:
        return self.key < other.key

    def __le__(self, other: "SemanticVersion") -> bool:
        return self.key <= other.key

    def __gt__(self, other: "SemanticVersion") -> bool:
        return self.key > other.key

    def __ge__(self, other: "SemanticVersion") -> bool:
        return self.key >= other.key

    def bump_major(self) -> "SemanticVersion":
        """Bump major version and reset minor/patch"""
        return SemanticVersion(self.major + 1, 0, 0)

    def bump_minor(self) -> "SemanticVersion":
        """Bump minor version and reset patch"""
        return SemanticVersion(self.major, self.minor + 1, 0)

    def bump_patch(self) -> "SemanticVersion":
        """Bump patch version"""
        return SemanticVersion(self.major, self.minor, self.patch + 1)

    def bump(self, kind: BumpKind) -> "SemanticVersion":
        if kind is BumpKind.MAJOR:
            return self.bump_major()
        if kind is BumpKind.MINOR:
            return self.bump_minor()
        return self.bump_patch()


def parse_semantic_version(version_str: str) -> SemanticVersion:
    """Parse a strict semantic version string

    Args:
        version_str: Version string (e.g., "v0.3.0", "0.3.0", "v1.2.3")

    Returns:
        SemanticVersion object

    Raises:
        ValueError: If version string is invalid

    Example:
        >>> parse_semantic_version("v0.3.0")
        SemanticVersion(major=0, minor=3, patch=0)
    """
    match = _STRICT_PATTERN.match(version_str.strip())
    if not match:
        raise ValueError(
            f"Invalid semantic version: {version_str}. "
            f"Expected format: v0.3.0 or 0.3.0 (MAJOR.MINOR.PATCH)"
        )
    return SemanticVersion(int(match.group(2)), int(match.group(3)), int(match.group(4)))


def coerce_semantic_version(version_str: str | None) -> SemanticVersion:
    """Parse a possibly malformed version, defaulting missing or non-numeric parts to 0

    Ledger rows written by hand or by older tools may hold "1.2", "1" or "". Those
    are read as 1.2.0, 1.0.0 and 0.0.0 rather than rejected.

    Example:
        >>> coerce_semantic_version("2.x")
        SemanticVersion(major=2, minor=0, patch=0)
    """
    text = (version_str or "").strip()
    if text[:1] in ("v", "V"):
        text = text[1:]
    # Drop pre-release/build suffixes; they are stored separately
    text = re.split(r"[-+]", text, maxsplit=1)[0]

    parts = text.split(".")
    numbers = []
    for index in range(3):
        raw = parts[index].strip() if index < len(parts) else ""
        numbers.append(int(raw) if raw.isdecimal() else 0)
    return SemanticVersion(*numbers)


def next_version(current: SemanticVersion | str | None, bump: BumpKind | str) -> SemanticVersion:
    """Get the version that follows ``current`` for a given bump kind

    Args:
        current: Current version (object or string; malformed parts count as 0)
        bump: "major", "minor" or "patch"

    Returns:
        Next SemanticVersion (never lower than ``current``)

    Example:
        >>> str(next_version("1.2.3", "minor"))
        '1.3.0'
    """
    if not isinstance(current, SemanticVersion):
        current = coerce_semantic_version(current)
    return current.bump(BumpKind(bump))


def split_version_label(label: str) -> tuple[SemanticVersion, str | None]:
    """Split "1.0.0-beta" into its core version and pre-release tag"""
    core, sep, pre_release = label.strip().partition("-")
    return coerce_semantic_version(core), (pre_release if sep and pre_release else None)


def validate_pre_release(tag: str) -> str:
    """Validate a pre-release tag (without its leading hyphen)

    Identifiers are dot separated, made of ASCII alphanumerics and hyphen, never
    empty, and purely numeric identifiers carry no leading zero.

    Raises:
        ValueError: If the tag is not a valid semantic-version pre-release
    """
    if not tag:
        raise ValueError("Pre-release tag must not be empty")
    if tag.startswith("-"):
        raise ValueError(f"Pre-release tag '{tag}' must not start with a hyphen")
    for identifier in tag.split("."):
        if not identifier or not _PRE_RELEASE_IDENTIFIER.match(identifier):
            raise ValueError(
                f"Invalid pre-release tag '{tag}': identifiers must be non-empty [0-9A-Za-z-]"
            )
        if identifier.isdigit() and len(identifier) > 1 and identifier.startswith("0"):
            raise ValueError(
                f"Invalid pre-release tag '{tag}': numeric identifier '{identifier}' "
                f"has a leading zero"
            )
    return tag


def format_release(version: SemanticVersion | str, pre_release: str | None = None) -> str:
    """Render "X.Y.Z[-pre]"."""
    core = version if isinstance(version, SemanticVersion) else coerce_semantic_version(version)
    return f"{core}-{pre_release}" if pre_release else str(core)
