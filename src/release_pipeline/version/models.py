"""Version state models.

This module defines the persisted version value and the bump rule
vocabulary:
- BumpKind: Which version component a release increments
- VersionState: Parsed ``major.minor.patch`` value with naming helpers

The version file holds exactly one line matching ``^\\d+\\.\\d+\\.\\d+$``.
There is no major bump: the commit convention carries no breaking-change
signal, so releases advance either the minor or the patch component.
"""

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.release_pipeline.errors import MalformedVersionError


VERSION_PATTERN = re.compile(r"(\d+)\.(\d+)\.(\d+)", re.ASCII)

TAG_PREFIX = "v"
BRANCH_PREFIX = "version-update-"


class BumpKind(str, Enum):
    """Version component incremented by a release.

    Attributes:
        MINOR: Increment minor, reset patch to 0.
        PATCH: Increment patch, leave major and minor unchanged.
    """

    MINOR = "minor"
    PATCH = "patch"


class VersionState(BaseModel):
    """Semantic version stored in the repository version file.

    Attributes:
        major: Major version component.
        minor: Minor version component.
        patch: Patch version component.
    """

    model_config = ConfigDict(frozen=True)

    major: int = Field(..., ge=0, description="Major version component")
    minor: int = Field(..., ge=0, description="Minor version component")
    patch: int = Field(..., ge=0, description="Patch version component")

    @classmethod
    def parse(cls, raw_value: str) -> "VersionState":
        """Parse the contents of a version file.

        The file holds exactly one line: three dot-separated non-negative
        integers, optionally followed by a single newline. Surrounding spaces,
        blank lines and anything else are rejected rather than guessed at.

        Args:
            raw_value: Text read from the version file.

        Returns:
            VersionState: The parsed version.

        Raises:
            MalformedVersionError: If the value does not parse.
        """
        if not isinstance(raw_value, str):
            raise MalformedVersionError(repr(raw_value))

        line = raw_value[:-1] if raw_value.endswith("\n") else raw_value
        match = VERSION_PATTERN.fullmatch(line)
        if match is None:
            raise MalformedVersionError(raw_value)

        major, minor, patch = (int(group) for group in match.groups())
        return cls(major=major, minor=minor, patch=patch)

    def bump(self, kind: BumpKind) -> "VersionState":
        """Return the version that follows this one for a bump kind."""
        if kind == BumpKind.MINOR:
            return VersionState(major=self.major, minor=self.minor + 1, patch=0)
        return VersionState(major=self.major, minor=self.minor, patch=self.patch + 1)

    @property
    def tag_name(self) -> str:
        """Tag naming this version, e.g. ``v2.0.1``."""
        return f"{TAG_PREFIX}{self}"

    @property
    def branch_name(self) -> str:
        """Branch proposing this version, e.g. ``version-update-2.0.1``."""
        return f"{BRANCH_PREFIX}{self}"

    def as_tuple(self) -> tuple:
        return (self.major, self.minor, self.patch)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def __lt__(self, other: "VersionState") -> bool:
        return self.as_tuple() < other.as_tuple()

    def __le__(self, other: "VersionState") -> bool:
        return self.as_tuple() <= other.as_tuple()
