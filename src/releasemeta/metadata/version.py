"""Semantic versions and version-range buckets.

Version string format (SemVer 2.0):
    MAJOR.MINOR.PATCH[-PRERELEASE][+BUILD]

Version range format:
    "N"      -> Major(N), for versions with major >= 1
    "0.N"    -> Minor(N), for 0.N.x with N >= 1
    "0.0.N"  -> Patch(N), for 0.0.N

Example:
    1.2.3        -> "1"
    0.5.0        -> "0.5"
    0.0.7-rc.1   -> "0.0.7"
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from enum import Enum

from releasemeta.errors import ParseError, VersionRangeParseError

SEMVER_PATTERN = re.compile(
    r"^"
    r"(?P<major>0|[1-9]\d*)\."
    r"(?P<minor>0|[1-9]\d*)\."
    r"(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<pre>(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+(?P<build>[0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?"
    r"$",
    re.ASCII,
)

_COMPONENT_PATTERN = re.compile(r"[0-9]+")


def _identifier_key(identifier: str) -> tuple[int, int, str]:
    # Numeric identifiers sort before alphanumeric ones.
    if identifier.isdigit():
        return (0, int(identifier), "")
    return (1, 0, identifier)


@functools.total_ordering
@dataclass(frozen=True)
class SemVer:
    """Parsed semantic version.

    Attributes:
        major: Major version number.
        minor: Minor version number.
        patch: Patch version number.
        pre: Prerelease identifiers (empty for a release).
        build: Build metadata identifiers.
    """

    major: int
    minor: int
    patch: int
    pre: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            text += "-" + ".".join(self.pre)
        if self.build:
            text += "+" + ".".join(self.build)
        return text

    @property
    def is_prerelease(self) -> bool:
        """True if the version carries a prerelease component."""
        return bool(self.pre)

    def _precedence_key(self) -> tuple[object, ...]:
        # A release sorts after every prerelease of the same triple. Build
        # metadata is the last tie-break so that the order is total.
        pre_key: tuple[object, ...] = (
            (0, tuple(_identifier_key(p) for p in self.pre)) if self.pre else (1, ())
        )
        build_key = tuple(_identifier_key(b) for b in self.build)
        return (self.major, self.minor, self.patch, pre_key, build_key)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._precedence_key() < other._precedence_key()


def parse_version(version_str: str) -> SemVer:
    """Parse a semantic version string.

    Raises:
        ParseError: If the string is not a valid semantic version.
    """
    match = SEMVER_PATTERN.match(version_str.strip())
    if not match:
        raise ParseError(f"Invalid semantic version: {version_str!r}")

    pre = match.group("pre")
    build = match.group("build")
    return SemVer(
        major=int(match.group("major")),
        minor=int(match.group("minor")),
        patch=int(match.group("patch")),
        pre=tuple(pre.split(".")) if pre else (),
        build=tuple(build.split(".")) if build else (),
    )


class VersionRangeKind(str, Enum):
    """Kind of version range bucket."""

    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"

    @property
    def rank(self) -> int:
        """Fixed ordering rank: patch < minor < major."""
        return _KIND_RANK[self]


_KIND_RANK: dict[VersionRangeKind, int] = {
    VersionRangeKind.PATCH: 0,
    VersionRangeKind.MINOR: 1,
    VersionRangeKind.MAJOR: 2,
}


@functools.total_ordering
@dataclass(frozen=True)
class VersionRange:
    """A version-range bucket key: Major(n), Minor(n) or Patch(n).

    Ordered by kind rank first, then by numeric value.
    """

    kind: VersionRangeKind
    value: int

    @classmethod
    def major(cls, value: int) -> VersionRange:
        return cls(VersionRangeKind.MAJOR, value)

    @classmethod
    def minor(cls, value: int) -> VersionRange:
        return cls(VersionRangeKind.MINOR, value)

    @classmethod
    def patch(cls, value: int) -> VersionRange:
        return cls(VersionRangeKind.PATCH, value)

    @classmethod
    def from_version(cls, version: SemVer) -> VersionRange:
        """Compute the bucket key for a version, ignoring pre/build metadata."""
        if version.major >= 1:
            return cls.major(version.major)
        if version.minor >= 1:
            return cls.minor(version.minor)
        return cls.patch(version.patch)

    def __str__(self) -> str:
        if self.kind is VersionRangeKind.MAJOR:
            return f"{self.value}"
        if self.kind is VersionRangeKind.MINOR:
            return f"0.{self.value}"
        return f"0.0.{self.value}"

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, VersionRange):
            return NotImplemented
        return (self.kind.rank, self.value) < (other.kind.rank, other.value)


def _parse_component(text: str, kind: VersionRangeKind) -> int:
    if not _COMPONENT_PATTERN.fullmatch(text):
        raise VersionRangeParseError(text, kind.value)
    return int(text)


def parse_version_range(range_str: str) -> VersionRange:
    """Parse a version-range string ("N", "0.N" or "0.0.N").

    Raises:
        VersionRangeParseError: If a component is not a non-negative integer.
    """
    if range_str.startswith("0.0."):
        return VersionRange.patch(_parse_component(range_str[4:], VersionRangeKind.PATCH))
    if range_str.startswith("0."):
        return VersionRange.minor(_parse_component(range_str[2:], VersionRangeKind.MINOR))
    return VersionRange.major(_parse_component(range_str, VersionRangeKind.MAJOR))
