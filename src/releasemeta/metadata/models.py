"""In-memory model of the releases.json document.

Document layout:
    {
        "projects": {
            "<name>": {
                "latest": "1",
                "ranges": {
                    "1": {
                        "latest": "1.2.0",
                        "is_prerelease": false,
                        "versions": {
                            "1.2.0": {
                                "release_url": "https://...",
                                "status": "active",
                                "locations": [
                                    {"target": "...", "format": "tar.gz", "url": "...",
                                     "checksums": {"sha256": "...", "blake2b": "..."}}
                                ]
                            }
                        }
                    }
                }
            }
        }
    }

`ranges` and `versions` are always written in descending key order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from releasemeta.errors import InvariantViolation, SerializationError
from releasemeta.metadata.version import (
    SemVer,
    VersionRange,
    parse_version,
    parse_version_range,
)

if TYPE_CHECKING:
    from collections.abc import Iterator


def _expect(value: Any, kind: type, field_name: str) -> Any:
    if not isinstance(value, kind):
        raise TypeError(f"{field_name} must be {kind.__name__}, got {type(value).__name__}")
    return value


class DigestAlgorithm(str, Enum):
    """Digest algorithms recorded for a location."""

    SHA256 = "sha256"
    BLAKE2B = "blake2b"


# Both must be present for a location to count as checksum-complete.
REQUIRED_ALGORITHMS: tuple[DigestAlgorithm, ...] = (DigestAlgorithm.SHA256, DigestAlgorithm.BLAKE2B)


class ReleaseStatus(str, Enum):
    """Status of a published release."""

    ACTIVE = "active"
    YANKED = "yanked"


@dataclass
class Location:
    """A downloadable artifact for one (target, format) pair.

    Attributes:
        target: Target platform string (e.g. "x86_64-unknown-linux-gnu").
        format: Archive format (e.g. "tar.gz").
        url: Download URL.
        checksums: Digest algorithm -> lowercase hex digest. May be partial.
    """

    target: str
    format: str
    url: str
    checksums: dict[DigestAlgorithm, str] = field(default_factory=dict)

    @property
    def has_complete_checksums(self) -> bool:
        """True if every required digest is present."""
        return all(algorithm in self.checksums for algorithm in REQUIRED_ALGORITHMS)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "target": self.target,
            "format": self.format,
            "url": self.url,
            "checksums": {
                algorithm.value: self.checksums[algorithm]
                for algorithm in DigestAlgorithm
                if algorithm in self.checksums
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Location:
        """Create from dictionary."""
        return cls(
            target=_expect(data["target"], str, "target"),
            format=_expect(data["format"], str, "format"),
            url=_expect(data["url"], str, "url"),
            checksums={
                DigestAlgorithm(name): _expect(digest, str, f"checksums.{name}")
                for name, digest in (data.get("checksums") or {}).items()
            },
        )


@dataclass
class VersionData:
    """A single published version."""

    release_url: str
    status: ReleaseStatus = ReleaseStatus.ACTIVE
    locations: list[Location] = field(default_factory=list)
    metadata: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {
            "release_url": self.release_url,
            "status": self.status.value,
            "locations": [location.to_dict() for location in self.locations],
        }
        if self.metadata is not None:
            result["metadata"] = self.metadata
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VersionData:
        """Create from dictionary."""
        return cls(
            release_url=data["release_url"],
            status=ReleaseStatus(data["status"]),
            locations=[Location.from_dict(loc) for loc in data.get("locations", [])],
            metadata=data.get("metadata"),
        )


@dataclass
class RangeData:
    """All versions that fall into one version-range bucket.

    Attributes:
        latest: Newest version in the bucket (a prerelease only if the bucket
            has no releases).
        is_prerelease: True iff the bucket holds no non-prerelease version.
        versions: Version -> version data.
    """

    latest: SemVer
    is_prerelease: bool
    versions: dict[SemVer, VersionData] = field(default_factory=dict)

    def recompute_latest(self) -> None:
        """Point `latest` at the newest release, or the newest prerelease if none."""
        if not self.versions:
            return
        releases = [version for version in self.versions if not version.is_prerelease]
        if releases:
            self.latest = max(releases)
            self.is_prerelease = False
        else:
            self.latest = max(self.versions)
            self.is_prerelease = True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, versions in descending order."""
        return {
            "latest": str(self.latest),
            "is_prerelease": self.is_prerelease,
            "versions": {
                str(version): self.versions[version].to_dict()
                for version in sorted(self.versions, reverse=True)
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RangeData:
        """Create from dictionary."""
        return cls(
            latest=parse_version(data["latest"]),
            is_prerelease=_expect(data["is_prerelease"], bool, "is_prerelease"),
            versions={
                parse_version(version): VersionData.from_dict(version_data)
                for version, version_data in data.get("versions", {}).items()
            },
        )


@dataclass
class Project:
    """A project and its version-range buckets.

    Attributes:
        latest: Highest bucket key whose bucket is not prerelease-only.
        ranges: Version range -> bucket.
    """

    latest: VersionRange | None = None
    ranges: dict[VersionRange, RangeData] = field(default_factory=dict)

    def recompute_latest(self) -> None:
        """Point `latest` at the highest non-prerelease bucket, if any."""
        candidates = [key for key, data in self.ranges.items() if not data.is_prerelease]
        self.latest = max(candidates) if candidates else None

    def upsert_version(self, version: SemVer, version_data: VersionData) -> VersionRange:
        """Insert or overwrite a version, creating its bucket on first use.

        Both latest pointers are recomputed afterwards.

        Returns:
            The bucket key the version was stored under.
        """
        key = VersionRange.from_version(version)
        range_data = self.ranges.get(key)
        if range_data is None:
            range_data = RangeData(latest=version, is_prerelease=version.is_prerelease)
            self.ranges[key] = range_data

        range_data.versions[version] = version_data
        range_data.recompute_latest()
        self.recompute_latest()
        return key

    def all_versions(self) -> Iterator[tuple[SemVer, VersionData]]:
        """Iterate over every (version, data) pair across all buckets."""
        for range_data in self.ranges.values():
            yield from range_data.versions.items()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, ranges in descending order."""
        return {
            "latest": str(self.latest) if self.latest is not None else None,
            "ranges": {
                str(key): self.ranges[key].to_dict() for key in sorted(self.ranges, reverse=True)
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Project:
        """Create from dictionary."""
        latest = data.get("latest")
        return cls(
            latest=parse_version_range(latest) if latest is not None else None,
            ranges={
                parse_version_range(key): RangeData.from_dict(range_data)
                for key, range_data in data.get("ranges", {}).items()
            },
        )


@dataclass
class ReleasesDocument:
    """Top-level releases.json document."""

    projects: dict[str, Project] = field(default_factory=dict)

    def single_project(self) -> Project:
        """Return the only project in the document.

        Raises:
            InvariantViolation: If the document does not hold exactly one project.
        """
        if len(self.projects) != 1:
            msg = f"only one project per releases document is supported, {len(self.projects)} found"
            raise InvariantViolation(msg)
        return next(iter(self.projects.values()))

    def ensure_mutable(self) -> None:
        """Raise InvariantViolation if the document holds more than one project."""
        if len(self.projects) > 1:
            msg = f"only one project per releases document is supported, {len(self.projects)} found"
            raise InvariantViolation(msg)

    def all_locations(self) -> Iterator[Location]:
        """Iterate over every location in every project."""
        for project in self.projects.values():
            for _, version_data in project.all_versions():
                yield from version_data.locations

    def locations_missing_checksums(self) -> Iterator[Location]:
        """Iterate over locations that lack a complete checksum set."""
        return (location for location in self.all_locations() if not location.has_complete_checksums)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "projects": {
                name: self.projects[name].to_dict() for name in sorted(self.projects)
            },
        }

    @classmethod
    def from_dict(cls, data: Any) -> ReleasesDocument:
        """Create from a decoded JSON value.

        Raises:
            SerializationError: If the structure does not match the document schema.
        """
        if not isinstance(data, dict):
            raise SerializationError(f"expected a JSON object, got {type(data).__name__}")
        try:
            return cls(
                projects={
                    name: Project.from_dict(project)
                    for name, project in data.get("projects", {}).items()
                },
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise SerializationError(f"malformed releases document: missing or invalid {e}") from e
        except ValueError as e:
            raise SerializationError(f"malformed releases document: {e}") from e
