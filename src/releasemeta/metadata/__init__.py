"""Releases document model and version ordering."""

from releasemeta.metadata.models import (
    DigestAlgorithm,
    Location,
    Project,
    RangeData,
    ReleasesDocument,
    ReleaseStatus,
    VersionData,
)
from releasemeta.metadata.version import (
    SemVer,
    VersionRange,
    VersionRangeKind,
    parse_version,
    parse_version_range,
)

__all__ = [
    "DigestAlgorithm",
    "Location",
    "Project",
    "RangeData",
    "ReleaseStatus",
    "ReleasesDocument",
    "SemVer",
    "VersionData",
    "VersionRange",
    "VersionRangeKind",
    "parse_version",
    "parse_version_range",
]
