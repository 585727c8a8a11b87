"""
Exception taxonomy for releasemeta.

Fatal errors (MetadataIOError, SerializationError, InvariantViolation) abort the
command. NetworkError is raised per URL and is turned into a per-item outcome by
the coordinator, so it never aborts a batch.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class ReleaseMetaError(Exception):
    """Base exception for releasemeta operations."""


class ParseError(ReleaseMetaError, ValueError):
    """Raised when a version, version range or command value is malformed."""


class VersionRangeParseError(ParseError):
    """Raised when a version-range string cannot be parsed.

    Attributes:
        input: The component text that failed to parse.
        component: Which component failed ("major", "minor" or "patch").
    """

    def __init__(self, input: str, component: str) -> None:
        super().__init__(f"unable to parse version range input {input!r} at component {component}")
        self.input = input
        self.component = component


class NetworkError(ReleaseMetaError):
    """Raised when fetching a URL failed on every attempt."""

    def __init__(self, url: str, attempts: int, message: str) -> None:
        super().__init__(f"for {url}, error fetching checksum after {attempts} attempts: {message}")
        self.url = url
        self.attempts = attempts


class MetadataIOError(ReleaseMetaError):
    """Raised when the releases JSON file cannot be read or written."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class SerializationError(ReleaseMetaError):
    """Raised when a persisted releases document is malformed."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class InvariantViolation(ReleaseMetaError):
    """Raised when the document shape breaks a required precondition."""
