"""Types shared by the fetcher, the coordinator and the reconciler."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from releasemeta.checksums.digest import Checksums

R = TypeVar("R")


class ArchiveSpec(BaseModel):
    """One archive of a release, as supplied on the command line.

    Attributes:
        target: Target platform string.
        format: Archive format (e.g. "tar.gz").
        name: File name under the release's URL prefix.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    target: str = Field(..., min_length=1, description="Target platform")
    format: str = Field(..., min_length=1, description="Archive format")
    name: str = Field(..., min_length=1, description="Archive file name")


@dataclass(frozen=True)
class Outcome(Generic[R]):
    """Terminal state of one task: either a value or an error."""

    value: R | None = None
    error: BaseException | None = None

    @classmethod
    def success(cls, value: R) -> Outcome[R]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException) -> Outcome[R]:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> R:
        """Return the value, or raise the captured error."""
        if self.error is not None:
            raise self.error
        assert self.value is not None  # Type narrowing
        return self.value


@dataclass(frozen=True)
class ArchiveWithChecksums:
    """An archive, its full URL and the result of fetching its checksums."""

    archive: ArchiveSpec
    url: str
    checksums: Outcome[Checksums]
