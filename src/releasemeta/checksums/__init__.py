"""Checksum acquisition: digests, HTTP fetching and bounded-concurrency batches."""

from releasemeta.checksums.coordinator import (
    KeyedAggregator,
    OrderedAggregator,
    fetch_checksums_by_url,
    fetch_release_checksums,
    gather_bounded,
)
from releasemeta.checksums.digest import Checksums, compute_checksums
from releasemeta.checksums.fetcher import ChecksumFetcher
from releasemeta.checksums.progress import (
    CompositeObserver,
    LoggingProgressObserver,
    MetricsProgressObserver,
    ProgressEvent,
    ProgressObserver,
)
from releasemeta.checksums.types import ArchiveSpec, ArchiveWithChecksums, Outcome

__all__ = [
    "ArchiveSpec",
    "ArchiveWithChecksums",
    "ChecksumFetcher",
    "Checksums",
    "CompositeObserver",
    "KeyedAggregator",
    "LoggingProgressObserver",
    "MetricsProgressObserver",
    "OrderedAggregator",
    "Outcome",
    "ProgressEvent",
    "ProgressObserver",
    "compute_checksums",
    "fetch_checksums_by_url",
    "fetch_release_checksums",
    "gather_bounded",
]
