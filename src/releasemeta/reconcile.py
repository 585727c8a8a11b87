"""
Merging fetched checksums into the releases document.

Two entry points:
- add_release(): fetch checksums for a new release's archives (ordered batch),
  insert the version and recompute the latest pointers.
- backfill_checksums(): refetch every location that lacks a complete checksum
  set (keyed batch) and apply the results by URL.

The document is read once before fetching and written once after the batch has
settled. Nothing touches it while fetches are in flight.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from releasemeta.checksums.coordinator import fetch_checksums_by_url, fetch_release_checksums
from releasemeta.checksums.fetcher import ChecksumFetcher
from releasemeta.checksums.progress import LoggingProgressObserver
from releasemeta.config import FetchConfig
from releasemeta.metadata.models import Location, Project, ReleaseStatus, VersionData
from releasemeta.storage import read_release_json, write_release_json

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

    from releasemeta.checksums.digest import Checksums
    from releasemeta.checksums.progress import ProgressObserver
    from releasemeta.checksums.types import ArchiveSpec, ArchiveWithChecksums, Outcome
    from releasemeta.metadata.models import ReleasesDocument
    from releasemeta.metadata.version import SemVer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackfillSummary:
    """Result of a backfill pass.

    Attributes:
        requested: Distinct URLs that needed checksums.
        succeeded: URLs whose checksums were fetched.
        failed: URLs that failed after all attempts.
        locations_updated: Locations whose checksum map was replaced.
    """

    requested: int
    succeeded: int
    failed: int
    locations_updated: int


def update_release_json(
    document: ReleasesDocument,
    release_url: str,
    version: SemVer,
    archives: Sequence[ArchiveWithChecksums],
    path: Path,
) -> bool:
    """
    Insert a release into the document and persist it.

    A failed checksum fetch stores an empty checksum map for that location; a
    later backfill can repair it.

    Args:
        document: Document to update in place.
        release_url: Canonical announcement URL of the release.
        version: Version being published.
        archives: Archives with their fetch outcomes, in input order.
        path: File the document is written to.

    Returns:
        True if the document was updated and written, False for an empty
        archive list.

    Raises:
        InvariantViolation: If the document does not hold exactly one project.
        MetadataIOError: If the file cannot be written.
    """
    if not archives:
        logger.info("No archives to add, skipping", extra={"version": str(version)})
        return False

    project = document.single_project()

    locations: list[Location] = []
    for entry in archives:
        if entry.checksums.ok:
            checksums = entry.checksums.unwrap().to_checksum_map()
        else:
            logger.warning(
                "Failed to compute checksums, storing empty map",
                extra={"archive": entry.archive.name, "error": str(entry.checksums.error)},
            )
            checksums = {}
        locations.append(
            Location(
                target=entry.archive.target,
                format=entry.archive.format,
                url=entry.url,
                checksums=checksums,
            )
        )

    range_key = project.upsert_version(
        version,
        VersionData(release_url=release_url, status=ReleaseStatus.ACTIVE, locations=locations),
    )
    logger.info(
        "Added release",
        extra={
            "version": str(version),
            "range": str(range_key),
            "range_latest": str(project.ranges[range_key].latest),
            "project_latest": str(project.latest) if project.latest is not None else None,
            "locations": len(locations),
        },
    )

    write_release_json(document, path)
    return True


def apply_backfill(document: ReleasesDocument, results: Mapping[str, Outcome[Checksums]]) -> int:
    """
    Replace the checksum map of every location whose URL was fetched successfully.

    Locations whose URL failed, or was not part of the batch, are left as they are.

    Returns:
        Number of locations updated.
    """
    document.ensure_mutable()
    updated = 0
    for location in document.all_locations():
        outcome = results.get(location.url)
        if outcome is None or not outcome.ok:
            continue
        location.checksums = outcome.unwrap().to_checksum_map()
        updated += 1
    return updated


async def add_release(
    path: Path,
    release_url: str,
    archive_prefix: str,
    version: SemVer,
    archives: Sequence[ArchiveSpec],
    *,
    project_name: str | None = None,
    config: FetchConfig | None = None,
    fetcher: ChecksumFetcher | None = None,
    observer: ProgressObserver | None = None,
) -> bool:
    """
    Fetch checksums for a release's archives and add it to the releases file.

    A missing releases file is treated as an empty document. If the document
    has no projects and `project_name` is given, that project is created first.

    Returns:
        True if the file was written.
    """
    config = config or FetchConfig()
    document = read_release_json(path, allow_missing=True)
    if project_name and not document.projects:
        document.projects[project_name] = Project()

    if not archives:
        return update_release_json(document, release_url, version, [], path)

    # Fail before downloading anything if the document cannot take the release.
    document.single_project()

    owned = fetcher is None
    active = fetcher or ChecksumFetcher(config)
    try:
        results = await fetch_release_checksums(
            active,
            archive_prefix,
            archives,
            download_jobs=config.download_jobs,
            observer=observer or LoggingProgressObserver(),
        )
    finally:
        if owned:
            await active.close()

    return update_release_json(document, release_url, version, results, path)


async def backfill_checksums(
    path: Path,
    *,
    config: FetchConfig | None = None,
    fetcher: ChecksumFetcher | None = None,
    observer: ProgressObserver | None = None,
) -> BackfillSummary:
    """
    Fetch checksums for every location missing a complete set and persist once.

    Raises:
        InvariantViolation: If the document holds more than one project.
        MetadataIOError: If the releases file is missing or cannot be written.
        SerializationError: If the releases file is malformed.
    """
    config = config or FetchConfig()
    document = read_release_json(path, allow_missing=False)
    document.ensure_mutable()

    urls = list(dict.fromkeys(location.url for location in document.locations_missing_checksums()))
    if not urls:
        logger.info("All locations have complete checksums", extra={"path": str(path)})
        return BackfillSummary(requested=0, succeeded=0, failed=0, locations_updated=0)

    logger.info("Backfilling checksums", extra={"urls": len(urls)})

    owned = fetcher is None
    active = fetcher or ChecksumFetcher(config)
    try:
        results = await fetch_checksums_by_url(
            active,
            urls,
            download_jobs=config.download_jobs,
            observer=observer or LoggingProgressObserver(),
        )
    finally:
        if owned:
            await active.close()

    updated = apply_backfill(document, results)
    succeeded = sum(1 for outcome in results.values() if outcome.ok)
    summary = BackfillSummary(
        requested=len(urls),
        succeeded=succeeded,
        failed=len(results) - succeeded,
        locations_updated=updated,
    )
    logger.info(
        "Backfill finished",
        extra={
            "requested": summary.requested,
            "succeeded": summary.succeeded,
            "failed": summary.failed,
            "locations_updated": summary.locations_updated,
        },
    )

    write_release_json(document, path)
    return summary
