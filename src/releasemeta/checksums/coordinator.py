"""
Bounded-concurrency fetch coordinator.

All batches go through gather_bounded(), which runs a worker per item with at
most `limit` workers in flight. Result collection is delegated to an aggregator:

- OrderedAggregator: list of (item, outcome) in input order, used when adding a
  release so each archive lines up with its fetch result.
- KeyedAggregator: dict of key -> outcome in completion order, used for backfill
  where results are applied by URL.

A failing worker never cancels its siblings. Its exception is captured into the
item's Outcome and the batch returns only after every item is terminal.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Generic, Protocol, TypeVar

from releasemeta.checksums.progress import ProgressEvent, null_observer
from releasemeta.checksums.types import ArchiveWithChecksums, Outcome
from releasemeta.errors import NetworkError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Sequence

    from releasemeta.checksums.digest import Checksums
    from releasemeta.checksums.fetcher import ChecksumFetcher
    from releasemeta.checksums.progress import ProgressObserver
    from releasemeta.checksums.types import ArchiveSpec

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")
K = TypeVar("K")
Out = TypeVar("Out")
T_contra = TypeVar("T_contra", contravariant=True)
R_contra = TypeVar("R_contra", contravariant=True)
Out_co = TypeVar("Out_co", covariant=True)


class Aggregator(Protocol[T_contra, R_contra, Out_co]):
    """Collects per-item outcomes of a batch."""

    def begin(self, total: int) -> None: ...

    def add(self, index: int, item: T_contra, outcome: Outcome[R_contra]) -> None: ...

    def result(self) -> Out_co: ...


class OrderedAggregator(Generic[T, R]):
    """Buffers outcomes by input position and returns them in input order."""

    def __init__(self) -> None:
        self._slots: list[tuple[T, Outcome[R]] | None] = []

    def begin(self, total: int) -> None:
        self._slots = [None] * total

    def add(self, index: int, item: T, outcome: Outcome[R]) -> None:
        self._slots[index] = (item, outcome)

    def result(self) -> list[tuple[T, Outcome[R]]]:
        missing = [i for i, slot in enumerate(self._slots) if slot is None]
        if missing:
            raise RuntimeError(f"batch finished with unfilled slots: {missing}")
        return [slot for slot in self._slots if slot is not None]


class KeyedAggregator(Generic[T, K, R]):
    """Collects outcomes into a mapping as they complete (last write wins)."""

    def __init__(self, key: Callable[[T], K]) -> None:
        self._key = key
        self._results: dict[K, Outcome[R]] = {}

    def begin(self, total: int) -> None:
        self._results = {}

    def add(self, index: int, item: T, outcome: Outcome[R]) -> None:
        self._results[self._key(item)] = outcome

    def result(self) -> dict[K, Outcome[R]]:
        return self._results


class _Tally:
    """Running success/failure counts for one batch."""

    def __init__(self, total: int) -> None:
        self.total = total
        self.succeeded = 0
        self.failed = 0

    def record(self, outcome: Outcome[object]) -> ProgressEvent:
        if outcome.ok:
            self.succeeded += 1
        else:
            self.failed += 1
        return ProgressEvent(
            completed=self.succeeded + self.failed,
            succeeded=self.succeeded,
            failed=self.failed,
            total=self.total,
        )


async def gather_bounded(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    limit: int,
    aggregator: Aggregator[T, R, Out],
    observer: ProgressObserver | None = None,
) -> Out:
    """
    Run `worker` over every item with at most `limit` in flight.

    Args:
        items: Inputs, one task each.
        worker: Coroutine function producing a value for an item.
        limit: Maximum number of concurrently running workers.
        aggregator: Collects (index, item, outcome) as tasks finish.
        observer: Receives a ProgressEvent after every completion. Observer
            errors are logged and never abort the batch.

    Returns:
        The aggregator's result once every task is terminal.

    Raises:
        ValueError: If limit < 1.
        Exception: Whatever the aggregator raised, after every task has finished.
    """
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")

    batch: Sequence[T] = list(items)
    aggregator.begin(len(batch))
    tally = _Tally(len(batch))
    notify = observer or null_observer
    slots = asyncio.Semaphore(limit)

    async def run(index: int, item: T) -> None:
        async with slots:
            try:
                value = await worker(item)
            except Exception as e:
                outcome: Outcome[R] = Outcome.failure(e)
            else:
                outcome = Outcome.success(value)
        aggregator.add(index, item, outcome)
        event = tally.record(outcome)
        try:
            notify(event)
        except Exception:
            logger.exception("Progress observer failed", extra={"completed": event.completed})

    # Every task runs to completion before anything is raised.
    finished = await asyncio.gather(
        *(run(index, item) for index, item in enumerate(batch)), return_exceptions=True
    )
    for result in finished:
        if isinstance(result, BaseException):
            raise result
    return aggregator.result()


async def _fetch_logged(fetcher: ChecksumFetcher, url: str) -> Checksums:
    try:
        return await fetcher.fetch_checksums(url)
    except NetworkError as e:
        logger.error("Checksum fetch failed", extra={"url": url, "error": str(e)})
        raise


async def fetch_release_checksums(
    fetcher: ChecksumFetcher,
    archive_prefix: str,
    archives: Sequence[ArchiveSpec],
    *,
    download_jobs: int,
    observer: ProgressObserver | None = None,
) -> list[ArchiveWithChecksums]:
    """
    Fetch checksums for a new release's archives (ordered mode).

    Args:
        fetcher: Fetcher used for every archive.
        archive_prefix: URL prefix; each archive lives at "{prefix}/{name}".
        archives: Archives of the release.
        download_jobs: Maximum concurrent downloads.
        observer: Progress observer.

    Returns:
        One entry per archive, in the same order as `archives`.
    """
    items = [(archive, f"{archive_prefix}/{archive.name}") for archive in archives]

    async def worker(item: tuple[ArchiveSpec, str]) -> Checksums:
        return await _fetch_logged(fetcher, item[1])

    results = await gather_bounded(
        items,
        worker,
        limit=download_jobs,
        aggregator=OrderedAggregator(),
        observer=observer,
    )
    return [
        ArchiveWithChecksums(archive=archive, url=url, checksums=outcome)
        for (archive, url), outcome in results
    ]


async def fetch_checksums_by_url(
    fetcher: ChecksumFetcher,
    urls: Iterable[str],
    *,
    download_jobs: int,
    observer: ProgressObserver | None = None,
) -> dict[str, Outcome[Checksums]]:
    """
    Fetch checksums for a set of URLs (keyed mode).

    Duplicate URLs are collapsed to a single fetch before the batch starts.

    Returns:
        URL -> outcome, in completion order.
    """
    unique_urls = list(dict.fromkeys(urls))

    async def worker(url: str) -> Checksums:
        return await _fetch_logged(fetcher, url)

    return await gather_bounded(
        unique_urls,
        worker,
        limit=download_jobs,
        aggregator=KeyedAggregator(lambda url: url),
        observer=observer,
    )
