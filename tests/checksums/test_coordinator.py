"""Tests for the bounded-concurrency coordinator."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from releasemeta.checksums.coordinator import (
    KeyedAggregator,
    OrderedAggregator,
    fetch_checksums_by_url,
    fetch_release_checksums,
    gather_bounded,
)
from releasemeta.checksums.digest import Checksums, compute_checksums
from releasemeta.checksums.fetcher import ChecksumFetcher
from releasemeta.checksums.progress import ProgressEvent
from releasemeta.checksums.types import ArchiveSpec, Outcome
from releasemeta.config import FetchConfig
from releasemeta.errors import NetworkError


class FakeFetcher:
    """Fetcher serving fixed bodies; unknown URLs fail."""

    def __init__(self, bodies: dict[str, bytes], delays: dict[str, float] | None = None) -> None:
        self.bodies = bodies
        self.delays = delays or {}
        self.calls: list[str] = []

    async def fetch_checksums(self, url: str) -> Checksums:
        self.calls.append(url)
        await asyncio.sleep(self.delays.get(url, 0))
        if url not in self.bodies:
            raise NetworkError(url, 3, "not found")
        return compute_checksums(self.bodies[url])


class TestGatherBounded:
    """Tests for gather_bounded function."""

    @pytest.mark.asyncio
    async def test_ordered_results_follow_input_order(self) -> None:
        """Ordered mode returns input order even when completion order differs."""
        delays = {1: 0.03, 2: 0.0, 3: 0.01}

        async def worker(item: int) -> int:
            await asyncio.sleep(delays[item])
            return item * 10

        results = await gather_bounded(
            [1, 2, 3], worker, limit=3, aggregator=OrderedAggregator()
        )

        assert [(item, outcome.unwrap()) for item, outcome in results] == [
            (1, 10),
            (2, 20),
            (3, 30),
        ]

    @pytest.mark.asyncio
    async def test_limit_bounds_in_flight(self) -> None:
        """Never more than `limit` workers run at once."""
        in_flight = 0
        peak = 0

        async def worker(item: int) -> int:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return item

        await gather_bounded(range(10), worker, limit=3, aggregator=OrderedAggregator())

        assert peak == 3

    @pytest.mark.asyncio
    async def test_failure_does_not_cancel_siblings(self) -> None:
        """A failing task is captured; the others still complete."""
        finished: list[int] = []

        async def worker(item: int) -> int:
            if item == 0:
                raise RuntimeError("boom")
            await asyncio.sleep(0.01)
            finished.append(item)
            return item

        results = await gather_bounded([0, 1, 2], worker, limit=3, aggregator=OrderedAggregator())

        assert sorted(finished) == [1, 2]
        assert not results[0][1].ok
        assert isinstance(results[0][1].error, RuntimeError)
        assert [outcome.ok for _, outcome in results] == [False, True, True]

    @pytest.mark.asyncio
    async def test_keyed_mode(self) -> None:
        """Keyed mode maps each key to its outcome."""

        async def worker(item: str) -> int:
            if item == "bad":
                raise ValueError(item)
            return len(item)

        results = await gather_bounded(
            ["a", "bb", "bad"],
            worker,
            limit=2,
            aggregator=KeyedAggregator(lambda item: item),
        )

        assert set(results) == {"a", "bb", "bad"}
        assert results["bb"].unwrap() == 2
        assert not results["bad"].ok

    @pytest.mark.asyncio
    async def test_keyed_last_write_wins(self) -> None:
        """Duplicate keys keep the last completed outcome."""

        async def worker(item: tuple[str, int]) -> int:
            await asyncio.sleep(item[1] / 100)
            return item[1]

        results = await gather_bounded(
            [("k", 2), ("k", 1)],
            worker,
            limit=2,
            aggregator=KeyedAggregator(lambda item: item[0]),
        )

        assert results["k"].unwrap() == 2

    @pytest.mark.asyncio
    async def test_progress_after_each_completion(self) -> None:
        """The observer sees a running tally after every task."""
        events: list[ProgressEvent] = []

        async def worker(item: int) -> int:
            await asyncio.sleep(item / 100)
            if item % 2:
                raise RuntimeError("odd")
            return item

        await gather_bounded(
            [0, 1, 2, 3],
            worker,
            limit=1,
            aggregator=OrderedAggregator(),
            observer=events.append,
        )

        assert [(e.completed, e.succeeded, e.failed) for e in events] == [
            (1, 1, 0),
            (2, 1, 1),
            (3, 2, 1),
            (4, 2, 2),
        ]
        assert all(e.total == 4 for e in events)
        assert events[-1].done

    @pytest.mark.asyncio
    async def test_observer_error_does_not_abort_batch(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A raising observer is logged; every task still finishes before return."""
        finished: list[int] = []

        async def worker(item: int) -> int:
            await asyncio.sleep(item / 50)
            finished.append(item)
            return item

        def observer(event: ProgressEvent) -> None:
            raise RuntimeError("observer broke")

        with caplog.at_level(logging.ERROR, logger="releasemeta.checksums.coordinator"):
            results = await gather_bounded(
                [0, 1, 2], worker, limit=3, aggregator=OrderedAggregator(), observer=observer
            )

        assert sorted(finished) == [0, 1, 2]
        assert [outcome.unwrap() for _, outcome in results] == [0, 1, 2]
        assert sum(r.getMessage() == "Progress observer failed" for r in caplog.records) == 3

    @pytest.mark.asyncio
    async def test_aggregator_error_raised_after_all_tasks(self) -> None:
        """An aggregator error surfaces only once no worker is still running."""
        finished: list[int] = []

        async def worker(item: int) -> int:
            await asyncio.sleep(item / 50)
            finished.append(item)
            return item

        class FailingAggregator(OrderedAggregator[int, int]):
            def add(self, index: int, item: int, outcome: Outcome[int]) -> None:
                if item == 0:
                    raise RuntimeError("aggregator broke")
                super().add(index, item, outcome)

        with pytest.raises(RuntimeError, match="aggregator broke"):
            await gather_bounded([0, 1, 2], worker, limit=3, aggregator=FailingAggregator())

        assert sorted(finished) == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_empty_batch(self) -> None:
        """An empty batch returns an empty result."""

        async def worker(item: int) -> int:
            return item

        assert await gather_bounded([], worker, limit=1, aggregator=OrderedAggregator()) == []
        assert await gather_bounded([], worker, limit=1, aggregator=KeyedAggregator(str)) == {}

    @pytest.mark.asyncio
    async def test_rejects_zero_limit(self) -> None:
        """limit < 1 is rejected."""

        async def worker(item: int) -> int:
            return item

        with pytest.raises(ValueError):
            await gather_bounded([1], worker, limit=0, aggregator=OrderedAggregator())


class TestFetchReleaseChecksums:
    """Tests for fetch_release_checksums function."""

    @pytest.mark.asyncio
    async def test_pairs_archives_with_outcomes(self) -> None:
        """Each archive is paired with its URL and outcome in input order."""
        archives = [
            ArchiveSpec(target="x86_64-unknown-linux-gnu", format="tar.gz", name="slow.tar.gz"),
            ArchiveSpec(target="x86_64-pc-windows-msvc", format="zip", name="fast.zip"),
            ArchiveSpec(target="aarch64-apple-darwin", format="tar.gz", name="missing.tar.gz"),
        ]
        fetcher = FakeFetcher(
            {"https://cdn/slow.tar.gz": b"slow", "https://cdn/fast.zip": b"fast"},
            delays={"https://cdn/slow.tar.gz": 0.02},
        )

        results = await fetch_release_checksums(
            fetcher, "https://cdn", archives, download_jobs=3  # type: ignore[arg-type]
        )

        assert [r.archive for r in results] == archives
        assert [r.url for r in results] == [
            "https://cdn/slow.tar.gz",
            "https://cdn/fast.zip",
            "https://cdn/missing.tar.gz",
        ]
        assert results[0].checksums.unwrap() == compute_checksums(b"slow")
        assert results[1].checksums.unwrap() == compute_checksums(b"fast")
        assert isinstance(results[2].checksums.error, NetworkError)


class TestFetchChecksumsByUrl:
    """Tests for fetch_checksums_by_url function."""

    @pytest.mark.asyncio
    async def test_deduplicates_urls(self) -> None:
        """Duplicate URLs are fetched once."""
        fetcher = FakeFetcher({"https://cdn/a": b"a", "https://cdn/b": b"b"})

        results = await fetch_checksums_by_url(
            fetcher,  # type: ignore[arg-type]
            ["https://cdn/a", "https://cdn/b", "https://cdn/a"],
            download_jobs=2,
        )

        assert sorted(fetcher.calls) == ["https://cdn/a", "https://cdn/b"]
        assert set(results) == {"https://cdn/a", "https://cdn/b"}

    @pytest.mark.asyncio
    async def test_partial_batch_failure(self) -> None:
        """5 URLs, 2 failing after 3 attempts each: 3 Ok and 2 Err outcomes."""
        good = {f"https://cdn/ok{i}": f"body{i}".encode() for i in range(3)}
        bad = ["https://cdn/bad0", "https://cdn/bad1"]
        calls: dict[str, int] = {}

        def get(url: str) -> MagicMock:
            calls[url] = calls.get(url, 0) + 1
            if url in bad:
                raise aiohttp.ClientConnectionError("refused")
            response = MagicMock()
            response.status = 200
            response.read = AsyncMock(return_value=good[url])
            response.__aenter__ = AsyncMock(return_value=response)
            response.__aexit__ = AsyncMock(return_value=None)
            return response

        fetcher = ChecksumFetcher(FetchConfig(download_jobs=2))
        mock_session = AsyncMock()
        mock_session.get = MagicMock(side_effect=get)
        mock_session.closed = False
        fetcher._session = mock_session
        events: list[ProgressEvent] = []

        results = await fetch_checksums_by_url(
            fetcher, [*good, *bad], download_jobs=2, observer=events.append
        )

        assert len(results) == 5
        assert sum(1 for o in results.values() if o.ok) == 3
        assert sum(1 for o in results.values() if not o.ok) == 2
        for url, body in good.items():
            assert results[url].unwrap() == compute_checksums(body)
        for url in bad:
            assert isinstance(results[url].error, NetworkError)
            assert calls[url] == 3
        assert (events[-1].succeeded, events[-1].failed, events[-1].total) == (3, 2, 5)
