"""
Progress reporting for checksum batches.

The coordinator emits one ProgressEvent after every task reaches a terminal
state. Observers decide where that goes: the log, Prometheus, or both.

Usage:
    observer = CompositeObserver(LoggingProgressObserver(), MetricsProgressObserver())
    await gather_bounded(items, worker, limit=8, aggregator=agg, observer=observer)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from prometheus_client import Counter, Gauge
from prometheus_client.registry import CollectorRegistry
from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class ProgressEvent(BaseModel):
    """Running tally of a batch, emitted after each completion."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    completed: int = Field(..., ge=0, description="Tasks in a terminal state")
    succeeded: int = Field(..., ge=0, description="Tasks that produced a value")
    failed: int = Field(..., ge=0, description="Tasks that ended with an error")
    total: int = Field(..., ge=0, description="Tasks in the batch")

    @property
    def done(self) -> bool:
        return self.completed >= self.total


class ProgressObserver(Protocol):
    """Callable invoked with every progress event."""

    def __call__(self, event: ProgressEvent) -> None: ...


def null_observer(event: ProgressEvent) -> None:
    """Observer that ignores every event."""


class LoggingProgressObserver:
    """Logs a progress line per event."""

    def __init__(self, log: logging.Logger | None = None, level: int = logging.INFO) -> None:
        self._log = log or logger
        self._level = level

    def __call__(self, event: ProgressEvent) -> None:
        self._log.log(
            self._level,
            "fetched %d/%d checksums, %d failed",
            event.succeeded,
            event.total,
            event.failed,
            extra={
                "completed": event.completed,
                "succeeded": event.succeeded,
                "failed": event.failed,
                "total": event.total,
            },
        )


class MetricsProgressObserver:
    """
    Prometheus view of checksum batches.

    Metrics:
    - releasemeta_fetch_succeeded_total: fetches that produced checksums
    - releasemeta_fetch_failed_total: fetches that exhausted their attempts
    - releasemeta_fetch_batch_total: size of the current batch
    - releasemeta_fetch_batch_completed: terminal tasks in the current batch

    Counters are advanced by the delta between consecutive events, so one
    observer can be shared across several batches.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()
        self._succeeded = Counter(
            "releasemeta_fetch_succeeded",
            "Total archive fetches that produced checksums",
            registry=self._registry,
        )
        self._failed = Counter(
            "releasemeta_fetch_failed",
            "Total archive fetches that failed after all attempts",
            registry=self._registry,
        )
        self._batch_total = Gauge(
            "releasemeta_fetch_batch_total",
            "Number of fetches in the current batch",
            registry=self._registry,
        )
        self._batch_completed = Gauge(
            "releasemeta_fetch_batch_completed",
            "Number of fetches in the current batch that reached a terminal state",
            registry=self._registry,
        )
        self._last: ProgressEvent | None = None

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def __call__(self, event: ProgressEvent) -> None:
        last = self._last
        # A finished previous batch means this event starts a new one.
        if last is None or last.done or event.completed < last.completed:
            last = ProgressEvent(completed=0, succeeded=0, failed=0, total=event.total)

        self._succeeded.inc(max(event.succeeded - last.succeeded, 0))
        self._failed.inc(max(event.failed - last.failed, 0))
        self._batch_total.set(event.total)
        self._batch_completed.set(event.completed)
        self._last = event


class CompositeObserver:
    """Fans each event out to several observers."""

    def __init__(self, *observers: Callable[[ProgressEvent], None]) -> None:
        self._observers = observers

    def __call__(self, event: ProgressEvent) -> None:
        for observer in self._observers:
            observer(event)
