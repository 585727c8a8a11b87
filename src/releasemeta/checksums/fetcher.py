"""
HTTP fetcher that turns an archive URL into its checksums.

Each URL gets up to `max_attempts` complete attempts (request plus body read).
Retries are immediate; every failed attempt is logged on its own.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import aiohttp

from releasemeta.checksums.digest import Checksums, compute_checksums
from releasemeta.config import FetchConfig
from releasemeta.errors import NetworkError

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)


class ChecksumFetcher:
    """
    Async downloader for release archives.

    One aiohttp session is shared by every fetch and created on first use.
    """

    def __init__(self, config: FetchConfig | None = None) -> None:
        """
        Initialize the fetcher.

        Args:
            config: Fetch configuration (attempt budget, timeout).
        """
        self._config = config or FetchConfig()
        self._session: aiohttp.ClientSession | None = None

    @property
    def config(self) -> FetchConfig:
        return self._config

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._config.request_timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> ChecksumFetcher:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def fetch_bytes(self, url: str) -> bytes:
        """
        Perform one GET and return the full body.

        Raises:
            aiohttp.ClientResponseError: On a non-2xx status.
            aiohttp.ClientError: On connection or payload errors.
            asyncio.TimeoutError: If the attempt exceeds the configured timeout.
        """
        session = await self._get_session()
        async with session.get(url) as response:
            if not 200 <= response.status < 300:
                raise aiohttp.ClientResponseError(
                    response.request_info,
                    response.history,
                    status=response.status,
                    message=f"unexpected status {response.status}",
                )
            body: bytes = await response.read()
            return body

    async def fetch_checksums(self, url: str) -> Checksums:
        """
        Download a URL and compute its checksums.

        Args:
            url: Archive URL.

        Returns:
            SHA-256 and BLAKE2b digests of the body.

        Raises:
            NetworkError: If every attempt failed. The last error is chained.
        """
        max_attempts = self._config.max_attempts
        last_error: BaseException | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                data = await self.fetch_bytes(url)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = e
                logger.warning(
                    "Error fetching archive",
                    extra={
                        "url": url,
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "error": str(e) or type(e).__name__,
                    },
                )
                continue

            logger.debug("Fetched archive", extra={"url": url, "size_bytes": len(data)})
            return compute_checksums(data)

        message = str(last_error) or type(last_error).__name__
        raise NetworkError(url, max_attempts, message) from last_error
