"""
Fetch configuration.

Values can be given explicitly or picked up from the environment:
    RELEASEMETA_DOWNLOAD_JOBS     concurrent downloads (default 16)
    RELEASEMETA_REQUEST_TIMEOUT_S per-attempt timeout in seconds (default 300)
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_DOWNLOAD_JOBS = 16
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_REQUEST_TIMEOUT_S = 300.0


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


@dataclass
class FetchConfig:
    """Configuration for checksum fetching.

    Attributes:
        download_jobs: Maximum number of downloads in flight (0 reads the env).
        max_attempts: Total attempts per URL. Retries are immediate.
        request_timeout_s: Total timeout for a single attempt (0 reads the env).
    """

    download_jobs: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    request_timeout_s: float = 0.0

    def __post_init__(self) -> None:
        if not self.download_jobs:
            self.download_jobs = _env_int("RELEASEMETA_DOWNLOAD_JOBS", DEFAULT_DOWNLOAD_JOBS)
        if not self.request_timeout_s:
            self.request_timeout_s = _env_float(
                "RELEASEMETA_REQUEST_TIMEOUT_S", DEFAULT_REQUEST_TIMEOUT_S
            )
        if self.download_jobs < 1:
            raise ValueError(f"download_jobs must be >= 1, got {self.download_jobs}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.request_timeout_s <= 0:
            raise ValueError(f"request_timeout_s must be > 0, got {self.request_timeout_s}")
