"""Digest computation for downloaded archives.

The whole body is resident in memory, so both digests are computed over the
complete buffer in one call.
"""

from __future__ import annotations

import hashlib

from pydantic import BaseModel, ConfigDict, Field

from releasemeta.metadata.models import DigestAlgorithm


class Checksums(BaseModel):
    """SHA-256 and BLAKE2b-512 digests of one archive, as lowercase hex."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    sha256: str = Field(..., min_length=64, max_length=64, description="SHA-256 hex digest")
    blake2b: str = Field(..., min_length=128, max_length=128, description="BLAKE2b-512 hex digest")

    def to_checksum_map(self) -> dict[DigestAlgorithm, str]:
        """Return a complete checksum map for a location."""
        return {
            DigestAlgorithm.SHA256: self.sha256,
            DigestAlgorithm.BLAKE2B: self.blake2b,
        }


def compute_checksums(data: bytes) -> Checksums:
    """Compute SHA-256 and BLAKE2b-512 digests of a byte buffer.

    Args:
        data: Complete archive content.

    Returns:
        Checksums with both hex digests.
    """
    return Checksums(
        sha256=hashlib.sha256(data).hexdigest(),
        blake2b=hashlib.blake2b(data, digest_size=64).hexdigest(),
    )
