"""
Netlify `_redirects` generation from a finalized releases document.

For every published key (the literal "latest", each non-prerelease range, and
every version) the file maps:
    {prefix}/{key}/release             -> release announcement URL
    {prefix}/{key}/{target}.{format}   -> archive URL
    {prefix}/{key}/{alias}             -> archive URL, for each matching alias
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from releasemeta.errors import InvariantViolation
from releasemeta.storage import atomic_write

if TYPE_CHECKING:
    from collections.abc import Sequence

    from releasemeta.metadata.models import RangeData, ReleasesDocument, VersionData

logger = logging.getLogger(__name__)

REDIRECTS_FILE_NAME = "_redirects"


class Alias(BaseModel):
    """A short name redirecting to the archive for one (target, format)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    alias: str = Field(..., min_length=1, description="Alias path component")
    target: str = Field(..., min_length=1, description="Target platform")
    format: str = Field(..., min_length=1, description="Archive format")


def _latest_version_data(key: str, range_data: RangeData) -> VersionData:
    try:
        return range_data.versions[range_data.latest]
    except KeyError:
        msg = f"range {key} points at latest {range_data.latest}, which is not in its versions"
        raise InvariantViolation(msg) from None


def _write_entries(
    key: str,
    version_data: VersionData,
    aliases: Sequence[Alias],
    prefix: str,
    out: list[str],
) -> None:
    out.append(f"{prefix}/{key}/release {version_data.release_url} 302")
    for location in version_data.locations:
        out.append(f"{prefix}/{key}/{location.target}.{location.format} {location.url} 302")
        for alias in aliases:
            if alias.target == location.target and alias.format == location.format:
                out.append(f"{prefix}/{key}/{alias.alias} {location.url} 302")


def render_netlify_redirects(
    document: ReleasesDocument,
    aliases: Sequence[Alias],
    netlify_prefix: str,
) -> str:
    """
    Render the `_redirects` file content.

    Raises:
        InvariantViolation: If the document does not hold exactly one project,
            or a latest pointer refers to a missing entry.
    """
    project = document.single_project()
    prefix = netlify_prefix.rstrip("/")
    out: list[str] = ["# Generated by releasemeta", ""]

    if project.latest is not None:
        latest_range = project.ranges.get(project.latest)
        if latest_range is None:
            raise InvariantViolation(f"project latest {project.latest} is not a known range")
        _write_entries(
            "latest", _latest_version_data("latest", latest_range), aliases, prefix, out
        )

    for range_key in sorted(project.ranges):
        range_data = project.ranges[range_key]
        key = str(range_key)
        if not range_data.is_prerelease:
            _write_entries(key, _latest_version_data(key, range_data), aliases, prefix, out)
        for version in sorted(range_data.versions):
            _write_entries(str(version), range_data.versions[version], aliases, prefix, out)

    return "\n".join(out) + "\n"


def generate_netlify_redirects(
    document: ReleasesDocument,
    aliases: Sequence[Alias],
    netlify_prefix: str,
    out_dir: Path,
) -> Path:
    """
    Write `_redirects` into `out_dir`.

    Returns:
        Path of the written file.
    """
    content = render_netlify_redirects(document, aliases, netlify_prefix)
    out_path = Path(out_dir) / REDIRECTS_FILE_NAME
    atomic_write(out_path, content.encode)
    logger.info("Wrote redirects", extra={"path": str(out_path), "lines": content.count("\n")})
    return out_path
