"""
Reading and atomically writing the releases JSON file.

Writes go to a temporary file in the destination directory which is then
renamed over the target, so a concurrent reader sees either the old file or the
new one, never a partial write.
"""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import orjson

from releasemeta.errors import MetadataIOError, SerializationError
from releasemeta.metadata.models import ReleasesDocument

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

DEFAULT_RELEASES_JSON = Path(".releases.json")


def _default_file_mode() -> int:
    # os.umask can only be read by setting it.
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def atomic_write(path: Path, serializer: Callable[[], bytes]) -> None:
    """Replace `path` with the bytes produced by `serializer`.

    An existing file keeps its permission bits; a new file gets the mode a
    plain open() would give it under the current umask.

    Args:
        path: Destination file.
        serializer: Produces the full file content. Called before anything is
            written, so a serializer failure leaves the destination untouched.

    Raises:
        MetadataIOError: If the temporary file cannot be written or renamed.
    """
    content = serializer()
    mode = stat.S_IMODE(path.stat().st_mode) if path.exists() else _default_file_mode()

    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    except OSError as e:
        raise MetadataIOError(f"failed to create temporary file for {path}: {e}", path) from e

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise MetadataIOError(f"failed to write {path}: {e}", path) from e


def serialize_release_json(document: ReleasesDocument) -> bytes:
    """Encode a document as indented JSON with a trailing newline."""
    return orjson.dumps(document.to_dict(), option=orjson.OPT_INDENT_2) + b"\n"


def parse_release_json(content: bytes | str, path: Path | None = None) -> ReleasesDocument:
    """Decode a releases document.

    Raises:
        SerializationError: On invalid JSON or an invalid document structure.
    """
    where = f" at {path}" if path is not None else ""
    try:
        data = orjson.loads(content)
    except orjson.JSONDecodeError as e:
        raise SerializationError(f"failed to deserialize releases JSON{where}: {e}", path) from e

    try:
        return ReleasesDocument.from_dict(data)
    except SerializationError as e:
        raise SerializationError(f"failed to deserialize releases JSON{where}: {e}", path) from e


def read_release_json(path: Path, *, allow_missing: bool) -> ReleasesDocument:
    """Read the releases JSON file.

    Args:
        path: File to read.
        allow_missing: Start from an empty document if the file does not exist.

    Raises:
        MetadataIOError: If the file is missing (and not allowed to be) or unreadable.
        SerializationError: If the content is not a valid releases document.
    """
    if not path.exists():
        if allow_missing:
            logger.info("Releases JSON not found, starting empty", extra={"path": str(path)})
            return ReleasesDocument()
        raise MetadataIOError(f"releases JSON not found at {path}", path)

    try:
        content = path.read_bytes()
    except OSError as e:
        raise MetadataIOError(f"failed to read releases JSON file at {path}: {e}", path) from e

    return parse_release_json(content, path)


def write_release_json(document: ReleasesDocument, path: Path) -> None:
    """Atomically write a releases document to `path`."""
    atomic_write(path, lambda: serialize_release_json(document))
    logger.info("Wrote releases JSON", extra={"path": str(path)})
