"""
Command-line entry point.

Usage:
    # Add a release, fetching checksums for each archive:
    releasemeta add-release --release-url https://github.com/o/r/releases/tag/v1.2.0 \\
        --url-prefix https://github.com/o/r/releases/download/v1.2.0 --version 1.2.0 \\
        --archive x86_64-unknown-linux-gnu.tar.gz=app-1.2.0-x86_64-unknown-linux-gnu.tar.gz

    # Fill in missing checksums for every location, exporting fetch metrics:
    releasemeta --metrics-file /var/lib/node_exporter/releasemeta.prom backfill-checksums --jobs 8

    # Render Netlify redirects:
    releasemeta generate-netlify --alias linux=x86_64-unknown-linux-gnu.tar.gz site/
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from prometheus_client import generate_latest

from releasemeta.checksums.progress import (
    CompositeObserver,
    LoggingProgressObserver,
    MetricsProgressObserver,
)
from releasemeta.checksums.types import ArchiveSpec
from releasemeta.config import FetchConfig
from releasemeta.errors import MetadataIOError, ParseError, ReleaseMetaError, SerializationError
from releasemeta.logging_config import get_logger, setup_logging
from releasemeta.metadata.version import parse_version
from releasemeta.netlify import Alias, generate_netlify_redirects
from releasemeta.reconcile import add_release, backfill_checksums
from releasemeta.storage import DEFAULT_RELEASES_JSON, atomic_write, read_release_json

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = get_logger(__name__)


def _name_value_parse(text: str, delimiter: str = "=") -> tuple[str, str]:
    name, sep, value = text.partition(delimiter)
    if not sep:
        raise ParseError(f"unable to parse {text!r} in the format NAME{delimiter}VALUE")
    return name, value


def _target_format_parse(text: str) -> tuple[str, str]:
    target, sep, fmt = text.partition(".")
    if not sep or not target or not fmt:
        raise ParseError(f"unable to parse {text!r} in the format TARGET.FORMAT")
    return target, fmt


def parse_archive(text: str) -> ArchiveSpec:
    """Parse TARGET.FORMAT=NAME into an archive spec."""
    target_format, name = _name_value_parse(text)
    target, fmt = _target_format_parse(target_format)
    if not name:
        raise ParseError(f"archive name missing in {text!r}")
    return ArchiveSpec(target=target, format=fmt, name=name)


def parse_alias(text: str) -> Alias:
    """Parse ALIAS=TARGET.FORMAT into an alias."""
    alias, target_format = _name_value_parse(text)
    target, fmt = _target_format_parse(target_format)
    if not alias:
        raise ParseError(f"alias name missing in {text!r}")
    return Alias(alias=alias, target=target, format=fmt)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="releasemeta",
        description="Maintain a releases JSON document with archive checksums.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--json",
        type=Path,
        default=DEFAULT_RELEASES_JSON,
        help=f"JSON file to edit (default: {DEFAULT_RELEASES_JSON})",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit JSON log lines",
    )
    parser.add_argument(
        "--metrics-file",
        type=Path,
        default=None,
        help="Write fetch metrics in Prometheus text format to this file "
        "(e.g. for the node_exporter textfile collector)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    add = subparsers.add_parser("add-release", help="Add a release to the releases JSON")
    add.add_argument("--release-url", required=True, help="Canonical URL for the release")
    add.add_argument("--url-prefix", required=True, help="URL prefix of the archives")
    add.add_argument("--version", required=True, type=parse_version, help="Version to publish")
    add.add_argument(
        "--archive",
        dest="archives",
        action="append",
        default=[],
        type=parse_archive,
        metavar="TARGET.FORMAT=NAME",
        help="Archive to add (repeatable)",
    )
    add.add_argument(
        "--project",
        default=None,
        help="Project name to create if the releases JSON has no project yet",
    )
    add.add_argument("--jobs", type=int, default=0, help="Concurrent downloads")

    backfill = subparsers.add_parser(
        "backfill-checksums", help="Fetch checksums for locations that are missing them"
    )
    backfill.add_argument("--jobs", type=int, default=0, help="Concurrent downloads")

    netlify = subparsers.add_parser(
        "generate-netlify", help="Generate a Netlify _redirects file from the releases JSON"
    )
    netlify.add_argument(
        "--alias",
        dest="aliases",
        action="append",
        default=[],
        type=parse_alias,
        metavar="ALIAS=TARGET.FORMAT",
        help="Alias to add (repeatable)",
    )
    netlify.add_argument("--netlify-prefix", default="/", help="Prefix for URLs (default: /)")
    netlify.add_argument("out_dir", type=Path, help="Output directory")

    return parser


def _write_metrics(metrics: MetricsProgressObserver, path: Path) -> None:
    atomic_write(path, lambda: generate_latest(metrics.registry))
    logger.info("Wrote metrics", extra={"path": str(path)})


def _run(args: argparse.Namespace) -> None:
    metrics = MetricsProgressObserver() if args.metrics_file else None
    observer = CompositeObserver(
        LoggingProgressObserver(), *([metrics] if metrics is not None else [])
    )

    if args.command == "add-release":
        try:
            asyncio.run(
                add_release(
                    args.json,
                    args.release_url,
                    args.url_prefix,
                    args.version,
                    args.archives,
                    project_name=args.project,
                    config=FetchConfig(download_jobs=args.jobs),
                    observer=observer,
                )
            )
        finally:
            if metrics is not None:
                _write_metrics(metrics, args.metrics_file)
    elif args.command == "backfill-checksums":
        try:
            summary = asyncio.run(
                backfill_checksums(
                    args.json, config=FetchConfig(download_jobs=args.jobs), observer=observer
                )
            )
        finally:
            if metrics is not None:
                _write_metrics(metrics, args.metrics_file)
        if summary.failed:
            logger.warning(
                "Some checksums could not be fetched",
                extra={"failed": summary.failed, "requested": summary.requested},
            )
    elif args.command == "generate-netlify":
        document = read_release_json(args.json, allow_missing=False)
        generate_netlify_redirects(document, args.aliases, args.netlify_prefix, args.out_dir)


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(level=args.log_level, json_format=args.log_json)

    try:
        _run(args)
    except (MetadataIOError, SerializationError) as e:
        cause = e.__cause__
        logger.error(
            "%s",
            e,
            extra={"path": str(e.path) if e.path else None, "cause": str(cause) if cause else None},
        )
        return 1
    except ReleaseMetaError as e:
        logger.error("%s", e, extra={"path": str(args.json)})
        return 1
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
