"""Command-line tools for building and inspecting membership filters."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Iterator, Sequence
from pathlib import Path

from availability_core.logging import (
    configure_structlog,
    log_error,
    log_exception,
    log_info,
)
from availability_core.membership import (
    FilterFormatError,
    MembershipIndex,
    dump_index,
    load_index,
)
from availability_core.settings import LoggingSettings, MembershipSettings


def _read_keys(path: Path) -> Iterator[str]:
    with path.open(encoding="utf-8") as handle:
        for line in handle:
            key = line.rstrip("\r\n")
            if key:
                yield key


def _build_filter(args: argparse.Namespace, settings: MembershipSettings) -> int:
    logger = args.logger
    fpr = settings.false_positive_rate if args.fpr is None else args.fpr
    output = settings.filter_path if args.output is None else args.output
    try:
        index = MembershipIndex.build(_read_keys(args.keys), fpr)
    except (FileNotFoundError, ValueError) as error:
        log_exception(logger, "filter_build_failed", keys=str(args.keys), error=str(error))
        return 2
    target = dump_index(index, output)
    log_info(
        logger,
        "filter_written",
        path=str(target),
        n=index.metadata.n,
        p=index.metadata.p,
        m=index.bit_count,
        k=index.hash_count,
        size_bytes=target.stat().st_size,
    )
    return 0


def _inspect_filter(args: argparse.Namespace, settings: MembershipSettings) -> int:
    path = settings.filter_path if args.path is None else args.path
    try:
        index = load_index(path)
    except (FileNotFoundError, FilterFormatError) as error:
        log_error(args.logger, "filter_unreadable", path=str(path), error=str(error))
        return 1
    summary = {
        "m": index.bit_count,
        "k": index.hash_count,
        "n": index.metadata.n,
        "p": index.metadata.p,
        "createdAt": index.metadata.created_at.isoformat(),
        "fillRatio": round(index.fill_ratio(), 6),
        "estimatedFalsePositiveRate": index.estimated_false_positive_rate(),
    }
    print(json.dumps(summary, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="availability-core",
        description="Build and inspect Bloom-filter membership indexes",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser(
        "build-filter",
        help="Build a filter from a newline-delimited key file",
    )
    build.add_argument("--keys", type=Path, required=True, help="Key file, one per line")
    build.add_argument("--output", type=Path, default=None, help="Filter JSON path")
    build.add_argument("--fpr", type=float, default=None, help="Target false-positive rate")
    build.set_defaults(handler=_build_filter)

    inspect = subparsers.add_parser("inspect-filter", help="Print filter metadata")
    inspect.add_argument("path", type=Path, nargs="?", default=None)
    inspect.set_defaults(handler=_inspect_filter)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    logging_settings = LoggingSettings()
    args.logger = configure_structlog(
        log_level=logging_settings.log_level,
        service=logging_settings.service_name or "availability-core",
    )
    return args.handler(args, MembershipSettings())


if __name__ == "__main__":
    sys.exit(main())
