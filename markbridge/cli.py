"""Command-line entry point for converting wiki pages to Markdown."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Iterable, List, Sequence

from .config import ConversionOptions, CrawlConfig
from .crawler import convert_files, run_converter
from .models import ConversionResult

logger = logging.getLogger("markbridge.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("url", *argv)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--output",
        default="output",
        type=Path,
        help="Directory where Markdown files should be written",
    )
    parser.add_argument(
        "--no-front-matter",
        action="store_true",
        help="Do not prefix the document with a YAML front matter block",
    )
    parser.add_argument(
        "--no-title",
        action="store_true",
        help="Do not add the page title as a level-one heading",
    )
    parser.add_argument(
        "--embed-images",
        action="store_true",
        help="Inline images as base64 data URIs",
    )
    parser.add_argument(
        "--storage-state",
        type=Path,
        default=None,
        help="Playwright storage state (cookies) for authenticated pages and images",
    )
    parser.add_argument(
        "--stdout",
        action="store_true",
        help="Write Markdown to STDOUT instead of files",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_url_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("urls", nargs="+", help="One or more page URLs to convert")
    parser.add_argument(
        "--wait",
        type=float,
        default=1.0,
        help="Seconds to wait after network idle before reading HTML",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Navigation timeout in seconds",
    )
    _add_common_arguments(parser)


def _add_file_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("paths", nargs="+", type=Path, help="Saved HTML pages to convert")
    parser.add_argument(
        "--base-url",
        default="",
        help="URL the pages were saved from, used to resolve relative image links",
    )
    _add_common_arguments(parser)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Convert Confluence pages to clean Markdown.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    url_parser = subparsers.add_parser("url", help="Render pages with Playwright and convert them")
    _add_url_arguments(url_parser)

    file_parser = subparsers.add_parser("file", help="Convert saved HTML pages")
    _add_file_arguments(file_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def _configure_logging(args: argparse.Namespace) -> None:
    level = logging.DEBUG if args.verbose else logging.INFO
    if args.stdout and not args.verbose:
        level = logging.ERROR
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )


def build_config(args: argparse.Namespace) -> CrawlConfig:
    return CrawlConfig(
        output_root=Path(args.output).resolve(),
        wait_after_load=getattr(args, "wait", 1.0),
        navigation_timeout=getattr(args, "timeout", 30.0),
        storage_state=args.storage_state,
        options=ConversionOptions(
            include_front_matter=not args.no_front_matter,
            include_title=not args.no_title,
            embed_images=args.embed_images,
        ),
    )


def _report(results: List[ConversionResult], total_inputs: int, elapsed: float, args: argparse.Namespace) -> None:
    logger.info(
        "Finished in %.2fs (%d/%d succeeded, %d failed)",
        elapsed,
        len(results),
        total_inputs,
        total_inputs - len(results),
    )
    for result in results:
        logger.debug(
            "Converted %s -> %s (%.2fs, %d embedded image(s))",
            result.url,
            result.output_path or "stdout",
            result.total_seconds,
            result.embedded_images,
        )

    if args.stdout:
        for idx, result in enumerate(results):
            if idx:
                sys.stdout.write("\n")
            sys.stdout.write(result.markdown)
        sys.stdout.flush()


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    _configure_logging(args)
    config = build_config(args)

    overall_start = time.perf_counter()
    if args.command == "url":
        inputs = args.urls
        results = asyncio.run(run_converter(inputs, config, write=not args.stdout))
    else:
        inputs = args.paths
        results = asyncio.run(
            convert_files(inputs, config, base_url=args.base_url, write=not args.stdout)
        )
    _report(results, len(inputs), time.perf_counter() - overall_start, args)

    if not results:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
