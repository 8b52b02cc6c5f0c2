"""Command-line entry point for Figma document synchronization."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from typing import Iterable, List, Sequence

from .config import (
    DEFAULT_API_BASE,
    DEFAULT_BATCH_DELAY,
    DEFAULT_RENDER_SCALE,
    MAX_RENDER_BATCH_SIZE,
    SyncConfig,
)
from .images import classify
from .sync import (
    PhaseReport,
    SyncSummary,
    make_client,
    reprocess_cached,
    sync_all,
    sync_document,
    sync_image_fills,
    sync_server_rendered_images,
)
from .utils import parse_file_id

logger = logging.getLogger("figma_sync.cli")

TOKEN_ENV_VAR = "FIGMA_TOKEN"
SYNC_COMMANDS = ("sync", "document", "reprocess", "images", "fills")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("sync", *argv)


def _add_sync_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("file", help="Figma file id or document URL")
    parser.add_argument(
        "--output",
        default="Assets/Figma",
        type=Path,
        help="Asset root where generated artifacts and images are written",
    )
    parser.add_argument(
        "--token",
        default=None,
        help=f"Figma personal access token (defaults to ${TOKEN_ENV_VAR})",
    )
    parser.add_argument(
        "--cache",
        default=None,
        type=Path,
        help="Path of the cached document JSON (default: <output>/FigmaOutput.json)",
    )
    parser.add_argument(
        "--page",
        action="append",
        dest="pages",
        default=None,
        help="Only import the page with this node id (repeatable)",
    )
    parser.add_argument(
        "--scale",
        type=int,
        default=DEFAULT_RENDER_SCALE,
        help="Scale at which the server renders complex nodes",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=MAX_RENDER_BATCH_SIZE,
        help="Maximum node ids per server render request",
    )
    parser.add_argument(
        "--batch-delay",
        type=float,
        default=DEFAULT_BATCH_DELAY,
        help="Seconds to wait between server render requests",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Timeout in seconds for each HTTP request",
    )
    parser.add_argument("--api-base", default=DEFAULT_API_BASE, help=argparse.SUPPRESS)
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Synchronize a Figma document and its images into a local asset folder.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    helps = {
        "sync": "Fetch the document, then download server rendered images and image fills",
        "document": "Fetch and process the document only (no image downloads)",
        "reprocess": "Process the cached document and sync its images without refetching it",
        "images": "Download server rendered images for the cached document",
        "fills": "Download image fills for the cached document",
    }
    for command in SYNC_COMMANDS:
        _add_sync_arguments(subparsers.add_parser(command, help=helps[command]))

    check_parser = subparsers.add_parser(
        "check", help="Report whether local image files are absent, placeholders or valid"
    )
    check_parser.add_argument("paths", nargs="+", type=Path, help="Image files to inspect")
    check_parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def build_config(args: argparse.Namespace) -> SyncConfig:
    token = args.token or os.getenv(TOKEN_ENV_VAR)
    if not token:
        raise SystemExit(f"A Figma access token is required (--token or ${TOKEN_ENV_VAR})")
    file_id = parse_file_id(args.file) if args.file.startswith("https://") else args.file
    if not file_id:
        raise SystemExit(f"Figma document URL is not valid: {args.file}")
    return SyncConfig(
        file_id=file_id,
        token=token,
        asset_root=Path(args.output).resolve(),
        cache_path=args.cache,
        api_base=args.api_base,
        render_scale=args.scale,
        max_batch_size=args.batch_size,
        batch_delay=args.batch_delay,
        request_timeout=args.timeout,
        selected_page_ids=frozenset(args.pages) if args.pages else None,
    )


def _run_sync(args: argparse.Namespace) -> SyncSummary:
    config = build_config(args)
    client = make_client(config)
    if args.command == "sync":
        return sync_all(config, client)
    if args.command == "reprocess":
        return reprocess_cached(config, client)
    phases: List[PhaseReport] = []
    if args.command == "document":
        report, _ = sync_document(config, client)
        phases.append(report)
    elif args.command == "images":
        phases.append(sync_server_rendered_images(config, client))
    else:
        phases.append(sync_image_fills(config, client))
    return SyncSummary(phases=phases)


def _report(summary: SyncSummary, elapsed: float) -> int:
    for phase in summary.phases:
        level = logging.INFO if phase.ok else logging.ERROR
        logger.log(level, "[%s] %s (%.2fs)", phase.name, phase.message, phase.seconds)
        for path in phase.deleted:
            logger.debug("[%s] deleted %s", phase.name, path)
    failed_phases = sum(1 for phase in summary.phases if not phase.ok)
    logger.info(
        "Finished in %.2fs (%d/%d phases succeeded, %d items need retry)",
        elapsed,
        len(summary.phases) - failed_phases,
        len(summary.phases),
        summary.failed_items,
    )
    if not summary.ok or summary.failed_items:
        return 1
    return 0


def _run_check(args: argparse.Namespace) -> int:
    for path in args.paths:
        sys.stdout.write(f"{classify(path).value}\t{path}\n")
    sys.stdout.flush()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    if args.command == "check":
        return _run_check(args)
    overall_start = time.perf_counter()
    summary = _run_sync(args)
    return _report(summary, time.perf_counter() - overall_start)


if __name__ == "__main__":
    raise SystemExit(main())
