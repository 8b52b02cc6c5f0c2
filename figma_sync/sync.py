"""High-level orchestration of the document, rendered image and fill phases."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

import requests

from .api import FigmaClient, FigmaSyncError
from .artifacts import BuildContext, Builder, write_node_manifests
from .batching import AbortCheck, run_batches, schedule
from .classifier import (
    find_missing_component_definitions,
    find_render_candidates,
    image_fill_ids,
    page_nodes,
)
from .config import SyncConfig
from .document import fetch_document, load_cached_document
from .downloads import build_download_queue, download
from .images import check_existing_fill_settings, create_placeholders, needs_download
from .models import Document, Node
from .paths import (
    create_required_directories,
    path_for_image_fill,
    path_for_rendered_image,
    snapshot_artifacts,
)
from .reconcile import reconcile

logger = logging.getLogger("figma_sync")


class PageSelectionError(FigmaSyncError):
    """The configured page selection no longer matches the document."""


@dataclass
class PhaseReport:
    """Outcome of one logical phase."""

    name: str
    ok: bool
    message: str
    error: Optional[BaseException] = None
    downloaded: int = 0
    failed: int = 0
    placeholders: int = 0
    deleted: List[Path] = field(default_factory=list)
    aborted: bool = False
    seconds: float = 0.0


@dataclass
class SyncSummary:
    phases: List[PhaseReport] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(phase.ok for phase in self.phases)

    @property
    def failed_items(self) -> int:
        return sum(phase.failed for phase in self.phases)


def make_client(config: SyncConfig, session: Optional[requests.Session] = None) -> FigmaClient:
    return FigmaClient(
        config.token,
        api_base=config.api_base,
        timeout=config.request_timeout,
        session=session,
    )


def _failure(name: str, message: str, exc: BaseException, start: float) -> PhaseReport:
    logger.error("%s: %s", message, exc)
    return PhaseReport(
        name=name,
        ok=False,
        message=f"{message}: {exc}",
        error=exc,
        seconds=time.perf_counter() - start,
    )


def selected_pages(document: Document, selected_page_ids: Optional[FrozenSet[str]]) -> List[Node]:
    """Resolve the configured page selection against the document's current pages."""
    if selected_page_ids is None:
        return document.pages
    if not selected_page_ids:
        raise PageSelectionError("Page selection is enabled, but no pages are selected for import")
    known = {page.id for page in document.pages}
    unknown = sorted(selected_page_ids - known)
    if unknown:
        raise PageSelectionError(
            "The pages found in the Figma document have changed; unknown page ids: "
            + ", ".join(unknown)
        )
    return page_nodes(document, selected_page_ids)


def process_document(
    config: SyncConfig,
    document: Document,
    builder: Builder = write_node_manifests,
) -> PhaseReport:
    """Seed placeholders, generate artifacts and delete the ones no longer produced."""
    start = time.perf_counter()
    try:
        pages = selected_pages(document, config.selected_page_ids)
    except PageSelectionError as exc:
        return _failure("document", "Invalid page selection", exc, start)

    layout = config.layout
    create_required_directories(layout)
    before = snapshot_artifacts(layout)

    page_ids = [page.id for page in pages]
    missing = find_missing_component_definitions(document)
    candidates = find_render_candidates(document, missing, page_ids)
    placeholders = create_placeholders(
        path_for_rendered_image(layout, candidate) for candidate in candidates
    )
    logger.info(
        "Created %d placeholder images for server rendered nodes. "
        "Run the image sync to download actual images.",
        placeholders,
    )

    check_existing_fill_settings(layout)
    fill_ids = image_fill_ids(document, page_ids)
    fill_placeholders = create_placeholders(
        path_for_image_fill(layout, fill_id) for fill_id in fill_ids
    )
    logger.info("Created %d placeholder images for image fills.", fill_placeholders)

    context = BuildContext(
        file_id=config.file_id,
        layout=layout,
        document=document,
        pages=pages,
        render_candidates=candidates,
        missing_components=missing,
        image_fill_ids=fill_ids,
    )
    try:
        produced = builder(context)
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Error generating artifacts for %s", document.name)
        return _failure("document", "Error generating Figma document", exc, start)

    deleted = reconcile(before, {Path(path).resolve() for path in produced})
    return PhaseReport(
        name="document",
        ok=True,
        message=f"Generated {len(produced)} artifacts, deleted {len(deleted)} orphans",
        placeholders=placeholders + fill_placeholders,
        deleted=deleted,
        seconds=time.perf_counter() - start,
    )


def sync_document(
    config: SyncConfig,
    client: FigmaClient,
    builder: Builder = write_node_manifests,
) -> Tuple[PhaseReport, Optional[Document]]:
    """Fetch the live document, refresh the cache and process it.

    Returns ``(report, document)``; ``document`` is None when the fetch failed.
    """
    start = time.perf_counter()
    try:
        document = fetch_document(client, config.file_id, config.cache_path)
    except (FigmaSyncError, OSError) as exc:
        return (
            _failure(
                "fetch",
                "Error downloading Figma document - check your access token and document id",
                exc,
                start,
            ),
            None,
        )
    return process_document(config, document, builder), document


def _resolve_document(config: SyncConfig, document: Optional[Document]) -> Document:
    if document is not None:
        return document
    cached = load_cached_document(config.cache_path)
    if cached is None:
        raise FigmaSyncError("No cached Figma document found; sync the document first")
    return cached


def sync_server_rendered_images(
    config: SyncConfig,
    client: FigmaClient,
    document: Optional[Document] = None,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
    abort: Optional[AbortCheck] = None,
) -> PhaseReport:
    """Request server renders in bounded batches and download the results."""
    name = "rendered_images"
    start = time.perf_counter()
    try:
        document = _resolve_document(config, document)
        pages = selected_pages(document, config.selected_page_ids)
    except FigmaSyncError as exc:
        return _failure(name, "Cannot sync server rendered images", exc, start)

    layout = config.layout
    missing = find_missing_component_definitions(document)
    candidates = find_render_candidates(document, missing, [page.id for page in pages])
    pending = [c for c in candidates if needs_download(path_for_rendered_image(layout, c))]
    if not pending:
        message = (
            "All server rendered images are up to date"
            if candidates
            else "No complex shapes that require server rendering were found"
        )
        logger.info(message)
        return PhaseReport(name=name, ok=True, message=message, seconds=time.perf_counter() - start)

    batches = schedule([candidate.node_id for candidate in pending], config.max_batch_size)
    try:
        run = run_batches(
            batches,
            lambda batch: client.get_render_urls(config.file_id, batch, config.render_scale),
            config.batch_delay,
            sleep=sleep,
            abort=abort,
        )
    except FigmaSyncError as exc:
        return _failure(name, "Error downloading Figma server render image data", exc, start)

    render_urls: Dict[str, str] = {}
    for urls in run.results:
        render_urls.update(urls)
    queue = build_download_queue(layout, render_urls=render_urls, candidates=pending)
    report = download(
        queue.items,
        session=session or client.session,
        timeout=config.request_timeout,
        abort=abort,
    )

    requested = {node_id for batch in batches[: len(run.results)] for node_id in batch}
    unanswered = [
        path_for_rendered_image(layout, candidate)
        for candidate in pending
        if candidate.node_id in requested and candidate.node_id not in render_urls
    ]
    retry_paths = queue.unresolved + unanswered + [o.item.destination for o in report.failed]
    placeholders = create_placeholders(retry_paths)
    failed = len(report.failed) + len(queue.unresolved) + len(unanswered)
    logger.info(
        "Server rendered images sync completed. %d images downloaded successfully "
        "(%d bytes), %d failed (placeholders created).",
        len(report.succeeded),
        report.bytes_written,
        failed,
    )
    return PhaseReport(
        name=name,
        ok=True,
        message=f"{len(report.succeeded)} downloaded, {failed} failed",
        downloaded=len(report.succeeded),
        failed=failed,
        placeholders=placeholders,
        aborted=run.aborted or report.aborted,
        seconds=time.perf_counter() - start,
    )


def sync_image_fills(
    config: SyncConfig,
    client: FigmaClient,
    document: Optional[Document] = None,
    session: Optional[requests.Session] = None,
    abort: Optional[AbortCheck] = None,
) -> PhaseReport:
    """Download the bitmap fills used by the selected pages."""
    name = "image_fills"
    start = time.perf_counter()
    try:
        document = _resolve_document(config, document)
        pages = selected_pages(document, config.selected_page_ids)
    except FigmaSyncError as exc:
        return _failure(name, "Cannot sync image fills", exc, start)

    used = image_fill_ids(document, [page.id for page in pages])
    if not used:
        logger.info("No image fills found in the document")
        return PhaseReport(
            name=name, ok=True, message="No image fills found", seconds=time.perf_counter() - start
        )

    layout = config.layout
    pending = [fill_id for fill_id in used if needs_download(path_for_image_fill(layout, fill_id))]
    if not pending:
        logger.info("All image fills are already up to date")
        return PhaseReport(
            name=name,
            ok=True,
            message="All image fills are up to date",
            seconds=time.perf_counter() - start,
        )

    try:
        listing = client.get_image_fill_urls(config.file_id)
    except FigmaSyncError as exc:
        return _failure(name, "Error downloading Figma image fill data", exc, start)

    # The listing covers every bitmap ever placed in the file, not just live ones.
    fill_urls = {fill_id: listing[fill_id] for fill_id in pending if fill_id in listing}
    queue = build_download_queue(layout, fill_urls=fill_urls)
    report = download(
        queue.items,
        session=session or client.session,
        timeout=config.request_timeout,
        abort=abort,
    )

    unlisted = [path_for_image_fill(layout, fill_id) for fill_id in pending if fill_id not in listing]
    placeholders = create_placeholders(unlisted + [o.item.destination for o in report.failed])
    failed = len(report.failed) + len(unlisted)
    logger.info(
        "Image fills sync completed. %d images downloaded successfully "
        "(%d bytes), %d failed.",
        len(report.succeeded),
        report.bytes_written,
        failed,
    )
    return PhaseReport(
        name=name,
        ok=True,
        message=f"{len(report.succeeded)} downloaded, {failed} failed",
        downloaded=len(report.succeeded),
        failed=failed,
        placeholders=placeholders,
        aborted=report.aborted,
        seconds=time.perf_counter() - start,
    )


def _sync_assets(
    summary: SyncSummary,
    config: SyncConfig,
    client: FigmaClient,
    document: Document,
    session: Optional[requests.Session],
    sleep: Callable[[float], None],
    abort: Optional[AbortCheck],
) -> None:
    summary.phases.append(
        sync_server_rendered_images(
            config, client, document=document, session=session, sleep=sleep, abort=abort
        )
    )
    if abort is not None and abort():
        return
    summary.phases.append(
        sync_image_fills(config, client, document=document, session=session, abort=abort)
    )


def sync_all(
    config: SyncConfig,
    client: FigmaClient,
    builder: Builder = write_node_manifests,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
    abort: Optional[AbortCheck] = None,
) -> SyncSummary:
    """Fetch and process the document, then sync rendered images and fills.

    When the fetch fails the asset phases are skipped rather than falling back
    to a possibly stale cache.
    """
    summary = SyncSummary()
    report, document = sync_document(config, client, builder)
    summary.phases.append(report)
    if document is None:
        return summary
    if abort is not None and abort():
        return summary
    _sync_assets(summary, config, client, document, session, sleep, abort)
    return summary


def reprocess_cached(
    config: SyncConfig,
    client: FigmaClient,
    builder: Builder = write_node_manifests,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
    abort: Optional[AbortCheck] = None,
) -> SyncSummary:
    """Re-run processing and asset phases against the cached document only."""
    summary = SyncSummary()
    start = time.perf_counter()
    try:
        document = _resolve_document(config, None)
    except FigmaSyncError as exc:
        summary.phases.append(_failure("load_cache", "Cannot reprocess cached document", exc, start))
        return summary
    summary.phases.append(process_document(config, document, builder))
    _sync_assets(summary, config, client, document, session, sleep, abort)
    return summary
