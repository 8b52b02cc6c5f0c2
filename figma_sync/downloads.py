"""Build download queues and turn them into validated local files."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import requests

from .config import AssetLayout
from .images import detect_image_format, needs_download, write_import_settings
from .models import DownloadItem, DownloadKind, DownloadOutcome, DownloadReport, RenderCandidate
from .paths import path_for_image_fill, path_for_rendered_image

logger = logging.getLogger("figma_sync")

DOWNLOAD_TIMEOUT = 30.0


@dataclass
class DownloadQueue:
    """Items still to fetch, plus destinations the server gave no URL for."""

    items: List[DownloadItem] = field(default_factory=list)
    unresolved: List[Path] = field(default_factory=list)


def build_download_queue(
    layout: AssetLayout,
    fill_urls: Optional[Mapping[str, str]] = None,
    render_urls: Optional[Mapping[str, str]] = None,
    candidates: Sequence[RenderCandidate] = (),
    needs: Callable[[Path], bool] = needs_download,
) -> DownloadQueue:
    """Queue every required file whose local copy is absent or a placeholder."""
    queue = DownloadQueue()
    for fill_id, url in (fill_urls or {}).items():
        path = path_for_image_fill(layout, fill_id)
        if needs(path):
            queue.items.append(DownloadItem(url=url, destination=path, kind=DownloadKind.FILL))

    by_id: Dict[str, RenderCandidate] = {candidate.node_id: candidate for candidate in candidates}
    for node_id, url in (render_urls or {}).items():
        candidate = by_id.get(node_id)
        if candidate is None:
            logger.debug("Ignoring rendered image for unrequested node %s", node_id)
            continue
        path = path_for_rendered_image(layout, candidate)
        if not url:
            logger.info("Can't download image for server node %s", node_id)
            queue.unresolved.append(path)
        elif needs(path):
            queue.items.append(
                DownloadItem(url=url, destination=path, kind=DownloadKind.RENDERED_IMAGE)
            )
    return queue


def _write_atomically(path: Path, data: bytes) -> None:
    """Swap the bytes in at once so an interrupted write leaves the old file in place."""
    fd, tmp_name = tempfile.mkstemp(prefix=".download-", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _download_one(session: requests.Session, item: DownloadItem, timeout: float) -> int:
    if not item.url:
        raise ValueError("empty URL")
    item.destination.parent.mkdir(parents=True, exist_ok=True)
    resp = session.get(item.url, timeout=timeout)
    resp.raise_for_status()
    data = resp.content
    if detect_image_format(data) is None:
        raise ValueError(
            f"response is not an image (Content-Type={resp.headers.get('Content-Type', '')})"
        )
    _write_atomically(item.destination, data)
    write_import_settings(item.destination, item.kind)
    return len(data)


def download(
    items: Sequence[DownloadItem],
    session: Optional[requests.Session] = None,
    timeout: float = DOWNLOAD_TIMEOUT,
    abort: Optional[Callable[[], bool]] = None,
) -> DownloadReport:
    """Fetch each item in order; one failure never stops the remaining items."""
    session = session or requests.Session()
    report = DownloadReport()
    total = len(items)
    for index, item in enumerate(items, start=1):
        if abort is not None and abort():
            logger.info("Aborted after %d/%d downloads", index - 1, total)
            report.aborted = True
            break
        logger.debug("Downloading %s %d/%d -> %s", item.kind.value, index, total, item.destination)
        try:
            written = _download_one(session, item, timeout)
        except (requests.RequestException, OSError, ValueError) as exc:
            logger.warning(
                "Error downloading image file '%s' of type %s for path %s: %s",
                item.url,
                item.kind.value,
                item.destination,
                exc,
            )
            report.outcomes.append(DownloadOutcome(item=item, ok=False, error=str(exc)))
            continue
        report.outcomes.append(DownloadOutcome(item=item, ok=True, bytes_written=written))
    return report
