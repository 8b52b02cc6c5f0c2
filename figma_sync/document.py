"""Fetch-or-load access to the document graph and its single local cache file."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from .api import FigmaClient, FigmaDecodeError, decode_json
from .models import Document, DocumentShapeError

logger = logging.getLogger("figma_sync")


def parse_document(text: str) -> Document:
    """Deserialize raw document JSON, ignoring unknown and null fields."""
    payload = decode_json(text, "Figma document JSON")
    try:
        return Document.from_dict(payload)
    except DocumentShapeError as exc:
        raise FigmaDecodeError(f"Problem decoding Figma document JSON: {exc}") from exc


def write_cache(cache_path: Path, text: str) -> None:
    """Replace the cache file in one step so a crash never leaves half a document."""
    cache_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=".figma-cache-", dir=cache_path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_name, cache_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def fetch_document(client: FigmaClient, file_id: str, cache_path: Path) -> Document:
    """Download the document, then overwrite the cache with the verbatim response.

    Transport failures raise :class:`FigmaTransportError`, unparseable payloads
    raise :class:`FigmaDecodeError`; in both cases the previous cache is kept.
    """
    text = client.get_document_text(file_id)
    document = parse_document(text)
    write_cache(cache_path, text)
    logger.info(
        "Figma file downloaded, name %s (version %s, last modified %s)",
        document.name,
        document.version,
        document.last_modified,
    )
    return document


def load_cached_document(cache_path: Path) -> Optional[Document]:
    """Load the most recently fetched document without touching the network."""
    if not cache_path.is_file():
        logger.debug("No cached document at %s", cache_path)
        return None
    try:
        text = cache_path.read_text(encoding="utf-8")
    except (UnicodeDecodeError, OSError) as exc:
        raise FigmaDecodeError(f"Problem decoding cached Figma document: {exc}") from exc
    document = parse_document(text)
    logger.info("Figma file loaded from cache: %s", document.name)
    return document
