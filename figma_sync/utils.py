"""Utility helpers for file naming and document URL handling."""

from __future__ import annotations

import re
from typing import Optional

UNSAFE_FILENAME_PATTERN = re.compile(r'([<>:"/\\|?*\x00-\x1f.]*\.+$)|([<>:"/\\|?*\x00-\x1f.]+)')
UNSAFE_NODE_ID_PATTERN = re.compile(r"[^A-Za-z0-9_\-]")

DOCUMENT_URL_PREFIXES = (
    "https://www.figma.com/file/",
    "https://www.figma.com/design/",
)


def make_valid_filename(name: str) -> str:
    """Replace characters that are invalid in file names with underscores."""
    return UNSAFE_FILENAME_PATTERN.sub("_", name)


def safe_node_name(name: str, duplicate_count: int = 0) -> str:
    """Build a file name stem for a node, disambiguating repeated names."""
    stem = name.strip()
    if duplicate_count > 0:
        stem = f"{stem}_{duplicate_count}"
    return make_valid_filename(stem) or "_"


def safe_node_id(node_id: str) -> str:
    """Node ids look like ``12:34`` or ``I1:2;3:4``; map them onto safe file names."""
    return UNSAFE_NODE_ID_PATTERN.sub("_", node_id)


def parse_file_id(url: str) -> Optional[str]:
    """Extract the document id from a legacy ``/file/`` or modern ``/design/`` URL."""
    for prefix in DOCUMENT_URL_PREFIXES:
        if url.startswith(prefix):
            remainder = url[len(prefix):]
            separator = remainder.find("/")
            if separator <= 0:
                return None
            return remainder[:separator]
    return None
