"""Image validation, placeholder handling and import metadata."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from filetype import guess
from PIL import Image, UnidentifiedImageError

from .config import AssetLayout
from .models import AssetState, DownloadKind
from .paths import IMAGE_SUFFIX, sidecar_path

logger = logging.getLogger("figma_sync")

PLACEHOLDER_SIZE = (2, 2)
PLACEHOLDER_COLOR = (128, 128, 128, 128)
# A 2x2 PNG is well under 1KB; anything above this is never a placeholder.
PLACEHOLDER_MAX_BYTES = 10_000

WRAP_MODES = {
    DownloadKind.FILL: "repeat",
    DownloadKind.RENDERED_IMAGE: "clamp",
}


def detect_image_format(data: bytes) -> Optional[str]:
    """Detect image type using filetype; returns lowercase extension."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        if ext == "jpeg":
            return "jpg"
        return ext
    return None


def classify(path: Path) -> AssetState:
    """Decide whether the file at ``path`` needs to be (re)downloaded.

    Only the file itself is inspected. A tiny genuine 2x2 image is reported as
    a placeholder, and a corrupt file above the size threshold as valid.
    """
    try:
        size = path.stat().st_size
    except FileNotFoundError:
        return AssetState.ABSENT
    if size > PLACEHOLDER_MAX_BYTES:
        return AssetState.VALID
    try:
        with Image.open(path) as image:
            dimensions = image.size
    except (UnidentifiedImageError, OSError):
        return AssetState.VALID
    if dimensions == PLACEHOLDER_SIZE:
        return AssetState.PLACEHOLDER
    return AssetState.VALID


def needs_download(path: Path) -> bool:
    return classify(path) is not AssetState.VALID


def import_settings(kind: DownloadKind) -> Dict[str, Any]:
    return {
        "texture_type": "sprite",
        "sprite_mode": "single",
        "alpha_is_transparency": True,
        "mipmaps": True,
        "compression": "none",
        "srgb": True,
        "wrap_mode": WRAP_MODES[kind],
    }


def write_import_settings(path: Path, kind: DownloadKind) -> Path:
    """Record how the image should be imported next to it; pixels are untouched."""
    meta = sidecar_path(path)
    meta.write_text(json.dumps(import_settings(kind), indent=2, sort_keys=True), encoding="utf-8")
    return meta


def read_import_settings(path: Path) -> Optional[Dict[str, Any]]:
    meta = sidecar_path(path)
    if not meta.is_file():
        return None
    try:
        data = json.loads(meta.read_text(encoding="utf-8"))
    except ValueError:
        logger.warning("Ignoring unreadable import settings %s", meta)
        return None
    return data if isinstance(data, dict) else None


def create_placeholder(path: Path) -> None:
    """Write a 2x2 semi-transparent grey PNG marking ``path`` for retry."""
    path.parent.mkdir(parents=True, exist_ok=True)
    image = Image.new("RGBA", PLACEHOLDER_SIZE, PLACEHOLDER_COLOR)
    image.save(path, format="PNG")
    write_import_settings(path, DownloadKind.RENDERED_IMAGE)
    logger.debug("Created placeholder image at %s", path)


def create_placeholder_if_missing(path: Path) -> bool:
    """Seed a placeholder without overwriting an existing download."""
    if path.exists():
        return False
    create_placeholder(path)
    return True


def create_placeholders(paths: Iterable[Path]) -> int:
    """Seed placeholders for each missing path; returns how many were created."""
    created = 0
    for path in paths:
        try:
            if create_placeholder_if_missing(path):
                created += 1
        except OSError as exc:
            logger.warning("Failed to create placeholder for %s: %s", path, exc)
    return created


def check_existing_fill_settings(layout: AssetLayout) -> int:
    """Bring fill import settings written by older versions up to date."""
    folder = layout.image_fills
    if not folder.is_dir():
        return 0
    updated = 0
    for image_path in sorted(folder.glob(f"*{IMAGE_SUFFIX}")):
        settings = read_import_settings(image_path)
        if settings is not None and settings.get("srgb") is True:
            continue
        kind = DownloadKind.FILL
        if classify(image_path) is AssetState.PLACEHOLDER:
            kind = DownloadKind.RENDERED_IMAGE
        write_import_settings(image_path, kind)
        updated += 1
    if updated:
        logger.info("Updated import settings for %d image fills", updated)
    return updated
