"""Deterministic asset paths below the asset root."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Set

from .config import AssetLayout
from .models import RenderCandidate, RenderType
from .utils import safe_node_id, safe_node_name

PREFAB_SUFFIX = ".prefab"
IMAGE_SUFFIX = ".png"
SIDECAR_SUFFIX = ".meta"


def path_for_image_fill(layout: AssetLayout, fill_id: str) -> Path:
    return layout.image_fills / f"{safe_node_id(fill_id)}{IMAGE_SUFFIX}"


def path_for_rendered_image(layout: AssetLayout, candidate: RenderCandidate) -> Path:
    """Exports land at the asset root under the node name, substitutions under their id."""
    if candidate.render_type is RenderType.EXPORT:
        return layout.root / f"{safe_node_name(candidate.node.name)}{IMAGE_SUFFIX}"
    return layout.server_rendered_images / f"{safe_node_id(candidate.node_id)}{IMAGE_SUFFIX}"


def path_for_page_prefab(layout: AssetLayout, name: str, duplicate_count: int = 0) -> Path:
    return layout.pages / f"{safe_node_name(name, duplicate_count)}{PREFAB_SUFFIX}"


def path_for_screen_prefab(layout: AssetLayout, name: str, duplicate_count: int = 0) -> Path:
    return layout.screens / f"{safe_node_name(name, duplicate_count)}{PREFAB_SUFFIX}"


def path_for_component_prefab(layout: AssetLayout, name: str, duplicate_count: int = 0) -> Path:
    return layout.components / f"{safe_node_name(name, duplicate_count)}{PREFAB_SUFFIX}"


def sidecar_path(path: Path) -> Path:
    return path.with_name(path.name + SIDECAR_SUFFIX)


def create_required_directories(layout: AssetLayout) -> None:
    for folder in layout.all_folders():
        folder.mkdir(parents=True, exist_ok=True)


def snapshot_artifacts(layout: AssetLayout) -> Set[Path]:
    """Absolute paths of the generated page and screen prefabs currently on disk."""
    found: Set[Path] = set()
    for folder in (layout.pages, layout.screens):
        if not folder.is_dir():
            continue
        for entry in folder.iterdir():
            if entry.is_file() and entry.suffix == PREFAB_SUFFIX:
                found.add(entry.resolve())
    return found


class NameRegistry:
    """Hands out collision counters for names within one artifact folder."""

    def __init__(self) -> None:
        self._counts: Dict[str, int] = {}

    def claim(self, name: str) -> int:
        key = safe_node_name(name).lower()
        count = self._counts.get(key, 0)
        self._counts[key] = count + 1
        return count
