"""Configuration objects and constants for document synchronization."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Optional

DEFAULT_API_BASE = "https://api.figma.com/v1"
DEFAULT_CACHE_FILENAME = "FigmaOutput.json"

# Upper bound on node ids per render request. Observed empirically: 650 is rejected.
MAX_RENDER_BATCH_SIZE = 300
DEFAULT_BATCH_DELAY = 1.0
DEFAULT_RENDER_SCALE = 3


@dataclass(frozen=True)
class AssetLayout:
    """Fixed folder structure below the asset root."""

    root: Path

    @property
    def pages(self) -> Path:
        return self.root / "Pages"

    @property
    def screens(self) -> Path:
        return self.root / "Screens"

    @property
    def components(self) -> Path:
        return self.root / "Components"

    @property
    def image_fills(self) -> Path:
        return self.root / "ImageFills"

    @property
    def server_rendered_images(self) -> Path:
        return self.root / "ServerRenderedImages"

    @property
    def font_material_presets(self) -> Path:
        return self.root / "FontMaterialPresets"

    @property
    def fonts(self) -> Path:
        return self.root / "Fonts"

    def all_folders(self) -> tuple[Path, ...]:
        return (
            self.pages,
            self.screens,
            self.components,
            self.image_fills,
            self.server_rendered_images,
            self.font_material_presets,
            self.fonts,
        )


@dataclass
class SyncConfig:
    """Top-level settings threaded through every pipeline phase."""

    file_id: str
    token: str
    asset_root: Path
    cache_path: Optional[Path] = None
    api_base: str = DEFAULT_API_BASE
    render_scale: int = DEFAULT_RENDER_SCALE
    max_batch_size: int = MAX_RENDER_BATCH_SIZE
    batch_delay: float = DEFAULT_BATCH_DELAY
    request_timeout: float = 30.0
    selected_page_ids: Optional[FrozenSet[str]] = None
    layout: AssetLayout = field(init=False)

    def __post_init__(self) -> None:
        self.asset_root = Path(self.asset_root)
        if self.cache_path is None:
            self.cache_path = self.asset_root / DEFAULT_CACHE_FILENAME
        if self.max_batch_size <= 0:
            raise ValueError("max_batch_size must be positive")
        if self.selected_page_ids is not None:
            self.selected_page_ids = frozenset(self.selected_page_ids)
        self.layout = AssetLayout(self.asset_root)
