"""Boundary with the artifact generator, plus a simple descriptor-writing generator."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List

from .config import AssetLayout
from .models import Document, Node, RenderCandidate
from .paths import (
    NameRegistry,
    path_for_component_prefab,
    path_for_page_prefab,
    path_for_screen_prefab,
)

logger = logging.getLogger("figma_sync")

SCREEN_NODE_TYPES = frozenset({"FRAME", "COMPONENT", "COMPONENT_SET", "INSTANCE"})


@dataclass
class BuildContext:
    """Everything a generator receives for one pass."""

    file_id: str
    layout: AssetLayout
    document: Document
    pages: List[Node]
    render_candidates: List[RenderCandidate] = field(default_factory=list)
    missing_components: List[str] = field(default_factory=list)
    image_fill_ids: List[str] = field(default_factory=list)


# A generator writes artifacts and returns every path it produced.
Builder = Callable[[BuildContext], List[Path]]


def _write_descriptor(path: Path, node: Node, file_id: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    descriptor = {"file_id": file_id, "id": node.id, "name": node.name, "type": node.type}
    path.write_text(json.dumps(descriptor, indent=2), encoding="utf-8")
    return path.resolve()


def write_node_manifests(context: BuildContext) -> List[Path]:
    """Write one JSON descriptor per page, top-level frame and component."""
    layout = context.layout
    produced: List[Path] = []
    pages, screens, components = NameRegistry(), NameRegistry(), NameRegistry()

    for page in context.pages:
        path = path_for_page_prefab(layout, page.name, pages.claim(page.name))
        produced.append(_write_descriptor(path, page, context.file_id))
        for child in page.children:
            if child.type not in SCREEN_NODE_TYPES:
                continue
            path = path_for_screen_prefab(layout, child.name, screens.claim(child.name))
            produced.append(_write_descriptor(path, child, context.file_id))

    for node in context.document.root.walk():
        if node.type != "COMPONENT":
            continue
        path = path_for_component_prefab(layout, node.name, components.claim(node.name))
        produced.append(_write_descriptor(path, node, context.file_id))

    logger.info("Generated %d artifacts", len(produced))
    return produced
