"""Decide which document nodes need server rendering or bitmap fills."""

from __future__ import annotations

from typing import Collection, Dict, Iterable, List, Optional, Set

from .models import Document, Node, RenderCandidate, RenderType

# Geometry the local renderer cannot reproduce; the node is replaced by a bitmap.
SERVER_RENDER_NODE_TYPES = frozenset(
    {"BOOLEAN_OPERATION", "VECTOR", "STAR", "LINE", "REGULAR_POLYGON"}
)
UNSUPPORTED_EFFECT_TYPES = frozenset({"LAYER_BLUR", "BACKGROUND_BLUR"})

FULL_CIRCLE_RADIANS = 6.28


def page_nodes(document: Document, page_ids: Optional[Collection[str]] = None) -> List[Node]:
    """Top-level pages, optionally restricted to ``page_ids`` (document order kept)."""
    pages = document.pages
    if page_ids is None:
        return pages
    return [page for page in pages if page.id in page_ids]


def find_missing_component_definitions(document: Document) -> List[str]:
    """Component ids used by instances but not defined anywhere in the document."""
    defined: Set[str] = set()
    referenced: Dict[str, None] = {}
    for node in document.root.walk():
        if node.type in ("COMPONENT", "COMPONENT_SET"):
            defined.add(node.id)
        if node.type == "INSTANCE" and node.component_id:
            referenced.setdefault(node.component_id, None)
    return [component_id for component_id in referenced if component_id not in defined]


def _is_partial_ellipse(node: Node) -> bool:
    if node.type != "ELLIPSE" or not node.arc_data:
        return False
    start = float(node.arc_data.get("startingAngle") or 0.0)
    end = float(node.arc_data.get("endingAngle") or FULL_CIRCLE_RADIANS)
    inner = float(node.arc_data.get("innerRadius") or 0.0)
    return inner > 0.0 or abs(end - start) < FULL_CIRCLE_RADIANS


def needs_substitution(node: Node, missing_components: Collection[str]) -> bool:
    if node.type in SERVER_RENDER_NODE_TYPES:
        return True
    if _is_partial_ellipse(node):
        return True
    if any(effect in UNSUPPORTED_EFFECT_TYPES for effect in node.effects):
        return True
    return node.type == "INSTANCE" and node.component_id in missing_components


def is_export_node(node: Node) -> bool:
    return bool(node.export_settings)


def find_render_candidates(
    document: Document,
    missing_components: Collection[str],
    page_ids: Optional[Collection[str]] = None,
) -> List[RenderCandidate]:
    """Ordered, de-duplicated list of nodes that need a server-rendered image.

    Substituted nodes are rendered as a whole, so their descendants are not
    inspected. Exported nodes are still built locally and their subtree is
    visited.
    """
    missing = set(missing_components)
    candidates: List[RenderCandidate] = []
    seen: Set[str] = set()

    def visit(node: Node) -> None:
        if node.id in seen:
            return
        if needs_substitution(node, missing):
            seen.add(node.id)
            candidates.append(RenderCandidate(node, RenderType.SUBSTITUTION))
            return
        if is_export_node(node):
            seen.add(node.id)
            candidates.append(RenderCandidate(node, RenderType.EXPORT))
        for child in node.children:
            visit(child)

    for page in page_nodes(document, page_ids):
        for child in page.children:
            visit(child)
    return candidates


def _image_refs(nodes: Iterable[Node]) -> Iterable[str]:
    for node in nodes:
        for paint in (*node.fills, *node.background):
            if paint.type == "IMAGE" and paint.image_ref:
                yield paint.image_ref


def image_fill_ids(document: Document, page_ids: Optional[Collection[str]] = None) -> List[str]:
    """Fill ids actually referenced under the selected pages, first-seen order."""
    found: Dict[str, None] = {}
    for page in page_nodes(document, page_ids):
        for image_ref in _image_refs(page.walk()):
            found.setdefault(image_ref, None)
    return list(found)
