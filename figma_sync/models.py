"""Data models used throughout the synchronization pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional


class DocumentShapeError(ValueError):
    """Raised when a payload cannot be mapped onto the document model."""


@dataclass
class Paint:
    """A single entry of a node's ``fills`` or ``background`` list."""

    type: str
    image_ref: Optional[str] = None
    visible: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Paint":
        if not isinstance(data, dict):
            raise DocumentShapeError(f"Paint must be an object, got {type(data).__name__}")
        return cls(
            type=str(data.get("type") or ""),
            image_ref=data.get("imageRef") or None,
            visible=data.get("visible") is not False,
        )


@dataclass
class Node:
    """One element of the document graph.

    Only the fields the pipeline inspects are modelled; anything else in the
    payload is ignored.
    """

    id: str
    name: str = ""
    type: str = ""
    children: List["Node"] = field(default_factory=list)
    fills: List[Paint] = field(default_factory=list)
    background: List[Paint] = field(default_factory=list)
    effects: List[str] = field(default_factory=list)
    component_id: Optional[str] = None
    export_settings: List[Dict[str, Any]] = field(default_factory=list)
    arc_data: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        if not isinstance(data, dict):
            raise DocumentShapeError(f"Node must be an object, got {type(data).__name__}")
        node_id = data.get("id")
        if not node_id:
            raise DocumentShapeError("Node is missing its id")
        effects = [
            str(effect.get("type"))
            for effect in _list_field(data, "effects")
            if isinstance(effect, dict) and effect.get("visible") is not False
        ]
        return cls(
            id=str(node_id),
            name=str(data.get("name") or ""),
            type=str(data.get("type") or ""),
            children=[cls.from_dict(child) for child in _list_field(data, "children")],
            fills=[Paint.from_dict(paint) for paint in _list_field(data, "fills")],
            background=[Paint.from_dict(paint) for paint in _list_field(data, "background")],
            effects=effects,
            component_id=data.get("componentId") or None,
            export_settings=[
                setting for setting in _list_field(data, "exportSettings") if isinstance(setting, dict)
            ],
            arc_data=data.get("arcData") if isinstance(data.get("arcData"), dict) else None,
        )

    def walk(self) -> Iterator["Node"]:
        """Yield this node and its descendants in document order."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class Document:
    """The full remote node graph for one design file."""

    name: str
    root: Node
    version: Optional[str] = None
    last_modified: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        if not isinstance(data, dict):
            raise DocumentShapeError("Document payload must be a JSON object")
        root = data.get("document")
        if root is None:
            raise DocumentShapeError("Document payload has no 'document' node")
        return cls(
            name=str(data.get("name") or ""),
            root=Node.from_dict(root),
            version=data.get("version"),
            last_modified=data.get("lastModified"),
        )

    @property
    def pages(self) -> List[Node]:
        return list(self.root.children)


class RenderType(str, Enum):
    """Reason a node is sent to the server renderer."""

    SUBSTITUTION = "substitution"
    EXPORT = "export"


@dataclass
class RenderCandidate:
    """A node that needs a server-rendered bitmap."""

    node: Node
    render_type: RenderType = RenderType.SUBSTITUTION

    @property
    def node_id(self) -> str:
        return self.node.id


class DownloadKind(str, Enum):
    FILL = "fill"
    RENDERED_IMAGE = "rendered_image"


@dataclass(frozen=True)
class DownloadItem:
    """A single file to fetch for one download pass."""

    url: str
    destination: Path
    kind: DownloadKind


class AssetState(str, Enum):
    ABSENT = "absent"
    PLACEHOLDER = "placeholder"
    VALID = "valid"


@dataclass
class DownloadOutcome:
    """Result of attempting one download item."""

    item: DownloadItem
    ok: bool
    error: Optional[str] = None
    bytes_written: int = 0


@dataclass
class DownloadReport:
    """Per-item outcomes of one executor run."""

    outcomes: List[DownloadOutcome] = field(default_factory=list)
    aborted: bool = False

    @property
    def succeeded(self) -> List[DownloadOutcome]:
        return [outcome for outcome in self.outcomes if outcome.ok]

    @property
    def failed(self) -> List[DownloadOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    @property
    def bytes_written(self) -> int:
        return sum(outcome.bytes_written for outcome in self.succeeded)


def _list_field(data: Dict[str, Any], key: str) -> List[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise DocumentShapeError(f"Field '{key}' must be a list, got {type(value).__name__}")
    return value
