import io
import json
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest
import requests
from PIL import Image

API = "https://api.figma.com/v1"


def png_bytes(size: Tuple[int, int] = (64, 48), color=(200, 30, 30, 255)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Union[bytes, str, dict] = b"", headers=None):
        if isinstance(body, dict):
            body = json.dumps(body)
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.status_code = status_code
        self.content = body
        self.headers = headers or {}

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


Handler = Union[FakeResponse, Exception, Callable[[str, Optional[Dict[str, Any]]], FakeResponse]]


class FakeSession:
    """Routes GET requests by exact URL to canned responses."""

    def __init__(self, routes: Optional[Dict[str, Handler]] = None):
        self.routes: Dict[str, Handler] = dict(routes or {})
        self.calls: List[Tuple[str, Optional[Dict[str, Any]], Dict[str, str]]] = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append((url, params, headers or {}))
        handler = self.routes.get(url)
        if handler is None:
            raise requests.ConnectionError(f"no route for {url}")
        if isinstance(handler, Exception):
            raise handler
        if callable(handler):
            return handler(url, params)
        return handler

    def urls(self) -> List[str]:
        return [url for url, _, _ in self.calls]


def node(node_id, name="", type="FRAME", children=None, **extra):
    data = {"id": node_id, "name": name or node_id, "type": type, "children": children or []}
    data.update(extra)
    return data


def image_fill(ref):
    return [{"type": "IMAGE", "imageRef": ref, "scaleMode": "FILL"}]


@pytest.fixture
def document_payload():
    """Two pages: vectors, an export, a missing component instance and image fills."""
    return {
        "name": "Demo File",
        "version": "42",
        "lastModified": "2026-10-01T10:00:00Z",
        "unknownField": {"ignored": True},
        "document": node(
            "0:0",
            "Document",
            "DOCUMENT",
            children=[
                node(
                    "1:0",
                    "Home",
                    "CANVAS",
                    children=[
                        node(
                            "1:1",
                            "Landing",
                            "FRAME",
                            fills=image_fill("fill-a"),
                            children=[
                                node("1:2", "Logo", "VECTOR"),
                                node(
                                    "1:3",
                                    "Badge",
                                    "BOOLEAN_OPERATION",
                                    children=[node("1:4", "Inner", "VECTOR")],
                                ),
                                node("1:5", "Hero", "RECTANGLE", fills=image_fill("fill-b")),
                                node("1:6", "Lib Button", "INSTANCE", componentId="ext:99"),
                                node("1:7", "Local Button", "INSTANCE", componentId="1:20"),
                                node("1:8", "Title", "TEXT", fills=None, effects=None),
                            ],
                        ),
                        node(
                            "1:9",
                            "Share Card",
                            "FRAME",
                            exportSettings=[{"format": "PNG", "suffix": ""}],
                            children=[node("1:10", "Star", "STAR")],
                        ),
                    ],
                ),
                node(
                    "2:0",
                    "Library",
                    "CANVAS",
                    children=[
                        node("1:20", "Button", "COMPONENT", fills=image_fill("fill-a")),
                        node("2:1", "Blurred", "FRAME", effects=[{"type": "LAYER_BLUR", "radius": 4}]),
                        node("2:2", "Archived", "RECTANGLE", fills=image_fill("fill-c")),
                    ],
                ),
            ],
        ),
    }


@pytest.fixture
def make_config(tmp_path):
    from figma_sync.config import SyncConfig

    def _make(**overrides):
        values = dict(file_id="KEY", token="secret", asset_root=tmp_path / "Figma", batch_delay=0.0)
        values.update(overrides)
        return SyncConfig(**values)

    return _make
