"""Thin HTTP client for the Figma REST API."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Sequence

import requests

from .config import DEFAULT_API_BASE

logger = logging.getLogger("figma_sync")


class FigmaSyncError(RuntimeError):
    """Base class for phase-level synchronization failures."""


class FigmaTransportError(FigmaSyncError):
    """The remote API could not be reached or answered with a non-2xx status."""

    def __init__(self, message: str, url: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class FigmaDecodeError(FigmaSyncError):
    """A response arrived but did not have the expected shape."""


class FigmaClient:
    """Issues authenticated requests against the document, render and fill endpoints."""

    def __init__(
        self,
        token: str,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.token = token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> str:
        url = f"{self.api_base}{path}"
        logger.debug("GET %s", url)
        try:
            resp = self.session.get(
                url,
                params=params,
                headers={"X-Figma-Token": self.token},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise FigmaTransportError(f"HTTP {status} from {url}: {exc}", url, status) from exc
        except requests.RequestException as exc:
            raise FigmaTransportError(f"Error contacting {url}: {exc}", url) from exc
        return resp.text

    @staticmethod
    def _decode_mapping(text: str, keys: Sequence[str], what: str) -> Dict[str, str]:
        mapping = decode_json(text, what)
        for key in keys:
            if not isinstance(mapping, dict):
                raise FigmaDecodeError(f"Problem decoding {what}: expected an object above '{key}'")
            mapping = mapping.get(key)
        if mapping is None:
            mapping = {}
        if not isinstance(mapping, dict):
            raise FigmaDecodeError(f"Problem decoding {what}: '{'.'.join(keys)}' is not an object")
        # The renderer answers null for nodes it failed to rasterize.
        return {str(node_id): url or "" for node_id, url in mapping.items()}

    def get_document_text(self, file_id: str) -> str:
        """Fetch the raw document JSON; geometry=paths is needed for full transforms."""
        return self._get(f"/files/{file_id}", params={"geometry": "paths"})

    def get_render_urls(self, file_id: str, node_ids: Sequence[str], scale: int) -> Dict[str, str]:
        """Request server-side rendering of ``node_ids``; maps node id to image URL."""
        text = self._get(
            f"/images/{file_id}",
            params={
                "ids": ",".join(node_ids),
                "scale": scale,
                "use_absolute_bounds": "true",
            },
        )
        return self._decode_mapping(text, ("images",), "server render JSON")

    def get_image_fill_urls(self, file_id: str) -> Dict[str, str]:
        """List every bitmap fill in the file; maps fill id to source URL."""
        text = self._get(f"/files/{file_id}/images")
        return self._decode_mapping(text, ("meta", "images"), "image fill JSON")


def decode_json(text: str, what: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as exc:
        raise FigmaDecodeError(f"Problem decoding {what}: {exc}") from exc
