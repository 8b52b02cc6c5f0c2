"""MCP server exposing figma-sync tools."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from .config import SyncConfig
from .images import classify
from .sync import SyncSummary, make_client, sync_all
from .utils import parse_file_id

logger = logging.getLogger("figma_sync.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="figma-sync")


def format_summary(summary: SyncSummary) -> str:
    lines = []
    for phase in summary.phases:
        status = "ok" if phase.ok else "FAILED"
        lines.append(f"{phase.name}: {status} - {phase.message}")
    lines.append(f"items needing retry: {summary.failed_items}")
    return "\n".join(lines)


@mcp.tool()
async def sync(
    file: str,
    output: str,
    pages: Optional[List[str]] = None,
) -> str:
    """Sync a Figma document (id or URL) and its images into ``output``."""

    token = os.getenv("FIGMA_TOKEN")
    if not token:
        raise RuntimeError("FIGMA_TOKEN is not set for the MCP server")
    file_id = parse_file_id(file) if file.startswith("https://") else file
    if not file_id:
        raise ValueError(f"Figma document URL is not valid: {file}")
    config = SyncConfig(
        file_id=file_id,
        token=token,
        asset_root=Path(output).expanduser().resolve(),
        selected_page_ids=frozenset(pages) if pages else None,
    )
    summary = await asyncio.to_thread(sync_all, config, make_client(config))
    return format_summary(summary)


@mcp.tool()
async def asset_state(path: str) -> str:
    """Report whether a local image is absent, a placeholder awaiting retry, or valid."""

    return classify(Path(path).expanduser()).value


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
