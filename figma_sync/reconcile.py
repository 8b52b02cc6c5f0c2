"""Delete generated artifacts that the current pass no longer produced."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import AbstractSet, List

from .paths import sidecar_path

logger = logging.getLogger("figma_sync")


def _remove_sidecar(artifact: Path) -> None:
    meta = sidecar_path(artifact)
    try:
        meta.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Failed to delete sidecar %s: %s", meta, exc)


def reconcile(before: AbstractSet[Path], after: AbstractSet[Path]) -> List[Path]:
    """Remove every path in ``before - after`` together with its sidecar.

    Returns the artifact paths that were actually deleted, sorted. I/O errors
    are logged per path and never stop the remaining deletions.
    """
    deleted: List[Path] = []
    for orphan in sorted(set(before) - set(after)):
        try:
            orphan.unlink()
        except FileNotFoundError:
            # Already gone; a leftover sidecar is still stale.
            _remove_sidecar(orphan)
            continue
        except OSError as exc:
            logger.warning("Failed to delete orphaned artifact %s: %s", orphan, exc)
            continue
        deleted.append(orphan)
        logger.info("Deleted orphaned artifact: %s", orphan)
        _remove_sidecar(orphan)
    return deleted
