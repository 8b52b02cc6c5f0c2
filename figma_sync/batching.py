"""Split node id sets into bounded render batches and send them one at a time."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Generic, List, Optional, Sequence, TypeVar

logger = logging.getLogger("figma_sync")

T = TypeVar("T")

AbortCheck = Callable[[], bool]


def schedule(ids: Sequence[str], max_batch_size: int) -> List[List[str]]:
    """Contiguous, order-preserving chunks of at most ``max_batch_size`` ids."""
    if max_batch_size <= 0:
        raise ValueError("max_batch_size must be positive")
    return [list(ids[start:start + max_batch_size]) for start in range(0, len(ids), max_batch_size)]


@dataclass
class BatchRun(Generic[T]):
    """Responses collected from a sequential batch run."""

    results: List[T] = field(default_factory=list)
    aborted: bool = False


def run_batches(
    batches: Sequence[List[str]],
    send: Callable[[List[str]], T],
    delay: float,
    sleep: Callable[[float], None] = time.sleep,
    abort: Optional[AbortCheck] = None,
) -> BatchRun[T]:
    """Call ``send`` for each batch in order, sleeping ``delay`` seconds between calls.

    A batch is only sent after the previous call returned. Exceptions from
    ``send`` propagate and stop the run. ``abort`` is polled before every
    batch; an in-flight request is never interrupted.
    """
    run: BatchRun[T] = BatchRun()
    total = len(batches)
    for index, batch in enumerate(batches):
        if abort is not None and abort():
            logger.info("Aborted before render batch %d/%d", index + 1, total)
            run.aborted = True
            break
        if index and delay > 0:
            sleep(delay)
        logger.info("Requesting server render batch %d/%d (%d nodes)", index + 1, total, len(batch))
        run.results.append(send(batch))
    return run
