"""
shared/utils/batch.py
Sequential batch operations with a structured per-item outcome.

Items run one after another, never concurrently, and nothing is rolled
back: a partially completed batch leaves whatever state the individual
calls produced.
"""

import logging
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

from shared.clients.backend import ApiResult
from shared.schemas.schemas import BatchItemResult, BatchResult, BatchSummary, Notice

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Skip(Exception):
    """Raised by a batch operation to skip an item without counting a failure."""


async def run_sequential(
    items: Iterable[T],
    operation: Callable[[T], Awaitable[ApiResult]],
    key: Callable[[T], str] = str,
) -> BatchResult:
    result = BatchResult()
    for item in items:
        item_key = key(item)
        try:
            outcome = await operation(item)
        except Skip as exc:
            result.items.append(BatchItemResult(key=item_key, status="skipped", reason=str(exc) or None))
            logger.info(f"Batch item {item_key} skipped")
            continue
        if outcome.ok:
            result.items.append(BatchItemResult(key=item_key, status="succeeded"))
        else:
            result.items.append(BatchItemResult(key=item_key, status="failed", reason=outcome.error))
        logger.info(f"Batch item {item_key} {result.items[-1].status}")
    return result


def summarize(result: BatchResult) -> BatchSummary:
    return BatchSummary(
        succeeded=result.succeeded,
        failed=result.failed,
        skipped=result.skipped,
        items=result.items,
    )


def batch_notices(result: BatchResult, verb: str, infinitive: Optional[str] = None, noun: str = "slot") -> list[Notice]:
    """Aggregate messages, e.g. '3 slot(s) blocked successfully!' / '1 slot(s) failed to block'."""
    infinitive = infinitive or verb.removesuffix("ed")
    notices = []
    if result.succeeded:
        notices.append(Notice(level="success", message=f"{result.succeeded} {noun}(s) {verb} successfully!"))
    if result.failed:
        notices.append(Notice(level="error", message=f"{result.failed} {noun}(s) failed to {infinitive}"))
    return notices
