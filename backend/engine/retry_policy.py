"""
Automatic retry decisions for failed items.
"""

import logging

from engine.queue_store import QueueStore
from models.queue_item import QueuedItem, ItemStatus, BatchSession, RetryPosition
from utils.exceptions import CancellationError

logger = logging.getLogger(__name__)


class RetryPolicy:
    """Reads its limits from the live batch session, so settings changes apply immediately."""

    def __init__(self, session: BatchSession):
        self.session = session

    def should_retry(self, item: QueuedItem) -> bool:
        """
        True iff auto-retry is on, the attempt budget is not exhausted and the
        item actually failed (cancellation is never retried).
        """
        if not self.session.auto_retry_failed:
            return False
        if item.status != ItemStatus.FAILED:
            return False
        if item.error_type == CancellationError.__name__:
            return False
        return item.attempt_count <= self.session.max_retry_attempts

    def apply(self, store: QueueStore, item: QueuedItem) -> bool:
        """Requeue `item` if the policy allows it. Returns True when requeued."""
        if not self.should_retry(item):
            return False

        to_end = self.session.retry_position == RetryPosition.END
        requeued = store.requeue(item.id, to_end=to_end)
        if requeued:
            remaining = self.session.max_retry_attempts + 1 - item.attempt_count
            logger.info(
                f"Auto-retrying item {item.id} (attempt {item.attempt_count} failed: "
                f"{item.error}); {remaining} attempt(s) left"
            )
        return requeued
