"""
Dispatcher: claims pending items into free worker slots and reacts to
worker outcomes. Runs entirely on the event loop.
"""

import asyncio
import logging
from typing import Callable, Dict, Optional

from engine.cancellation import CancellationToken
from engine.queue_store import QueueStore
from engine.retry_policy import RetryPolicy
from engine.worker import Worker
from models.queue_item import BatchSession, RunState, ItemStatus, QueuedItem, Failed

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Bounded worker pool over the queue store.

    Holds item ids and their worker tasks only; item state stays in the store.
    """

    def __init__(
        self,
        store: QueueStore,
        session: BatchSession,
        worker: Worker,
        retry_policy: RetryPolicy,
        on_session_finished: Optional[Callable[[], None]] = None,
    ):
        self.store = store
        self.session = session
        self.worker = worker
        self.retry_policy = retry_policy
        self.on_session_finished = on_session_finished
        self.token = CancellationToken()
        self._active: Dict[str, asyncio.Task] = {}

    @property
    def active_count(self) -> int:
        return len(self._active)

    def new_token(self) -> CancellationToken:
        """Start a fresh cancellation scope for a new session."""
        self.token = CancellationToken()
        return self.token

    def available_slots(self) -> int:
        return self.session.slot_limit - len(self._active)

    def pump(self) -> int:
        """
        Fill free slots with the lowest-positioned pending items.

        Does nothing unless the session is running. Returns the number of
        workers launched.
        """
        if self.session.run_state != RunState.RUNNING:
            return 0

        launched = 0
        slots = self.available_slots()
        if slots > 0:
            for item in self.store.pending_items():
                if slots <= 0:
                    break
                if not self.store.claim(item.id):
                    # Lost the race (removed or reordered away); re-evaluate the next one
                    continue
                self._launch(item.id)
                slots -= 1
                launched += 1

        self._check_finished()
        return launched

    async def drain(self) -> None:
        """Wait until no worker is running (including workers launched meanwhile)."""
        while self._active:
            await asyncio.wait(list(self._active.values()))

    # --- Internals ---

    def _launch(self, item_id: str) -> None:
        claimed = self.store.get(item_id)
        logger.info(
            f"Worker launched: id={item_id}, position={claimed.queue_position if claimed else '?'}, "
            f"attempt={claimed.attempt_count if claimed else '?'}, active={len(self._active) + 1}/{self.session.slot_limit}"
        )
        task = asyncio.create_task(self._run_worker(item_id, self.token), name=f"worker-{item_id}")
        self._active[item_id] = task

    async def _run_worker(self, item_id: str, token: CancellationToken) -> None:
        released: Optional[QueuedItem] = None
        try:
            released = await self.worker.run(item_id, token)
        except Exception as e:
            # Worker.run isolates collaborator errors; this is a bug guard so the slot is freed
            logger.exception(f"Worker crashed: id={item_id}, error={e}")
            released = self.store.release(item_id, Failed(error=str(e), error_type="EngineError"))
        finally:
            self._active.pop(item_id, None)

        if (
            released is not None
            and released.status == ItemStatus.FAILED
            and self.session.run_state != RunState.CANCELLED
        ):
            self.retry_policy.apply(self.store, released)

        self.pump()

    def _check_finished(self) -> None:
        if self.session.run_state != RunState.RUNNING or self._active:
            return
        if self.store.pending_items():
            return
        logger.info("Batch session finished: no pending items and no active workers")
        if self.on_session_finished:
            self.on_session_finished()
