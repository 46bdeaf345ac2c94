"""
Queue store: the single owner of the batch item list.

Every mutation goes through one re-entrant lock, so claim/release/reorder are
linearizable even when progress arrives from executor threads. Readers only
ever receive tuples of immutable QueuedItem snapshots.
"""

import enum
import itertools
import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from models.queue_item import (
    QueuedItem,
    ItemStatus,
    ItemState,
    SourceRef,
    Pending,
    Downloading,
    Processing,
)

logger = logging.getLogger(__name__)

Snapshot = Tuple[QueuedItem, ...]
Listener = Callable[[Snapshot], None]


class ReorderDirection(str, enum.Enum):
    UP = "up"
    DOWN = "down"
    TOP = "top"
    BOTTOM = "bottom"


def _clamp01(value: float) -> float:
    if value != value:  # NaN
        return 0.0
    return min(1.0, max(0.0, value))


class QueueStore:
    """Ordered, lock-guarded collection of queued items."""

    def __init__(self):
        self._lock = threading.RLock()
        self._items: List[QueuedItem] = []
        self._sequence = itertools.count(1)
        self._listeners: List[Listener] = []
        self._version = 0

    # --- Reads ---

    @property
    def version(self) -> int:
        """Incremented on every mutation."""
        with self._lock:
            return self._version

    def snapshot(self) -> Snapshot:
        """Items ordered by queue position."""
        with self._lock:
            return tuple(self._items)

    def get(self, item_id: str) -> Optional[QueuedItem]:
        with self._lock:
            index = self._index(item_id)
            return self._items[index] if index is not None else None

    def pending_items(self) -> List[QueuedItem]:
        """Pending items in claim order (queue position, then insertion order)."""
        with self._lock:
            pending = [i for i in self._items if i.status == ItemStatus.PENDING]
        return sorted(pending, key=lambda i: (i.queue_position, i.sequence))

    def count_by_status(self) -> Dict[ItemStatus, int]:
        with self._lock:
            counts = {status: 0 for status in ItemStatus}
            for item in self._items:
                counts[item.status] += 1
            return counts

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    # --- Subscriptions ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener called with a fresh snapshot after every mutation.

        Listeners run while the store lock is held, so they see snapshots in
        mutation order. They must be quick and must not block.
        Returns a function that removes the listener.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # --- Mutations ---

    def add(self, item: QueuedItem) -> QueuedItem:
        """Append a new item at the end of the queue."""
        with self._lock:
            if self._index(item.id) is not None:
                raise ValueError(f"Item already queued: {item.id}")
            stored = replace(
                item,
                queue_position=len(self._items),
                sequence=next(self._sequence),
            )
            self._items.append(stored)
            self._commit()
            return stored

    def remove(self, item_id: str) -> bool:
        """Remove one item. Items currently claimed by a worker cannot be removed."""
        with self._lock:
            index = self._index(item_id)
            if index is None or self._items[index].status.is_active:
                return False
            del self._items[index]
            self._renumber()
            self._commit()
            return True

    def remove_where(self, statuses: Iterable[ItemStatus]) -> int:
        """Remove every item whose status is in `statuses`. Returns how many."""
        wanted = set(statuses)
        with self._lock:
            before = len(self._items)
            self._items = [i for i in self._items if i.status not in wanted]
            removed = before - len(self._items)
            if removed:
                self._renumber()
                self._commit()
            return removed

    def clear(self) -> int:
        """Drop every item, claimed or not."""
        with self._lock:
            removed = len(self._items)
            self._items = []
            self._commit()
            return removed

    def reorder(self, item_id: str, direction: ReorderDirection) -> bool:
        """
        Move a pending item among the other pending items.

        Returns False (no-op) when the item is not pending or is already at
        the requested edge.
        """
        direction = ReorderDirection(direction)
        with self._lock:
            index = self._index(item_id)
            if index is None or self._items[index].status != ItemStatus.PENDING:
                return False

            pending = [i for i, it in enumerate(self._items) if it.status == ItemStatus.PENDING]
            rank = pending.index(index)

            if direction == ReorderDirection.UP:
                if rank == 0:
                    return False
                other = pending[rank - 1]
                self._items[index], self._items[other] = self._items[other], self._items[index]
            elif direction == ReorderDirection.DOWN:
                if rank == len(pending) - 1:
                    return False
                other = pending[rank + 1]
                self._items[index], self._items[other] = self._items[other], self._items[index]
            elif direction == ReorderDirection.TOP:
                if rank == 0:
                    return False
                item = self._items.pop(index)
                self._items.insert(pending[0], item)
            else:
                if index == len(self._items) - 1:
                    return False
                item = self._items.pop(index)
                self._items.append(item)

            self._renumber()
            self._commit()
            return True

    def claim(self, item_id: str) -> bool:
        """
        Atomically take a pending item for a worker.

        Remote items without a local copy go to `downloading`, everything
        else straight to `processing`. Fails if the item is not pending.
        """
        with self._lock:
            index = self._index(item_id)
            if index is None:
                return False
            item = self._items[index]
            if item.status != ItemStatus.PENDING:
                return False

            first_state = Downloading(0.0) if item.is_remote and not item.source.local_path else Processing(0.0)
            self._items[index] = replace(
                item,
                state=first_state,
                attempt_count=item.attempt_count + 1,
                claimed_at=datetime.utcnow(),
                finished_at=None,
                processing_duration=None,
            )
            self._commit()
            return True

    def begin_processing(self, item_id: str) -> bool:
        """Move a claimed item from `downloading` to `processing`."""
        with self._lock:
            index = self._index(item_id)
            if index is None or self._items[index].status != ItemStatus.DOWNLOADING:
                return False
            self._items[index] = replace(self._items[index], state=Processing(0.0))
            self._commit()
            return True

    def update_progress(self, item_id: str, fraction: float) -> bool:
        """Record transcription progress. Progress never moves backwards within an attempt."""
        with self._lock:
            index = self._index(item_id)
            if index is None:
                return False
            item = self._items[index]
            if not isinstance(item.state, Processing):
                return False
            value = max(item.state.progress, _clamp01(fraction))
            if value != item.state.progress:
                self._items[index] = replace(item, state=Processing(value))
                self._commit()
            return True

    def update_download_progress(self, item_id: str, fraction: float) -> bool:
        with self._lock:
            index = self._index(item_id)
            if index is None:
                return False
            item = self._items[index]
            if not isinstance(item.state, Downloading):
                return False
            value = max(item.state.progress, _clamp01(fraction))
            if value != item.state.progress:
                self._items[index] = replace(item, state=Downloading(value))
                self._commit()
            return True

    def attach_source(self, item_id: str, source: SourceRef) -> bool:
        """Replace an item's source details (e.g. after a fetch resolved it)."""
        with self._lock:
            index = self._index(item_id)
            if index is None:
                return False
            self._items[index] = replace(self._items[index], source=source)
            self._commit()
            return True

    def release(
        self,
        item_id: str,
        state: ItemState,
        duration: Optional[float] = None,
    ) -> Optional[QueuedItem]:
        """
        End a worker's claim with a terminal state.

        Returns the updated item, or None if the item is gone or was not
        claimed (e.g. removed by clear_queue while the worker ran).
        """
        if not state.status.is_terminal:
            raise ValueError(f"release() needs a terminal state, got {state.status.value}")
        with self._lock:
            index = self._index(item_id)
            if index is None or not self._items[index].status.is_active:
                return None
            released = replace(
                self._items[index],
                state=state,
                finished_at=datetime.utcnow(),
                processing_duration=duration,
            )
            self._items[index] = released
            self._commit()
            return released

    def requeue(self, item_id: str, to_end: bool = False, reset_attempts: bool = False) -> bool:
        """
        Return a failed item to `pending` with progress and error cleared.

        The item keeps its queue position unless `to_end` is set.
        """
        with self._lock:
            index = self._index(item_id)
            if index is None:
                return False
            item = self._items[index]
            if item.status != ItemStatus.FAILED:
                return False

            item = replace(
                item,
                state=Pending(),
                retry_count=item.retry_count + 1,
                attempt_count=0 if reset_attempts else item.attempt_count,
                finished_at=None,
            )
            if to_end:
                del self._items[index]
                self._items.append(item)
                self._renumber()
            else:
                self._items[index] = item
            self._commit()
            return True

    # --- Internals (lock must be held) ---

    def _index(self, item_id: str) -> Optional[int]:
        for index, item in enumerate(self._items):
            if item.id == item_id:
                return index
        return None

    def _renumber(self) -> None:
        for index, item in enumerate(self._items):
            if item.queue_position != index:
                self._items[index] = replace(item, queue_position=index)

    def _commit(self) -> None:
        self._version += 1
        snapshot = tuple(self._items)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Queue listener failed")
